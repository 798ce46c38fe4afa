# Mutation API: every change to the entity store goes through one of these functions
import functools
import re
from typing import Dict, Iterable, List, Optional, TypeVar, Union

import bcrypt
from pydantic import ValidationError

import queries
import schemas
from ai_service import ContentService, ContentServiceError
from store import EntityStore

PASSWORD_PATTERN = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]).{8,}$"
)
PASSWORD_RULES_MESSAGE = (
    "Password must be at least 8 characters long and include an uppercase letter, "
    "a lowercase letter, a number, and a special character."
)
PASSWORD_MISMATCH_MESSAGE = "Passwords do not match."
EMAIL_TAKEN_MESSAGE = "An account with this email already exists."
ALREADY_IN_GROUP_MESSAGE = "You can only join one group per course. Please leave your current group first."
INVALID_PROFILE_MESSAGE = "Some profile fields are missing or invalid."

RecordT = TypeVar("RecordT", bound=schemas.Record)

# ============================================================
# HELPERS
# ============================================================

def mutation(func):
    """Run a store-first mutation while holding the store lock."""
    @functools.wraps(func)
    def wrapper(store: EntityStore, *args, **kwargs):
        with store.lock:
            return func(store, *args, **kwargs)
    return wrapper


def _revise(record: RecordT, **changes) -> RecordT:
    # Validated copy: model_copy would store whatever it is given
    return type(record).model_validate({**record.model_dump(), **changes})


def hash_password(plain_password: str) -> str:
    """Hash a password using bcrypt."""
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(plain_password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError as e:
        # stored value is not a bcrypt hash
        print(f"Error verifying password: {e}")
        return False


def check_password(password: str, confirm_password: Optional[str] = None) -> Optional[str]:
    """Returns an error message when the password breaks the policy or the confirmation differs."""
    if not PASSWORD_PATTERN.match(password or ""):
        return PASSWORD_RULES_MESSAGE
    if confirm_password is not None and password != confirm_password:
        return PASSWORD_MISMATCH_MESSAGE
    return None


def _acting_user(store: EntityStore, role: Optional[str] = None) -> Optional[schemas.User]:
    # No user, or the wrong role: callers return without touching the store
    user = store.current_user
    if user is None or (role is not None and user.role != role):
        return None
    return user


def _owned_course(store: EntityStore, teacher: schemas.User, course_id: str) -> Optional[schemas.Course]:
    course = queries.find_course_by_id(store, course_id)
    if course is None or course.teacher_id != teacher.id:
        return None
    return course


def _notify(store: EntityStore, user_ids: Iterable[str], message: str, link: str) -> List[schemas.Notification]:
    now = store.now()
    notifications = [
        schemas.Notification(
            id=store.new_id("notif"),
            user_id=user_id,
            message=message,
            link=link,
            is_read=False,
            created_at=now,
        )
        for user_id in user_ids
    ]
    if notifications:
        store.prepend("notifications", *notifications)
    return notifications


def _notify_enrolled(store: EntityStore, course: schemas.Course, message: str) -> List[schemas.Notification]:
    return _notify(store, course.student_ids, message, f"/course/{course.id}")


def _release_file(store: EntityStore, url: Optional[str]) -> None:
    if url and store.files is not None:
        store.files.release(url)

# ============================================================
# AUTH & PROFILE
# ============================================================

@mutation
def register(store: EntityStore, data: schemas.RegisterRequest) -> Optional[str]:
    """Create an account and log it in. Returns an error message, or None on success."""
    email = data.email.strip()
    if any(u.email.lower() == email.lower() for u in store.users):
        return EMAIL_TAKEN_MESSAGE
    error = check_password(data.password, data.confirm_password)
    if error:
        return error

    user = schemas.User(
        id=store.new_id("user"),
        name=data.name.strip(),
        email=email,
        password_hash=hash_password(data.password),
        role=data.role,
        registered_at=store.now(),
    )
    store.append("users", user)
    store.set_current_user(user.id)
    print(f"✅ Registered {user.role.lower()} {user.email}")
    return None


@mutation
def login(store: EntityStore, email: str, password: str) -> bool:
    user = queries.find_user_by_email(store, email)
    if user is None or not verify_password(password, user.password_hash):
        return False
    store.set_current_user(user.id)
    return True


@mutation
def login_with_user(store: EntityStore, user_id: str) -> bool:
    """Log in as an existing account picked from a list (no password prompt)."""
    if queries.find_user_by_id(store, user_id) is None:
        return False
    store.set_current_user(user_id)
    return True


@mutation
def logout(store: EntityStore) -> None:
    store.set_current_user(None)


@mutation
def update_user_profile(store: EntityStore, user_id: str, data: schemas.ProfileUpdate) -> Optional[str]:
    """
    Update the logged-in user's own profile.

    Returns an error message for a rejected password change or an invalid
    field (such as a null name), otherwise None.
    Email, role and registration date can't be changed here.
    """
    acting = _acting_user(store)
    if acting is None or acting.id != user_id:
        return None

    changes = data.model_dump(exclude_unset=True, exclude={"password", "confirm_password"})
    if data.password:
        error = check_password(data.password, data.confirm_password or "")
        if error:
            return error
        changes["password_hash"] = hash_password(data.password)
    if not changes:
        return None

    try:
        updated = _revise(acting, **changes)
    except ValidationError as e:
        print(f"⚠️ Rejected profile update for {user_id}: {e.error_count()} error(s)")
        return INVALID_PROFILE_MESSAGE

    # current_user resolves through the users collection, so it sees the update too
    store.replace("users", [updated if u.id == user_id else u for u in store.users])
    return None

# ============================================================
# COURSES, ASSIGNMENTS & SUBMISSIONS
# ============================================================

@mutation
def create_course(store: EntityStore, data: schemas.CourseCreate) -> Optional[schemas.Course]:
    teacher = _acting_user(store, "Teacher")
    if teacher is None:
        return None
    course = schemas.Course(
        id=store.new_id("course"),
        title=data.title,
        description=data.description,
        start_date=data.start_date,
        end_date=data.end_date,
        teacher_id=teacher.id,
        student_ids=[],
    )
    store.append("courses", course)
    return course


@mutation
def enroll_in_course(store: EntityStore, course_id: str) -> Optional[schemas.Course]:
    student = _acting_user(store, "Student")
    course = queries.find_course_by_id(store, course_id)
    if student is None or course is None:
        return None
    if student.id in course.student_ids:
        return course

    enrolled = _revise(course, student_ids=[*course.student_ids, student.id])
    store.replace("courses", [enrolled if c.id == course_id else c for c in store.courses])
    return enrolled


@mutation
def create_assignment(store: EntityStore, data: schemas.AssignmentCreate) -> Optional[schemas.Assignment]:
    teacher = _acting_user(store, "Teacher")
    course = _owned_course(store, teacher, data.course_id) if teacher else None
    if course is None:
        return None
    assignment = schemas.Assignment(
        id=store.new_id("assign"),
        course_id=course.id,
        title=data.title,
        description=data.description,
        due_date=data.due_date,
    )
    store.append("assignments", assignment)
    _notify_enrolled(store, course, f'New assignment "{assignment.title}" in "{course.title}".')
    return assignment


@mutation
def submit_assignment(store: EntityStore, data: schemas.SubmissionCreate) -> Optional[schemas.Submission]:
    """
    Submit (or resubmit) the current student's work for an assignment.

    There is at most one submission per (assignment, student): a resubmission
    keeps the record id, replaces the content and clears any grade and feedback.
    """
    student = _acting_user(store, "Student")
    assignment = queries.find_assignment_by_id(store, data.assignment_id)
    if student is None or assignment is None:
        return None
    course = queries.find_course_by_id(store, assignment.course_id)
    if course is None or student.id not in course.student_ids:
        return None

    fields = {
        "content": data.content,
        "file_url": data.file_url,
        "file_name": data.file_name,
        "file_type": data.file_type,
        "submitted_at": store.now(),
        "grade": None,
        "feedback": None,
        "graded_at": None,
    }
    existing = next(iter(queries.find_submissions_by_student_id(store, student.id, assignment.id)), None)
    if existing is not None:
        if existing.file_url != data.file_url:
            _release_file(store, existing.file_url)
        submission = _revise(existing, **fields)
        store.replace("submissions", [submission if s.id == existing.id else s for s in store.submissions])
        return submission

    submission = schemas.Submission(
        id=store.new_id("sub"),
        assignment_id=assignment.id,
        student_id=student.id,
        **fields,
    )
    store.append("submissions", submission)
    return submission


@mutation
def grade_submission(store: EntityStore, submission_id: str, grade: float, feedback: str = "") -> Optional[schemas.Submission]:
    teacher = _acting_user(store, "Teacher")
    submission = queries.find_submission_by_id(store, submission_id)
    if teacher is None or submission is None or not 0 <= grade <= 100:
        return None
    assignment = queries.find_assignment_by_id(store, submission.assignment_id)
    if assignment is None or _owned_course(store, teacher, assignment.course_id) is None:
        return None

    graded = _revise(submission, grade=grade, feedback=feedback, graded_at=store.now())
    store.replace("submissions", [graded if s.id == submission_id else s for s in store.submissions])
    _notify(
        store,
        [submission.student_id],
        f'Graded: Your submission for "{assignment.title}" received a {grade:g}%.',
        f"/course/{assignment.course_id}",
    )
    return graded

# ============================================================
# MATERIALS, ANNOUNCEMENTS & DISCUSSION
# ============================================================

@mutation
def upload_material(store: EntityStore, data: schemas.MaterialCreate) -> Optional[schemas.CourseMaterial]:
    teacher = _acting_user(store, "Teacher")
    course = _owned_course(store, teacher, data.course_id) if teacher else None
    if course is None:
        return None
    material = schemas.CourseMaterial(
        id=store.new_id("mat"),
        course_id=course.id,
        file_name=data.file_name,
        file_type=data.file_type,
        file_url=data.file_url,
        uploaded_at=store.now(),
    )
    store.prepend("materials", material)
    _notify_enrolled(store, course, f'New material "{material.file_name}" uploaded to "{course.title}".')
    return material


@mutation
def delete_material(store: EntityStore, material_id: str) -> bool:
    teacher = _acting_user(store, "Teacher")
    material = next((m for m in store.materials if m.id == material_id), None)
    if teacher is None or material is None or _owned_course(store, teacher, material.course_id) is None:
        return False
    _release_file(store, material.file_url)
    store.replace("materials", [m for m in store.materials if m.id != material_id])
    return True


@mutation
def create_announcement(store: EntityStore, data: schemas.AnnouncementCreate) -> Optional[schemas.Announcement]:
    teacher = _acting_user(store, "Teacher")
    course = _owned_course(store, teacher, data.course_id) if teacher else None
    if course is None:
        return None
    announcement = schemas.Announcement(
        id=store.new_id("announce"),
        course_id=course.id,
        title=data.title,
        content=data.content,
        author_id=teacher.id,
        created_at=store.now(),
    )
    store.prepend("announcements", announcement)
    _notify_enrolled(store, course, f'New announcement in "{course.title}": {announcement.title}')
    return announcement


@mutation
def create_discussion_post(store: EntityStore, data: schemas.DiscussionPostCreate) -> Optional[schemas.DiscussionPost]:
    author = _acting_user(store)
    course = queries.find_course_by_id(store, data.course_id)
    if author is None or course is None:
        return None
    if data.parent_id is not None:
        parent = next((p for p in store.discussion_posts if p.id == data.parent_id), None)
        if parent is None or parent.course_id != course.id:
            return None

    post = schemas.DiscussionPost(
        id=store.new_id("post"),
        course_id=course.id,
        author_id=author.id,
        content=data.content,
        created_at=store.now(),
        parent_id=data.parent_id,
    )
    store.append("discussion_posts", post)
    if author.role == "Student" and course.teacher_id != author.id:
        _notify(
            store,
            [course.teacher_id],
            f'{author.name} posted in the "{course.title}" discussion.',
            f"/course/{course.id}",
        )
    return post

# ============================================================
# NOTIFICATIONS
# ============================================================

@mutation
def mark_notification_as_read(store: EntityStore, notification_id: str) -> bool:
    user = _acting_user(store)
    target = next((n for n in store.notifications if n.id == notification_id), None)
    if user is None or target is None or target.user_id != user.id:
        return False
    if target.is_read:
        return True
    store.replace(
        "notifications",
        [_revise(n, is_read=True) if n.id == notification_id else n for n in store.notifications],
    )
    return True


@mutation
def mark_all_notifications_as_read(store: EntityStore) -> int:
    user = _acting_user(store)
    if user is None:
        return 0
    unread = {n.id for n in store.notifications if n.user_id == user.id and not n.is_read}
    if unread:
        store.replace(
            "notifications",
            [_revise(n, is_read=True) if n.id in unread else n for n in store.notifications],
        )
    return len(unread)

# ============================================================
# GROUPS & CHAT
# ============================================================

@mutation
def create_group(store: EntityStore, data: schemas.GroupCreate) -> Union[schemas.Group, str, None]:
    """
    Start a study group with the current student as its only member.

    Returns the group, ALREADY_IN_GROUP_MESSAGE if the student already has a
    group in this course, or None when the caller may not create one.
    """
    student = _acting_user(store, "Student")
    course = queries.find_course_by_id(store, data.course_id)
    if student is None or course is None or student.id not in course.student_ids:
        return None
    if queries.find_group_for_student(store, course.id, student.id) is not None:
        return ALREADY_IN_GROUP_MESSAGE

    group = schemas.Group(
        id=store.new_id("group"),
        course_id=course.id,
        name=data.name,
        description=data.description,
        member_ids=[student.id],
    )
    store.append("groups", group)
    return group


@mutation
def join_group(store: EntityStore, group_id: str) -> Optional[str]:
    """Returns ALREADY_IN_GROUP_MESSAGE when the student already has a group in that course."""
    student = _acting_user(store, "Student")
    group = queries.find_group_by_id(store, group_id)
    if student is None or group is None:
        return None
    course = queries.find_course_by_id(store, group.course_id)
    if course is None or student.id not in course.student_ids:
        return None
    if queries.find_group_for_student(store, group.course_id, student.id) is not None:
        return ALREADY_IN_GROUP_MESSAGE

    joined = _revise(group, member_ids=[*group.member_ids, student.id])
    store.replace("groups", [joined if g.id == group_id else g for g in store.groups])
    return None


@mutation
def leave_group(store: EntityStore, group_id: str) -> bool:
    user = _acting_user(store)
    group = queries.find_group_by_id(store, group_id)
    if user is None or group is None or user.id not in group.member_ids:
        return False

    members = [m for m in group.member_ids if m != user.id]
    if not members:
        store.replace("groups", [g for g in store.groups if g.id != group_id])
    else:
        remaining = _revise(group, member_ids=members)
        store.replace("groups", [remaining if g.id == group_id else g for g in store.groups])
    return True


@mutation
def send_chat_message(store: EntityStore, data: schemas.ChatMessageCreate) -> Optional[schemas.ChatMessage]:
    author = _acting_user(store)
    group = queries.find_group_by_id(store, data.group_id)
    if author is None or group is None or author.id not in group.member_ids:
        return None
    message = schemas.ChatMessage(
        id=store.new_id("msg"),
        group_id=group.id,
        author_id=author.id,
        content=data.content,
        timestamp=store.now(),
    )
    store.append("chat_messages", message)
    return message

# ============================================================
# QUIZZES
# ============================================================

@mutation
def create_quiz(store: EntityStore, data: schemas.QuizCreate) -> Optional[schemas.Quiz]:
    teacher = _acting_user(store, "Teacher")
    course = _owned_course(store, teacher, data.course_id) if teacher else None
    if course is None:
        return None
    quiz = schemas.Quiz(
        id=store.new_id("quiz"),
        course_id=course.id,
        title=data.title,
        questions=[
            schemas.Question(id=store.new_id("q"), **question.model_dump())
            for question in data.questions
        ],
    )
    store.append("quizzes", quiz)
    _notify_enrolled(store, course, f'New quiz "{quiz.title}" in "{course.title}".')
    return quiz


@mutation
def submit_quiz(store: EntityStore, quiz_id: str, answers: Dict[str, str]) -> Optional[schemas.QuizAttempt]:
    """Score and record the current student's only attempt at a quiz."""
    student = _acting_user(store, "Student")
    quiz = queries.find_quiz_by_id(store, quiz_id)
    if student is None or quiz is None:
        return None
    course = queries.find_course_by_id(store, quiz.course_id)
    if course is None or student.id not in course.student_ids:
        return None
    if queries.find_quiz_attempt_by_student(store, quiz_id, student.id) is not None:
        return None

    attempt = schemas.QuizAttempt(
        id=store.new_id("attempt"),
        quiz_id=quiz.id,
        student_id=student.id,
        answers=dict(answers),
        score=queries.score_quiz(quiz, answers),
        submitted_at=store.now(),
    )
    store.append("quiz_attempts", attempt)
    return attempt

# ============================================================
# ATTENDANCE & FEES
# ============================================================

@mutation
def mark_attendance(store: EntityStore, course_id: str, entries: Iterable[schemas.AttendanceEntry],
                    on_date=None) -> Optional[List[schemas.AttendanceRecord]]:
    """
    Replace the whole day's attendance for a course.

    Every enrolled student gets exactly one record for the day; students not in
    `entries` are marked Absent and entries for students outside the roster are ignored.
    """
    teacher = _acting_user(store, "Teacher")
    course = _owned_course(store, teacher, course_id) if teacher else None
    if course is None:
        return None

    day = on_date or store.today()
    statuses = {entry.student_id: entry.status for entry in entries}
    records = [
        schemas.AttendanceRecord(
            id=f"att-{student_id}-{course.id}-{day.isoformat()}",
            course_id=course.id,
            student_id=student_id,
            date=day,
            status=statuses.get(student_id, "Absent"),
        )
        for student_id in course.student_ids
    ]
    others = [r for r in store.attendance_records if not (r.course_id == course.id and r.date == day)]
    store.replace("attendance_records", others + records)
    return records


@mutation
def create_fee(store: EntityStore, data: schemas.FeeCreate) -> Optional[List[schemas.Fee]]:
    teacher = _acting_user(store, "Teacher")
    course = _owned_course(store, teacher, data.course_id) if teacher else None
    if course is None:
        return None

    student_ids = [s for s in dict.fromkeys(data.student_ids) if s in course.student_ids]
    fees = [
        schemas.Fee(
            id=store.new_id("fee"),
            student_id=student_id,
            course_id=course.id,
            description=data.description,
            amount=data.amount,
            due_date=data.due_date,
            status="Unpaid",
        )
        for student_id in student_ids
    ]
    if not fees:
        return []
    store.append("fees", *fees)
    _notify(
        store,
        student_ids,
        f'A new fee of ${data.amount:g} for "{data.description}" has been assigned.',
        "/profile",
    )
    return fees


@mutation
def pay_fee(store: EntityStore, fee_id: str, payment_method: str) -> Optional[schemas.Fee]:
    """Pay one of the current student's fees. Paying a fee that is already Paid does nothing."""
    student = _acting_user(store, "Student")
    fee = next((f for f in store.fees if f.id == fee_id), None)
    if student is None or fee is None or fee.student_id != student.id or fee.status == "Paid":
        return None
    try:
        paid = _revise(fee, status="Paid", payment_method=payment_method, payment_date=store.now())
    except ValidationError:
        # unknown payment method
        return None
    store.replace("fees", [paid if f.id == fee_id else f for f in store.fees])
    return paid

# ============================================================
# VIDEOS & NOTES
# ============================================================

async def upload_video_material(store: EntityStore, content: ContentService, course_id: str,
                                file_name: str, file_type: str, data: bytes) -> Optional[schemas.VideoMaterial]:
    """
    Store a video, ask the content service for a transcript, then record it.

    If transcript generation fails the stored bytes are released and the error propagates.
    The store lock is only taken after the transcript arrives, never across the await.
    """
    teacher = _acting_user(store, "Teacher")
    course = _owned_course(store, teacher, course_id) if teacher else None
    if course is None or store.files is None:
        return None

    file_url = store.files.create_url(data, file_name, file_type)
    try:
        transcript = await content.generate_video_transcript(file_name)
    except ContentServiceError:
        store.files.release(file_url)
        raise

    with store.lock:
        # the roster may have changed while we waited
        course = queries.find_course_by_id(store, course_id) or course
        video = schemas.VideoMaterial(
            id=store.new_id("video"),
            course_id=course.id,
            file_name=file_name,
            file_type=file_type,
            file_url=file_url,
            uploaded_at=store.now(),
            transcript=transcript,
        )
        store.prepend("video_materials", video)
        _notify_enrolled(store, course, f'New video "{file_name}" uploaded to "{course.title}".')
    return video


@mutation
def delete_video_material(store: EntityStore, video_id: str) -> bool:
    teacher = _acting_user(store, "Teacher")
    video = queries.find_video_by_id(store, video_id)
    if teacher is None or video is None or _owned_course(store, teacher, video.course_id) is None:
        return False
    _release_file(store, video.file_url)
    store.replace("video_materials", [v for v in store.video_materials if v.id != video_id])
    store.replace("video_notes", [n for n in store.video_notes if n.video_id != video_id])
    return True


@mutation
def create_video_note(store: EntityStore, data: schemas.VideoNoteCreate) -> Optional[schemas.VideoNote]:
    user = _acting_user(store)
    if user is None or queries.find_video_by_id(store, data.video_id) is None:
        return None
    note = schemas.VideoNote(
        id=store.new_id("vnote"),
        video_id=data.video_id,
        student_id=user.id,
        content=data.content,
        timestamp=data.timestamp,
        created_at=store.now(),
    )
    store.append("video_notes", note)
    return note


async def ask_video_question(store: EntityStore, content: ContentService, video_id: str, question: str) -> Optional[str]:
    if _acting_user(store) is None:
        return None
    video = queries.find_video_by_id(store, video_id)
    if video is None:
        return None
    return await content.answer_question_about_video(question, video.transcript)
