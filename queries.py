"""
Query API: read-only lookups and derived aggregates over the entity store.
Every function is a linear scan of the current snapshot; nothing here writes.
"""

from datetime import date
from typing import Dict, List, Optional

import schemas
from store import EntityStore

# ============================================================
# SINGLE-RECORD LOOKUPS
# ============================================================

def _by_id(records, record_id):
    return next((r for r in records if r.id == record_id), None)


def find_user_by_id(store: EntityStore, user_id: str) -> Optional[schemas.User]:
    return _by_id(store.users, user_id)


def find_user_by_email(store: EntityStore, email: str) -> Optional[schemas.User]:
    email = (email or "").strip().lower()
    return next((u for u in store.users if u.email.lower() == email), None)


def find_course_by_id(store: EntityStore, course_id: str) -> Optional[schemas.Course]:
    return _by_id(store.courses, course_id)


def find_assignment_by_id(store: EntityStore, assignment_id: str) -> Optional[schemas.Assignment]:
    return _by_id(store.assignments, assignment_id)


def find_submission_by_id(store: EntityStore, submission_id: str) -> Optional[schemas.Submission]:
    return _by_id(store.submissions, submission_id)


def find_group_by_id(store: EntityStore, group_id: str) -> Optional[schemas.Group]:
    return _by_id(store.groups, group_id)


def find_quiz_by_id(store: EntityStore, quiz_id: str) -> Optional[schemas.Quiz]:
    return _by_id(store.quizzes, quiz_id)


def find_video_by_id(store: EntityStore, video_id: str) -> Optional[schemas.VideoMaterial]:
    return _by_id(store.video_materials, video_id)

# ============================================================
# FOREIGN-KEY FILTERS
# ============================================================

def find_assignments_by_course_id(store: EntityStore, course_id: str) -> List[schemas.Assignment]:
    return [a for a in store.assignments if a.course_id == course_id]


def find_submissions_by_assignment_id(store: EntityStore, assignment_id: str) -> List[schemas.Submission]:
    return [s for s in store.submissions if s.assignment_id == assignment_id]


def find_submissions_by_student_id(store: EntityStore, student_id: str, assignment_id: str) -> List[schemas.Submission]:
    return [s for s in store.submissions if s.student_id == student_id and s.assignment_id == assignment_id]


def find_announcements_by_course_id(store: EntityStore, course_id: str) -> List[schemas.Announcement]:
    # Newest first
    return sorted((a for a in store.announcements if a.course_id == course_id),
                  key=lambda a: a.created_at, reverse=True)


def find_posts_by_course_id(store: EntityStore, course_id: str) -> List[schemas.DiscussionPost]:
    return sorted((p for p in store.discussion_posts if p.course_id == course_id),
                  key=lambda p: p.created_at, reverse=True)


def find_materials_by_course_id(store: EntityStore, course_id: str) -> List[schemas.CourseMaterial]:
    return sorted((m for m in store.materials if m.course_id == course_id),
                  key=lambda m: m.uploaded_at, reverse=True)


def find_notifications_by_user_id(store: EntityStore, user_id: str) -> List[schemas.Notification]:
    return sorted((n for n in store.notifications if n.user_id == user_id),
                  key=lambda n: n.created_at, reverse=True)


def find_groups_by_course_id(store: EntityStore, course_id: str) -> List[schemas.Group]:
    return [g for g in store.groups if g.course_id == course_id]


def find_group_for_student(store: EntityStore, course_id: str, student_id: str) -> Optional[schemas.Group]:
    return next((g for g in store.groups if g.course_id == course_id and student_id in g.member_ids), None)


def find_quizzes_by_course_id(store: EntityStore, course_id: str) -> List[schemas.Quiz]:
    return [q for q in store.quizzes if q.course_id == course_id]


def find_quiz_attempts_by_quiz_id(store: EntityStore, quiz_id: str) -> List[schemas.QuizAttempt]:
    return [qa for qa in store.quiz_attempts if qa.quiz_id == quiz_id]


def find_quiz_attempt_by_student(store: EntityStore, quiz_id: str, student_id: str) -> Optional[schemas.QuizAttempt]:
    return next((qa for qa in store.quiz_attempts if qa.quiz_id == quiz_id and qa.student_id == student_id), None)


def find_chat_messages_by_group_id(store: EntityStore, group_id: str) -> List[schemas.ChatMessage]:
    # Oldest first, like a chat log
    return sorted((m for m in store.chat_messages if m.group_id == group_id), key=lambda m: m.timestamp)


def find_attendance_by_course_for_date(store: EntityStore, course_id: str, on_date: date) -> List[schemas.AttendanceRecord]:
    return [r for r in store.attendance_records if r.course_id == course_id and r.date == on_date]


def find_attendance_by_course_and_student(store: EntityStore, course_id: str, student_id: str) -> List[schemas.AttendanceRecord]:
    # Most recent day first
    return sorted((r for r in store.attendance_records if r.course_id == course_id and r.student_id == student_id),
                  key=lambda r: r.date, reverse=True)


def find_fees_by_student_id(store: EntityStore, student_id: str) -> List[schemas.Fee]:
    return sorted((f for f in store.fees if f.student_id == student_id), key=lambda f: f.due_date, reverse=True)


def find_fees_by_course_id(store: EntityStore, course_id: str) -> List[schemas.Fee]:
    return [f for f in store.fees if f.course_id == course_id]


def find_video_materials_by_course_id(store: EntityStore, course_id: str) -> List[schemas.VideoMaterial]:
    return sorted((v for v in store.video_materials if v.course_id == course_id),
                  key=lambda v: v.uploaded_at, reverse=True)


def find_video_notes_by_video_id_and_student_id(store: EntityStore, video_id: str, student_id: str) -> List[schemas.VideoNote]:
    return sorted((n for n in store.video_notes if n.video_id == video_id and n.student_id == student_id),
                  key=lambda n: n.timestamp)

# ============================================================
# COURSE LISTS
# ============================================================

def enrolled_courses(store: EntityStore, student_id: str) -> List[schemas.Course]:
    return [c for c in store.courses if student_id in c.student_ids]


def available_courses(store: EntityStore, student_id: str) -> List[schemas.Course]:
    return [c for c in store.courses if student_id not in c.student_ids]


def taught_courses(store: EntityStore, teacher_id: str) -> List[schemas.Course]:
    return [c for c in store.courses if c.teacher_id == teacher_id]


def completed_courses(store: EntityStore, student_id: str) -> List[schemas.Course]:
    today = store.today()
    return [c for c in enrolled_courses(store, student_id) if c.end_date < today]

# ============================================================
# GRADES & SCORES
# ============================================================

def score_quiz(quiz: schemas.Quiz, answers: Dict[str, str]) -> float:
    """Percentage of questions answered exactly right; 0 for a quiz with no questions."""
    if not quiz.questions:
        return 0.0
    correct = sum(1 for q in quiz.questions if answers.get(q.id) == q.correct_answer)
    return correct / len(quiz.questions) * 100


def calculate_course_grade(store: EntityStore, course_id: str, student_id: str) -> Optional[float]:
    """
    Plain mean of the student's graded submissions and quiz scores in a course.

    Each graded submission and each quiz attempt counts once, whatever the
    assignment or quiz. Returns None when there is nothing to average yet.
    """
    assignment_ids = {a.id for a in find_assignments_by_course_id(store, course_id)}
    quiz_ids = {q.id for q in find_quizzes_by_course_id(store, course_id)}

    grades = [
        s.grade for s in store.submissions
        if s.student_id == student_id and s.assignment_id in assignment_ids and s.grade is not None
    ]
    grades += [
        qa.score for qa in store.quiz_attempts
        if qa.student_id == student_id and qa.quiz_id in quiz_ids
    ]
    if not grades:
        return None
    return sum(grades) / len(grades)


def attendance_percentage(store: EntityStore, course_id: str, student_id: str) -> Optional[float]:
    # Late counts as attended
    records = find_attendance_by_course_and_student(store, course_id, student_id)
    if not records:
        return None
    attended = sum(1 for r in records if r.status in ("Present", "Late"))
    return attended / len(records) * 100


def attendance_summary(store: EntityStore, course_id: str, student_id: str) -> Dict[str, object]:
    records = find_attendance_by_course_and_student(store, course_id, student_id)
    return {
        "percentage": attendance_percentage(store, course_id, student_id),
        "present": sum(1 for r in records if r.status == "Present"),
        "late": sum(1 for r in records if r.status == "Late"),
        "absent": sum(1 for r in records if r.status == "Absent"),
    }


def _average(values) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0.0

# ============================================================
# REPORTS & DASHBOARDS
# ============================================================

def course_report(store: EntityStore, course_id: str) -> Optional[Dict[str, object]]:
    """
    Per-course teacher report built from assignment submissions only.

    Averages are 0 when nothing has been graded yet.
    """
    course = find_course_by_id(store, course_id)
    if course is None:
        return None

    assignments = find_assignments_by_course_id(store, course_id)
    assignment_ids = {a.id for a in assignments}
    submissions = [s for s in store.submissions if s.assignment_id in assignment_ids]
    students = [u for u in (find_user_by_id(store, sid) for sid in course.student_ids) if u is not None]

    assignment_stats = []
    for assignment in assignments:
        subs = [s for s in submissions if s.assignment_id == assignment.id]
        assignment_stats.append({
            "id": assignment.id,
            "title": assignment.title,
            "submission_count": len(subs),
            "submission_rate": len(subs) / len(students) * 100 if students else 0.0,
            "average_grade": _average(s.grade for s in subs if s.grade is not None),
        })

    student_stats = []
    for student in students:
        subs = [s for s in submissions if s.student_id == student.id]
        student_stats.append({
            "id": student.id,
            "name": student.name,
            "submitted_count": len(subs),
            "average_grade": _average(s.grade for s in subs if s.grade is not None),
        })

    return {
        "course_id": course.id,
        "course_title": course.title,
        "overall_average_grade": _average(s.grade for s in submissions if s.grade is not None),
        "assignment_stats": assignment_stats,
        "student_stats": student_stats,
    }


def student_progress(store: EntityStore, student_id: str) -> Dict[str, object]:
    graded = [s for s in store.submissions if s.student_id == student_id and s.grade is not None]
    return {
        "enrolled_courses_count": len(enrolled_courses(store, student_id)),
        "average_grade": _average(s.grade for s in graded),
        "submissions_count": len(graded),
    }


def teacher_summary(store: EntityStore, teacher_id: str) -> Dict[str, int]:
    courses = taught_courses(store, teacher_id)
    students = {sid for c in courses for sid in c.student_ids}
    return {"taught_courses_count": len(courses), "total_students": len(students)}


def upcoming_assignments(store: EntityStore, user: schemas.User, limit: int = 5) -> List[schemas.Assignment]:
    """
    Assignments due today or later, soonest first.

    Students see unsubmitted work in enrolled courses; teachers see their own courses.
    """
    today = store.today()
    if user.role == "Student":
        course_ids = {c.id for c in enrolled_courses(store, user.id)}
        submitted = {s.assignment_id for s in store.submissions if s.student_id == user.id}
    else:
        course_ids = {c.id for c in taught_courses(store, user.id)}
        submitted = set()
    due = [
        a for a in store.assignments
        if a.course_id in course_ids and a.due_date >= today and a.id not in submitted
    ]
    return sorted(due, key=lambda a: a.due_date)[:limit]


def ungraded_submissions(store: EntityStore, teacher_id: str, limit: int = 5) -> List[schemas.Submission]:
    course_ids = {c.id for c in taught_courses(store, teacher_id)}
    assignment_ids = {a.id for a in store.assignments if a.course_id in course_ids}
    pending = [s for s in store.submissions if s.assignment_id in assignment_ids and s.grade is None]
    return sorted(pending, key=lambda s: s.submitted_at, reverse=True)[:limit]


def unread_notification_count(store: EntityStore, user_id: str) -> int:
    return sum(1 for n in store.notifications if n.user_id == user_id and not n.is_read)


def fee_status(fee: schemas.Fee, today: date) -> str:
    """Display status: an Unpaid fee past its due date reads as Overdue. Stored status is untouched."""
    if fee.status == "Unpaid" and fee.due_date < today:
        return "Overdue"
    return fee.status
