import threading
from datetime import date
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException, UploadFile, File, Form
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, PlainTextResponse, Response
from dotenv import load_dotenv

import crud, queries, schemas, exports
from ai_service import ContentService, ContentServiceError
from file_service import FileStore
from storage import KeyValueStorage
from store import EntityStore

load_dotenv()

app = FastAPI(title="SmartLearn API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# One store per process: the whole application state lives here
_store: Optional[EntityStore] = None
_content: Optional[ContentService] = None
_store_lock = threading.Lock()


def get_store() -> EntityStore:
    global _store
    with _store_lock:
        if _store is None:
            _store = EntityStore(KeyValueStorage(), files=FileStore())
            print("✅ Entity store loaded")
    return _store


def get_content() -> ContentService:
    global _content
    if _content is None:
        _content = ContentService()
    return _content


def public_user(user: Optional[schemas.User]):
    if user is None:
        return None
    return user.model_dump(mode="json", exclude={"password_hash"})


def _or_404(record, what: str):
    if record is None:
        raise HTTPException(status_code=404, detail=f"{what} not found")
    return record


def _reject(error: Optional[str]):
    if error:
        raise HTTPException(status_code=400, detail=error)


@app.get("/")
def home():
    return {"msg": "SmartLearn backend running ✅"}


@app.get("/alerts")
def get_alerts(store: EntityStore = Depends(get_store)):
    return {"alerts": store.pop_alerts()}

# -------------------------
# Auth & profile
# -------------------------

@app.post("/register")
def register(data: schemas.RegisterRequest, store: EntityStore = Depends(get_store)):
    _reject(crud.register(store, data))
    return public_user(store.current_user)


@app.post("/login")
def login(data: schemas.LoginRequest, store: EntityStore = Depends(get_store)):
    if not crud.login(store, data.email, data.password):
        raise HTTPException(status_code=401, detail="Invalid email or password.")
    return public_user(store.current_user)


@app.post("/login/{user_id}")
def login_with_user(user_id: str, store: EntityStore = Depends(get_store)):
    if not crud.login_with_user(store, user_id):
        raise HTTPException(status_code=404, detail="User not found")
    return public_user(store.current_user)


@app.post("/logout")
def logout(store: EntityStore = Depends(get_store)):
    crud.logout(store)
    return {"msg": "Logged out"}


@app.get("/me")
def me(store: EntityStore = Depends(get_store)):
    return public_user(store.current_user)


@app.get("/users")
def list_users(store: EntityStore = Depends(get_store)):
    return [public_user(u) for u in store.users]


@app.get("/users/{user_id}")
def get_user(user_id: str, store: EntityStore = Depends(get_store)):
    return public_user(_or_404(queries.find_user_by_id(store, user_id), "User"))


@app.put("/users/{user_id}")
def update_user(user_id: str, data: schemas.ProfileUpdate, store: EntityStore = Depends(get_store)):
    _reject(crud.update_user_profile(store, user_id, data))
    return public_user(queries.find_user_by_id(store, user_id))


@app.get("/dashboard")
def dashboard(store: EntityStore = Depends(get_store)):
    user = store.current_user
    if user is None:
        return None
    summary = {
        "user": public_user(user),
        "unread_notifications": queries.unread_notification_count(store, user.id),
        "upcoming_assignments": queries.upcoming_assignments(store, user),
    }
    if user.role == "Student":
        summary["enrolled_courses"] = queries.enrolled_courses(store, user.id)
        summary["available_courses"] = queries.available_courses(store, user.id)
        summary["completed_courses"] = queries.completed_courses(store, user.id)
        summary["progress"] = queries.student_progress(store, user.id)
        summary["attendance"] = {
            c.id: queries.attendance_percentage(store, c.id, user.id)
            for c in queries.enrolled_courses(store, user.id)
        }
    else:
        summary["taught_courses"] = queries.taught_courses(store, user.id)
        summary["teaching"] = queries.teacher_summary(store, user.id)
        summary["ungraded_submissions"] = queries.ungraded_submissions(store, user.id)
    return summary

# -------------------------
# Courses, assignments, submissions
# -------------------------

@app.get("/courses", response_model=list[schemas.Course])
def get_all_courses(store: EntityStore = Depends(get_store)):
    return list(store.courses)


@app.post("/courses", response_model=Optional[schemas.Course])
def create_course(data: schemas.CourseCreate, store: EntityStore = Depends(get_store)):
    return crud.create_course(store, data)


@app.get("/courses/{course_id}", response_model=schemas.Course)
def get_course(course_id: str, store: EntityStore = Depends(get_store)):
    return _or_404(queries.find_course_by_id(store, course_id), "Course")


@app.post("/courses/{course_id}/enroll", response_model=Optional[schemas.Course])
def enroll(course_id: str, store: EntityStore = Depends(get_store)):
    return crud.enroll_in_course(store, course_id)


@app.get("/courses/{course_id}/assignments", response_model=list[schemas.Assignment])
def get_assignments(course_id: str, store: EntityStore = Depends(get_store)):
    return queries.find_assignments_by_course_id(store, course_id)


@app.post("/assignments", response_model=Optional[schemas.Assignment])
def create_assignment(data: schemas.AssignmentCreate, store: EntityStore = Depends(get_store)):
    return crud.create_assignment(store, data)


@app.get("/assignments/{assignment_id}/submissions", response_model=list[schemas.Submission])
def get_submissions(assignment_id: str, store: EntityStore = Depends(get_store)):
    return queries.find_submissions_by_assignment_id(store, assignment_id)


@app.post("/submissions", response_model=Optional[schemas.Submission])
def submit_assignment(data: schemas.SubmissionCreate, store: EntityStore = Depends(get_store)):
    return crud.submit_assignment(store, data)


@app.post("/submissions/{submission_id}/grade", response_model=Optional[schemas.Submission])
def grade_submission(submission_id: str, data: schemas.GradeRequest, store: EntityStore = Depends(get_store)):
    return crud.grade_submission(store, submission_id, data.grade, data.feedback)


@app.get("/courses/{course_id}/grade/{student_id}")
def course_grade(course_id: str, student_id: str, store: EntityStore = Depends(get_store)):
    return {"grade": queries.calculate_course_grade(store, course_id, student_id)}


@app.get("/courses/{course_id}/report")
def course_report(course_id: str, store: EntityStore = Depends(get_store)):
    return _or_404(queries.course_report(store, course_id), "Course")


@app.get("/courses/{course_id}/report.csv")
def course_report_csv(course_id: str, store: EntityStore = Depends(get_store)):
    course = _or_404(queries.find_course_by_id(store, course_id), "Course")
    csv_text = exports.student_report_csv(queries.course_report(store, course_id))
    return Response(
        content=csv_text,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{exports.report_file_name(course)}"'},
    )

# -------------------------
# Files & materials
# -------------------------

async def _stored_upload(store: EntityStore, file: UploadFile):
    data = await file.read()
    file_name = file.filename or "upload"
    file_type = file.content_type or "application/octet-stream"
    return store.files.create_url(data, file_name, file_type), file_name, file_type


@app.post("/courses/{course_id}/materials/upload", response_model=Optional[schemas.CourseMaterial])
async def upload_material_file(course_id: str, file: UploadFile = File(...), store: EntityStore = Depends(get_store)):
    url, file_name, file_type = await _stored_upload(store, file)
    material = crud.upload_material(store, schemas.MaterialCreate(
        course_id=course_id, file_name=file_name, file_type=file_type, file_url=url,
    ))
    if material is None:
        # nothing references the blob, so it goes straight away
        store.files.release(url)
    return material


@app.post("/assignments/{assignment_id}/submit/upload", response_model=Optional[schemas.Submission])
async def submit_assignment_file(assignment_id: str, file: UploadFile = File(...), content: Optional[str] = Form(None),
                                 store: EntityStore = Depends(get_store)):
    url, file_name, file_type = await _stored_upload(store, file)
    submission = crud.submit_assignment(store, schemas.SubmissionCreate(
        assignment_id=assignment_id, content=content, file_url=url, file_name=file_name, file_type=file_type,
    ))
    if submission is None:
        store.files.release(url)
    return submission


@app.get("/files/{token}")
def download_file(token: str, store: EntityStore = Depends(get_store)):
    entry = _or_404(store.files.open(f"/files/{token}"), "File")
    path, file_name, content_type = entry
    return FileResponse(path, media_type=content_type, filename=file_name)


@app.post("/materials", response_model=Optional[schemas.CourseMaterial])
def upload_material(data: schemas.MaterialCreate, store: EntityStore = Depends(get_store)):
    return crud.upload_material(store, data)


@app.delete("/materials/{material_id}")
def delete_material(material_id: str, store: EntityStore = Depends(get_store)):
    return {"deleted": crud.delete_material(store, material_id)}


@app.get("/courses/{course_id}/materials", response_model=list[schemas.CourseMaterial])
def get_materials(course_id: str, store: EntityStore = Depends(get_store)):
    return queries.find_materials_by_course_id(store, course_id)

# -------------------------
# Announcements, discussion, notifications
# -------------------------

@app.post("/announcements", response_model=Optional[schemas.Announcement])
def create_announcement(data: schemas.AnnouncementCreate, store: EntityStore = Depends(get_store)):
    return crud.create_announcement(store, data)


@app.get("/courses/{course_id}/announcements", response_model=list[schemas.Announcement])
def get_announcements(course_id: str, store: EntityStore = Depends(get_store)):
    return queries.find_announcements_by_course_id(store, course_id)


@app.post("/posts", response_model=Optional[schemas.DiscussionPost])
def create_post(data: schemas.DiscussionPostCreate, store: EntityStore = Depends(get_store)):
    return crud.create_discussion_post(store, data)


@app.get("/courses/{course_id}/posts", response_model=list[schemas.DiscussionPost])
def get_posts(course_id: str, store: EntityStore = Depends(get_store)):
    return queries.find_posts_by_course_id(store, course_id)


@app.get("/notifications", response_model=list[schemas.Notification])
def get_notifications(store: EntityStore = Depends(get_store)):
    user = store.current_user
    return queries.find_notifications_by_user_id(store, user.id) if user else []


@app.post("/notifications/read_all")
def read_all_notifications(store: EntityStore = Depends(get_store)):
    return {"updated": crud.mark_all_notifications_as_read(store)}


@app.post("/notifications/{notification_id}/read")
def read_notification(notification_id: str, store: EntityStore = Depends(get_store)):
    return {"updated": crud.mark_notification_as_read(store, notification_id)}

# -------------------------
# Groups & chat
# -------------------------

@app.post("/groups", response_model=Optional[schemas.Group])
def create_group(data: schemas.GroupCreate, store: EntityStore = Depends(get_store)):
    result = crud.create_group(store, data)
    if isinstance(result, str):
        raise HTTPException(status_code=400, detail=result)
    return result


@app.post("/groups/{group_id}/join")
def join_group(group_id: str, store: EntityStore = Depends(get_store)):
    _reject(crud.join_group(store, group_id))
    return queries.find_group_by_id(store, group_id)


@app.post("/groups/{group_id}/leave")
def leave_group(group_id: str, store: EntityStore = Depends(get_store)):
    return {"left": crud.leave_group(store, group_id)}


@app.get("/courses/{course_id}/groups", response_model=list[schemas.Group])
def get_groups(course_id: str, store: EntityStore = Depends(get_store)):
    return queries.find_groups_by_course_id(store, course_id)


@app.post("/chat", response_model=Optional[schemas.ChatMessage])
def send_message(data: schemas.ChatMessageCreate, store: EntityStore = Depends(get_store)):
    return crud.send_chat_message(store, data)


@app.get("/groups/{group_id}/messages", response_model=list[schemas.ChatMessage])
def get_messages(group_id: str, store: EntityStore = Depends(get_store)):
    return queries.find_chat_messages_by_group_id(store, group_id)

# -------------------------
# Quizzes
# -------------------------

@app.post("/quizzes", response_model=Optional[schemas.Quiz])
def create_quiz(data: schemas.QuizCreate, store: EntityStore = Depends(get_store)):
    return crud.create_quiz(store, data)


@app.post("/quizzes/{quiz_id}/submit", response_model=Optional[schemas.QuizAttempt])
def submit_quiz(quiz_id: str, data: schemas.QuizSubmit, store: EntityStore = Depends(get_store)):
    return crud.submit_quiz(store, quiz_id, data.answers)


@app.get("/courses/{course_id}/quizzes", response_model=list[schemas.Quiz])
def get_quizzes(course_id: str, store: EntityStore = Depends(get_store)):
    return queries.find_quizzes_by_course_id(store, course_id)


@app.get("/quizzes/{quiz_id}/attempts", response_model=list[schemas.QuizAttempt])
def get_quiz_attempts(quiz_id: str, store: EntityStore = Depends(get_store)):
    return queries.find_quiz_attempts_by_quiz_id(store, quiz_id)

# -------------------------
# Attendance & fees
# -------------------------

@app.post("/courses/{course_id}/attendance", response_model=Optional[list[schemas.AttendanceRecord]])
def mark_attendance(course_id: str, data: schemas.AttendanceRequest, store: EntityStore = Depends(get_store)):
    return crud.mark_attendance(store, course_id, data.entries, on_date=data.on_date)


@app.get("/courses/{course_id}/attendance", response_model=list[schemas.AttendanceRecord])
def get_attendance(course_id: str, on_date: Optional[date] = None, store: EntityStore = Depends(get_store)):
    return queries.find_attendance_by_course_for_date(store, course_id, on_date or store.today())


@app.get("/courses/{course_id}/attendance/{student_id}")
def get_student_attendance(course_id: str, student_id: str, store: EntityStore = Depends(get_store)):
    return {
        "records": queries.find_attendance_by_course_and_student(store, course_id, student_id),
        **queries.attendance_summary(store, course_id, student_id),
    }


@app.post("/fees", response_model=Optional[list[schemas.Fee]])
def create_fee(data: schemas.FeeCreate, store: EntityStore = Depends(get_store)):
    return crud.create_fee(store, data)


@app.post("/fees/{fee_id}/pay", response_model=Optional[schemas.Fee])
def pay_fee(fee_id: str, data: schemas.PaymentRequest, store: EntityStore = Depends(get_store)):
    return crud.pay_fee(store, fee_id, data.payment_method)


def _fee_view(store: EntityStore, fee: schemas.Fee):
    return {**fee.model_dump(mode="json"), "display_status": queries.fee_status(fee, store.today())}


@app.get("/fees")
def my_fees(store: EntityStore = Depends(get_store)):
    user = store.current_user
    if user is None:
        return []
    return [_fee_view(store, f) for f in queries.find_fees_by_student_id(store, user.id)]


@app.get("/courses/{course_id}/fees")
def course_fees(course_id: str, store: EntityStore = Depends(get_store)):
    return [_fee_view(store, f) for f in queries.find_fees_by_course_id(store, course_id)]

# -------------------------
# Videos & notes
# -------------------------

@app.post("/courses/{course_id}/videos", response_model=Optional[schemas.VideoMaterial])
async def upload_video(course_id: str, file: UploadFile = File(...),
                       store: EntityStore = Depends(get_store), content: ContentService = Depends(get_content)):
    data = await file.read()
    try:
        return await crud.upload_video_material(
            store, content, course_id, file.filename or "video", file.content_type or "video/mp4", data
        )
    except ContentServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))


@app.delete("/videos/{video_id}")
def delete_video(video_id: str, store: EntityStore = Depends(get_store)):
    return {"deleted": crud.delete_video_material(store, video_id)}


@app.get("/courses/{course_id}/videos", response_model=list[schemas.VideoMaterial])
def get_videos(course_id: str, store: EntityStore = Depends(get_store)):
    return queries.find_video_materials_by_course_id(store, course_id)


@app.post("/notes", response_model=Optional[schemas.VideoNote])
def create_note(data: schemas.VideoNoteCreate, store: EntityStore = Depends(get_store)):
    return crud.create_video_note(store, data)


@app.get("/videos/{video_id}/notes", response_model=list[schemas.VideoNote])
def get_notes(video_id: str, store: EntityStore = Depends(get_store)):
    user = store.current_user
    return queries.find_video_notes_by_video_id_and_student_id(store, video_id, user.id) if user else []


@app.get("/videos/{video_id}/notes/export")
def export_notes(video_id: str, store: EntityStore = Depends(get_store)):
    video = _or_404(queries.find_video_by_id(store, video_id), "Video")
    user = store.current_user
    notes = queries.find_video_notes_by_video_id_and_student_id(store, video_id, user.id) if user else []
    if not notes:
        raise HTTPException(status_code=404, detail="No notes to export")
    return PlainTextResponse(
        exports.video_notes_text(video, notes),
        headers={"Content-Disposition": f'attachment; filename="{exports.video_notes_title(video)}.txt"'},
    )


@app.post("/videos/{video_id}/ask")
async def ask_about_video(video_id: str, data: schemas.VideoQuestion,
                          store: EntityStore = Depends(get_store), content: ContentService = Depends(get_content)):
    try:
        answer = await crud.ask_video_question(store, content, video_id, data.question)
    except ContentServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"answer": answer}

# -------------------------
# AI helpers (results are returned, never stored)
# -------------------------

@app.post("/ai/course_description")
async def ai_course_description(data: schemas.DescriptionRequest, content: ContentService = Depends(get_content)):
    try:
        return {"description": await content.generate_course_description(data.title)}
    except ContentServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))


@app.post("/ai/feedback")
async def ai_feedback(data: schemas.FeedbackRequest, content: ContentService = Depends(get_content)):
    try:
        return {"feedback": await content.generate_assignment_feedback(data.assignment_title, data.submission)}
    except ContentServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))


@app.post("/ai/quiz_questions", response_model=list[schemas.QuestionCreate])
async def ai_quiz_questions(data: schemas.QuizGenerationRequest, content: ContentService = Depends(get_content)):
    try:
        return await content.generate_quiz_questions(data.material)
    except ContentServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))
