# Imports for data validation and structure
from pydantic import BaseModel, ConfigDict, Field   # Base class for records and payloads ("schemas")
from typing import Dict, List, Literal, Optional    # Type helpers for optional fields and fixed choices
import datetime as dt                               # Module alias for the field literally named "date"
from datetime import date, datetime                 # Dates (due dates, attendance days) and timestamps

UserRole = Literal["Student", "Teacher"]
Gender = Literal["Male", "Female", "Other", "Prefer not to say"]
QuestionType = Literal["multiple-choice", "true-false"]
AttendanceStatus = Literal["Present", "Absent", "Late"]
FeeStatus = Literal["Paid", "Unpaid", "Overdue"]
PaymentMethod = Literal["Card", "Google Pay", "PhonePe", "Paytm"]


class Record(BaseModel):
    # Stored records are never edited in place: changes go through model_copy(update=...)
    model_config = ConfigDict(frozen=True)

    id: str


# ==================================
# STORED RECORDS
# ==================================

class User(Record):
    name: str
    email: str
    password_hash: str                # bcrypt hash, never the raw password
    role: UserRole
    registered_at: datetime
    bio: Optional[str] = None
    admission_number: Optional[str] = None   # Students
    admission_year: Optional[int] = None     # Students
    id_number: Optional[str] = None          # Teachers
    blood_group: Optional[str] = None
    phone_number: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None


class Course(Record):
    title: str
    description: str = ""
    start_date: date
    end_date: date
    teacher_id: str
    student_ids: List[str] = Field(default_factory=list)


class Assignment(Record):
    course_id: str
    title: str
    description: str = ""
    due_date: date


class Submission(Record):
    assignment_id: str
    student_id: str
    content: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    submitted_at: datetime
    grade: Optional[float] = None
    feedback: Optional[str] = None
    graded_at: Optional[datetime] = None


class Announcement(Record):
    course_id: str
    title: str
    content: str
    author_id: str
    created_at: datetime


class DiscussionPost(Record):
    course_id: str
    author_id: str
    content: str
    created_at: datetime
    parent_id: Optional[str] = None   # Set for replies


class CourseMaterial(Record):
    course_id: str
    file_name: str
    file_type: str
    file_url: str
    uploaded_at: datetime


class VideoMaterial(CourseMaterial):
    transcript: str = ""


class VideoNote(Record):
    video_id: str
    student_id: str
    content: str
    timestamp: float                  # Position in the video, in seconds
    created_at: datetime


class Notification(Record):
    user_id: str
    message: str
    link: str
    is_read: bool = False
    created_at: datetime


class Group(Record):
    course_id: str
    name: str
    description: str = ""
    member_ids: List[str] = Field(default_factory=list)


class Question(Record):
    text: str
    type: QuestionType
    options: Optional[List[str]] = None   # Multiple-choice only
    correct_answer: str


class Quiz(Record):
    course_id: str
    title: str
    questions: List[Question] = Field(default_factory=list)


class QuizAttempt(Record):
    quiz_id: str
    student_id: str
    answers: Dict[str, str] = Field(default_factory=dict)   # question id -> chosen answer
    score: float                                            # Percentage
    submitted_at: datetime


class ChatMessage(Record):
    group_id: str
    author_id: str
    content: str
    timestamp: datetime


class AttendanceRecord(Record):
    course_id: str
    student_id: str
    date: dt.date
    status: AttendanceStatus


class Fee(Record):
    student_id: str
    course_id: str
    description: str
    amount: float
    due_date: date
    status: FeeStatus = "Unpaid"
    payment_date: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None


# ==================================
# REQUEST PAYLOADS
# ==================================

class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str
    confirm_password: Optional[str] = None
    role: UserRole = "Student"


class LoginRequest(BaseModel):
    email: str
    password: str


class ProfileUpdate(BaseModel):
    # Email, role and registration date are fixed once the account exists
    name: Optional[str] = None
    bio: Optional[str] = None
    admission_number: Optional[str] = None
    admission_year: Optional[int] = None
    id_number: Optional[str] = None
    blood_group: Optional[str] = None
    phone_number: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    password: Optional[str] = None
    confirm_password: Optional[str] = None


class CourseCreate(BaseModel):
    title: str
    description: str = ""
    start_date: date
    end_date: date


class AssignmentCreate(BaseModel):
    course_id: str
    title: str
    description: str = ""
    due_date: date


class SubmissionCreate(BaseModel):
    assignment_id: str
    content: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None


class GradeRequest(BaseModel):
    grade: float = Field(..., ge=0, le=100)
    feedback: str = ""


class MaterialCreate(BaseModel):
    course_id: str
    file_name: str
    file_type: str
    file_url: str


class AnnouncementCreate(BaseModel):
    course_id: str
    title: str
    content: str


class DiscussionPostCreate(BaseModel):
    course_id: str
    content: str
    parent_id: Optional[str] = None


class GroupCreate(BaseModel):
    course_id: str
    name: str
    description: str = ""


class QuestionCreate(BaseModel):
    text: str
    type: QuestionType
    options: Optional[List[str]] = None
    correct_answer: str


class QuizCreate(BaseModel):
    course_id: str
    title: str
    questions: List[QuestionCreate] = Field(default_factory=list)


class QuizSubmit(BaseModel):
    answers: Dict[str, str] = Field(default_factory=dict)


class ChatMessageCreate(BaseModel):
    group_id: str
    content: str


class AttendanceEntry(BaseModel):
    student_id: str
    status: AttendanceStatus


class AttendanceRequest(BaseModel):
    entries: List[AttendanceEntry] = Field(default_factory=list)
    on_date: Optional[date] = None    # Defaults to today


class FeeCreate(BaseModel):
    course_id: str
    student_ids: List[str]
    description: str
    amount: float = Field(..., gt=0)
    due_date: date


class PaymentRequest(BaseModel):
    payment_method: PaymentMethod


class VideoNoteCreate(BaseModel):
    video_id: str
    content: str
    timestamp: float = Field(..., ge=0)


# ==================================
# AI HELPER PAYLOADS
# ==================================

class DescriptionRequest(BaseModel):
    title: str


class FeedbackRequest(BaseModel):
    assignment_title: str
    submission: str


class QuizGenerationRequest(BaseModel):
    material: str


class VideoQuestion(BaseModel):
    question: str
