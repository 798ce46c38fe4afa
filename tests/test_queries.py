from datetime import date, timedelta

import crud
import queries
import schemas
from conftest import TODAY, act_as


def _assignment(store, course, title, due):
    return crud.create_assignment(store, schemas.AssignmentCreate(course_id=course.id, title=title, due_date=due))


def _submit(store, student, assignment, content="work"):
    act_as(store, student)
    return crud.submit_assignment(store, schemas.SubmissionCreate(assignment_id=assignment.id, content=content))


def test_lookups_return_none_for_unknown_ids(store, course):
    assert queries.find_course_by_id(store, "course-missing") is None
    assert queries.find_user_by_email(store, "nobody@school.test") is None
    assert queries.find_video_by_id(store, "video-missing") is None


def test_course_lists_split_by_enrollment(store, clock, teacher, student, course):
    act_as(store, teacher)
    past = crud.create_course(store, schemas.CourseCreate(
        title="History", start_date=date(2024, 9, 1), end_date=date(2024, 12, 20)))
    act_as(store, student)
    crud.enroll_in_course(store, past.id)
    act_as(store, teacher)
    other = crud.create_course(store, schemas.CourseCreate(
        title="Chemistry", start_date=TODAY, end_date=TODAY + timedelta(days=30)))

    assert {c.id for c in queries.enrolled_courses(store, student.id)} == {course.id, past.id}
    assert [c.id for c in queries.available_courses(store, student.id)] == [other.id]
    assert [c.id for c in queries.completed_courses(store, student.id)] == [past.id]
    assert len(queries.taught_courses(store, teacher.id)) == 3


def test_newest_first_listings(store, teacher, course):
    act_as(store, teacher)
    first = crud.create_announcement(store, schemas.AnnouncementCreate(course_id=course.id, title="One", content="1"))
    second = crud.create_announcement(store, schemas.AnnouncementCreate(course_id=course.id, title="Two", content="2"))

    assert [a.id for a in queries.find_announcements_by_course_id(store, course.id)] == [second.id, first.id]


def test_grade_is_plain_mean_of_submissions_and_quizzes(store, teacher, student, course):
    act_as(store, teacher)
    hw1 = _assignment(store, course, "HW1", TODAY)
    hw2 = _assignment(store, course, "HW2", TODAY)
    quiz = crud.create_quiz(store, schemas.QuizCreate(course_id=course.id, title="Q", questions=[
        schemas.QuestionCreate(text="1+1?", type="true-false", correct_answer="True"),
    ]))
    assert queries.calculate_course_grade(store, course.id, student.id) is None

    subs = [_submit(store, student, hw1), _submit(store, student, hw2)]
    act_as(store, teacher)
    crud.grade_submission(store, subs[0].id, 90)
    act_as(store, student)
    crud.submit_quiz(store, quiz.id, {quiz.questions[0].id: "False"})

    # ungraded HW2 is left out: (90 + 0) / 2
    assert queries.calculate_course_grade(store, course.id, student.id) == 45


def test_score_quiz_without_questions_is_zero():
    quiz = schemas.Quiz(id="quiz-1", course_id="course-1", title="Empty")
    assert queries.score_quiz(quiz, {}) == 0


def test_attendance_percentage_counts_late(store, teacher, student, course):
    act_as(store, teacher)
    assert queries.attendance_percentage(store, course.id, student.id) is None
    for offset, status in enumerate(["Present", "Late", "Absent", "Absent"]):
        crud.mark_attendance(store, course.id, [schemas.AttendanceEntry(student_id=student.id, status=status)],
                             on_date=TODAY - timedelta(days=offset))

    assert queries.attendance_percentage(store, course.id, student.id) == 50
    assert queries.attendance_summary(store, course.id, student.id) == {
        "percentage": 50, "present": 1, "late": 1, "absent": 2,
    }


def test_course_report(store, teacher, student, other_student, course):
    act_as(store, other_student)
    crud.enroll_in_course(store, course.id)
    act_as(store, teacher)
    hw1 = _assignment(store, course, "HW1", TODAY)
    hw2 = _assignment(store, course, "HW2", TODAY)

    a = _submit(store, student, hw1)
    b = _submit(store, other_student, hw1)
    _submit(store, student, hw2)
    act_as(store, teacher)
    crud.grade_submission(store, a.id, 80)
    crud.grade_submission(store, b.id, 60)

    report = queries.course_report(store, course.id)

    assert report["overall_average_grade"] == 70
    hw1_stats, hw2_stats = report["assignment_stats"]
    assert (hw1_stats["submission_count"], hw1_stats["submission_rate"], hw1_stats["average_grade"]) == (2, 100, 70)
    assert (hw2_stats["submission_count"], hw2_stats["submission_rate"], hw2_stats["average_grade"]) == (1, 50, 0)
    by_name = {s["name"]: s for s in report["student_stats"]}
    assert by_name["Sam Student"]["submitted_count"] == 2
    assert by_name["Sam Student"]["average_grade"] == 80
    assert by_name["Kim Student"]["average_grade"] == 60


def test_course_report_for_missing_course(store):
    assert queries.course_report(store, "course-missing") is None


def test_upcoming_assignments_skip_past_and_submitted(store, teacher, student, course):
    act_as(store, teacher)
    _assignment(store, course, "Past", TODAY - timedelta(days=1))
    later = _assignment(store, course, "Later", TODAY + timedelta(days=7))
    soon = _assignment(store, course, "Soon", TODAY)
    done = _assignment(store, course, "Done", TODAY + timedelta(days=2))

    assert [a.id for a in queries.upcoming_assignments(store, teacher)] == [soon.id, done.id, later.id]

    _submit(store, student, done)
    assert [a.id for a in queries.upcoming_assignments(store, student)] == [soon.id, later.id]
    assert [a.id for a in queries.upcoming_assignments(store, student, limit=1)] == [soon.id]


def test_dashboard_summaries(store, teacher, student, course):
    act_as(store, teacher)
    hw = _assignment(store, course, "HW1", TODAY)
    sub = _submit(store, student, hw)

    assert [s.id for s in queries.ungraded_submissions(store, teacher.id)] == [sub.id]
    assert queries.teacher_summary(store, teacher.id) == {"taught_courses_count": 1, "total_students": 1}

    act_as(store, teacher)
    crud.grade_submission(store, sub.id, 75)
    assert queries.ungraded_submissions(store, teacher.id) == []
    assert queries.student_progress(store, student.id) == {
        "enrolled_courses_count": 1, "average_grade": 75, "submissions_count": 1,
    }


def test_fee_status_shows_overdue_without_changing_record():
    fee = schemas.Fee(id="fee-1", student_id="user-1", course_id="course-1",
                      description="Lab", amount=10, due_date=date(2025, 3, 1))

    assert queries.fee_status(fee, date(2025, 3, 2)) == "Overdue"
    assert queries.fee_status(fee, date(2025, 3, 1)) == "Unpaid"
    assert fee.status == "Unpaid"
    paid = fee.model_copy(update={"status": "Paid"})
    assert queries.fee_status(paid, date(2025, 4, 1)) == "Paid"


def test_video_notes_sorted_by_position(store, student):
    store.append("video_materials", schemas.VideoMaterial(
        id="video-1", course_id="course-1", file_name="lecture.mp4", file_type="video/mp4",
        file_url="/files/abc", uploaded_at=store.now(),
    ))
    for position in (90, 5, 42.5):
        crud.create_video_note(store, schemas.VideoNoteCreate(video_id="video-1", content=str(position), timestamp=position))

    notes = queries.find_video_notes_by_video_id_and_student_id(store, "video-1", student.id)
    assert [n.timestamp for n in notes] == [5, 42.5, 90]
