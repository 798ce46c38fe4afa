import asyncio
import json

import pytest

import crud
import queries
import schemas
from ai_service import AI_DISABLED_MESSAGE, ContentService, ContentServiceError, parse_quiz_questions
from conftest import act_as, fake_content


def disabled_content():
    return ContentService(api_key="", client=None)


def test_text_helpers_report_disabled_without_key():
    content = disabled_content()
    assert not content.enabled
    assert asyncio.run(content.generate_course_description("Algebra I")) == AI_DISABLED_MESSAGE
    assert asyncio.run(content.generate_assignment_feedback("HW1", "x = 2")) == AI_DISABLED_MESSAGE
    assert asyncio.run(content.answer_question_about_video("Why?", "...")) == AI_DISABLED_MESSAGE


def test_quiz_generation_raises_when_disabled():
    with pytest.raises(ContentServiceError):
        asyncio.run(disabled_content().generate_quiz_questions("Photosynthesis"))


def test_prompt_carries_the_inputs():
    content = fake_content("Learn algebra.")
    assert asyncio.run(content.generate_course_description("Algebra I")) == "Learn algebra."

    call = content.client.chat.completions.calls[0]
    assert call["model"] == content.model
    assert "Algebra I" in call["messages"][0]["content"]


def test_api_errors_are_wrapped():
    content = fake_content(error=RuntimeError("rate limited"))
    with pytest.raises(ContentServiceError):
        asyncio.run(content.generate_assignment_feedback("HW1", "answer"))


def test_empty_reply_is_an_error():
    with pytest.raises(ContentServiceError):
        asyncio.run(fake_content("").generate_course_description("Algebra I"))


def test_generated_quiz_questions_are_filtered():
    reply = "```json\n" + json.dumps([
        {"text": "2+2?", "type": "multiple-choice", "options": ["1", "2", "3", "4", "5"], "correctAnswer": "4"},
        {"text": "Water is wet", "type": "true-false", "options": ["x"], "correctAnswer": "True"},
        {"text": "No answer", "type": "true-false"},
        {"text": "Essay?", "type": "essay", "correctAnswer": "..."},
        "not a question",
    ]) + "\n```"

    questions = asyncio.run(fake_content(reply).generate_quiz_questions("Numbers"))

    assert [q.text for q in questions] == ["2+2?", "Water is wet"]
    assert questions[0].options == ["1", "2", "3", "4"]
    assert questions[1].options is None


def test_parse_accepts_wrapped_object():
    questions = parse_quiz_questions(json.dumps({"questions": [
        {"text": "Sun is a star", "type": "true-false", "correct_answer": "True"},
    ]}))
    assert [q.correct_answer for q in questions] == ["True"]


def test_parse_rejects_non_json():
    with pytest.raises(ContentServiceError):
        parse_quiz_questions("Sure! Here are some questions.")
    with pytest.raises(ContentServiceError):
        parse_quiz_questions('{"answer": 42}')


def test_video_upload_stores_transcript_and_notifies(store, files, teacher, student, course):
    act_as(store, teacher)
    content = fake_content("Today we cover cells.")

    video = asyncio.run(crud.upload_video_material(
        store, content, course.id, "cells.mp4", "video/mp4", b"\x00\x01"))

    assert video.transcript == "Today we cover cells."
    assert files.open(video.file_url) is not None
    assert queries.find_video_materials_by_course_id(store, course.id) == [video]
    assert queries.find_notifications_by_user_id(store, student.id)[0].message == \
        'New video "cells.mp4" uploaded to "Algebra I".'


def test_failed_transcript_releases_the_upload(store, files, teacher, course):
    act_as(store, teacher)
    content = fake_content(error=RuntimeError("timeout"))

    with pytest.raises(ContentServiceError):
        asyncio.run(crud.upload_video_material(store, content, course.id, "cells.mp4", "video/mp4", b"\x00"))

    assert store.video_materials == ()
    assert files.files == {}


def test_delete_video_drops_notes_and_file(store, files, teacher, student, course):
    act_as(store, teacher)
    video = asyncio.run(crud.upload_video_material(
        store, fake_content("transcript"), course.id, "cells.mp4", "video/mp4", b"\x00"))
    act_as(store, student)
    crud.create_video_note(store, schemas.VideoNoteCreate(video_id=video.id, content="key idea", timestamp=12))

    act_as(store, teacher)
    assert crud.delete_video_material(store, video.id) is True
    assert store.video_notes == ()
    assert files.open(video.file_url) is None


def test_ask_video_question_uses_transcript(store, teacher, student, course):
    act_as(store, teacher)
    video = asyncio.run(crud.upload_video_material(
        store, fake_content("Mitochondria make energy."), course.id, "cells.mp4", "video/mp4", b"\x00"))

    act_as(store, student)
    content = fake_content("[01:10] They make energy.")
    answer = asyncio.run(crud.ask_video_question(store, content, video.id, "What do mitochondria do?"))

    assert answer == "[01:10] They make energy."
    prompt = content.client.chat.completions.calls[0]["messages"][0]["content"]
    assert "Mitochondria make energy." in prompt
    assert asyncio.run(crud.ask_video_question(store, content, "video-missing", "?")) is None
