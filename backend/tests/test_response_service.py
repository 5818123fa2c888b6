import uuid

import pytest

from proctor.errors import QuestionNotFound, SessionNotFound, SessionNotInProgress
from proctor.services import response_service, session_service


async def test_save_response_grades_and_updates_progress(db, make_user, make_exam, make_question):
    student = await make_user()
    exam = await make_exam()
    q1 = await make_question(exam, 1, correct_option_index=2)
    await make_question(exam, 2)
    exam_session = await session_service.create_session(db, student.id, exam.id)

    response = await response_service.save_response(db, exam_session.id, q1.id, response_option_index=2)

    assert response.is_correct is True
    assert response.revision_count == 0
    reloaded = await session_service.get_session(db, exam_session.id)
    assert reloaded.completion_percentage == 50.0


async def test_last_write_wins(db, make_user, make_exam, make_question):
    student = await make_user()
    exam = await make_exam()
    q = await make_question(exam, 1, correct_option_index=0)
    exam_session = await session_service.create_session(db, student.id, exam.id)

    await response_service.save_response(db, exam_session.id, q.id, response_option_index=0)
    response = await response_service.save_response(db, exam_session.id, q.id, response_option_index=3)

    assert response.response_option_index == 3
    assert response.is_correct is False
    assert response.revision_count == 1
    assert len(await response_service.get_session_responses(db, exam_session.id)) == 1


async def test_text_answers_are_not_graded(db, make_user, make_exam, make_question):
    student = await make_user()
    exam = await make_exam()
    q = await make_question(exam, 1, question_type="textarea")
    exam_session = await session_service.create_session(db, student.id, exam.id)

    response = await response_service.save_response(db, exam_session.id, q.id, response_text="Essay")
    assert response.is_correct is None
    assert response.response_text == "Essay"


async def test_question_must_belong_to_session_exam(db, make_user, make_exam, make_question):
    student = await make_user()
    exam = await make_exam()
    other = await make_exam(title="Other", is_active=False)
    foreign = await make_question(other, 1)
    exam_session = await session_service.create_session(db, student.id, exam.id)
    session_id, foreign_id = exam_session.id, foreign.id

    with pytest.raises(QuestionNotFound):
        await response_service.save_response(db, session_id, foreign_id, response_option_index=0)

    with pytest.raises(SessionNotFound):
        await response_service.save_response(db, uuid.uuid4(), foreign_id, response_option_index=0)


async def test_completed_session_rejects_answers(db, make_user, make_exam, make_question):
    student = await make_user()
    exam = await make_exam()
    q = await make_question(exam, 1, correct_option_index=0)
    exam_session = await session_service.create_session(db, student.id, exam.id)
    session_id, question_id = exam_session.id, q.id
    await response_service.save_response(db, session_id, question_id, response_option_index=1)
    await session_service.complete_session(db, session_id)

    with pytest.raises(SessionNotInProgress):
        await response_service.save_response(db, session_id, question_id, response_option_index=0)

    # the graded answer stays what was submitted
    responses = await response_service.get_session_responses(db, session_id)
    assert [(r.response_option_index, r.is_correct) for r in responses] == [(1, False)]


class Answer:
    def __init__(self, question_id, response_text=None, response_option_index=None):
        self.question_id = question_id
        self.response_text = response_text
        self.response_option_index = response_option_index


async def test_bulk_save(db, make_user, make_exam, make_question):
    student = await make_user()
    exam = await make_exam()
    q1 = await make_question(exam, 1, correct_option_index=1)
    q2 = await make_question(exam, 2, question_type="text")
    await make_question(exam, 3)
    await make_question(exam, 4)
    exam_session = await session_service.create_session(db, student.id, exam.id)

    saved = await response_service.save_responses_bulk(db, exam_session.id, [
        Answer(q2.id, response_text="offline draft"),
        Answer(q1.id, response_option_index=1),
    ])

    assert [r.question_id for r in saved] == [q1.id, q2.id]
    assert saved[0].is_correct is True
    assert saved[1].is_correct is None
    reloaded = await session_service.get_session(db, exam_session.id)
    assert reloaded.completion_percentage == 50.0


async def test_bulk_save_is_all_or_nothing(db, make_user, make_exam, make_question):
    student = await make_user()
    exam = await make_exam()
    other = await make_exam(title="Other", is_active=False)
    q = await make_question(exam, 1)
    foreign = await make_question(other, 1)
    exam_session = await session_service.create_session(db, student.id, exam.id)
    session_id, question_id, foreign_id = exam_session.id, q.id, foreign.id

    with pytest.raises(QuestionNotFound):
        await response_service.save_responses_bulk(db, session_id, [
            Answer(question_id, response_option_index=0),
            Answer(foreign_id, response_option_index=0),
        ])

    assert await response_service.get_session_responses(db, session_id) == []
