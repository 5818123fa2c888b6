import asyncio
import re
import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from proctor.db import Base, import_models
from proctor.errors import AccessDeniedToExam, NoActiveExam, SessionNotFound, SessionNotInProgress
from proctor.models.exam_model import Exam
from proctor.models.user_model import User, UserRole
from proctor.models.exam_session_model import ExamSessionStatus, SubmissionType, ReportStatus, EventKind, ProctoringReport
from proctor.schemas.exam_session_schema import SnapshotPayload
from proctor.services import session_service, snapshot_service, response_service, violation_service, group_service


async def test_create_session(db, make_user, make_exam):
    student = await make_user()
    exam = await make_exam(duration_minutes=45)

    exam_session = await session_service.create_session(db, student.id, exam.id, browser_info="Firefox", ip_address="10.0.0.1")

    assert exam_session.status == ExamSessionStatus.IN_PROGRESS
    assert re.fullmatch(r"session_\d+_[a-z0-9]{9}", exam_session.session_code)
    assert (exam_session.scheduled_end_time - exam_session.start_time).total_seconds() == 45 * 60
    assert exam_session.total_violations == 0
    assert exam_session.score is None

    timeline = await violation_service.get_session_timeline(db, exam_session.id)
    assert [(e.kind, e.event_type) for e in timeline] == [(EventKind.LIFECYCLE, "Exam started")]


async def test_create_session_requires_active_exam(db, make_user, make_exam):
    student = await make_user()
    exam = await make_exam(is_active=False)

    with pytest.raises(NoActiveExam):
        await session_service.create_session(db, student.id, exam.id)


async def test_create_session_requires_authorization(db, make_user, make_exam):
    student = await make_user(is_authorized=False)
    exam = await make_exam()

    with pytest.raises(AccessDeniedToExam):
        await session_service.create_session(db, student.id, exam.id)


async def test_failed_start_leaves_no_session(db, make_user, make_exam, monkeypatch):
    student = await make_user()
    exam = await make_exam()
    student_id, exam_id = student.id, exam.id

    async def broken_event(*args, **kwargs):
        raise RuntimeError("timeline unavailable")

    monkeypatch.setattr(session_service, "log_lifecycle_event", broken_event)

    with pytest.raises(RuntimeError):
        await session_service.create_session(db, student_id, exam_id)

    assert await session_service.list_sessions(db, exam_id=exam_id) == []
    assert await session_service.check_existing_session(db, student_id, exam_id) is None


async def test_start_rechecks_group_membership(db, make_user, make_exam):
    student = await make_user()
    exam = await make_exam(use_group_access=True)
    student_id, exam_id = student.id, exam.id
    group = await group_service.create_group(db, "Section C")
    await group_service.assign_group_to_exam(db, exam_id, group["id"])
    await group_service.add_member(db, group["id"], student_id)

    # membership revoked after the exam was listed
    await group_service.remove_member(db, group["id"], student_id)

    with pytest.raises(AccessDeniedToExam):
        await session_service.create_session(db, student_id, exam_id)
    assert await session_service.list_sessions(db, exam_id=exam_id) == []


async def test_duplicate_create_returns_existing_session(db, make_user, make_exam):
    student = await make_user()
    exam = await make_exam()

    student_id, exam_id = student.id, exam.id

    first = await session_service.create_session(db, student_id, exam_id)
    first_id = first.id
    second = await session_service.create_session(db, student_id, exam_id)

    assert second.id == first_id
    rows = await session_service.list_sessions(db, exam_id=exam_id)
    assert len(rows) == 1


async def test_check_existing_session(db, make_user, make_exam):
    student = await make_user()
    exam = await make_exam()
    assert await session_service.check_existing_session(db, student.id, exam.id) is None

    exam_session = await session_service.create_session(db, student.id, exam.id)
    found = await session_service.check_existing_session(db, student.id, exam.id)
    assert found.id == exam_session.id

    await session_service.complete_session(db, exam_session.id)
    assert await session_service.check_existing_session(db, student.id, exam.id) is None


async def test_get_session_by_code(db, make_user, make_exam):
    student = await make_user()
    exam = await make_exam()
    exam_session = await session_service.create_session(db, student.id, exam.id)

    found = await session_service.get_session_by_code(db, exam_session.session_code)
    assert found.id == exam_session.id

    with pytest.raises(SessionNotFound):
        await session_service.get_session_by_code(db, "session_0_missing00")


async def test_score_is_percentage_of_multiple_choice(db, make_user, make_exam, make_question):
    student = await make_user()
    exam = await make_exam()
    questions = [await make_question(exam, n, correct_option_index=0) for n in range(1, 11)]
    # free text is never scored
    essay = await make_question(exam, 11, question_type="textarea")

    exam_session = await session_service.create_session(db, student.id, exam.id)
    for i, q in enumerate(questions):
        await response_service.save_response(db, exam_session.id, q.id, response_option_index=0 if i < 7 else 1)
    await response_service.save_response(db, exam_session.id, essay.id, response_text="An essay")

    result = await session_service.complete_session(db, exam_session.id)

    assert result.score == 70.0
    assert result.exam_session.score == 70.0
    assert result.exam_session.completion_percentage == 100.0
    assert result.report.score == 70.0


async def test_score_without_scorable_questions_is_zero(db, make_user, make_exam, make_question):
    student = await make_user()
    exam = await make_exam()
    essay = await make_question(exam, 1, question_type="text")

    exam_session = await session_service.create_session(db, student.id, exam.id)
    await response_service.save_response(db, exam_session.id, essay.id, response_text="hello")

    result = await session_service.complete_session(db, exam_session.id)
    assert result.score == 0.0


async def test_completion_sets_end_state_and_report(db, make_user, make_exam):
    student = await make_user(full_name="Ada Lovelace")
    exam = await make_exam(title="Analytical Engines")
    exam_session = await session_service.create_session(db, student.id, exam.id)
    await violation_service.log_violation(db, exam_session.id, "Tab switched")
    await violation_service.log_violation(db, exam_session.id, "Tab switched")

    result = await session_service.complete_session(db, exam_session.id, "auto_time_expired")

    completed = result.exam_session
    assert completed.status == ExamSessionStatus.COMPLETED
    assert completed.end_time is not None
    assert completed.score is not None
    assert completed.actual_duration_seconds >= 0
    assert completed.submission_type == SubmissionType.AUTO_TIMEOUT

    report = result.report
    assert report.session_id == completed.id
    assert report.student_name == "Ada Lovelace"
    assert report.exam_title == "Analytical Engines"
    assert report.total_violations == 2
    assert report.violation_types == ["Tab switched"]
    assert report.status == ReportStatus.MINOR_ISSUES
    assert report.form_submitted is True


async def test_complete_is_idempotent(db, make_user, make_exam, make_question):
    student = await make_user()
    exam = await make_exam()
    q = await make_question(exam, 1, correct_option_index=1)
    exam_session = await session_service.create_session(db, student.id, exam.id)
    await response_service.save_response(db, exam_session.id, q.id, response_option_index=1)

    first = await session_service.complete_session(db, exam_session.id)
    second = await session_service.complete_session(db, exam_session.id, "auto_violations")

    assert not first.already_completed
    assert second.already_completed
    assert second.score == first.score == 100.0
    assert second.report.id == first.report.id
    assert second.exam_session.submission_type == SubmissionType.MANUAL
    assert len(await session_service.list_reports(db, exam.id)) == 1


async def test_complete_unknown_session(db):
    with pytest.raises(SessionNotFound):
        await session_service.complete_session(db, uuid.uuid4())


async def test_report_failure_keeps_session_in_progress(db, make_user, make_exam, monkeypatch):
    student = await make_user()
    exam = await make_exam()
    exam_session = await session_service.create_session(db, student.id, exam.id)
    session_id = exam_session.id

    async def broken_report(*args, **kwargs):
        raise RuntimeError("report store unavailable")

    monkeypatch.setattr(session_service, "build_report", broken_report)

    with pytest.raises(RuntimeError):
        await session_service.complete_session(db, session_id)

    reloaded = await session_service.get_session(db, session_id)
    assert reloaded.status == ExamSessionStatus.IN_PROGRESS
    assert reloaded.end_time is None
    assert reloaded.score is None
    assert await session_service.get_report(db, session_id) is None


async def test_recovery_round_trip(session_maker, make_user, make_exam, make_question):
    async with session_maker() as s:
        student = await make_user()
        exam = await make_exam(max_violations=9)
        q = await make_question(exam, 1)
        exam_session = await session_service.create_session(s, student.id, exam.id)

        payload = SnapshotPayload.model_validate({
            "responses": {str(q.id): {"responseOptionIndex": 2}, "free": {"responseText": "draft"}},
            "violations": 1,
            "completionPercentage": 50,
            "currentQuestionIndex": 1,
            "timeRemaining": 1800,
        })
        await snapshot_service.save_snapshot(s, exam_session.id, payload.to_snapshot_data())

    # a fresh session stands in for the reloaded client
    async with session_maker() as s:
        data = await session_service.get_recovery_data(s, exam_session.id)

    assert data["can_recover"] is True
    assert data["snapshot"] == payload.to_snapshot_data()
    assert data["session"]["id"] == exam_session.id
    assert data["session"]["exam_title"] == exam.title
    assert data["session"]["max_violations"] == 9


async def test_recovery_uses_latest_snapshot(db, make_user, make_exam):
    student = await make_user()
    exam = await make_exam()
    exam_session = await session_service.create_session(db, student.id, exam.id)

    await snapshot_service.save_snapshot(db, exam_session.id, {"responses": {}, "timeRemaining": 100})
    await snapshot_service.save_snapshot(db, exam_session.id, {"responses": {}, "timeRemaining": 50})

    data = await session_service.get_recovery_data(db, exam_session.id)
    assert data["snapshot"]["timeRemaining"] == 50


async def test_no_recovery_without_snapshot_or_after_completion(db, make_user, make_exam):
    student = await make_user()
    exam = await make_exam()
    exam_session = await session_service.create_session(db, student.id, exam.id)

    assert await session_service.get_recovery_data(db, exam_session.id) is None

    await snapshot_service.save_snapshot(db, exam_session.id, {"responses": {}})
    await session_service.complete_session(db, exam_session.id)
    assert await session_service.get_recovery_data(db, exam_session.id) is None

    assert await session_service.get_recovery_data(db, uuid.uuid4()) is None


async def test_mark_session_resumed(db, make_user, make_exam):
    student = await make_user()
    exam = await make_exam()
    exam_session = await session_service.create_session(db, student.id, exam.id)

    await session_service.mark_session_resumed(db, exam_session.id)
    resumed = await session_service.mark_session_resumed(db, exam_session.id)

    assert resumed.was_resumed is True
    assert resumed.resume_count == 2
    timeline = await violation_service.get_session_timeline(db, exam_session.id)
    assert [e.event_type for e in timeline].count("Exam resumed") == 2
    assert resumed.total_violations == 0


async def test_completed_session_cannot_be_resumed(db, make_user, make_exam):
    student = await make_user()
    exam = await make_exam()
    exam_session = await session_service.create_session(db, student.id, exam.id)
    session_id = exam_session.id
    await session_service.mark_session_resumed(db, session_id)
    await session_service.complete_session(db, session_id)

    with pytest.raises(SessionNotInProgress):
        await session_service.mark_session_resumed(db, session_id)

    reloaded = await session_service.get_session(db, session_id)
    assert reloaded.resume_count == 1
    timeline = await violation_service.get_session_timeline(db, session_id)
    assert [e.event_type for e in timeline].count("Exam resumed") == 1

    with pytest.raises(SessionNotFound):
        await session_service.mark_session_resumed(db, uuid.uuid4())


async def test_update_session_stats(db, make_user, make_exam, make_question):
    student = await make_user()
    exam = await make_exam()
    q1 = await make_question(exam, 1)
    await make_question(exam, 2)
    exam_session = await session_service.create_session(db, student.id, exam.id)
    await response_service.save_response(db, exam_session.id, q1.id, response_option_index=0)
    await violation_service.log_violation(db, exam_session.id, "Tab switched")

    refreshed = await session_service.update_session_stats(db, exam_session.id)
    assert refreshed.completion_percentage == 50.0
    assert refreshed.total_violations == 1


def test_map_submission_type():
    assert session_service.map_submission_type("manual") == SubmissionType.MANUAL
    assert session_service.map_submission_type("auto_time_expired") == SubmissionType.AUTO_TIMEOUT
    assert session_service.map_submission_type("auto_violations") == SubmissionType.MAX_VIOLATIONS
    assert session_service.map_submission_type("admin_terminated") == SubmissionType.ADMIN_TERMINATED
    with pytest.raises(ValueError):
        session_service.map_submission_type("gave_up")


async def test_concurrent_completion_has_one_winner(tmp_path):
    import_models()
    # separate connections so both submits really race
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'proctor.db'}", connect_args={"timeout": 30})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    maker = async_sessionmaker(engine, expire_on_commit=False)

    async with maker() as setup:
        student = User(email="race@example.com", hashed_password="x", role=UserRole.STUDENT, is_authorized=True)
        exam = Exam(title="Final", duration_minutes=30, max_violations=5, is_active=True)
        setup.add_all([student, exam])
        await setup.commit()
        exam_session = await session_service.create_session(setup, student.id, exam.id)
        session_id = exam_session.id

    async def submit(submission_type):
        async with maker() as s:
            return await session_service.complete_session(s, session_id, submission_type)

    results = await asyncio.gather(submit("manual"), submit("auto_time_expired"))

    assert sorted(r.already_completed for r in results) == [False, True]
    assert results[0].report.id == results[1].report.id
    async with maker() as check:
        reports = (await check.execute(
            select(ProctoringReport).where(ProctoringReport.session_id == session_id)
        )).scalars().all()
        assert len(reports) == 1
        completed = await session_service.get_session(check, session_id)
        winner = next(r for r in results if not r.already_completed)
        assert completed.submission_type == winner.exam_session.submission_type
    await engine.dispose()
