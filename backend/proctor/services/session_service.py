"""
Exam session lifecycle.

A session starts `in_progress` and moves to `completed` exactly once. There
is no paused or abandoned state: an untouched session simply stops
receiving snapshots and stays recoverable until it is completed.
"""
import logging
import secrets
import string
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import NoActiveExam, SessionNotFound
from ..models.exam_model import Exam
from ..models.question_model import QuestionDB
from ..models.exam_session_model import (
    ExamSession, ExamSessionStatus, SubmissionType, SessionEvent, EventKind, Response, ProctoringReport,
)
from ..utils import utcnow
from .access_service import ensure_access
from .grading_service import score_session, build_report, percentage
from .snapshot_service import get_latest_snapshot
from .violation_service import log_lifecycle_event, raise_not_in_progress

logger = logging.getLogger(__name__)

# reasons sent by clients -> stored submission type
CLIENT_SUBMISSION_TYPES = {
    "manual": SubmissionType.MANUAL,
    "auto_time_expired": SubmissionType.AUTO_TIMEOUT,
    "auto_violations": SubmissionType.MAX_VIOLATIONS,
    "admin_terminated": SubmissionType.ADMIN_TERMINATED,
}

_CODE_ALPHABET = string.ascii_lowercase + string.digits


@dataclass
class CompletionResult:
    exam_session: ExamSession
    score: float
    report: Optional[ProctoringReport]
    already_completed: bool = False


def map_submission_type(value) -> SubmissionType:
    if isinstance(value, SubmissionType):
        return value
    if value in CLIENT_SUBMISSION_TYPES:
        return CLIENT_SUBMISSION_TYPES[value]
    return SubmissionType(value)


def generate_session_code() -> str:
    """Client visible code: creation time in ms plus 9 random base36 characters."""
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


async def _load_session(session: AsyncSession, session_id: UUID) -> Optional[ExamSession]:
    stmt = select(ExamSession).where(ExamSession.id == session_id).execution_options(populate_existing=True)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def get_session(session: AsyncSession, session_id: UUID) -> ExamSession:
    exam_session = await _load_session(session, session_id)
    if exam_session is None:
        raise SessionNotFound()
    return exam_session


async def get_session_by_code(session: AsyncSession, session_code: str) -> ExamSession:
    res = await session.execute(select(ExamSession).where(ExamSession.session_code == session_code))
    exam_session = res.scalars().first()
    if exam_session is None:
        raise SessionNotFound()
    return exam_session


async def check_existing_session(session: AsyncSession, student_id: UUID, exam_id: UUID) -> Optional[ExamSession]:
    """Most recent in-progress session of this student for this exam, if any."""
    stmt = (
        select(ExamSession)
        .where(
            ExamSession.student_id == student_id,
            ExamSession.exam_id == exam_id,
            ExamSession.status == ExamSessionStatus.IN_PROGRESS,
        )
        .order_by(ExamSession.created_at.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def create_session(
    session: AsyncSession,
    student_id: UUID,
    exam_id: UUID,
    browser_info: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> ExamSession:
    """
    Start a new attempt. Access is re-checked here because group membership
    may have changed since the exam was listed.

    The session row and its "Exam started" timeline entry are written in one
    transaction. If a concurrent call already created the in-progress session
    for this student and exam, that session is returned instead.
    """
    await ensure_access(session, student_id, exam_id)

    res = await session.execute(select(Exam).where(Exam.id == exam_id))
    exam = res.scalar_one_or_none()
    if exam is None or not exam.is_active:
        raise NoActiveExam("Exam not found or not active")

    now = utcnow()
    exam_session = ExamSession(
        session_code=generate_session_code(),
        student_id=student_id,
        exam_id=exam_id,
        start_time=now,
        scheduled_end_time=now + timedelta(minutes=exam.duration_minutes),
        status=ExamSessionStatus.IN_PROGRESS,
        browser_info=browser_info,
        ip_address=ip_address,
    )

    try:
        session.add(exam_session)
        await session.flush()
        await log_lifecycle_event(
            session, exam_session.id, "Exam started", "Student initiated exam session", browser_info
        )
        await session.commit()
    except IntegrityError:
        await session.rollback()
        existing = await check_existing_session(session, student_id, exam_id)
        if existing is None:
            raise
        logger.warning(
            "Concurrent session start for exam_id=%s student_id=%s, returning session_id=%s",
            exam_id, student_id, existing.id,
        )
        return existing
    except Exception:
        await session.rollback()
        logger.exception("Error creating session for exam_id=%s student_id=%s", exam_id, student_id)
        raise

    logger.info("Session %s started by student_id=%s for exam_id=%s", exam_session.id, student_id, exam_id)
    return exam_session


async def recompute_session_stats(session: AsyncSession, session_id: UUID) -> None:
    exam_id_res = await session.execute(select(ExamSession.exam_id).where(ExamSession.id == session_id))
    exam_id = exam_id_res.scalar_one_or_none()
    if exam_id is None:
        raise SessionNotFound()

    total_questions = (await session.execute(
        select(func.count(QuestionDB.id)).where(QuestionDB.exam_id == exam_id)
    )).scalar() or 0
    answered = (await session.execute(
        select(func.count(func.distinct(Response.question_id))).where(Response.session_id == session_id)
    )).scalar() or 0
    violations = (await session.execute(
        select(func.count(SessionEvent.id)).where(
            SessionEvent.session_id == session_id, SessionEvent.kind == EventKind.VIOLATION
        )
    )).scalar() or 0

    await session.execute(
        update(ExamSession)
        .where(ExamSession.id == session_id)
        .values(
            completion_percentage=percentage(answered, total_questions),
            total_violations=violations,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )


async def update_session_stats(session: AsyncSession, session_id: UUID) -> ExamSession:
    """Repair the denormalized completion percentage and violation counter from the underlying rows."""
    try:
        await recompute_session_stats(session, session_id)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return await get_session(session, session_id)


async def get_report(session: AsyncSession, session_id: UUID) -> Optional[ProctoringReport]:
    res = await session.execute(select(ProctoringReport).where(ProctoringReport.session_id == session_id))
    return res.scalar_one_or_none()


async def complete_session(session: AsyncSession, session_id: UUID, submission_type="manual") -> CompletionResult:
    """
    Finish a session: mark it completed, score it and write its proctoring
    report, all in one transaction. A failure anywhere rolls everything back
    and the session stays in progress.

    Completing an already completed session changes nothing and returns the
    stored score and report with `already_completed=True`.
    """
    stored_type = map_submission_type(submission_type)
    end_time = utcnow()

    try:
        # conditional transition, only one concurrent caller can win it
        transition = (
            update(ExamSession)
            .where(ExamSession.id == session_id, ExamSession.status == ExamSessionStatus.IN_PROGRESS)
            .values(
                status=ExamSessionStatus.COMPLETED,
                end_time=end_time,
                submission_type=stored_type,
                updated_at=end_time,
            )
            .returning(ExamSession.id)
            .execution_options(synchronize_session=False)
        )
        transitioned = (await session.execute(transition)).first() is not None

        if transitioned:
            await recompute_session_stats(session, session_id)
            exam_session = await _load_session(session, session_id)
            exam_session.actual_duration_seconds = int((end_time - exam_session.start_time).total_seconds())

            score = await score_session(session, session_id)
            exam_session.score = score
            await session.flush()

            report = await build_report(session, exam_session, score)
            await session.commit()
    except Exception:
        await session.rollback()
        logger.exception("Error completing session %s", session_id)
        raise

    if not transitioned:
        # nothing was written, end the read transaction
        await session.commit()
        exam_session = await _load_session(session, session_id)
        if exam_session is None:
            raise SessionNotFound()
        logger.info("Session %s already completed, leaving score and report untouched", session_id)
        return CompletionResult(
            exam_session=exam_session,
            score=exam_session.score,
            report=await get_report(session, session_id),
            already_completed=True,
        )

    logger.info(
        "Session %s completed (%s) score=%s report=%s",
        session_id, stored_type.value, score, report.status.value,
    )
    return CompletionResult(exam_session=exam_session, score=score, report=report)


async def mark_session_resumed(session: AsyncSession, session_id: UUID) -> ExamSession:
    """Record that the student recovered an in-progress session."""
    try:
        stmt = (
            update(ExamSession)
            .where(ExamSession.id == session_id, ExamSession.status == ExamSessionStatus.IN_PROGRESS)
            .values(was_resumed=True, resume_count=ExamSession.resume_count + 1, updated_at=utcnow())
            .returning(ExamSession.id)
            .execution_options(synchronize_session=False)
        )
        if (await session.execute(stmt)).first() is None:
            await raise_not_in_progress(session, session_id)
        await log_lifecycle_event(session, session_id, "Exam resumed", "Student recovered and resumed exam")
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return await get_session(session, session_id)


async def get_recovery_data(session: AsyncSession, session_id: UUID) -> Optional[Dict[str, Any]]:
    """
    What the client needs to offer "resume": None unless the session is still
    in progress and has at least one snapshot.
    """
    res = await session.execute(
        select(ExamSession, Exam)
        .join(Exam, Exam.id == ExamSession.exam_id)
        .where(ExamSession.id == session_id)
        .execution_options(populate_existing=True)
    )
    row = res.first()
    if row is None:
        return None
    exam_session, exam = row
    if exam_session.status != ExamSessionStatus.IN_PROGRESS:
        return None

    snapshot = await get_latest_snapshot(session, session_id)
    if snapshot is None:
        return None

    return {
        "session": {
            "id": exam_session.id,
            "session_code": exam_session.session_code,
            "exam_id": exam_session.exam_id,
            "exam_title": exam.title,
            "start_time": exam_session.start_time,
            "scheduled_end_time": exam_session.scheduled_end_time,
            "duration_minutes": exam.duration_minutes,
            "max_violations": exam.max_violations,
            "total_violations": exam_session.total_violations,
            "resume_count": exam_session.resume_count,
        },
        "snapshot": snapshot.snapshot_data,
        "snapshot_created_at": snapshot.created_at,
        "can_recover": True,
    }


async def list_sessions(
    session: AsyncSession,
    exam_id: Optional[UUID] = None,
    status: Optional[ExamSessionStatus] = None,
    student_id: Optional[UUID] = None,
) -> List[ExamSession]:
    stmt = select(ExamSession).order_by(ExamSession.start_time.desc())
    if student_id:
        stmt = stmt.where(ExamSession.student_id == student_id)
    if exam_id:
        stmt = stmt.where(ExamSession.exam_id == exam_id)
    if status:
        stmt = stmt.where(ExamSession.status == status)
    res = await session.execute(stmt)
    return res.scalars().all()


async def list_reports(session: AsyncSession, exam_id: Optional[UUID] = None) -> List[ProctoringReport]:
    stmt = select(ProctoringReport).order_by(ProctoringReport.created_at.desc())
    if exam_id:
        stmt = stmt.where(ProctoringReport.exam_id == exam_id)
    res = await session.execute(stmt)
    return res.scalars().all()
