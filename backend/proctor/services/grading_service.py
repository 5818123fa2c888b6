import logging
from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy import select, func, text
from sqlalchemy.exc import DBAPIError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import SCORE_FUNCTION_NAME
from ..models.exam_model import Exam
from ..models.question_model import QuestionDB
from ..models.user_model import User
from ..models.exam_session_model import (
    ExamSession, Response, SessionEvent, EventKind, ReportStatus, ProctoringReport,
)
from .violation_service import is_serious_violation

logger = logging.getLogger(__name__)

SCORABLE_TYPES = ("multiple_choice",)


def grade_response(question: Any, response_option_index: Optional[int]) -> Optional[bool]:
    """
    Correctness of one answer.
    - question: object with question_type and correct_option_index
    Returns None for free text questions (never auto-scored) and for a
    multiple choice question without a configured correct option.
    """
    if question.question_type not in SCORABLE_TYPES:
        return None
    if question.correct_option_index is None:
        return None
    if response_option_index is None:
        return False
    return response_option_index == question.correct_option_index


def percentage(correct: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round((correct / total) * 100, 2)


async def _score_with_function(session: AsyncSession, session_id: UUID) -> Optional[float]:
    if session.get_bind().dialect.name != "postgresql":
        return None
    try:
        # savepoint keeps the surrounding completion transaction usable if the function is missing
        async with session.begin_nested():
            res = await session.execute(
                text(f"SELECT {SCORE_FUNCTION_NAME}(:session_id) AS score"), {"session_id": session_id}
            )
            value = res.scalar()
    except (ProgrammingError, DBAPIError) as e:
        logger.warning("%s not available, calculating manually: %s", SCORE_FUNCTION_NAME, e)
        return None
    return float(value or 0)


async def _score_manually(session: AsyncSession, session_id: UUID) -> float:
    exam_id_res = await session.execute(select(ExamSession.exam_id).where(ExamSession.id == session_id))
    exam_id = exam_id_res.scalar_one()

    total_res = await session.execute(
        select(func.count(QuestionDB.id)).where(
            QuestionDB.exam_id == exam_id, QuestionDB.question_type.in_(SCORABLE_TYPES)
        )
    )
    total = total_res.scalar() or 0

    correct_res = await session.execute(
        select(func.count(Response.id)).where(Response.session_id == session_id, Response.is_correct.is_(True))
    )
    correct = correct_res.scalar() or 0
    return percentage(correct, total)


async def score_session(session: AsyncSession, session_id: UUID) -> float:
    """
    Percentage of correct answers among the exam's scorable questions, 0-100.
    Uses the database aggregate function when present, else computes it here.
    Does not commit.
    """
    score = await _score_with_function(session, session_id)
    if score is None:
        score = await _score_manually(session, session_id)
    return score


def classify_report_status(violations: Iterable[Any]) -> ReportStatus:
    """
    Integrity status from a session's violation events (objects with
    event_type and severity). Any serious violation flags the session for
    review; otherwise the status escalates with the count.
    """
    violations = list(violations)
    if not violations:
        return ReportStatus.CLEAN

    if any(is_serious_violation(v.event_type, v.severity) for v in violations):
        return ReportStatus.FLAGGED_FOR_REVIEW

    count = len(violations)
    if count <= 2:
        return ReportStatus.MINOR_ISSUES
    if count <= 5:
        return ReportStatus.CONCERNING
    return ReportStatus.FLAGGED_FOR_REVIEW


async def build_report(session: AsyncSession, exam_session: ExamSession, score: float) -> ProctoringReport:
    """Create the write-once proctoring report for a completed session. Does not commit."""
    vres = await session.execute(
        select(SessionEvent)
        .where(SessionEvent.session_id == exam_session.id, SessionEvent.kind == EventKind.VIOLATION)
        .order_by(SessionEvent.detected_at, SessionEvent.id)
    )
    violations = vres.scalars().all()

    violation_types = []
    for v in violations:
        if v.event_type not in violation_types:
            violation_types.append(v.event_type)

    dres = await session.execute(
        select(User.full_name, User.email, Exam.title)
        .select_from(ExamSession)
        .join(User, User.id == ExamSession.student_id)
        .join(Exam, Exam.id == ExamSession.exam_id)
        .where(ExamSession.id == exam_session.id)
    )
    details = dres.first()
    student_name, student_email, exam_title = details if details else (None, None, None)

    report = ProctoringReport(
        session_id=exam_session.id,
        student_id=exam_session.student_id,
        exam_id=exam_session.exam_id,
        student_name=student_name,
        student_email=student_email,
        exam_title=exam_title,
        exam_start=exam_session.start_time,
        exam_end=exam_session.end_time,
        duration_minutes=round((exam_session.actual_duration_seconds or 0) / 60),
        total_violations=len(violations),
        violation_types=violation_types,
        status=classify_report_status(violations),
        form_submitted=True,
        score=score,
        completion_percentage=exam_session.completion_percentage or 0,
    )
    session.add(report)
    await session.flush()
    return report
