import logging
from typing import Any, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import QuestionNotFound, SessionNotFound, SessionNotInProgress
from ..models.question_model import QuestionDB
from ..models.exam_session_model import ExamSession, ExamSessionStatus, Response
from ..utils import utcnow
from .grading_service import grade_response
from .session_service import recompute_session_stats

logger = logging.getLogger(__name__)

_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


async def _open_exam_id(session: AsyncSession, session_id: UUID) -> UUID:
    """Exam of a session that still accepts answers."""
    res = await session.execute(
        select(ExamSession.exam_id, ExamSession.status).where(ExamSession.id == session_id)
    )
    row = res.first()
    if row is None:
        raise SessionNotFound()
    if row.status != ExamSessionStatus.IN_PROGRESS:
        raise SessionNotInProgress()
    return row.exam_id


async def _upsert_response(
    session: AsyncSession,
    session_id: UUID,
    exam_id: UUID,
    question_id: UUID,
    response_text: Optional[str],
    response_option_index: Optional[int],
) -> None:
    qres = await session.execute(
        select(QuestionDB).where(QuestionDB.id == question_id, QuestionDB.exam_id == exam_id)
    )
    question = qres.scalar_one_or_none()
    if question is None:
        raise QuestionNotFound()

    is_correct = grade_response(question, response_option_index)
    now = utcnow()
    insert = _INSERTS[session.get_bind().dialect.name]

    stmt = insert(Response).values(
        session_id=session_id,
        question_id=question_id,
        response_text=response_text,
        response_option_index=response_option_index,
        is_correct=is_correct,
        answered_at=now,
        updated_at=now,
        revision_count=0,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[Response.session_id, Response.question_id],
        set_={
            "response_text": stmt.excluded.response_text,
            "response_option_index": stmt.excluded.response_option_index,
            "is_correct": stmt.excluded.is_correct,
            "updated_at": now,
            "revision_count": Response.revision_count + 1,
        },
    )
    await session.execute(stmt)


async def save_response(
    session: AsyncSession,
    session_id: UUID,
    question_id: UUID,
    response_text: Optional[str] = None,
    response_option_index: Optional[int] = None,
) -> Response:
    """
    Insert or overwrite the answer to one question (last write wins) and
    refresh the session's completion stats in the same transaction.
    """
    try:
        exam_id = await _open_exam_id(session, session_id)
        await _upsert_response(session, session_id, exam_id, question_id, response_text, response_option_index)
        await recompute_session_stats(session, session_id)
        await session.commit()
    except Exception:
        await session.rollback()
        logger.exception("Error saving response session_id=%s question_id=%s", session_id, question_id)
        raise

    res = await session.execute(
        select(Response)
        .where(Response.session_id == session_id, Response.question_id == question_id)
        .execution_options(populate_existing=True)
    )
    return res.scalar_one()


async def save_responses_bulk(session: AsyncSession, session_id: UUID, items: Iterable[Any]) -> List[Response]:
    """
    Save several answers at once, e.g. when a reconnecting client flushes its
    offline queue. Items carry question_id, response_text and
    response_option_index. Either every answer is stored or none is.
    """
    items = list(items)
    try:
        exam_id = await _open_exam_id(session, session_id)
        for item in items:
            await _upsert_response(
                session, session_id, exam_id, item.question_id, item.response_text, item.response_option_index
            )
        await recompute_session_stats(session, session_id)
        await session.commit()
    except Exception:
        await session.rollback()
        logger.exception("Error saving %s responses session_id=%s", len(items), session_id)
        raise

    logger.info("Saved %s responses session_id=%s", len(items), session_id)
    question_ids = [item.question_id for item in items]
    res = await session.execute(
        select(Response)
        .join(QuestionDB, QuestionDB.id == Response.question_id)
        .where(Response.session_id == session_id, Response.question_id.in_(question_ids))
        .order_by(QuestionDB.question_number)
        .execution_options(populate_existing=True)
    )
    return res.scalars().all()


async def get_session_responses(session: AsyncSession, session_id: UUID) -> List[Response]:
    res = await session.execute(
        select(Response)
        .join(QuestionDB, QuestionDB.id == Response.question_id)
        .where(Response.session_id == session_id)
        .order_by(QuestionDB.question_number)
    )
    return res.scalars().all()
