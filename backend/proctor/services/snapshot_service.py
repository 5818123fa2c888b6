"""
Recovery snapshots.

Each save is a plain insert. Recovery reads the newest row for a session,
so older rows stay available as a progress history. An optional retention
hook runs after the insert, inside the same transaction, and may prune the
history without changing what `get_latest_snapshot` returns.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import SessionNotFound
from ..models.exam_session_model import ExamSession, SessionSnapshot
from ..models.user_model import User

logger = logging.getLogger(__name__)

RetentionHook = Callable[[AsyncSession, UUID], Awaitable[None]]


def keep_latest(count: int) -> RetentionHook:
    """Retention policy that keeps only the newest `count` snapshots of a session."""
    if count < 1:
        raise ValueError("count must be at least 1")

    async def _prune(session: AsyncSession, session_id: UUID) -> None:
        keep = (
            select(SessionSnapshot.id)
            .where(SessionSnapshot.session_id == session_id)
            .order_by(SessionSnapshot.created_at.desc(), SessionSnapshot.id.desc())
            .limit(count)
        )
        kept_ids = (await session.execute(keep)).scalars().all()
        await session.execute(
            delete(SessionSnapshot)
            .where(SessionSnapshot.session_id == session_id, SessionSnapshot.id.not_in(kept_ids))
            .execution_options(synchronize_session=False)
        )

    return _prune


def _counts(snapshot_data: Dict[str, Any]):
    responses = snapshot_data.get("responses") or {}
    return (
        len(responses),
        int(snapshot_data.get("violations") or 0),
        float(snapshot_data.get("completionPercentage") or 0),
    )


async def save_snapshot(
    session: AsyncSession,
    session_id: UUID,
    snapshot_data: Dict[str, Any],
    retention: Optional[RetentionHook] = None,
) -> SessionSnapshot:
    exists_res = await session.execute(select(ExamSession.id).where(ExamSession.id == session_id))
    if exists_res.scalar_one_or_none() is None:
        raise SessionNotFound()

    responses_count, violations_count, completion = _counts(snapshot_data)
    snapshot = SessionSnapshot(
        session_id=session_id,
        snapshot_data=snapshot_data,
        responses_count=responses_count,
        violations_count=violations_count,
        completion_percentage=completion,
    )
    try:
        session.add(snapshot)
        await session.flush()
        if retention is not None:
            await retention(session, session_id)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "Snapshot saved for session_id=%s responses=%s violations=%s",
        session_id, responses_count, violations_count,
    )
    return snapshot


async def get_latest_snapshot(session: AsyncSession, session_id: UUID) -> Optional[SessionSnapshot]:
    stmt = (
        select(SessionSnapshot)
        .where(SessionSnapshot.session_id == session_id)
        .order_by(SessionSnapshot.created_at.desc(), SessionSnapshot.id.desc())
        .limit(1)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def list_snapshots(session: AsyncSession, session_id: UUID) -> List[SessionSnapshot]:
    stmt = (
        select(SessionSnapshot)
        .where(SessionSnapshot.session_id == session_id)
        .order_by(SessionSnapshot.created_at.desc(), SessionSnapshot.id.desc())
    )
    res = await session.execute(stmt)
    return res.scalars().all()


async def list_exam_snapshots(session: AsyncSession, exam_id: UUID, latest_only: bool = False) -> List[Dict[str, Any]]:
    """
    Snapshots across every session of an exam, newest first, with the
    student they belong to. `latest_only` keeps one row per session.
    """
    stmt = (
        select(SessionSnapshot, ExamSession.session_code, ExamSession.student_id, User.full_name, User.email)
        .join(ExamSession, ExamSession.id == SessionSnapshot.session_id)
        .join(User, User.id == ExamSession.student_id)
        .where(ExamSession.exam_id == exam_id)
    )
    if latest_only:
        ranked = (
            select(
                SessionSnapshot.id.label("snapshot_id"),
                func.row_number().over(
                    partition_by=SessionSnapshot.session_id,
                    order_by=(SessionSnapshot.created_at.desc(), SessionSnapshot.id.desc()),
                ).label("rn"),
            )
            .join(ExamSession, ExamSession.id == SessionSnapshot.session_id)
            .where(ExamSession.exam_id == exam_id)
            .subquery()
        )
        stmt = stmt.join(ranked, ranked.c.snapshot_id == SessionSnapshot.id).where(ranked.c.rn == 1)
    stmt = stmt.order_by(SessionSnapshot.created_at.desc(), SessionSnapshot.id.desc())

    res = await session.execute(stmt)
    return [
        {
            "id": snap.id,
            "session_id": snap.session_id,
            "session_code": session_code,
            "student_id": student_id,
            "student_name": full_name,
            "student_email": email,
            "snapshot_data": snap.snapshot_data,
            "responses_count": snap.responses_count,
            "violations_count": snap.violations_count,
            "completion_percentage": snap.completion_percentage,
            "created_at": snap.created_at,
        }
        for snap, session_code, student_id, full_name, email in res.all()
    ]


async def clear_session_snapshots(session: AsyncSession, session_id: UUID) -> int:
    exists_res = await session.execute(select(ExamSession.id).where(ExamSession.id == session_id))
    if exists_res.scalar_one_or_none() is None:
        raise SessionNotFound()
    try:
        res = await session.execute(
            delete(SessionSnapshot)
            .where(SessionSnapshot.session_id == session_id)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("Cleared %s snapshots for session_id=%s", res.rowcount, session_id)
    return res.rowcount


async def clear_exam_snapshots(session: AsyncSession, exam_id: UUID) -> int:
    """Delete the snapshot history of every session of an exam. Returns the number of rows removed."""
    session_ids = select(ExamSession.id).where(ExamSession.exam_id == exam_id)
    try:
        res = await session.execute(
            delete(SessionSnapshot)
            .where(SessionSnapshot.session_id.in_(session_ids))
            .execution_options(synchronize_session=False)
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.warning("Cleared %s snapshots for exam_id=%s", res.rowcount, exam_id)
    return res.rowcount
