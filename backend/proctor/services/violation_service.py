import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import SessionNotFound, SessionNotInProgress
from ..models.exam_model import Exam
from ..models.exam_session_model import ExamSession, ExamSessionStatus, SessionEvent, EventKind, Severity
from ..utils import utcnow

logger = logging.getLogger(__name__)


# checked in order, the first category with a matching keyword wins
SEVERITY_KEYWORDS = (
    (Severity.CRITICAL, ("developer tools", "console", "exam terminated", "multiple violations")),
    (Severity.HIGH, ("paste", "copy", "right-click", "view source")),
    (Severity.MEDIUM, ("tab", "window", "focus")),
)


@dataclass
class ViolationLogResult:
    violation_id: int
    detected_at: datetime
    total_violations: int
    max_violations: int
    should_terminate: bool


async def raise_not_in_progress(session: AsyncSession, session_id: UUID) -> None:
    """Raise the error explaining why a conditional update on an in-progress session matched nothing."""
    res = await session.execute(select(ExamSession.id).where(ExamSession.id == session_id))
    if res.first() is None:
        raise SessionNotFound()
    raise SessionNotInProgress()


def determine_severity(violation_type: str) -> Severity:
    """Classify a violation by case-insensitive keyword match on its type."""
    lowered = (violation_type or "").lower()
    for severity, keywords in SEVERITY_KEYWORDS:
        if any(k in lowered for k in keywords):
            return severity
    return Severity.LOW


def is_serious_violation(violation_type: str, severity: Optional[Severity] = None) -> bool:
    """High or critical severity, or any developer-tools event whatever it was recorded as."""
    if "developer tools" in (violation_type or "").lower():
        return True
    severity = Severity(severity) if severity else determine_severity(violation_type)
    return severity in (Severity.CRITICAL, Severity.HIGH)


async def log_violation(
    session: AsyncSession,
    session_id: UUID,
    violation_type: str,
    severity: Optional[Severity] = None,
    description: Optional[str] = None,
    browser_info: Optional[str] = None,
    device_info: Optional[str] = None,
    additional_data: Optional[Dict[str, Any]] = None,
) -> ViolationLogResult:
    """
    Append a violation event and bump the session's running counter.

    The counter is incremented and read back by a single UPDATE ... RETURNING,
    so concurrent logs against one session never lose an increment. The
    ledger only signals `should_terminate`; completing the session is left
    to the caller.
    Completed sessions are closed to new violations so the counter keeps
    matching their report.
    """
    severity = Severity(severity) if severity else determine_severity(violation_type)

    try:
        stmt = (
            update(ExamSession)
            .where(ExamSession.id == session_id, ExamSession.status == ExamSessionStatus.IN_PROGRESS)
            .values(total_violations=ExamSession.total_violations + 1, updated_at=utcnow())
            .returning(ExamSession.total_violations, ExamSession.exam_id)
            .execution_options(synchronize_session=False)
        )
        row = (await session.execute(stmt)).first()
        if row is None:
            await raise_not_in_progress(session, session_id)
        total_violations, exam_id = row

        event = SessionEvent(
            session_id=session_id,
            kind=EventKind.VIOLATION,
            event_type=violation_type,
            severity=severity,
            description=description or "",
            browser_info=browser_info or "",
            device_info=device_info or "",
            additional_data=additional_data or {},
        )
        session.add(event)
        await session.flush()

        mres = await session.execute(select(Exam.max_violations).where(Exam.id == exam_id))
        max_violations = mres.scalar_one()

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    should_terminate = total_violations >= max_violations
    logger.warning(
        "Violation logged session_id=%s type=%s severity=%s count=%s max=%s terminate=%s",
        session_id, violation_type, severity.value, total_violations, max_violations, should_terminate,
    )
    return ViolationLogResult(
        violation_id=event.id,
        detected_at=event.detected_at,
        total_violations=total_violations,
        max_violations=max_violations,
        should_terminate=should_terminate,
    )


async def log_lifecycle_event(
    session: AsyncSession,
    session_id: UUID,
    event_type: str,
    description: str = "",
    browser_info: Optional[str] = None,
) -> SessionEvent:
    """Add a non-violation timeline entry. Does not flush or commit."""
    event = SessionEvent(
        session_id=session_id,
        kind=EventKind.LIFECYCLE,
        event_type=event_type,
        severity=Severity.LOW,
        description=description,
        browser_info=browser_info or "",
        additional_data={},
    )
    session.add(event)
    return event


async def get_session_violations(session: AsyncSession, session_id: UUID) -> List[SessionEvent]:
    stmt = (
        select(SessionEvent)
        .where(SessionEvent.session_id == session_id, SessionEvent.kind == EventKind.VIOLATION)
        .order_by(SessionEvent.detected_at.asc(), SessionEvent.id.asc())
    )
    res = await session.execute(stmt)
    return res.scalars().all()


async def get_session_timeline(session: AsyncSession, session_id: UUID) -> List[SessionEvent]:
    stmt = (
        select(SessionEvent)
        .where(SessionEvent.session_id == session_id)
        .order_by(SessionEvent.detected_at.asc(), SessionEvent.id.asc())
    )
    res = await session.execute(stmt)
    return res.scalars().all()


def summarize_violations(violations: List[SessionEvent]) -> Dict[str, Any]:
    by_severity = {s.value: 0 for s in Severity}
    by_type: Dict[str, int] = {}
    for v in violations:
        by_severity[Severity(v.severity).value] += 1
        by_type[v.event_type] = by_type.get(v.event_type, 0) + 1
    return {"total": len(violations), "by_severity": by_severity, "by_type": by_type}


async def get_violation_stats(session: AsyncSession, session_id: UUID) -> Dict[str, Any]:
    violations = await get_session_violations(session, session_id)
    return summarize_violations(violations)
