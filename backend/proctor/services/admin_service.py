"""
Admin console queries: the dashboard summary and the roster of students
allowed to sit non-gated exams.

Students are regular fastapi-users accounts. Authorizing an email that has
no account yet creates a student with an unusable random password; they
set a real one through the reset-password flow.
"""
import logging
from datetime import datetime, time
from typing import Any, Dict, Iterable, List, Optional

from fastapi_users.password import PasswordHelper
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import StudentNotFound
from ..models.exam_model import Exam
from ..models.exam_session_model import ExamSession, ExamSessionStatus, SessionEvent, EventKind, ProctoringReport, ReportStatus
from ..models.user_model import User, UserRole
from ..utils import utcnow

logger = logging.getLogger(__name__)

password_helper = PasswordHelper()

RECENT_SESSIONS_LIMIT = 10
TOP_VIOLATIONS_LIMIT = 10


async def _count(session: AsyncSession, stmt) -> int:
    return (await session.execute(stmt)).scalar() or 0


async def _avg(session: AsyncSession, column, *where) -> float:
    res = await session.execute(select(func.avg(column)).where(*where))
    value = res.scalar()
    return round(float(value or 0), 2)


async def get_dashboard_stats(session: AsyncSession) -> Dict[str, Any]:
    count_sessions = select(func.count()).select_from(ExamSession)
    start_of_today = datetime.combine(utcnow().date(), time.min)

    stats = {
        "total_sessions": await _count(session, count_sessions),
        "active_sessions": await _count(
            session, count_sessions.where(ExamSession.status == ExamSessionStatus.IN_PROGRESS)
        ),
        "completed_sessions": await _count(
            session, count_sessions.where(ExamSession.status == ExamSessionStatus.COMPLETED)
        ),
        "completed_today": await _count(
            session,
            count_sessions.where(
                ExamSession.status == ExamSessionStatus.COMPLETED, ExamSession.end_time >= start_of_today
            ),
        ),
        "total_students": await _count(
            session,
            select(func.count()).select_from(User).where(User.role == UserRole.STUDENT, User.is_authorized.is_(True)),
        ),
        "total_exams": await _count(session, select(func.count()).select_from(Exam)),
        "average_completion_rate": await _avg(session, ExamSession.completion_percentage),
        "average_violations": await _avg(session, ExamSession.total_violations),
        "average_score": await _avg(session, ExamSession.score, ExamSession.score.is_not(None)),
        "flagged_sessions": await _count(
            session,
            select(func.count()).select_from(ProctoringReport).where(
                ProctoringReport.status == ReportStatus.FLAGGED_FOR_REVIEW
            ),
        ),
    }

    recent = await session.execute(
        select(ExamSession.id, ExamSession.session_code, ExamSession.start_time, ExamSession.status,
               User.full_name, Exam.title)
        .join(User, User.id == ExamSession.student_id)
        .join(Exam, Exam.id == ExamSession.exam_id)
        .order_by(ExamSession.start_time.desc())
        .limit(RECENT_SESSIONS_LIMIT)
    )
    stats["recent_sessions"] = [
        {
            "id": row.id,
            "session_code": row.session_code,
            "start_time": row.start_time,
            "status": row.status,
            "student_name": row.full_name,
            "exam_title": row.title,
        }
        for row in recent.all()
    ]

    event_count = func.count(SessionEvent.id).label("count")
    trends = await session.execute(
        select(SessionEvent.event_type, event_count)
        .where(SessionEvent.kind == EventKind.VIOLATION)
        .group_by(SessionEvent.event_type)
        .order_by(event_count.desc(), SessionEvent.event_type)
        .limit(TOP_VIOLATIONS_LIMIT)
    )
    stats["violation_trends"] = [{"violation_type": t, "count": c} for t, c in trends.all()]
    return stats


def _student_to_dict(user: User, total_sessions: int = 0) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "is_authorized": user.is_authorized,
        "last_login": user.last_login,
        "total_sessions": total_sessions,
    }


async def list_students(session: AsyncSession) -> List[Dict[str, Any]]:
    """Every student account, authorized or not, with how many sessions it has started."""
    total_sessions = func.count(ExamSession.id).label("total_sessions")
    res = await session.execute(
        select(User, total_sessions)
        .outerjoin(ExamSession, ExamSession.student_id == User.id)
        .where(User.role == UserRole.STUDENT)
        .group_by(User.id)
        .order_by(User.full_name.is_(None), User.full_name, User.email)
    )
    return [_student_to_dict(user, count) for user, count in res.all()]


async def _find_by_email(session: AsyncSession, email: str) -> Optional[User]:
    res = await session.execute(select(User).where(func.lower(User.email) == email.lower()))
    return res.scalar_one_or_none()


async def _authorize(session: AsyncSession, email: str, full_name: Optional[str]) -> User:
    full_name = (full_name or "").strip() or None
    user = await _find_by_email(session, email)
    if user is None:
        user = User(
            email=email.lower(),
            hashed_password=password_helper.hash(password_helper.generate()),
            full_name=full_name,
            role=UserRole.STUDENT,
            is_authorized=True,
            last_login=None,
        )
        session.add(user)
    else:
        user.is_authorized = True
        # a blank name never overwrites a known one
        if full_name:
            user.full_name = full_name
    await session.flush()
    return user


async def authorize_student(session: AsyncSession, email: str, full_name: Optional[str] = None) -> Dict[str, Any]:
    try:
        user = await _authorize(session, email, full_name)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("Student %s authorized", email)
    return _student_to_dict(user)


async def bulk_authorize_students(session: AsyncSession, students: Iterable[Any]) -> List[Dict[str, Any]]:
    """Authorize many students (objects with email and full_name) in one transaction."""
    students = list(students)
    try:
        users = [await _authorize(session, s.email, s.full_name) for s in students]
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("Bulk authorized %s students", len(users))
    return [_student_to_dict(u) for u in users]


async def deauthorize_student(session: AsyncSession, email: str) -> Dict[str, Any]:
    """Revoke blanket exam access. The account and its history stay."""
    user = await _find_by_email(session, email)
    if user is None:
        raise StudentNotFound()
    try:
        user.is_authorized = False
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("Student %s deauthorized", email)
    return _student_to_dict(user)
