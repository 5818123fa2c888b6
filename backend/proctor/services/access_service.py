import logging
from uuid import UUID

from sqlalchemy import select, exists
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import AccessDeniedToExam, ExamNotFound
from ..models.exam_model import Exam
from ..models.group_model import ExamGroupAccess, StudentGroupMember
from ..models.user_model import User

logger = logging.getLogger(__name__)


async def can_access(session: AsyncSession, student_id: UUID, exam_id: UUID) -> bool:
    """
    Decide whether a student may start or continue an exam.

    - exam without group gating: the student's global `is_authorized` flag.
    - group gated exam: the student belongs to at least one group that has an
      access row for the exam.

    Nothing is cached, so membership changes apply to the very next call.
    Raises ExamNotFound when the exam does not exist.
    """
    res = await session.execute(select(Exam.use_group_access).where(Exam.id == exam_id))
    row = res.first()
    if row is None:
        raise ExamNotFound()
    use_group_access = row[0]

    if not use_group_access:
        sres = await session.execute(select(User.is_authorized).where(User.id == student_id))
        authorized = sres.scalar_one_or_none()
        return bool(authorized)

    stmt = select(
        exists()
        .where(ExamGroupAccess.exam_id == exam_id)
        .where(StudentGroupMember.group_id == ExamGroupAccess.group_id)
        .where(StudentGroupMember.student_id == student_id)
    )
    ares = await session.execute(stmt)
    return bool(ares.scalar())


async def ensure_access(session: AsyncSession, student_id: UUID, exam_id: UUID) -> None:
    if not await can_access(session, student_id, exam_id):
        logger.info("Access denied to exam_id=%s for student_id=%s", exam_id, student_id)
        raise AccessDeniedToExam()
