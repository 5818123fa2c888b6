import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import select, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import (
    GroupNotFound, GroupNameExists, StudentAlreadyInGroup, StudentNotInGroup, GroupAlreadyAssigned,
    GroupNotAssigned, ExamNotFound,
)
from ..models.exam_model import Exam
from ..models.group_model import StudentGroup, StudentGroupMember, ExamGroupAccess
from ..models.user_model import User
from .exam_service import apply_patch

logger = logging.getLogger(__name__)


async def _get_group(session: AsyncSession, group_id: UUID) -> StudentGroup:
    res = await session.execute(select(StudentGroup).where(StudentGroup.id == group_id))
    group = res.scalar_one_or_none()
    if group is None:
        raise GroupNotFound()
    return group


async def _name_taken(session: AsyncSession, name: str, exclude_id: Optional[UUID] = None) -> bool:
    stmt = select(StudentGroup.id).where(func.lower(StudentGroup.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(StudentGroup.id != exclude_id)
    res = await session.execute(stmt)
    return res.first() is not None


async def _group_to_dict(session: AsyncSession, group: StudentGroup) -> Dict[str, Any]:
    members = await session.execute(
        select(func.count()).select_from(StudentGroupMember).where(StudentGroupMember.group_id == group.id)
    )
    exams = await session.execute(
        select(func.count()).select_from(ExamGroupAccess).where(ExamGroupAccess.group_id == group.id)
    )
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "member_count": members.scalar() or 0,
        "exam_count": exams.scalar() or 0,
        "created_at": group.created_at,
        "updated_at": group.updated_at,
    }


async def list_groups(session: AsyncSession) -> List[Dict[str, Any]]:
    res = await session.execute(select(StudentGroup).order_by(StudentGroup.name))
    return [await _group_to_dict(session, g) for g in res.scalars().all()]


async def get_group(session: AsyncSession, group_id: UUID) -> Dict[str, Any]:
    return await _group_to_dict(session, await _get_group(session, group_id))


async def create_group(
    session: AsyncSession, name: str, description: Optional[str] = None, created_by: Optional[UUID] = None
) -> Dict[str, Any]:
    # names are unique regardless of case
    if await _name_taken(session, name):
        raise GroupNameExists()
    group = StudentGroup(name=name, description=description, created_by=created_by)
    try:
        session.add(group)
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise GroupNameExists()
    except Exception:
        await session.rollback()
        raise
    logger.info("Group %s created: %s", group.id, name)
    return await _group_to_dict(session, group)


async def update_group(session: AsyncSession, group_id: UUID, patch: BaseModel) -> Dict[str, Any]:
    group = await _get_group(session, group_id)
    new_name = getattr(patch, "name", None)
    if new_name is not None and await _name_taken(session, new_name, exclude_id=group_id):
        raise GroupNameExists()
    if not apply_patch(group, patch):
        raise ValueError("No fields provided for update")
    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return await _group_to_dict(session, group)


async def delete_group(session: AsyncSession, group_id: UUID) -> str:
    group = await _get_group(session, group_id)
    name = group.name
    try:
        await session.execute(delete(StudentGroupMember).where(StudentGroupMember.group_id == group_id))
        await session.execute(delete(ExamGroupAccess).where(ExamGroupAccess.group_id == group_id))
        await session.delete(group)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("Group %s deleted: %s", group_id, name)
    return name


async def _is_member(session: AsyncSession, group_id: UUID, student_id: UUID) -> bool:
    res = await session.execute(
        select(StudentGroupMember.student_id).where(
            StudentGroupMember.group_id == group_id, StudentGroupMember.student_id == student_id
        )
    )
    return res.first() is not None


async def add_member(
    session: AsyncSession, group_id: UUID, student_id: UUID, added_by: Optional[UUID] = None
) -> StudentGroupMember:
    await _get_group(session, group_id)
    if await _is_member(session, group_id, student_id):
        raise StudentAlreadyInGroup()
    member = StudentGroupMember(group_id=group_id, student_id=student_id, added_by=added_by)
    try:
        session.add(member)
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise StudentAlreadyInGroup()
    except Exception:
        await session.rollback()
        raise
    return member


async def add_members_by_email(
    session: AsyncSession, group_id: UUID, emails: List[str], added_by: Optional[UUID] = None
) -> Dict[str, Any]:
    """
    Add several students at once in a single transaction. Unknown emails and
    students already in the group are reported back instead of failing the batch.
    """
    await _get_group(session, group_id)
    added: List[str] = []
    not_found: List[str] = []
    already_in_group: List[str] = []

    try:
        for email in emails:
            res = await session.execute(select(User.id).where(func.lower(User.email) == email.lower()))
            student_id = res.scalar_one_or_none()
            if student_id is None:
                not_found.append(email)
                continue
            if email in added or await _is_member(session, group_id, student_id):
                already_in_group.append(email)
                continue
            session.add(StudentGroupMember(group_id=group_id, student_id=student_id, added_by=added_by))
            await session.flush()
            added.append(email)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    return {"added": len(added), "added_emails": added, "not_found": not_found, "already_in_group": already_in_group}


async def remove_member(session: AsyncSession, group_id: UUID, student_id: UUID) -> None:
    try:
        res = await session.execute(
            delete(StudentGroupMember)
            .where(StudentGroupMember.group_id == group_id, StudentGroupMember.student_id == student_id)
            .returning(StudentGroupMember.student_id)
        )
        if res.first() is None:
            raise StudentNotInGroup()
        await session.commit()
    except Exception:
        await session.rollback()
        raise


async def list_members(session: AsyncSession, group_id: UUID) -> List[Dict[str, Any]]:
    await _get_group(session, group_id)
    res = await session.execute(
        select(User.id, User.email, User.full_name, StudentGroupMember.added_at, StudentGroupMember.added_by)
        .join(StudentGroupMember, StudentGroupMember.student_id == User.id)
        .where(StudentGroupMember.group_id == group_id)
        .order_by(User.full_name)
    )
    return [dict(row._mapping) for row in res.all()]


async def list_student_groups(session: AsyncSession, student_id: UUID) -> List[Dict[str, Any]]:
    res = await session.execute(
        select(StudentGroup.id, StudentGroup.name, StudentGroup.description, StudentGroupMember.added_at)
        .join(StudentGroupMember, StudentGroupMember.group_id == StudentGroup.id)
        .where(StudentGroupMember.student_id == student_id)
        .order_by(StudentGroup.name)
    )
    return [dict(row._mapping) for row in res.all()]


async def assign_group_to_exam(
    session: AsyncSession, exam_id: UUID, group_id: UUID, created_by: Optional[UUID] = None
) -> ExamGroupAccess:
    exam_res = await session.execute(select(Exam.id).where(Exam.id == exam_id))
    if exam_res.first() is None:
        raise ExamNotFound()
    await _get_group(session, group_id)

    existing = await session.execute(
        select(ExamGroupAccess.group_id).where(ExamGroupAccess.exam_id == exam_id, ExamGroupAccess.group_id == group_id)
    )
    if existing.first() is not None:
        raise GroupAlreadyAssigned()

    access = ExamGroupAccess(exam_id=exam_id, group_id=group_id, created_by=created_by)
    try:
        session.add(access)
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise GroupAlreadyAssigned()
    except Exception:
        await session.rollback()
        raise
    return access


async def remove_group_from_exam(session: AsyncSession, exam_id: UUID, group_id: UUID) -> None:
    try:
        res = await session.execute(
            delete(ExamGroupAccess)
            .where(ExamGroupAccess.exam_id == exam_id, ExamGroupAccess.group_id == group_id)
            .returning(ExamGroupAccess.group_id)
        )
        if res.first() is None:
            raise GroupNotAssigned()
        await session.commit()
    except Exception:
        await session.rollback()
        raise


async def list_exam_groups(session: AsyncSession, exam_id: UUID) -> List[Dict[str, Any]]:
    res = await session.execute(
        select(
            StudentGroup.id,
            StudentGroup.name,
            StudentGroup.description,
            ExamGroupAccess.created_at.label("access_granted_at"),
            ExamGroupAccess.created_by,
        )
        .join(ExamGroupAccess, ExamGroupAccess.group_id == StudentGroup.id)
        .where(ExamGroupAccess.exam_id == exam_id)
        .order_by(StudentGroup.name)
    )
    return [dict(row._mapping) for row in res.all()]
