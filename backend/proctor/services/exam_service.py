import logging
from typing import Any, Dict, List
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ExamNotFound, NoActiveExam
from ..models.exam_model import Exam
from ..models.question_model import QuestionDB
from ..models.exam_session_model import (
    ExamSession, SessionSnapshot, SessionEvent, Response, ProctoringReport,
)
from ..models.group_model import ExamGroupAccess
from ..utils import utcnow

logger = logging.getLogger(__name__)


def apply_patch(target: Any, patch: BaseModel) -> List[str]:
    """
    Copy the fields explicitly set on a partial update model onto an ORM object.
    Returns the names of the changed fields.
    """
    changes = patch.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(target, field, value)
    return list(changes)


async def _get_exam(session: AsyncSession, exam_id: UUID) -> Exam:
    res = await session.execute(select(Exam).where(Exam.id == exam_id))
    exam = res.scalar_one_or_none()
    if exam is None:
        raise ExamNotFound()
    return exam


async def get_questions(session: AsyncSession, exam_id: UUID) -> List[QuestionDB]:
    stmt = select(QuestionDB).where(QuestionDB.exam_id == exam_id).order_by(QuestionDB.question_number)
    res = await session.execute(stmt)
    return res.scalars().all()


def _sanitize_question(q: QuestionDB) -> Dict[str, Any]:
    # remove correct_option_index to prevent leaking
    return {
        'id': q.id,
        'question_number': q.question_number,
        'question_text': q.question_text,
        'question_type': q.question_type,
        'required': q.required,
        'placeholder': q.placeholder,
        'image_url': q.image_url,
        'options': q.options or [],
    }


async def _question_count(session: AsyncSession, exam_id: UUID) -> int:
    res = await session.execute(select(func.count(QuestionDB.id)).where(QuestionDB.exam_id == exam_id))
    return res.scalar() or 0


def _exam_to_read_dict(exam: Exam, question_count: int) -> Dict[str, Any]:
    return {
        "id": exam.id,
        "title": exam.title,
        "description": exam.description,
        "version": exam.version,
        "duration_minutes": exam.duration_minutes,
        "max_violations": exam.max_violations,
        "is_active": exam.is_active,
        "use_group_access": exam.use_group_access,
        "question_count": question_count,
        "created_at": exam.created_at,
        "updated_at": exam.updated_at,
    }


async def get_exam(session: AsyncSession, exam_id: UUID) -> Dict[str, Any]:
    exam = await _get_exam(session, exam_id)
    return _exam_to_read_dict(exam, await _question_count(session, exam.id))


async def list_exams(session: AsyncSession) -> List[Dict[str, Any]]:
    res = await session.execute(select(Exam).order_by(Exam.created_at.desc()))
    out = []
    for exam in res.scalars().all():
        out.append(_exam_to_read_dict(exam, await _question_count(session, exam.id)))
    return out


async def create_exam(session: AsyncSession, payload: BaseModel) -> Dict[str, Any]:
    # new exams always start inactive, activation goes through activate_exam
    exam = Exam(**payload.model_dump(exclude_unset=True, exclude_none=True), is_active=False)
    try:
        session.add(exam)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("Exam %s created: %s", exam.id, exam.title)
    return _exam_to_read_dict(exam, 0)


async def update_exam(session: AsyncSession, exam_id: UUID, patch: BaseModel) -> Dict[str, Any]:
    exam = await _get_exam(session, exam_id)
    changed = apply_patch(exam, patch)
    if not changed:
        raise ValueError("No fields provided for update")
    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("Exam %s updated fields=%s", exam_id, changed)
    return _exam_to_read_dict(exam, await _question_count(session, exam.id))


async def activate_exam(session: AsyncSession, exam_id: UUID) -> Dict[str, Any]:
    """
    Make `exam_id` the single active exam. Every other exam is deactivated in
    the same transaction; activating the already active exam is a no-op.
    """
    exam = await _get_exam(session, exam_id)
    try:
        now = utcnow()
        await session.execute(
            update(Exam)
            .where(Exam.is_active.is_(True), Exam.id != exam_id)
            .values(is_active=False, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        if not exam.is_active:
            exam.is_active = True
            exam.updated_at = now
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("Exam %s activated", exam_id)
    return _exam_to_read_dict(exam, await _question_count(session, exam.id))


async def deactivate_exam(session: AsyncSession, exam_id: UUID) -> Dict[str, Any]:
    exam = await _get_exam(session, exam_id)
    try:
        exam.is_active = False
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("Exam %s deactivated", exam_id)
    return _exam_to_read_dict(exam, await _question_count(session, exam.id))


async def get_active_exam(session: AsyncSession) -> Exam:
    res = await session.execute(select(Exam).where(Exam.is_active.is_(True)).limit(1))
    exam = res.scalar_one_or_none()
    if exam is None:
        raise NoActiveExam()
    return exam


async def get_active_exam_for_student(session: AsyncSession) -> Dict[str, Any]:
    exam = await get_active_exam(session)
    questions = await get_questions(session, exam.id)
    out = _exam_to_read_dict(exam, len(questions))
    out["questions"] = [_sanitize_question(q) for q in questions]
    return out


async def add_question(session: AsyncSession, exam_id: UUID, payload: BaseModel) -> QuestionDB:
    """
    Append a question. A question number that is already taken is replaced by
    the next free number.
    """
    await _get_exam(session, exam_id)
    data = payload.model_dump()

    taken = await session.execute(
        select(QuestionDB.id).where(QuestionDB.exam_id == exam_id, QuestionDB.question_number == data["question_number"])
    )
    if taken.first() is not None:
        max_res = await session.execute(
            select(func.coalesce(func.max(QuestionDB.question_number), 0)).where(QuestionDB.exam_id == exam_id)
        )
        data["question_number"] = max_res.scalar() + 1

    question = QuestionDB(exam_id=exam_id, **data)
    try:
        session.add(question)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return question


async def delete_exam(session: AsyncSession, exam_id: UUID) -> None:
    """Delete an exam with everything its sessions own."""
    exam = await _get_exam(session, exam_id)
    session_ids = select(ExamSession.id).where(ExamSession.exam_id == exam.id)
    try:
        for model in (SessionSnapshot, SessionEvent, Response, ProctoringReport):
            await session.execute(
                delete(model).where(model.session_id.in_(session_ids)).execution_options(synchronize_session=False)
            )
        await session.execute(delete(ExamSession).where(ExamSession.exam_id == exam.id))
        await session.execute(delete(ExamGroupAccess).where(ExamGroupAccess.exam_id == exam.id))
        await session.execute(delete(QuestionDB).where(QuestionDB.exam_id == exam.id))
        await session.delete(exam)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("Exam %s deleted", exam_id)
