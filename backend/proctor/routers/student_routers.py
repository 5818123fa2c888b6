from fastapi import APIRouter, Depends
from typing import List
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_async_session
from ..dependencies import current_student
from ..models.exam_session_model import ExamSessionStatus
from ..schemas.exam_schema import ActiveExamRead
from ..schemas.exam_session_schema import SessionRead
from ..services import access_service, exam_service, session_service
from ..services.group_service import list_student_groups

router = APIRouter(tags=["Student"])


@router.get("/exams/active", response_model=ActiveExamRead)
async def get_active_exam(user=Depends(current_student), session: AsyncSession = Depends(get_async_session)):
    # listing is gated the same way session creation is
    exam = await exam_service.get_active_exam(session)
    await access_service.ensure_access(session, user.id, exam.id)
    return await exam_service.get_active_exam_for_student(session)


@router.get("/student/results", response_model=List[SessionRead])
async def get_student_results(user=Depends(current_student), session: AsyncSession = Depends(get_async_session)):
    rows = await session_service.list_sessions(session, status=ExamSessionStatus.COMPLETED, student_id=user.id)
    return [SessionRead.model_validate(r) for r in rows]


@router.get("/student/groups")
async def get_my_groups(user=Depends(current_student), session: AsyncSession = Depends(get_async_session)):
    return await list_student_groups(session, user.id)
