from fastapi import APIRouter, Depends, HTTPException, status
from typing import List
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from ..db import get_async_session
from ..schemas.exam_schema import ExamCreate, ExamRead, ExamUpdate, ExamActivation, QuestionCreate, QuestionRead
from ..schemas.exam_session_schema import ExamSnapshotRead, SnapshotsCleared
from ..schemas.group_schema import ExamGroupRead
from ..services import exam_service, group_service, snapshot_service
from ..dependencies import current_admin

router = APIRouter(prefix="/admin/exams", tags=["Exams"])


@router.get("/", response_model=List[ExamRead], dependencies=[Depends(current_admin)])
async def get_all_exams(session: AsyncSession = Depends(get_async_session)):
    return await exam_service.list_exams(session)


@router.post("/", response_model=ExamRead, status_code=status.HTTP_201_CREATED, dependencies=[Depends(current_admin)])
async def create_exam(payload: ExamCreate, session: AsyncSession = Depends(get_async_session)):
    return await exam_service.create_exam(session, payload)


@router.get("/{exam_id}", response_model=ExamRead, dependencies=[Depends(current_admin)])
async def get_exam(exam_id: UUID, session: AsyncSession = Depends(get_async_session)):
    return await exam_service.get_exam(session, exam_id)


@router.patch("/{exam_id}", response_model=ExamRead, dependencies=[Depends(current_admin)])
async def update_exam(exam_id: UUID, payload: ExamUpdate, session: AsyncSession = Depends(get_async_session)):
    # update only fields sent
    try:
        return await exam_service.update_exam(session, exam_id, payload)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/{exam_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(current_admin)])
async def delete_exam(exam_id: UUID, session: AsyncSession = Depends(get_async_session)):
    await exam_service.delete_exam(session, exam_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{exam_id}/activate", response_model=ExamRead, dependencies=[Depends(current_admin)])
async def set_exam_active(exam_id: UUID, payload: ExamActivation, session: AsyncSession = Depends(get_async_session)):
    if payload.is_active:
        return await exam_service.activate_exam(session, exam_id)
    return await exam_service.deactivate_exam(session, exam_id)


@router.get("/{exam_id}/questions", response_model=List[QuestionRead], dependencies=[Depends(current_admin)])
async def get_questions(exam_id: UUID, session: AsyncSession = Depends(get_async_session)):
    await exam_service.get_exam(session, exam_id)
    return [QuestionRead.model_validate(q) for q in await exam_service.get_questions(session, exam_id)]


@router.post("/{exam_id}/questions", response_model=QuestionRead, status_code=status.HTTP_201_CREATED, dependencies=[Depends(current_admin)])
async def add_question(exam_id: UUID, payload: QuestionCreate, session: AsyncSession = Depends(get_async_session)):
    question = await exam_service.add_question(session, exam_id, payload)
    return QuestionRead.model_validate(question)


@router.get("/{exam_id}/groups", response_model=List[ExamGroupRead], dependencies=[Depends(current_admin)])
async def get_exam_groups(exam_id: UUID, session: AsyncSession = Depends(get_async_session)):
    return await group_service.list_exam_groups(session, exam_id)


@router.post("/{exam_id}/groups/{group_id}", status_code=status.HTTP_201_CREATED)
async def assign_group(exam_id: UUID, group_id: UUID, admin=Depends(current_admin), session: AsyncSession = Depends(get_async_session)):
    await group_service.assign_group_to_exam(session, exam_id, group_id, created_by=admin.id)
    return {"exam_id": exam_id, "group_id": group_id}


@router.delete("/{exam_id}/groups/{group_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(current_admin)])
async def remove_group(exam_id: UUID, group_id: UUID, session: AsyncSession = Depends(get_async_session)):
    await group_service.remove_group_from_exam(session, exam_id, group_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{exam_id}/snapshots", response_model=List[ExamSnapshotRead], dependencies=[Depends(current_admin)])
async def get_exam_snapshots(exam_id: UUID, latest: bool = False, session: AsyncSession = Depends(get_async_session)):
    # one row per session when latest=true
    await exam_service.get_exam(session, exam_id)
    return await snapshot_service.list_exam_snapshots(session, exam_id, latest_only=latest)


@router.delete("/{exam_id}/snapshots", response_model=SnapshotsCleared, dependencies=[Depends(current_admin)])
async def clear_exam_snapshots(exam_id: UUID, session: AsyncSession = Depends(get_async_session)):
    await exam_service.get_exam(session, exam_id)
    return SnapshotsCleared(deleted=await snapshot_service.clear_exam_snapshots(session, exam_id))
