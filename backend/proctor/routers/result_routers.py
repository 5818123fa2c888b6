from fastapi import APIRouter, Depends, HTTPException, status
from typing import List, Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_async_session
from ..dependencies import current_admin
from ..models.exam_session_model import ExamSessionStatus
from ..schemas.exam_session_schema import (
    SessionRead, SnapshotDetailRead, SnapshotsCleared, ReportRead, ResponseRead, CompletionRead,
)
from ..schemas.violation_schema import SessionEventRead
from ..services import session_service, snapshot_service, violation_service, response_service
from .session_routers import completion_to_read

router = APIRouter(prefix="/admin", tags=["Results"])


@router.get("/sessions", response_model=List[SessionRead], dependencies=[Depends(current_admin)])
async def list_sessions(
    exam_id: Optional[UUID] = None,
    status_filter: Optional[ExamSessionStatus] = None,
    session: AsyncSession = Depends(get_async_session),
):
    rows = await session_service.list_sessions(session, exam_id=exam_id, status=status_filter)
    return [SessionRead.model_validate(r) for r in rows]


@router.get("/sessions/{session_id}", response_model=SessionRead, dependencies=[Depends(current_admin)])
async def get_session(session_id: UUID, session: AsyncSession = Depends(get_async_session)):
    return SessionRead.model_validate(await session_service.get_session(session, session_id))


@router.get("/sessions/{session_id}/timeline", response_model=List[SessionEventRead], dependencies=[Depends(current_admin)])
async def get_session_timeline(session_id: UUID, session: AsyncSession = Depends(get_async_session)):
    await session_service.get_session(session, session_id)
    events = await violation_service.get_session_timeline(session, session_id)
    return [SessionEventRead.model_validate(e) for e in events]


@router.get("/sessions/{session_id}/snapshots", response_model=List[SnapshotDetailRead], dependencies=[Depends(current_admin)])
async def get_session_snapshots(session_id: UUID, session: AsyncSession = Depends(get_async_session)):
    await session_service.get_session(session, session_id)
    snapshots = await snapshot_service.list_snapshots(session, session_id)
    return [SnapshotDetailRead.model_validate(s) for s in snapshots]


@router.delete("/sessions/{session_id}/snapshots", response_model=SnapshotsCleared, dependencies=[Depends(current_admin)])
async def clear_session_snapshots(session_id: UUID, session: AsyncSession = Depends(get_async_session)):
    return SnapshotsCleared(deleted=await snapshot_service.clear_session_snapshots(session, session_id))


@router.get("/sessions/{session_id}/responses", response_model=List[ResponseRead], dependencies=[Depends(current_admin)])
async def get_session_responses(session_id: UUID, session: AsyncSession = Depends(get_async_session)):
    await session_service.get_session(session, session_id)
    responses = await response_service.get_session_responses(session, session_id)
    return [ResponseRead.model_validate(r) for r in responses]


@router.get("/sessions/{session_id}/report", response_model=ReportRead, dependencies=[Depends(current_admin)])
async def get_session_report(session_id: UUID, session: AsyncSession = Depends(get_async_session)):
    await session_service.get_session(session, session_id)
    report = await session_service.get_report(session, session_id)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    return ReportRead.model_validate(report)


@router.post("/sessions/{session_id}/terminate", response_model=CompletionRead, dependencies=[Depends(current_admin)])
async def terminate_session(session_id: UUID, session: AsyncSession = Depends(get_async_session)):
    result = await session_service.complete_session(session, session_id, "admin_terminated")
    return completion_to_read(result)


@router.post("/sessions/{session_id}/refresh-stats", response_model=SessionRead, dependencies=[Depends(current_admin)])
async def refresh_session_stats(session_id: UUID, session: AsyncSession = Depends(get_async_session)):
    return SessionRead.model_validate(await session_service.update_session_stats(session, session_id))


@router.get("/reports", response_model=List[ReportRead], dependencies=[Depends(current_admin)])
async def list_reports(exam_id: Optional[UUID] = None, session: AsyncSession = Depends(get_async_session)):
    return [ReportRead.model_validate(r) for r in await session_service.list_reports(session, exam_id)]
