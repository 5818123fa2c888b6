from fastapi import APIRouter, Depends, HTTPException, Request, status
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..db import get_async_session
from ..dependencies import current_student, ensure_session_owner
from ..errors import ProctorError
from ..schemas.exam_session_schema import (
    SessionStart, SessionRead, ExistingSessionRead, SnapshotPayload, SnapshotRead, RecoveryRead, SubmitPayload,
    CompletionRead, ReportRead,
)
from ..services import session_service, snapshot_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["Sessions"])


def completion_to_read(result: session_service.CompletionResult) -> CompletionRead:
    return CompletionRead(
        session=SessionRead.model_validate(result.exam_session),
        score=result.score,
        report=ReportRead.model_validate(result.report) if result.report else None,
        already_completed=result.already_completed,
    )


@router.post("/start", response_model=SessionRead, status_code=status.HTTP_201_CREATED)
async def start_session(
    payload: SessionStart,
    request: Request,
    user=Depends(current_student),
    session: AsyncSession = Depends(get_async_session),
):
    ip_address = payload.ip_address or (request.client.host if request.client else None)
    exam_session = await session_service.create_session(
        session, user.id, payload.exam_id, payload.browser_info, ip_address
    )
    return SessionRead.model_validate(exam_session)


@router.get("/check/{exam_id}", response_model=ExistingSessionRead)
async def check_existing_session(exam_id: UUID, user=Depends(current_student), session: AsyncSession = Depends(get_async_session)):
    existing = await session_service.check_existing_session(session, user.id, exam_id)
    return ExistingSessionRead(
        has_existing_session=existing is not None,
        session=SessionRead.model_validate(existing) if existing else None,
    )


@router.get("/code/{session_code}", response_model=SessionRead)
async def get_session_by_code(session_code: str, user=Depends(current_student), session: AsyncSession = Depends(get_async_session)):
    exam_session = await session_service.get_session_by_code(session, session_code)
    ensure_session_owner(exam_session, user)
    return SessionRead.model_validate(exam_session)


@router.get("/{session_id}", response_model=SessionRead)
async def get_session(session_id: UUID, user=Depends(current_student), session: AsyncSession = Depends(get_async_session)):
    exam_session = await session_service.get_session(session, session_id)
    ensure_session_owner(exam_session, user)
    return SessionRead.model_validate(exam_session)


@router.get("/{session_id}/recovery", response_model=RecoveryRead)
async def get_recovery_data(session_id: UUID, user=Depends(current_student), session: AsyncSession = Depends(get_async_session)):
    exam_session = await session_service.get_session(session, session_id)
    ensure_session_owner(exam_session, user)
    data = await session_service.get_recovery_data(session, session_id)
    if data is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No recovery data found")
    return data


@router.post("/{session_id}/snapshot", response_model=SnapshotRead)
async def save_snapshot(
    session_id: UUID,
    payload: SnapshotPayload,
    user=Depends(current_student),
    session: AsyncSession = Depends(get_async_session),
):
    try:
        exam_session = await session_service.get_session(session, session_id)
        ensure_session_owner(exam_session, user)
        snapshot = await snapshot_service.save_snapshot(session, session_id, payload.to_snapshot_data())
        return SnapshotRead.model_validate(snapshot)
    except (HTTPException, ProctorError):
        raise
    except Exception as e:
        logger.exception("Error while saving snapshot for session_id=%s student_id=%s: %s", session_id, user.id, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Database error while saving snapshot")


@router.post("/{session_id}/resume", response_model=SessionRead)
async def resume_session(session_id: UUID, user=Depends(current_student), session: AsyncSession = Depends(get_async_session)):
    exam_session = await session_service.get_session(session, session_id)
    ensure_session_owner(exam_session, user)
    exam_session = await session_service.mark_session_resumed(session, session_id)
    return SessionRead.model_validate(exam_session)


@router.post("/{session_id}/submit", response_model=CompletionRead)
async def submit_session(
    session_id: UUID,
    payload: SubmitPayload,
    user=Depends(current_student),
    session: AsyncSession = Depends(get_async_session),
):
    exam_session = await session_service.get_session(session, session_id)
    ensure_session_owner(exam_session, user)
    result = await session_service.complete_session(session, session_id, payload.submission_type)
    return completion_to_read(result)
