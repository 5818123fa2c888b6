from fastapi import APIRouter, Depends
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..db import get_async_session
from ..dependencies import current_student, ensure_session_owner
from ..security import current_active_user
from ..schemas.violation_schema import (
    ViolationCreate, ViolationLogRead, SessionEventRead, SessionViolationsRead, ViolationStats,
)
from ..services import session_service, violation_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/violations", tags=["Violations"])


@router.post("/log", response_model=ViolationLogRead)
async def log_violation(payload: ViolationCreate, user=Depends(current_student), session: AsyncSession = Depends(get_async_session)):
    exam_session = await session_service.get_session(session, payload.session_id)
    ensure_session_owner(exam_session, user)

    result = await violation_service.log_violation(
        session,
        payload.session_id,
        payload.violation_type,
        severity=payload.severity,
        description=payload.description,
        browser_info=payload.browser_info,
        device_info=payload.device_info,
        additional_data=payload.additional_data,
    )

    # the ledger only signals, termination is decided here
    session_completed = False
    if result.should_terminate:
        logger.warning("Violation limit reached for session_id=%s, terminating", payload.session_id)
        completion = await session_service.complete_session(session, payload.session_id, "auto_violations")
        session_completed = not completion.already_completed

    return ViolationLogRead(
        violation_id=result.violation_id,
        detected_at=result.detected_at,
        total_violations=result.total_violations,
        max_violations=result.max_violations,
        should_terminate=result.should_terminate,
        session_completed=session_completed,
    )


@router.get("/session/{session_id}", response_model=SessionViolationsRead)
async def get_session_violations(session_id: UUID, user=Depends(current_active_user), session: AsyncSession = Depends(get_async_session)):
    exam_session = await session_service.get_session(session, session_id)
    ensure_session_owner(exam_session, user)
    violations = await violation_service.get_session_violations(session, session_id)
    return SessionViolationsRead(
        violations=[SessionEventRead.model_validate(v) for v in violations],
        count=len(violations),
    )


@router.get("/stats/{session_id}", response_model=ViolationStats)
async def get_violation_stats(session_id: UUID, user=Depends(current_active_user), session: AsyncSession = Depends(get_async_session)):
    exam_session = await session_service.get_session(session, session_id)
    ensure_session_owner(exam_session, user)
    return await violation_service.get_violation_stats(session, session_id)
