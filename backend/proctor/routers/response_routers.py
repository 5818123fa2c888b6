from fastapi import APIRouter, Depends
from typing import List
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_async_session
from ..dependencies import current_student, ensure_session_owner
from ..schemas.exam_session_schema import ResponseSave, ResponsesBulkSave, ResponseRead
from ..services import session_service, response_service

router = APIRouter(prefix="/responses", tags=["Responses"])


@router.post("/", response_model=ResponseRead)
async def save_response(payload: ResponseSave, user=Depends(current_student), session: AsyncSession = Depends(get_async_session)):
    exam_session = await session_service.get_session(session, payload.session_id)
    ensure_session_owner(exam_session, user)

    response = await response_service.save_response(
        session,
        payload.session_id,
        payload.question_id,
        response_text=payload.response_text,
        response_option_index=payload.response_option_index,
    )
    return ResponseRead.model_validate(response)


@router.post("/bulk", response_model=List[ResponseRead])
async def save_responses_bulk(payload: ResponsesBulkSave, user=Depends(current_student), session: AsyncSession = Depends(get_async_session)):
    exam_session = await session_service.get_session(session, payload.session_id)
    ensure_session_owner(exam_session, user)

    responses = await response_service.save_responses_bulk(session, payload.session_id, payload.responses)
    return [ResponseRead.model_validate(r) for r in responses]
