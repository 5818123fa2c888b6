from fastapi import APIRouter, Depends
from typing import List
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_async_session
from ..dependencies import current_admin
from ..schemas.admin_schema import DashboardStats, StudentAuthorize, StudentsBulkAuthorize, StudentRead
from ..services import admin_service

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/dashboard/stats", response_model=DashboardStats, dependencies=[Depends(current_admin)])
async def get_dashboard_stats(session: AsyncSession = Depends(get_async_session)):
    return await admin_service.get_dashboard_stats(session)


@router.get("/students", response_model=List[StudentRead], dependencies=[Depends(current_admin)])
async def list_students(session: AsyncSession = Depends(get_async_session)):
    return await admin_service.list_students(session)


@router.post("/students", response_model=StudentRead, dependencies=[Depends(current_admin)])
async def authorize_student(payload: StudentAuthorize, session: AsyncSession = Depends(get_async_session)):
    return await admin_service.authorize_student(session, payload.email, payload.full_name)


@router.post("/students/bulk", response_model=List[StudentRead], dependencies=[Depends(current_admin)])
async def bulk_authorize_students(payload: StudentsBulkAuthorize, session: AsyncSession = Depends(get_async_session)):
    return await admin_service.bulk_authorize_students(session, payload.students)


@router.delete("/students/{email}", response_model=StudentRead, dependencies=[Depends(current_admin)])
async def deauthorize_student(email: str, session: AsyncSession = Depends(get_async_session)):
    return await admin_service.deauthorize_student(session, email)
