from fastapi import APIRouter, Depends, HTTPException, status
from typing import List
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from ..db import get_async_session
from ..dependencies import current_admin
from ..schemas.group_schema import (
    GroupCreate, GroupUpdate, GroupRead, MemberAdd, MembersAddByEmail, MembersAddResult, GroupMemberRead,
)
from ..services import group_service

router = APIRouter(prefix="/admin/groups", tags=["Student Groups"])


@router.get("/", response_model=List[GroupRead], dependencies=[Depends(current_admin)])
async def list_groups(session: AsyncSession = Depends(get_async_session)):
    return await group_service.list_groups(session)


@router.post("/", response_model=GroupRead, status_code=status.HTTP_201_CREATED)
async def create_group(payload: GroupCreate, admin=Depends(current_admin), session: AsyncSession = Depends(get_async_session)):
    return await group_service.create_group(session, payload.name, payload.description, created_by=admin.id)


@router.get("/{group_id}", response_model=GroupRead, dependencies=[Depends(current_admin)])
async def get_group(group_id: UUID, session: AsyncSession = Depends(get_async_session)):
    return await group_service.get_group(session, group_id)


@router.patch("/{group_id}", response_model=GroupRead, dependencies=[Depends(current_admin)])
async def update_group(group_id: UUID, payload: GroupUpdate, session: AsyncSession = Depends(get_async_session)):
    try:
        return await group_service.update_group(session, group_id, payload)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(current_admin)])
async def delete_group(group_id: UUID, session: AsyncSession = Depends(get_async_session)):
    await group_service.delete_group(session, group_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{group_id}/members", response_model=List[GroupMemberRead], dependencies=[Depends(current_admin)])
async def list_members(group_id: UUID, session: AsyncSession = Depends(get_async_session)):
    return await group_service.list_members(session, group_id)


@router.post("/{group_id}/members", status_code=status.HTTP_201_CREATED)
async def add_member(group_id: UUID, payload: MemberAdd, admin=Depends(current_admin), session: AsyncSession = Depends(get_async_session)):
    await group_service.add_member(session, group_id, payload.student_id, added_by=admin.id)
    return {"group_id": group_id, "student_id": payload.student_id}


@router.post("/{group_id}/members/bulk", response_model=MembersAddResult)
async def add_members_by_email(group_id: UUID, payload: MembersAddByEmail, admin=Depends(current_admin), session: AsyncSession = Depends(get_async_session)):
    return await group_service.add_members_by_email(session, group_id, list(payload.emails), added_by=admin.id)


@router.delete("/{group_id}/members/{student_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(current_admin)])
async def remove_member(group_id: UUID, student_id: UUID, session: AsyncSession = Depends(get_async_session)):
    await group_service.remove_member(session, group_id, student_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
