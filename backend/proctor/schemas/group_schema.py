from pydantic import BaseModel, Field, EmailStr, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class GroupUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_null(cls, v):
        if v is None:
            raise ValueError("name cannot be null")
        return v


class GroupRead(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    member_count: int = 0
    exam_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MemberAdd(BaseModel):
    student_id: UUID


class MembersAddByEmail(BaseModel):
    emails: List[EmailStr] = Field(..., min_length=1)


class MembersAddResult(BaseModel):
    added: int
    added_emails: List[str]
    not_found: List[str]
    already_in_group: List[str]


class GroupMemberRead(BaseModel):
    id: UUID
    email: str
    full_name: Optional[str] = None
    added_at: datetime
    added_by: Optional[UUID] = None


class ExamGroupRead(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    access_granted_at: datetime
    created_by: Optional[UUID] = None
