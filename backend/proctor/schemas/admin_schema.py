from pydantic import BaseModel, Field, EmailStr
from typing import Optional, List
from uuid import UUID
from datetime import datetime

from ..models.exam_session_model import ExamSessionStatus


class RecentSession(BaseModel):
    id: UUID
    session_code: str
    start_time: datetime
    status: ExamSessionStatus
    student_name: Optional[str] = None
    exam_title: str


class ViolationTrend(BaseModel):
    violation_type: str
    count: int


class DashboardStats(BaseModel):
    total_sessions: int
    active_sessions: int
    completed_sessions: int
    completed_today: int
    total_students: int
    total_exams: int
    average_completion_rate: float
    average_violations: float
    average_score: float
    flagged_sessions: int
    recent_sessions: List[RecentSession]
    violation_trends: List[ViolationTrend]


class StudentAuthorize(BaseModel):
    email: EmailStr
    full_name: Optional[str] = Field(None, max_length=255)


class StudentsBulkAuthorize(BaseModel):
    students: List[StudentAuthorize] = Field(..., min_length=1)


class StudentRead(BaseModel):
    id: UUID
    email: str
    full_name: Optional[str] = None
    is_authorized: bool
    last_login: Optional[datetime] = None
    total_sessions: int = 0
