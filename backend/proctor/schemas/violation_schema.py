from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from uuid import UUID
from datetime import datetime

from ..models.exam_session_model import Severity, EventKind


class ViolationCreate(BaseModel):
    session_id: UUID
    violation_type: str = Field(..., min_length=1, max_length=255)
    # derived from violation_type when omitted
    severity: Optional[Severity] = None
    description: Optional[str] = None
    browser_info: Optional[str] = None
    device_info: Optional[str] = None
    additional_data: Optional[Dict[str, Any]] = None


class ViolationLogRead(BaseModel):
    violation_id: int
    detected_at: datetime
    total_violations: int
    max_violations: int
    should_terminate: bool
    # set when the threshold was reached and the session got completed
    session_completed: bool = False


class SessionEventRead(BaseModel):
    id: int
    session_id: UUID
    kind: EventKind
    event_type: str
    severity: Severity
    description: Optional[str] = None
    browser_info: Optional[str] = None
    device_info: Optional[str] = None
    additional_data: Optional[Dict[str, Any]] = None
    detected_at: datetime

    class Config:
        from_attributes = True


class SessionViolationsRead(BaseModel):
    violations: List[SessionEventRead]
    count: int


class ViolationStats(BaseModel):
    total: int
    by_severity: Dict[str, int]
    by_type: Dict[str, int]
