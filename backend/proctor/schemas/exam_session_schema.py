from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, Dict, Any, List, Literal
from uuid import UUID
from datetime import datetime

from ..models.exam_session_model import ExamSessionStatus, SubmissionType, ReportStatus


class SessionStart(BaseModel):
    exam_id: UUID
    browser_info: Optional[str] = None
    # falls back to the request's client address
    ip_address: Optional[str] = None


class SessionRead(BaseModel):
    id: UUID
    session_code: str
    exam_id: UUID
    student_id: UUID
    start_time: datetime
    scheduled_end_time: datetime
    end_time: Optional[datetime] = None
    status: ExamSessionStatus
    submission_type: Optional[SubmissionType] = None
    completion_percentage: float
    total_violations: int
    score: Optional[float] = None
    actual_duration_seconds: Optional[int] = None
    was_resumed: bool
    resume_count: int

    class Config:
        from_attributes = True


class ExistingSessionRead(BaseModel):
    has_existing_session: bool
    session: Optional[SessionRead] = None


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SnapshotResponse(_CamelModel):
    response_text: Optional[str] = None
    response_option_index: Optional[int] = Field(None, ge=0)


class SnapshotPayload(_CamelModel):
    """
    Progress the client auto-saves, persisted as-is in camelCase:
    {responses: {questionId: {responseText?, responseOptionIndex?}}, violations,
    completionPercentage, currentQuestionIndex, timeRemaining}
    """
    responses: Dict[str, SnapshotResponse] = {}
    violations: int = Field(0, ge=0)
    completion_percentage: float = Field(0, ge=0, le=100)
    current_question_index: int = Field(0, ge=0)
    time_remaining: int = Field(0, ge=0)

    def to_snapshot_data(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True)


class SnapshotRead(BaseModel):
    id: int
    session_id: UUID
    responses_count: int
    violations_count: int
    completion_percentage: float
    created_at: datetime

    class Config:
        from_attributes = True


class SnapshotDetailRead(SnapshotRead):
    snapshot_data: Dict[str, Any]


class ExamSnapshotRead(SnapshotDetailRead):
    session_code: str
    student_id: UUID
    student_name: Optional[str] = None
    student_email: Optional[str] = None


class SnapshotsCleared(BaseModel):
    deleted: int


class RecoverySession(BaseModel):
    id: UUID
    session_code: str
    exam_id: UUID
    exam_title: str
    start_time: datetime
    scheduled_end_time: datetime
    duration_minutes: int
    max_violations: int
    total_violations: int
    resume_count: int


class RecoveryRead(BaseModel):
    session: RecoverySession
    snapshot: Dict[str, Any]
    snapshot_created_at: datetime
    can_recover: bool


class SubmitPayload(BaseModel):
    submission_type: Literal["manual", "auto_time_expired", "auto_violations"] = "manual"


class ReportRead(BaseModel):
    id: UUID
    session_id: UUID
    student_id: UUID
    exam_id: UUID
    student_name: Optional[str] = None
    student_email: Optional[str] = None
    exam_title: Optional[str] = None
    exam_start: datetime
    exam_end: datetime
    duration_minutes: int
    total_violations: int
    violation_types: List[str]
    status: ReportStatus
    form_submitted: bool
    score: float
    completion_percentage: float
    created_at: datetime

    class Config:
        from_attributes = True


class CompletionRead(BaseModel):
    session: SessionRead
    score: Optional[float] = None
    report: Optional[ReportRead] = None
    already_completed: bool = False


class ResponseSave(BaseModel):
    session_id: UUID
    question_id: UUID
    response_text: Optional[str] = None
    response_option_index: Optional[int] = Field(None, ge=0)


class BulkResponseItem(BaseModel):
    question_id: UUID
    response_text: Optional[str] = None
    response_option_index: Optional[int] = Field(None, ge=0)


class ResponsesBulkSave(BaseModel):
    session_id: UUID
    responses: List[BulkResponseItem] = Field(..., min_length=1)


class ResponseRead(BaseModel):
    id: UUID
    session_id: UUID
    question_id: UUID
    response_text: Optional[str] = None
    response_option_index: Optional[int] = None
    is_correct: Optional[bool] = None
    answered_at: datetime
    updated_at: datetime
    revision_count: int

    class Config:
        from_attributes = True
