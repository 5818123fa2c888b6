from ..db import Base
from sqlalchemy import (
    Column, Integer, Float, String, Text, Boolean, DateTime, Enum as SAEnum, UniqueConstraint, Index, JSON, Uuid,
    ForeignKey, text,
)
from sqlalchemy.dialects.postgresql import JSONB
from fastapi_users_db_sqlalchemy.generics import GUID
from sqlalchemy.orm import relationship, backref
import uuid
import enum

from ..utils import utcnow


JSONType = JSON().with_variant(JSONB, "postgresql")


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class ExamSessionStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class SubmissionType(str, enum.Enum):
    MANUAL = "manual"
    AUTO_TIMEOUT = "auto_timeout"
    MAX_VIOLATIONS = "max_violations"
    ADMIN_TERMINATED = "admin_terminated"


class EventKind(str, enum.Enum):
    VIOLATION = "violation"
    LIFECYCLE = "lifecycle"


class Severity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ReportStatus(str, enum.Enum):
    CLEAN = "clean"
    MINOR_ISSUES = "minor_issues"
    CONCERNING = "concerning"
    FLAGGED_FOR_REVIEW = "flagged_for_review"


class ExamSession(Base):
    __tablename__ = "exam_sessions"
    __table_args__ = (
        # one in-progress attempt per student and exam
        Index(
            "uq_exam_sessions_in_progress",
            "student_id",
            "exam_id",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
            sqlite_where=text("status = 'in_progress'"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_code = Column(String, nullable=False, index=True)

    exam_id = Column(Uuid, ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    # same column type as users.id so joins on it match on every dialect
    student_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    start_time = Column(DateTime, default=utcnow, nullable=False)
    scheduled_end_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    actual_duration_seconds = Column(Integer, nullable=True)

    status = Column(
        SAEnum(ExamSessionStatus, name="session_status", values_callable=_enum_values),
        default=ExamSessionStatus.IN_PROGRESS,
        nullable=False,
    )
    submission_type = Column(
        SAEnum(SubmissionType, name="submission_type", values_callable=_enum_values),
        nullable=True,
    )

    completion_percentage = Column(Float, default=0, nullable=False)
    # denormalized count of violation events, incremented alongside each insert
    total_violations = Column(Integer, default=0, nullable=False)
    score = Column(Float, nullable=True)

    was_resumed = Column(Boolean, default=False, nullable=False)
    resume_count = Column(Integer, default=0, nullable=False)

    browser_info = Column(Text, nullable=True)
    ip_address = Column(String, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    exam = relationship("Exam", backref=backref("sessions", passive_deletes=True))
    snapshots = relationship("SessionSnapshot", cascade="all, delete-orphan", passive_deletes=True)
    events = relationship("SessionEvent", cascade="all, delete-orphan", passive_deletes=True)
    responses = relationship("Response", cascade="all, delete-orphan", passive_deletes=True)
    report = relationship("ProctoringReport", cascade="all, delete-orphan", passive_deletes=True, uselist=False)


class SessionSnapshot(Base):
    """Client reported progress, append only. The newest row per session is used for recovery."""
    __tablename__ = "session_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(Uuid, ForeignKey("exam_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    snapshot_data = Column(JSONType, nullable=False)
    responses_count = Column(Integer, default=0, nullable=False)
    violations_count = Column(Integer, default=0, nullable=False)
    completion_percentage = Column(Float, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)


class SessionEvent(Base):
    """
    Append-only session timeline.

    `kind` separates proctoring violations (which count toward
    `ExamSession.total_violations`) from lifecycle entries such as
    "Exam started" or "Exam resumed".
    """
    __tablename__ = "session_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(Uuid, ForeignKey("exam_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(SAEnum(EventKind, name="event_kind", values_callable=_enum_values), nullable=False)
    event_type = Column(String, nullable=False)
    severity = Column(SAEnum(Severity, name="severity", values_callable=_enum_values), nullable=False)
    description = Column(Text, default="", nullable=False)
    browser_info = Column(Text, nullable=True)
    device_info = Column(Text, nullable=True)
    additional_data = Column(JSONType, nullable=True, default=dict)
    detected_at = Column(DateTime, default=utcnow, nullable=False)


class Response(Base):
    __tablename__ = "responses"
    __table_args__ = (UniqueConstraint("session_id", "question_id", name="uq_response_session_question"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id = Column(Uuid, ForeignKey("exam_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Uuid, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    response_text = Column(Text, nullable=True)
    response_option_index = Column(Integer, nullable=True)
    # set only for multiple choice answers
    is_correct = Column(Boolean, nullable=True)
    answered_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)
    revision_count = Column(Integer, default=0, nullable=False)


class ProctoringReport(Base):
    """Write-once summary generated when a session completes."""
    __tablename__ = "proctoring_reports"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id = Column(Uuid, ForeignKey("exam_sessions.id", ondelete="CASCADE"), nullable=False, unique=True)
    student_id = Column(GUID, nullable=False)
    exam_id = Column(Uuid, nullable=False, index=True)
    student_name = Column(String, nullable=True)
    student_email = Column(String, nullable=True)
    exam_title = Column(String, nullable=True)
    exam_start = Column(DateTime, nullable=False)
    exam_end = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    total_violations = Column(Integer, default=0, nullable=False)
    violation_types = Column(JSONType, nullable=False, default=list)
    status = Column(SAEnum(ReportStatus, name="report_status", values_callable=_enum_values), nullable=False)
    form_submitted = Column(Boolean, default=True, nullable=False)
    score = Column(Float, nullable=False)
    completion_percentage = Column(Float, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
