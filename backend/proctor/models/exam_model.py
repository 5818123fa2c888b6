from ..db import Base
from sqlalchemy import String


"""
Exams Model
| Column | Type | Notes |
| :--- | :--- | :--- |
| `id` | UUID | Primary Key |
| `title` | VARCHAR | |
| `description` | TEXT | |
| `version` | VARCHAR | |
| `duration_minutes` | INTEGER | |
| `max_violations` | INTEGER | Session termination threshold |
| `is_active` | BOOLEAN | At most one row is `true` |
| `use_group_access` | BOOLEAN | Restrict to assigned student groups |
"""

from sqlalchemy import Column, Boolean, Integer, DateTime, Text, Index, Uuid, text
from sqlalchemy.orm import relationship
import uuid

from ..config import DEFAULT_MAX_VIOLATIONS
from ..utils import utcnow


class Exam(Base):
    __tablename__ = "exams"
    __table_args__ = (
        # only one exam may be active at a time
        Index(
            "uq_exams_single_active",
            "is_active",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    version = Column(String, nullable=False, default="1.0")
    duration_minutes = Column(Integer, nullable=False)
    max_violations = Column(Integer, nullable=False, default=DEFAULT_MAX_VIOLATIONS)
    is_active = Column(Boolean, nullable=False, default=False)
    use_group_access = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    questions = relationship(
        "QuestionDB",
        back_populates="exam",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="QuestionDB.question_number",
    )
