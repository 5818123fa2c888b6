"""
Student groups and the two join tables that gate exam access.

A student may start a group gated exam iff a `student_group_members` row
links them to a group that also has an `exam_group_access` row for the exam.
"""
from ..db import Base
import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Uuid
from fastapi_users_db_sqlalchemy.generics import GUID

from ..utils import utcnow


class StudentGroup(Base):
    __tablename__ = "student_groups"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    created_by = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class StudentGroupMember(Base):
    __tablename__ = "student_group_members"

    group_id = Column(Uuid, ForeignKey("student_groups.id", ondelete="CASCADE"), primary_key=True)
    student_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    added_at = Column(DateTime, default=utcnow, nullable=False)
    added_by = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class ExamGroupAccess(Base):
    __tablename__ = "exam_group_access"

    exam_id = Column(Uuid, ForeignKey("exams.id", ondelete="CASCADE"), primary_key=True)
    group_id = Column(Uuid, ForeignKey("student_groups.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    created_by = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
