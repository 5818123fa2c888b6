from ..db import Base
from sqlalchemy import String, Boolean, DateTime
from sqlalchemy import Column, Enum as SQLAlchemyEnum
from fastapi_users.db import SQLAlchemyBaseUserTableUUID
import enum


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    STUDENT = "student"


class User(SQLAlchemyBaseUserTableUUID, Base):
    __tablename__ = "users"
    full_name = Column(String)
    role = Column(SQLAlchemyEnum(UserRole), default=UserRole.STUDENT)
    # blanket authorization for exams that are not group gated
    is_authorized = Column(Boolean, default=False, nullable=False)
    last_login = Column(DateTime, nullable=True)
