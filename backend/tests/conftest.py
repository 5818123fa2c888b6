import uuid

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from proctor.db import Base, import_models
from proctor.models.user_model import User, UserRole
from proctor.models.exam_model import Exam
from proctor.models.question_model import QuestionDB


@pytest.fixture
async def engine():
    import_models()
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def make_user(db):
    async def _make(role=UserRole.STUDENT, is_authorized=True, email=None, full_name="Test Student"):
        user = User(
            email=email or f"{uuid.uuid4().hex[:8]}@example.com",
            hashed_password="not-a-real-hash",
            full_name=full_name,
            role=role,
            is_authorized=is_authorized,
        )
        db.add(user)
        await db.commit()
        return user
    return _make


@pytest.fixture
def make_exam(db):
    async def _make(title="Midterm", duration_minutes=60, max_violations=5, is_active=True, use_group_access=False):
        exam = Exam(
            title=title,
            duration_minutes=duration_minutes,
            max_violations=max_violations,
            is_active=is_active,
            use_group_access=use_group_access,
        )
        db.add(exam)
        await db.commit()
        return exam
    return _make


@pytest.fixture
def make_question(db):
    async def _make(exam, number, question_type="multiple_choice", options=None, correct_option_index=0):
        if question_type == "multiple_choice":
            options = options or ["A", "B", "C", "D"]
        else:
            correct_option_index = None
        question = QuestionDB(
            exam_id=exam.id,
            question_number=number,
            question_text=f"Question {number}",
            question_type=question_type,
            options=options,
            correct_option_index=correct_option_index,
        )
        db.add(question)
        await db.commit()
        return question
    return _make
