from collections.abc import AsyncGenerator
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from fastapi import Depends

from .config import DATABASE_URL, SCHEMA_SEARCH_PATH, SQL_ECHO, SCORE_FUNCTION_NAME

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


connect_args = {}
if SCHEMA_SEARCH_PATH:
    connect_args["server_settings"] = {"search_path": SCHEMA_SEARCH_PATH}

engine = create_async_engine(DATABASE_URL, connect_args=connect_args, echo=SQL_ECHO)
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


# percentage of correct answers among the exam's multiple choice questions
SCORE_FUNCTION_DDL = f"""
CREATE OR REPLACE FUNCTION {SCORE_FUNCTION_NAME}(p_session_id UUID)
RETURNS NUMERIC AS $$
DECLARE
    v_total INTEGER;
    v_correct INTEGER;
BEGIN
    SELECT COUNT(*) INTO v_total
    FROM questions q
    JOIN exam_sessions es ON es.exam_id = q.exam_id
    WHERE es.id = p_session_id AND q.question_type = 'multiple_choice';

    IF v_total = 0 THEN
        RETURN 0;
    END IF;

    SELECT COUNT(*) INTO v_correct
    FROM responses r
    WHERE r.session_id = p_session_id AND r.is_correct = true;

    RETURN ROUND((v_correct::NUMERIC / v_total) * 100, 2);
END;
$$ LANGUAGE plpgsql;
"""


def import_models():
    # registers every table on Base.metadata
    from .models import user_model, exam_model, question_model, group_model, exam_session_model  # noqa: F401


async def create_db_and_tables():
    import_models()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if conn.dialect.name == "postgresql":
            await conn.execute(text(SCORE_FUNCTION_DDL))
            logger.info("Installed score function %s", SCORE_FUNCTION_NAME)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session


async def get_user_db(session: AsyncSession = Depends(get_async_session)):
    from .models.user_model import User
    from fastapi_users.db import SQLAlchemyUserDatabase
    yield SQLAlchemyUserDatabase(session, User)
