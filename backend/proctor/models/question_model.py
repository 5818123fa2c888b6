from ..db import Base
import uuid
from sqlalchemy import Column, Integer, String, Text, Boolean, Enum, ForeignKey, JSON, Uuid, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship


class QuestionDB(Base):
    __tablename__ = "questions"
    __table_args__ = (UniqueConstraint("exam_id", "question_number", name="uq_exam_question_number"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    exam_id = Column(Uuid, ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    question_number = Column(Integer, nullable=False)
    question_text = Column(Text, nullable=False)

    # only multiple_choice questions are auto-scored
    question_type = Column(Enum('multiple_choice', 'text', 'textarea', name='question_type'),
                           nullable=False)
    required = Column(Boolean, default=False, nullable=False)
    placeholder = Column(String, nullable=True)
    image_url = Column(String, nullable=True)
    options = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)
    correct_option_index = Column(Integer, nullable=True)

    exam = relationship("Exam", back_populates="questions")
