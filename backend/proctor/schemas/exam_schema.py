from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Literal
from datetime import datetime
from uuid import UUID


class ExamCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    version: str = "1.0"
    duration_minutes: int = Field(..., gt=0, description="Exam length in minutes")
    max_violations: Optional[int] = Field(None, gt=0)
    use_group_access: bool = False


class ExamUpdate(BaseModel):
    """Partial update: only the fields present in the request are applied."""
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    version: Optional[str] = None
    duration_minutes: Optional[int] = Field(None, gt=0)
    max_violations: Optional[int] = Field(None, gt=0)
    use_group_access: Optional[bool] = None

    @field_validator("title", "version", "duration_minutes", "max_violations", "use_group_access")
    @classmethod
    def not_null(cls, v):
        # explicit null would violate NOT NULL columns
        if v is None:
            raise ValueError("field cannot be null")
        return v


class ExamRead(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    version: str
    duration_minutes: int
    max_violations: int
    is_active: bool
    use_group_access: bool
    question_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ExamActivation(BaseModel):
    is_active: bool


QuestionType = Literal["multiple_choice", "text", "textarea"]


class QuestionCreate(BaseModel):
    question_number: int = Field(..., gt=0)
    question_text: str = Field(..., min_length=1)
    question_type: QuestionType
    required: bool = False
    placeholder: Optional[str] = None
    image_url: Optional[str] = None
    options: Optional[List[str]] = None
    correct_option_index: Optional[int] = Field(None, ge=0)

    @field_validator("correct_option_index")
    @classmethod
    def option_in_range(cls, v, info):
        if v is None:
            return v
        if info.data.get("question_type") != "multiple_choice":
            raise ValueError("correct_option_index is only valid for multiple_choice questions")
        options = info.data.get("options") or []
        if v >= len(options):
            raise ValueError("correct_option_index must point at one of the options")
        return v


class QuestionRead(BaseModel):
    id: UUID
    exam_id: UUID
    question_number: int
    question_text: str
    question_type: QuestionType
    required: bool
    placeholder: Optional[str] = None
    image_url: Optional[str] = None
    options: Optional[List[str]] = None
    correct_option_index: Optional[int] = None

    class Config:
        from_attributes = True


class StudentQuestionRead(BaseModel):
    # no correct answer for students
    id: UUID
    question_number: int
    question_text: str
    question_type: QuestionType
    required: bool
    placeholder: Optional[str] = None
    image_url: Optional[str] = None
    options: List[str] = []


class ActiveExamRead(ExamRead):
    questions: List[StudentQuestionRead] = []
