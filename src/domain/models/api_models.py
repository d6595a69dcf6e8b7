from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from src.domain.models.db_models import Difficulty, QuestionType, UserRole


class BaseRequest(BaseModel):
    """Base model for API requests. Accepts camelCase (frontend) or snake_case keys."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra='ignore')


class RegisterRequest(BaseRequest):
    name: str = Field(..., min_length=1)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=1)


class LoginRequest(BaseRequest):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class QuizCreateRequest(BaseRequest):
    title: str = Field(..., min_length=1)
    description: str = ""
    category: str = ""
    difficulty: Difficulty = Difficulty.MEDIUM
    time_limit: int = Field(0, ge=0, description="Minutes, 0 means unlimited.")
    pass_score: float = Field(60, ge=0, le=100, description="Percentage needed to pass.")
    is_active: bool = True


class QuizUpdateRequest(BaseRequest):
    """Partial update: only fields present in the payload are applied."""
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    difficulty: Optional[Difficulty] = None
    time_limit: Optional[int] = Field(None, ge=0)
    pass_score: Optional[float] = Field(None, ge=0, le=100)
    is_active: Optional[bool] = None


class OptionPayload(BaseRequest):
    id: Optional[str] = Field(None, alias="_id")
    text: str = Field(..., min_length=1)
    is_correct: bool = False


class QuestionPayload(BaseRequest):
    text: str = Field(..., min_length=1)
    type: QuestionType
    options: List[OptionPayload] = Field(default_factory=list)
    points: int = Field(1, ge=0)
    explanation: Optional[str] = None
    order: Optional[int] = None


class QuestionCreateRequest(QuestionPayload):
    quiz_id: str = Field(..., min_length=1)


class BulkQuestionsRequest(BaseRequest):
    quiz_id: str = Field(..., min_length=1)
    questions: List[QuestionPayload] = Field(..., min_length=1)


class QuestionUpdateRequest(BaseRequest):
    text: Optional[str] = Field(None, min_length=1)
    type: Optional[QuestionType] = None
    options: Optional[List[OptionPayload]] = None
    points: Optional[int] = Field(None, ge=0)
    explanation: Optional[str] = None
    order: Optional[int] = None


class StartAttemptRequest(BaseRequest):
    quiz_id: str = Field(..., min_length=1)


class AnswerPayload(BaseRequest):
    """
    One submitted answer. The shape of ``selected_answer`` depends on the
    question type and is checked by the grading engine, not here.
    ``selectedOptionId`` is accepted for the quiz-taking screen's bulk submit.
    """
    question_id: str = Field(..., min_length=1)
    selected_answer: Any = Field(
        None,
        validation_alias=AliasChoices("selectedAnswer", "selected_answer", "selectedOptionId"),
    )


class SubmitAnswersRequest(BaseRequest):
    answers: List[AnswerPayload]


class SubmitAnswerRequest(AnswerPayload):
    attempt_id: str = Field(..., min_length=1)


class CompleteAttemptRequest(BaseRequest):
    time_taken: Optional[int] = Field(None, ge=0, description="Seconds.")


class BulkSubmitRequest(BaseRequest):
    """
    Whole-quiz submission. ``started_at``/``completed_at`` come from the
    client clock and only feed the time-taken figure.
    """
    answers: List[AnswerPayload]
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_validator("started_at", "completed_at")
    @classmethod
    def _assume_utc(cls, value):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _check_timestamps(self):
        if self.started_at and self.completed_at and self.completed_at < self.started_at:
            raise ValueError("completedAt must not be earlier than startedAt")
        return self


class UserUpdateRequest(BaseRequest):
    name: Optional[str] = Field(None, min_length=1)
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None


class ProfileUpdateRequest(BaseRequest):
    """Self-service profile edit. Role and active status are admin-only."""
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = Field(None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordChangeRequest(BaseRequest):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)
