import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.domain.errors import ConflictError


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class QuestionType(str, Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"
    TRUE_FALSE = "truefalse"
    TEXT = "text"


class AttemptStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


def _utc_now():
    """Return current UTC datetime."""
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class MongoModel(BaseModel):
    """
    Base for everything persisted in MongoDB.

    Attributes are snake_case in Python and camelCase in Mongo and in API
    responses, which is what the frontend reads (maxScore, completedAt, ...).
    """
    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=to_camel,
        use_enum_values=True,
        validate_default=True,
    )

    def to_dict(self):
        """Convert model to dictionary for MongoDB."""
        return self.model_dump(by_alias=True)

    def to_json(self):
        """Convert model to a JSON-safe dictionary for API responses."""
        return self.model_dump(by_alias=True, mode="json")


class User(MongoModel):
    """User model for authentication."""
    id: str = Field(default_factory=_new_id, alias="_id")
    email: str
    password_hash: str = ""
    name: str = ""
    role: UserRole = UserRole.USER
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utc_now)
    last_login_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def to_json(self):
        data = super().to_json()
        data.pop("passwordHash", None)
        return data


class Quiz(MongoModel):
    """Quiz metadata. Questions live in their own collection."""
    id: str = Field(default_factory=_new_id, alias="_id")
    title: str
    description: str = ""
    category: str = ""
    difficulty: Difficulty = Difficulty.MEDIUM
    time_limit: int = Field(0, ge=0)  # minutes, 0 = unlimited
    pass_score: float = Field(60, ge=0, le=100)  # percentage
    is_active: bool = True
    created_by: Optional[str] = None
    total_attempts: int = 0
    total_questions: int = 0
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    def is_visible_to(self, user: User) -> bool:
        return self.is_active or user.is_admin

    def can_be_edited_by(self, user: User) -> bool:
        return user.is_admin or (self.created_by is not None and self.created_by == user.id)


class QuestionOption(MongoModel):
    id: str = Field(default_factory=_new_id, alias="_id")
    text: str = ""
    is_correct: bool = False


class Question(MongoModel):
    """
    A question belonging to exactly one quiz.

    ``type`` is kept as a plain string so that records with a type the
    grading engine does not know can still be loaded and rejected there.
    """
    id: str = Field(default_factory=_new_id, alias="_id")
    quiz_id: str
    text: str
    type: str
    options: List[QuestionOption] = Field(default_factory=list)
    points: int = Field(1, ge=0)
    explanation: Optional[str] = None
    order: int = 0
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    def correct_options(self) -> List[QuestionOption]:
        return [option for option in self.options if option.is_correct]

    def to_public_json(self):
        """Question as shown to quiz takers: options without correctness flags."""
        data = self.to_json()
        data.pop("explanation", None)
        for option in data["options"]:
            option.pop("isCorrect", None)
        return data


class AttemptAnswer(MongoModel):
    question_id: str
    selected_answer: Any = None
    is_correct: bool = False
    points_earned: int = 0
    answered_at: datetime = Field(default_factory=_utc_now)


class Attempt(MongoModel):
    """
    One user's pass through a quiz.

    ``status`` and ``completed_at`` move together: an attempt is completed
    iff status is COMPLETED iff completed_at is set. ``max_score``,
    ``pass_score``, ``time_limit`` and ``question_points`` (question id to
    points) are snapshots taken at creation, so later question edits never
    change what an attempt can score.
    ``version`` guards every write with a compare-and-swap.
    """
    id: str = Field(default_factory=_new_id, alias="_id")
    user_id: str
    quiz_id: str
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    score: int = 0
    max_score: int = 0
    pass_score: float = 0
    time_limit: int = 0
    question_points: Dict[str, int] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=_utc_now)
    completed_at: Optional[datetime] = None
    time_taken: Optional[int] = None  # seconds
    percentage: Optional[float] = None
    is_passed: Optional[bool] = None
    answers: List[AttemptAnswer] = Field(default_factory=list)
    version: int = 0
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @property
    def is_completed(self) -> bool:
        return self.status == AttemptStatus.COMPLETED

    def ensure_in_progress(self) -> None:
        if self.is_completed:
            raise ConflictError("This attempt is already completed")

    def answer_for(self, question_id: str) -> Optional[AttemptAnswer]:
        for answer in self.answers:
            if answer.question_id == question_id:
                return answer
        return None

    def deadline(self, grace_seconds: int = 0) -> Optional[datetime]:
        if not self.time_limit:
            return None
        return self.started_at + timedelta(minutes=self.time_limit, seconds=grace_seconds)

    def to_summary_json(self):
        """Attempt without its answers, for history listings."""
        data = self.to_json()
        data.pop("answers", None)
        return data
