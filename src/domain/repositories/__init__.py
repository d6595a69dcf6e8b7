from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from ..models.db_models import Attempt, AttemptAnswer, Question, Quiz, User


class IUserRepository(ABC):
    """Interface for a user repository."""
    @abstractmethod
    def get_by_id(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[User]:
        pass

    @abstractmethod
    def create(self, user: User) -> bool:
        """Insert a user. Return False if the email is already registered."""

    @abstractmethod
    def update_fields(self, user_id: str, fields: dict) -> bool:
        pass

    @abstractmethod
    def list(self, search: str = "", skip: int = 0, limit: int = 50) -> Tuple[List[User], int]:
        pass

    @abstractmethod
    def count(self, since: Optional[datetime] = None, role: Optional[str] = None) -> int:
        """Count users, optionally only those who logged in at or after ``since`` or with ``role``."""

    @abstractmethod
    def delete(self, user_id: str) -> bool:
        pass


class IQuizRepository(ABC):
    """Interface for a quiz repository."""
    @abstractmethod
    def get_by_id(self, quiz_id: str) -> Optional[Quiz]:
        pass

    @abstractmethod
    def list(self, active_only: bool, category: Optional[str] = None,
             difficulty: Optional[str] = None, search: Optional[str] = None) -> List[Quiz]:
        pass

    @abstractmethod
    def create(self, quiz: Quiz) -> None:
        pass

    @abstractmethod
    def update_fields(self, quiz_id: str, fields: dict) -> Optional[Quiz]:
        pass

    @abstractmethod
    def delete(self, quiz_id: str) -> bool:
        pass

    @abstractmethod
    def increment_attempt_count(self, quiz_id: str, amount: int = 1) -> None:
        pass

    @abstractmethod
    def increment_question_count(self, quiz_id: str, amount: int) -> None:
        pass

    @abstractmethod
    def count(self) -> int:
        pass


class IQuestionRepository(ABC):
    """Interface for a question repository."""
    @abstractmethod
    def get_by_id(self, question_id: str) -> Optional[Question]:
        pass

    @abstractmethod
    def list_by_quiz(self, quiz_id: str) -> List[Question]:
        pass

    @abstractmethod
    def create_many(self, questions: Iterable[Question]) -> None:
        pass

    @abstractmethod
    def replace(self, question: Question) -> bool:
        pass

    @abstractmethod
    def delete(self, question_id: str) -> bool:
        pass

    @abstractmethod
    def delete_by_quiz(self, quiz_id: str) -> int:
        pass


class IAttemptRepository(ABC):
    """
    Interface for an attempt repository.

    Every mutation of an existing attempt is conditional on the caller's
    ``expected_version`` and on the attempt still being in progress; the
    methods return False when that condition no longer holds.
    """
    @abstractmethod
    def get_by_id(self, attempt_id: str) -> Optional[Attempt]:
        pass

    @abstractmethod
    def find_in_progress(self, user_id: str, quiz_id: str) -> Optional[Attempt]:
        pass

    @abstractmethod
    def create(self, attempt: Attempt) -> bool:
        """Insert a new attempt. Return False if an in-progress one already exists."""

    @abstractmethod
    def save_answers(self, attempt_id: str, expected_version: int,
                     answers: List[AttemptAnswer], score: int) -> bool:
        pass

    @abstractmethod
    def mark_completed(self, attempt_id: str, expected_version: int, fields: dict) -> bool:
        pass

    @abstractmethod
    def list_by_user(self, user_id: str, quiz_id: Optional[str] = None,
                     status: Optional[str] = None) -> List[Attempt]:
        pass

    @abstractmethod
    def list_by_quiz(self, quiz_id: str) -> List[Attempt]:
        pass

    @abstractmethod
    def list(self, skip: int = 0, limit: int = 20) -> Tuple[List[Attempt], int]:
        pass

    @abstractmethod
    def delete(self, attempt_id: str) -> bool:
        pass

    @abstractmethod
    def count(self, user_id: Optional[str] = None) -> int:
        pass
