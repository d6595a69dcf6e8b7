from typing import List, Optional

from pymongo.database import Database

from src.domain.errors import ForbiddenError, NotFoundError
from src.domain.models.api_models import QuizCreateRequest, QuizUpdateRequest
from src.domain.models.db_models import Quiz, User
from src.domain.repositories import IQuestionRepository, IQuizRepository
from qz_utils.logger_utils import logger


def _require_admin(user: User) -> None:
    if not user.is_admin:
        raise ForbiddenError("Access denied. Admin only.")


class QuizService:
    """Quiz CRUD and visibility rules."""

    def __init__(self, quizzes: IQuizRepository, questions: IQuestionRepository):
        self.quizzes = quizzes
        self.questions = questions

    def _get_visible_quiz(self, user: User, quiz_id: str) -> Quiz:
        quiz = self.quizzes.get_by_id(quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found", details={"quizId": quiz_id})
        if not quiz.is_visible_to(user):
            raise ForbiddenError("This quiz is not currently available")
        return quiz

    def create_quiz(self, user: User, payload: QuizCreateRequest) -> Quiz:
        _require_admin(user)
        quiz = Quiz(**payload.model_dump(), created_by=user.id)
        self.quizzes.create(quiz)
        return quiz

    def list_quizzes(self, user: Optional[User], category: Optional[str] = None,
                     difficulty: Optional[str] = None, search: Optional[str] = None) -> List[Quiz]:
        """Non-admins only ever see active quizzes."""
        return self.quizzes.list(
            active_only=not (user is not None and user.is_admin),
            category=category,
            difficulty=difficulty,
            search=search,
        )

    def get_quiz(self, user: User, quiz_id: str, with_questions: bool = True) -> dict:
        """
        Quiz with its questions. Only admins and the quiz's creator get the
        correctness flags; quiz takers get bare options.
        """
        quiz = self._get_visible_quiz(user, quiz_id)
        data = {"quiz": quiz.to_json()}
        if with_questions:
            questions = self.questions.list_by_quiz(quiz.id)
            if quiz.can_be_edited_by(user):
                data["questions"] = [question.to_json() for question in questions]
            else:
                data["questions"] = [question.to_public_json() for question in questions]
        return data

    def update_quiz(self, user: User, quiz_id: str, payload: QuizUpdateRequest) -> Quiz:
        _require_admin(user)
        fields = payload.model_dump(by_alias=True, mode="json", exclude_unset=True, exclude_none=True)
        if not fields:
            quiz = self.quizzes.get_by_id(quiz_id)
        else:
            quiz = self.quizzes.update_fields(quiz_id, fields)
        if quiz is None:
            raise NotFoundError("Quiz not found", details={"quizId": quiz_id})
        logger.info("Quiz updated", extra={"quiz_id": quiz_id, "fields": sorted(fields)})
        return quiz

    def delete_quiz(self, user: User, quiz_id: str) -> None:
        """Delete a quiz and its questions. Attempts stay as history."""
        _require_admin(user)
        if self.quizzes.get_by_id(quiz_id) is None:
            raise NotFoundError("Quiz not found", details={"quizId": quiz_id})
        removed = self.questions.delete_by_quiz(quiz_id)
        self.quizzes.delete(quiz_id)
        logger.info("Quiz deleted", extra={"quiz_id": quiz_id, "questions_removed": removed})


def build_quiz_service(db_conn: Optional[Database] = None) -> QuizService:
    from src.infrastructure.database import db as flask_db
    from src.infrastructure.repositories import MongoQuestionRepository, MongoQuizRepository

    database = db_conn if db_conn is not None else flask_db
    return QuizService(MongoQuizRepository(database), MongoQuestionRepository(database))
