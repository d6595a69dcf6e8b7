from datetime import datetime, timezone
from typing import Iterable, List, Optional

from pymongo.database import Database

from src.domain.errors import ForbiddenError, NotFoundError, RequestValidationError
from src.domain.models.api_models import (
    BulkQuestionsRequest,
    OptionPayload,
    QuestionCreateRequest,
    QuestionPayload,
    QuestionUpdateRequest,
)
from src.domain.models.db_models import Question, QuestionOption, QuestionType, Quiz, User
from src.domain.repositories import IQuestionRepository, IQuizRepository
from qz_utils.logger_utils import logger

TRUE_FALSE_OPTIONS = {"True", "False"}


def validate_question(question: Question) -> None:
    """
    Enforce the correct-option rules for a question definition:
    single, truefalse and text have exactly one correct option,
    multiple has at least one.
    """
    details = {"questionId": question.id, "type": question.type}
    if not question.options:
        raise RequestValidationError("A question needs at least one option", details=details)

    correct = len(question.correct_options())
    if question.type == QuestionType.MULTIPLE:
        if correct < 1:
            raise RequestValidationError("A multiple-choice question needs at least one correct option", details=details)
    elif correct != 1:
        raise RequestValidationError(
            f"A '{question.type}' question needs exactly one correct option, found {correct}",
            details=details,
        )

    if question.type == QuestionType.TRUE_FALSE:
        texts = [option.text.strip() for option in question.options]
        if len(texts) != 2 or set(texts) != TRUE_FALSE_OPTIONS:
            raise RequestValidationError("A true/false question needs exactly the options 'True' and 'False'", details=details)


def _build_options(payloads: Iterable[OptionPayload]) -> List[QuestionOption]:
    options = []
    for payload in payloads:
        option = QuestionOption(text=payload.text.strip(), is_correct=payload.is_correct)
        if payload.id:
            option.id = payload.id
        options.append(option)
    return options


class QuestionService:
    """Question CRUD. Allowed for admins and the quiz's creator."""

    def __init__(self, quizzes: IQuizRepository, questions: IQuestionRepository):
        self.quizzes = quizzes
        self.questions = questions

    def _get_quiz(self, quiz_id: str) -> Quiz:
        quiz = self.quizzes.get_by_id(quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found", details={"quizId": quiz_id})
        return quiz

    def _get_editable_quiz(self, user: User, quiz_id: str) -> Quiz:
        quiz = self._get_quiz(quiz_id)
        if not quiz.can_be_edited_by(user):
            raise ForbiddenError("Not authorized to change questions of this quiz")
        return quiz

    def _get_question(self, question_id: str) -> Question:
        question = self.questions.get_by_id(question_id)
        if question is None:
            raise NotFoundError("Question not found", details={"questionId": question_id})
        return question

    def _build_question(self, quiz_id: str, payload: QuestionPayload, order: int) -> Question:
        question = Question(
            quiz_id=quiz_id,
            text=payload.text,
            type=payload.type.value,
            options=_build_options(payload.options),
            points=payload.points,
            explanation=payload.explanation,
            order=payload.order if payload.order is not None else order,
        )
        validate_question(question)
        return question

    def create_question(self, user: User, payload: QuestionCreateRequest) -> Question:
        quiz = self._get_editable_quiz(user, payload.quiz_id)
        question = self._build_question(quiz.id, payload, order=len(self.questions.list_by_quiz(quiz.id)))
        self.questions.create_many([question])
        self.quizzes.increment_question_count(quiz.id, 1)
        logger.info("Question created", extra={"question_id": question.id, "quiz_id": quiz.id})
        return question

    def bulk_create_questions(self, user: User, payload: BulkQuestionsRequest) -> List[Question]:
        """All questions are validated before any is inserted."""
        quiz = self._get_editable_quiz(user, payload.quiz_id)
        start = len(self.questions.list_by_quiz(quiz.id))
        questions = [
            self._build_question(quiz.id, item, order=start + index)
            for index, item in enumerate(payload.questions)
        ]
        self.questions.create_many(questions)
        self.quizzes.increment_question_count(quiz.id, len(questions))
        logger.info("Questions created", extra={"quiz_id": quiz.id, "count": len(questions)})
        return questions

    def list_questions(self, user: User, quiz_id: str, with_answers: bool = False) -> List[dict]:
        quiz = self._get_quiz(quiz_id)
        if not quiz.is_visible_to(user):
            raise ForbiddenError("This quiz is not currently available")
        reveal = with_answers and quiz.can_be_edited_by(user)
        questions = self.questions.list_by_quiz(quiz.id)
        return [question.to_json() if reveal else question.to_public_json() for question in questions]

    def update_question(self, user: User, question_id: str, payload: QuestionUpdateRequest) -> Question:
        """
        Partial update. Attempts already started keep the points they
        snapshotted, so changing points never moves an existing maxScore.
        """
        question = self._get_question(question_id)
        self._get_editable_quiz(user, question.quiz_id)

        changes = payload.model_dump(mode="json", exclude_unset=True, exclude_none=True, exclude={"options"})
        if payload.options is not None:
            changes["options"] = _build_options(payload.options)
        changes["updated_at"] = datetime.now(timezone.utc)
        updated = Question(**dict(question.model_dump(), **changes))
        validate_question(updated)

        if not self.questions.replace(updated):
            raise NotFoundError("Question not found", details={"questionId": question_id})
        logger.info("Question updated", extra={"question_id": question_id})
        return updated

    def delete_question(self, user: User, question_id: str) -> None:
        question = self._get_question(question_id)
        self._get_editable_quiz(user, question.quiz_id)
        if self.questions.delete(question_id):
            self.quizzes.increment_question_count(question.quiz_id, -1)
            logger.info("Question deleted", extra={"question_id": question_id, "quiz_id": question.quiz_id})


def build_question_service(db_conn: Optional[Database] = None) -> QuestionService:
    from src.infrastructure.database import db as flask_db
    from src.infrastructure.repositories import MongoQuestionRepository, MongoQuizRepository

    database = db_conn if db_conn is not None else flask_db
    return QuestionService(MongoQuizRepository(database), MongoQuestionRepository(database))
