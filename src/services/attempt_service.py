"""
Attempt lifecycle: start -> answer -> complete.

An attempt is IN_PROGRESS until it is completed and is resumable until
then; there is no abandoned state. Every write to an existing attempt is a
compare-and-swap on its ``version`` field, and a lost race is retried from
a fresh read, so concurrent submissions to the same attempt are applied
one after the other instead of overwriting each other's score.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from pymongo.database import Database

from src.domain.errors import (
    ConcurrentModificationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    TimeLimitExceededError,
)
from src.domain.models.db_models import Attempt, AttemptAnswer, Question, User
from src.domain.repositories import IAttemptRepository, IQuestionRepository, IQuizRepository
from src.services import grading_service as grading
from src.services.grading_service import GradeResult, SubmittedAnswer
from qz_utils.logger_utils import logger
from qz_utils.retry_utils import retry_on_version_clash


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CompletionResult:
    attempt: Attempt
    percentage: float
    is_passed: bool
    pass_score: float

    def to_json(self) -> dict:
        return {
            "score": self.attempt.score,
            "maxScore": self.attempt.max_score,
            "percentage": round(self.percentage, 2),
            "isPassed": self.is_passed,
            "passScore": self.pass_score,
            "timeTakenSeconds": self.attempt.time_taken,
            "attempt": self.attempt.to_json(),
        }


class AttemptService:
    """Orchestrates attempts over the quiz, question and attempt stores."""

    def __init__(
        self,
        quizzes: IQuizRepository,
        questions: IQuestionRepository,
        attempts: IAttemptRepository,
        enforce_time_limit: bool = True,
        grace_seconds: int = 30,
        max_retries: int = 5,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.quizzes = quizzes
        self.questions = questions
        self.attempts = attempts
        self.enforce_time_limit = enforce_time_limit
        self.grace_seconds = grace_seconds
        self.max_retries = max_retries
        self.clock = clock or _utc_now

    # --- helpers ---

    def _get_attempt(self, attempt_id: str) -> Attempt:
        attempt = self.attempts.get_by_id(attempt_id)
        if attempt is None:
            raise NotFoundError("Attempt not found", details={"attemptId": attempt_id})
        return attempt

    def _get_owned_attempt(self, attempt_id: str, user: User) -> Attempt:
        """Load an attempt for mutation. Only its owner may change it."""
        attempt = self._get_attempt(attempt_id)
        if attempt.user_id != user.id:
            raise ForbiddenError("Not authorized to modify this attempt")
        return attempt

    def _check_deadline(self, attempt: Attempt) -> None:
        if not self.enforce_time_limit:
            return
        deadline = attempt.deadline(self.grace_seconds)
        if deadline is not None and self.clock() > deadline:
            raise TimeLimitExceededError(
                "The time limit for this attempt has passed",
                details={"attemptId": attempt.id, "deadline": deadline.isoformat()},
            )

    def _questions_for(self, attempt: Attempt) -> Dict[str, Question]:
        """
        The attempt's questions, with points taken from the snapshot made at
        start. Questions added to the quiz later are not part of the attempt.
        """
        questions = {}
        for question in self.questions.list_by_quiz(attempt.quiz_id):
            if question.id in attempt.question_points:
                questions[question.id] = question.model_copy(
                    update={"points": attempt.question_points[question.id]}
                )
        return questions

    # --- lifecycle ---

    def start_attempt(self, user: User, quiz_id: str) -> Tuple[Attempt, bool]:
        """
        Start (or resume) the user's attempt at a quiz.

        Returns the attempt and whether it was newly created. An existing
        in-progress attempt is returned unchanged.
        """
        quiz = self.quizzes.get_by_id(quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found", details={"quizId": quiz_id})
        if not quiz.is_visible_to(user):
            raise ForbiddenError("This quiz is not active")

        existing = self.attempts.find_in_progress(user.id, quiz_id)
        if existing is not None:
            logger.info("Resuming attempt", extra={"attempt_id": existing.id, "user_id": user.id})
            return existing, False

        questions = self.questions.list_by_quiz(quiz_id)
        attempt = Attempt(
            user_id=user.id,
            quiz_id=quiz_id,
            max_score=grading.max_score(questions),
            pass_score=quiz.pass_score,
            time_limit=quiz.time_limit,
            question_points={question.id: question.points for question in questions},
            started_at=self.clock(),
        )
        if not self.attempts.create(attempt):
            existing = self.attempts.find_in_progress(user.id, quiz_id)
            if existing is None:
                raise ConcurrentModificationError("Could not start the attempt, please retry")
            return existing, False

        self.quizzes.increment_attempt_count(quiz_id)
        logger.info(
            "Attempt started",
            extra={
                "attempt_id": attempt.id,
                "user_id": user.id,
                "quiz_id": quiz_id,
                "max_score": attempt.max_score,
            },
        )
        return attempt, True

    def submit_answers(self, attempt_id: str, user: User,
                       answers: Iterable[SubmittedAnswer]) -> Tuple[Attempt, List[GradeResult]]:
        """
        Grade and record a batch of answers.

        Nothing is written unless every answer validates and grades. A
        question answered before is replaced and the score moves by the
        difference, never counted twice.
        """
        answers = list(answers)
        submit = retry_on_version_clash(self.max_retries)(self._submit_once)
        return submit(attempt_id, user, answers)

    def _submit_once(self, attempt_id: str, user: User,
                     answers: List[SubmittedAnswer]) -> Tuple[Attempt, List[GradeResult]]:
        attempt = self._get_owned_attempt(attempt_id, user)
        attempt.ensure_in_progress()
        self._check_deadline(attempt)
        if not answers:
            return attempt, []

        results = grading.grade_submission(self._questions_for(attempt), answers)

        now = self.clock()
        recorded: List[AttemptAnswer] = list(attempt.answers)
        score = attempt.score
        for result in results:
            new_answer = result.to_attempt_answer(now)
            for index, old_answer in enumerate(recorded):
                if old_answer.question_id == result.question_id:
                    score += new_answer.points_earned - old_answer.points_earned
                    recorded[index] = new_answer
                    break
            else:
                score += new_answer.points_earned
                recorded.append(new_answer)

        if not self.attempts.save_answers(attempt.id, attempt.version, recorded, score):
            raise ConcurrentModificationError("Attempt changed while saving answers")

        attempt.answers = recorded
        attempt.score = score
        attempt.version += 1
        logger.info(
            "Answers saved",
            extra={
                "attempt_id": attempt.id,
                "answered": len(results),
                "score": score,
                "max_score": attempt.max_score,
            },
        )
        return attempt, results

    def submit_answer(self, attempt_id: str, user: User, question_id: str,
                      selected_answer) -> Tuple[Attempt, GradeResult]:
        """Incremental form of submit_answers for a single question."""
        attempt, results = self.submit_answers(
            attempt_id, user, [SubmittedAnswer(question_id=question_id, selected_answer=selected_answer)]
        )
        return attempt, results[0]

    def complete_attempt(self, attempt_id: str, user: User, time_taken: Optional[int] = None,
                         started_at: Optional[datetime] = None,
                         completed_at: Optional[datetime] = None) -> CompletionResult:
        """
        Seal an attempt and derive pass/fail.

        ``started_at``/``completed_at`` are only passed by the whole-quiz
        submit path, where they come from the client's clock.
        """
        complete = retry_on_version_clash(self.max_retries)(self._complete_once)
        return complete(attempt_id, user, time_taken, started_at, completed_at)

    def _complete_once(self, attempt_id: str, user: User, time_taken: Optional[int],
                       started_at: Optional[datetime],
                       completed_at: Optional[datetime]) -> CompletionResult:
        attempt = self._get_owned_attempt(attempt_id, user)
        attempt.ensure_in_progress()

        finished = completed_at or self.clock()
        if time_taken is None:
            elapsed = finished - (started_at or attempt.started_at)
            time_taken = max(0, int(elapsed.total_seconds()))
        # never before the server-stamped start
        finished = max(finished, attempt.started_at)

        quiz = self.quizzes.get_by_id(attempt.quiz_id)
        pass_score = quiz.pass_score if quiz is not None else attempt.pass_score
        percentage = grading.percentage(attempt.score, attempt.max_score)
        passed = grading.is_passed(percentage, pass_score)

        fields = {
            "completedAt": finished,
            "timeTaken": time_taken,
            "percentage": round(percentage, 2),
            "isPassed": passed,
            "passScore": pass_score,
        }
        if not self.attempts.mark_completed(attempt.id, attempt.version, fields):
            raise ConcurrentModificationError("Attempt changed while completing")

        attempt = attempt.model_copy(update={
            "status": "completed",
            "completed_at": finished,
            "time_taken": time_taken,
            "percentage": round(percentage, 2),
            "is_passed": passed,
            "pass_score": pass_score,
            "version": attempt.version + 1,
        })
        logger.info(
            "Attempt completed",
            extra={
                "attempt_id": attempt.id,
                "score": attempt.score,
                "max_score": attempt.max_score,
                "is_passed": passed,
                "time_taken": time_taken,
            },
        )
        return CompletionResult(attempt=attempt, percentage=percentage, is_passed=passed, pass_score=pass_score)

    def submit_quiz(self, user: User, quiz_id: str, answers: Iterable[SubmittedAnswer],
                    started_at: Optional[datetime] = None,
                    completed_at: Optional[datetime] = None) -> CompletionResult:
        """
        Whole-quiz submission used by the quiz-taking screen: start or
        resume, record every answer, complete.

        An open attempt that can no longer take these answers (its time is
        up, or it predates questions being answered now) is completed as it
        stands and a fresh attempt takes the submission.
        """
        answers = list(answers)
        attempt, created = self.start_attempt(user, quiz_id)
        if not created and not self._can_take(attempt, answers):
            self._retire(attempt, user)
            attempt, _ = self.start_attempt(user, quiz_id)
        if answers:
            self.submit_answers(attempt.id, user, answers)
        return self.complete_attempt(attempt.id, user, started_at=started_at, completed_at=completed_at)

    def _can_take(self, attempt: Attempt, answers: List[SubmittedAnswer]) -> bool:
        if self.enforce_time_limit:
            deadline = attempt.deadline(self.grace_seconds)
            if deadline is not None and self.clock() > deadline:
                return False
        current = {question.id for question in self.questions.list_by_quiz(attempt.quiz_id)}
        return all(
            answer.question_id in attempt.question_points
            for answer in answers
            if answer.question_id in current
        )

    def _retire(self, attempt: Attempt, user: User) -> None:
        try:
            self.complete_attempt(attempt.id, user)
        except ConflictError:
            logger.info("Stale attempt was completed concurrently", extra={"attempt_id": attempt.id})
            return
        logger.info("Stale attempt completed before resubmission",
                    extra={"attempt_id": attempt.id, "user_id": user.id})

    # --- reads ---

    def get_attempt_detail(self, attempt_id: str, user: User) -> dict:
        """
        Attempt with every answer resolved to its question for review.
        Correct answers and explanations are only revealed once the attempt
        is completed, or to admins.
        """
        attempt = self._get_attempt(attempt_id)
        if attempt.user_id != user.id and not user.is_admin:
            raise ForbiddenError("Not authorized to view this attempt")

        reveal = attempt.is_completed or user.is_admin
        questions = {question.id: question for question in self.questions.list_by_quiz(attempt.quiz_id)}

        data = attempt.to_json()
        for answer_data, answer in zip(data["answers"], attempt.answers):
            question = questions.get(answer.question_id)
            if question is None:
                answer_data["question"] = None
                continue
            answer_data["question"] = question.to_json() if reveal else question.to_public_json()
            if reveal:
                answer_data["correctAnswer"] = [
                    {"_id": option.id, "text": option.text} for option in question.correct_options()
                ]

        quiz = self.quizzes.get_by_id(attempt.quiz_id)
        data["quiz"] = None if quiz is None else {
            "_id": quiz.id,
            "title": quiz.title,
            "category": quiz.category,
            "difficulty": quiz.difficulty,
            "timeLimit": quiz.time_limit,
            "passScore": quiz.pass_score,
        }
        return data

    def list_user_attempts(self, user: User, quiz_id: Optional[str] = None,
                           status: Optional[str] = None) -> List[dict]:
        """The user's attempts, newest first, without answers."""
        attempts = self.attempts.list_by_user(user.id, quiz_id=quiz_id, status=status)
        return [self._summary_with_quiz(attempt, {}) for attempt in attempts]

    def _summary_with_quiz(self, attempt: Attempt, quiz_cache: dict) -> dict:
        if attempt.quiz_id not in quiz_cache:
            quiz_cache[attempt.quiz_id] = self.quizzes.get_by_id(attempt.quiz_id)
        quiz = quiz_cache[attempt.quiz_id]
        data = attempt.to_summary_json()
        data["quiz"] = None if quiz is None else {
            "_id": quiz.id,
            "title": quiz.title,
            "category": quiz.category,
            "difficulty": quiz.difficulty,
        }
        return data

    def list_all_attempts(self, user: User, page: int = 1, limit: int = 20) -> dict:
        if not user.is_admin:
            raise ForbiddenError("Access denied. Admin only.")
        page = max(page, 1)
        attempts, total = self.attempts.list(skip=(page - 1) * limit, limit=limit)
        cache: dict = {}
        return {
            "attempts": [self._summary_with_quiz(attempt, cache) for attempt in attempts],
            "total": total,
            "currentPage": page,
            "totalPages": (total + limit - 1) // limit if limit else 0,
        }

    def delete_attempt(self, attempt_id: str, user: User) -> None:
        if not user.is_admin:
            raise ForbiddenError("Only admins can delete attempts")
        if not self.attempts.delete(attempt_id):
            raise NotFoundError("Attempt not found", details={"attemptId": attempt_id})
        logger.info("Attempt deleted", extra={"attempt_id": attempt_id, "admin_id": user.id})


def build_attempt_service(db_conn: Optional[Database] = None) -> AttemptService:
    """Wire the service to MongoDB (the Flask request DB unless given one)."""
    from src.infrastructure.config import settings
    from src.infrastructure.database import db as flask_db
    from src.infrastructure.repositories import (
        MongoAttemptRepository,
        MongoQuestionRepository,
        MongoQuizRepository,
    )

    database = db_conn if db_conn is not None else flask_db
    return AttemptService(
        quizzes=MongoQuizRepository(database),
        questions=MongoQuestionRepository(database),
        attempts=MongoAttemptRepository(database),
        enforce_time_limit=settings.ENFORCE_TIME_LIMIT,
        grace_seconds=settings.TIME_LIMIT_GRACE_SECONDS,
        max_retries=settings.ATTEMPT_SAVE_RETRIES,
    )
