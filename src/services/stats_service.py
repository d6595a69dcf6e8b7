from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pymongo.database import Database

from src.domain.errors import ForbiddenError, NotFoundError
from src.domain.models.db_models import Attempt, User
from src.domain.repositories import IAttemptRepository, IQuestionRepository, IQuizRepository, IUserRepository
from src.services import grading_service as grading

ACTIVE_USER_WINDOW = timedelta(days=30)


def _average(values: List[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


class StatsService:
    """Read-only aggregates over attempts for dashboards."""

    def __init__(self, quizzes: IQuizRepository, questions: IQuestionRepository,
                 attempts: IAttemptRepository, users: IUserRepository):
        self.quizzes = quizzes
        self.questions = questions
        self.attempts = attempts
        self.users = users

    def quiz_stats(self, user: User, quiz_id: str) -> dict:
        """
        Attempt counts, averages and pass rate for a quiz. The per-question
        breakdown is only included for admins and the quiz's creator.
        """
        quiz = self.quizzes.get_by_id(quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found", details={"quizId": quiz_id})
        if not quiz.is_visible_to(user):
            raise ForbiddenError("This quiz is not currently available")

        attempts = self.attempts.list_by_quiz(quiz_id)
        completed = [attempt for attempt in attempts if attempt.is_completed]
        passed = [attempt for attempt in completed if attempt.is_passed]

        stats = {
            "totalAttempts": len(attempts),
            "completedAttempts": len(completed),
            "avgScore": _average([attempt.score for attempt in completed]),
            "avgPercentage": _average([
                grading.percentage(attempt.score, attempt.max_score) for attempt in completed
            ]),
            "passRate": round(len(passed) / len(completed) * 100, 2) if completed else 0.0,
        }
        if quiz.can_be_edited_by(user):
            stats["questionStats"] = self._question_stats(quiz_id, attempts)
        return stats

    def _question_stats(self, quiz_id: str, attempts: List[Attempt]) -> List[dict]:
        results = []
        for question in self.questions.list_by_quiz(quiz_id):
            answers = [
                answer for attempt in attempts for answer in attempt.answers
                if answer.question_id == question.id
            ]
            correct = sum(1 for answer in answers if answer.is_correct)
            results.append({
                "questionId": question.id,
                "text": question.text,
                "attemptsCount": len(answers),
                "correctRate": round(correct / len(answers) * 100, 2) if answers else 0.0,
            })
        return results

    def recent_quiz_attempts(self, user: User, quiz_id: str, limit: int = 10) -> List[dict]:
        """Latest completed attempts at a quiz with who took them. Quiz editors only."""
        quiz = self.quizzes.get_by_id(quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found", details={"quizId": quiz_id})
        if not quiz.can_be_edited_by(user):
            raise ForbiddenError("Not authorized to view attempts for this quiz")

        completed = [attempt for attempt in self.attempts.list_by_quiz(quiz_id) if attempt.is_completed]
        completed.sort(key=lambda attempt: attempt.completed_at, reverse=True)

        users: dict = {}
        items = []
        for attempt in completed[:limit]:
            if attempt.user_id not in users:
                users[attempt.user_id] = self.users.get_by_id(attempt.user_id)
            taker = users[attempt.user_id]
            data = attempt.to_summary_json()
            data["user"] = None if taker is None else {"_id": taker.id, "name": taker.name, "email": taker.email}
            items.append(data)
        return items

    def user_dashboard(self, user: User, recent: int = 5) -> dict:
        attempts = self.attempts.list_by_user(user.id)
        completed = [attempt for attempt in attempts if attempt.is_completed]
        recent_items = []
        for attempt in completed[:recent]:
            quiz = self.quizzes.get_by_id(attempt.quiz_id)
            recent_items.append({
                "attemptId": attempt.id,
                "quizId": attempt.quiz_id,
                "title": quiz.title if quiz else None,
                "score": attempt.score,
                "maxScore": attempt.max_score,
                "percentage": attempt.percentage,
                "isPassed": attempt.is_passed,
                "completedAt": attempt.completed_at.isoformat() if attempt.completed_at else None,
            })
        return {
            "totalQuizzes": len(self.quizzes.list(active_only=not user.is_admin)),
            "totalAttempts": len(attempts),
            "completedAttempts": len(completed),
            "inProgressAttempts": len(attempts) - len(completed),
            "avgPercentage": _average([
                grading.percentage(attempt.score, attempt.max_score) for attempt in completed
            ]),
            "completedQuizzes": recent_items,
        }

    def admin_dashboard(self, user: User, now: Optional[datetime] = None) -> dict:
        if not user.is_admin:
            raise ForbiddenError("Access denied. Admin only.")
        now = now or datetime.now(timezone.utc)
        return {
            "totalQuizzes": self.quizzes.count(),
            "totalUsers": self.users.count(),
            "totalAttempts": self.attempts.count(),
            "activeUsers": self.users.count(since=now - ACTIVE_USER_WINDOW),
        }


def build_stats_service(db_conn: Optional[Database] = None) -> StatsService:
    from src.infrastructure.database import db as flask_db
    from src.infrastructure.repositories import (
        MongoAttemptRepository,
        MongoQuestionRepository,
        MongoQuizRepository,
        MongoUserRepository,
    )

    database = db_conn if db_conn is not None else flask_db
    return StatsService(
        MongoQuizRepository(database),
        MongoQuestionRepository(database),
        MongoAttemptRepository(database),
        MongoUserRepository(database),
    )
