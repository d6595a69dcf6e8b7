import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

# Settings are read when src.infrastructure.config is first imported
os.environ.setdefault('SECRET_KEY', 'test-secret-key')
os.environ.setdefault('MONGO_URI', 'mongodb://localhost:27017/test')
os.environ.setdefault('FLASK_ENV', 'testing')

from src.domain.models.db_models import Attempt, Question, QuestionOption, Quiz, User, UserRole  # noqa: E402
from src.domain.repositories import (  # noqa: E402
    IAttemptRepository,
    IQuestionRepository,
    IQuizRepository,
    IUserRepository,
)
from src.services.attempt_service import AttemptService  # noqa: E402
from src.services.question_service import QuestionService  # noqa: E402
from src.services.quiz_service import QuizService  # noqa: E402
from src.services.stats_service import StatsService  # noqa: E402


# --- In-memory repositories ---

class InMemoryUserRepository(IUserRepository):
    def __init__(self):
        self.items = {}

    def get_by_id(self, user_id):
        user = self.items.get(user_id)
        return user.model_copy(deep=True) if user else None

    def get_by_email(self, email):
        for user in self.items.values():
            if user.email == email.lower():
                return user.model_copy(deep=True)
        return None

    def create(self, user):
        if any(existing.email == user.email for existing in self.items.values()):
            return False
        self.items[user.id] = user.model_copy(deep=True)
        return True

    def update_fields(self, user_id, fields):
        user = self.items.get(user_id)
        if user is None:
            return False
        self.items[user_id] = User(**dict(user.to_dict(), **fields))
        return True

    def list(self, search="", skip=0, limit=50):
        users = [
            user for user in self.items.values()
            if not search or search.lower() in user.email or search.lower() in user.name.lower()
        ]
        return users[skip:skip + limit], len(users)

    def count(self, since=None, role=None):
        users = [user for user in self.items.values() if role is None or user.role == role]
        if since is None:
            return len(users)
        return sum(1 for user in users if user.last_login_at and user.last_login_at >= since)

    def delete(self, user_id):
        return self.items.pop(user_id, None) is not None


class InMemoryQuizRepository(IQuizRepository):
    def __init__(self):
        self.items = {}

    def get_by_id(self, quiz_id):
        quiz = self.items.get(quiz_id)
        return quiz.model_copy(deep=True) if quiz else None

    def list(self, active_only, category=None, difficulty=None, search=None):
        return [
            quiz for quiz in self.items.values()
            if (not active_only or quiz.is_active)
            and (not category or quiz.category == category)
            and (not difficulty or quiz.difficulty == difficulty)
            and (not search or search.lower() in quiz.title.lower())
        ]

    def create(self, quiz):
        self.items[quiz.id] = quiz.model_copy(deep=True)

    def update_fields(self, quiz_id, fields):
        quiz = self.items.get(quiz_id)
        if quiz is None:
            return None
        self.items[quiz_id] = Quiz(**dict(quiz.to_dict(), **fields))
        return self.get_by_id(quiz_id)

    def delete(self, quiz_id):
        return self.items.pop(quiz_id, None) is not None

    def increment_attempt_count(self, quiz_id, amount=1):
        if quiz_id in self.items:
            self.items[quiz_id].total_attempts += amount

    def increment_question_count(self, quiz_id, amount):
        if quiz_id in self.items:
            self.items[quiz_id].total_questions += amount

    def count(self):
        return len(self.items)


class InMemoryQuestionRepository(IQuestionRepository):
    def __init__(self):
        self.items = {}

    def get_by_id(self, question_id):
        question = self.items.get(question_id)
        return question.model_copy(deep=True) if question else None

    def list_by_quiz(self, quiz_id):
        questions = [question for question in self.items.values() if question.quiz_id == quiz_id]
        return [question.model_copy(deep=True) for question in sorted(questions, key=lambda q: q.order)]

    def create_many(self, questions):
        for question in questions:
            self.items[question.id] = question.model_copy(deep=True)

    def replace(self, question):
        if question.id not in self.items:
            return False
        self.items[question.id] = question.model_copy(deep=True)
        return True

    def delete(self, question_id):
        return self.items.pop(question_id, None) is not None

    def delete_by_quiz(self, quiz_id):
        doomed = [qid for qid, question in self.items.items() if question.quiz_id == quiz_id]
        for qid in doomed:
            del self.items[qid]
        return len(doomed)


class InMemoryAttemptRepository(IAttemptRepository):
    """Mirrors the Mongo repository's version/status guarded updates."""

    def __init__(self):
        self.items = {}

    def get_by_id(self, attempt_id):
        attempt = self.items.get(attempt_id)
        return attempt.model_copy(deep=True) if attempt else None

    def find_in_progress(self, user_id, quiz_id):
        for attempt in self.items.values():
            if attempt.user_id == user_id and attempt.quiz_id == quiz_id and not attempt.is_completed:
                return attempt.model_copy(deep=True)
        return None

    def create(self, attempt):
        if self.find_in_progress(attempt.user_id, attempt.quiz_id) is not None:
            return False
        self.items[attempt.id] = attempt.model_copy(deep=True)
        return True

    def _conditional_update(self, attempt_id, expected_version, changes):
        attempt = self.items.get(attempt_id)
        if attempt is None or attempt.version != expected_version or attempt.is_completed:
            return False
        changes = dict(changes, version=attempt.version + 1)
        self.items[attempt_id] = attempt.model_copy(update=changes, deep=True)
        return True

    def save_answers(self, attempt_id, expected_version, answers, score):
        return self._conditional_update(attempt_id, expected_version, {"answers": list(answers), "score": score})

    def mark_completed(self, attempt_id, expected_version, fields):
        changes = {
            "status": "completed",
            "completed_at": fields["completedAt"],
            "time_taken": fields["timeTaken"],
            "percentage": fields["percentage"],
            "is_passed": fields["isPassed"],
            "pass_score": fields["passScore"],
        }
        return self._conditional_update(attempt_id, expected_version, changes)

    def list_by_user(self, user_id, quiz_id=None, status=None):
        attempts = [
            attempt for attempt in self.items.values()
            if attempt.user_id == user_id
            and (not quiz_id or attempt.quiz_id == quiz_id)
            and (not status or attempt.status == status)
        ]
        return sorted(attempts, key=lambda a: a.started_at, reverse=True)

    def list_by_quiz(self, quiz_id):
        return [attempt for attempt in self.items.values() if attempt.quiz_id == quiz_id]

    def list(self, skip=0, limit=20):
        attempts = sorted(self.items.values(), key=lambda a: a.started_at, reverse=True)
        return attempts[skip:skip + limit], len(attempts)

    def delete(self, attempt_id):
        return self.items.pop(attempt_id, None) is not None

    def count(self, user_id=None):
        return sum(1 for attempt in self.items.values() if not user_id or attempt.user_id == user_id)


class FakeClock:
    def __init__(self, now=None):
        self.now = now or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


# --- Builders ---

def _make_question(quiz_id, qtype="single", points=1, order=0, correct="b", texts=None, qid=None):
    """Question with options a/b/c (or True/False) and the given correct option(s)."""
    if qtype == "truefalse":
        options = [
            QuestionOption(_id="t", text="True", is_correct=correct == "True"),
            QuestionOption(_id="f", text="False", is_correct=correct == "False"),
        ]
    elif qtype == "text":
        options = [QuestionOption(_id="ans", text=correct, is_correct=True)]
    else:
        correct_ids = set(correct) if isinstance(correct, (list, set, tuple)) else {correct}
        texts = texts or {"a": "Option A", "b": "Option B", "c": "Option C"}
        options = [QuestionOption(_id=oid, text=text, is_correct=oid in correct_ids) for oid, text in texts.items()]
    kwargs = {"_id": qid} if qid else {}
    return Question(quiz_id=quiz_id, text=f"Question {order}", type=qtype, options=options,
                    points=points, order=order, **kwargs)


# --- Fixtures ---

@pytest.fixture
def repos():
    return SimpleNamespace(
        users=InMemoryUserRepository(),
        quizzes=InMemoryQuizRepository(),
        questions=InMemoryQuestionRepository(),
        attempts=InMemoryAttemptRepository(),
    )


@pytest.fixture
def make_question():
    return _make_question


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def admin_user(repos):
    user = User(_id="admin-1", email="admin@example.com", name="Admin", role=UserRole.ADMIN)
    repos.users.create(user)
    return user


@pytest.fixture
def regular_user(repos):
    user = User(_id="user-1", email="user@example.com", name="User")
    repos.users.create(user)
    return user


@pytest.fixture
def other_user(repos):
    user = User(_id="user-2", email="other@example.com", name="Other")
    repos.users.create(user)
    return user


@pytest.fixture
def quiz(repos, admin_user):
    quiz = Quiz(_id="quiz-1", title="Python Basics", category="programming", created_by=admin_user.id)
    repos.quizzes.create(quiz)
    return quiz


@pytest.fixture
def two_questions(repos, quiz):
    """Two one-point single-choice questions, correct option 'b'."""
    questions = [
        _make_question(quiz.id, qid="q1", order=0),
        _make_question(quiz.id, qid="q2", order=1),
    ]
    repos.questions.create_many(questions)
    return questions


@pytest.fixture
def attempt_service(repos, clock):
    return AttemptService(
        repos.quizzes, repos.questions, repos.attempts,
        enforce_time_limit=True, grace_seconds=30, max_retries=3, clock=clock,
    )


@pytest.fixture
def quiz_service(repos):
    return QuizService(repos.quizzes, repos.questions)


@pytest.fixture
def question_service(repos):
    return QuestionService(repos.quizzes, repos.questions)


@pytest.fixture
def stats_service(repos):
    return StatsService(repos.quizzes, repos.questions, repos.attempts, repos.users)


# --- Flask app ---

@pytest.fixture(scope='module')
def app():
    """Create and configure a new app instance for each test module."""
    from app import create_app
    app = create_app({"TESTING": True, "SECRET_KEY": "test-secret-key"})
    yield app


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture
def wired(repos, attempt_service, quiz_service, question_service, stats_service):
    """Route modules wired to the in-memory repositories instead of MongoDB."""
    targets = {
        'src.api.routes_auth.user_repository': lambda: repos.users,
        'src.api.routes_admin.user_repository': lambda: repos.users,
        'src.api.routes_quizzes.build_quiz_service': lambda: quiz_service,
        'src.api.routes_quizzes.build_attempt_service': lambda: attempt_service,
        'src.api.routes_quizzes.build_stats_service': lambda: stats_service,
        'src.api.routes_questions.build_question_service': lambda: question_service,
        'src.api.routes_attempts.build_attempt_service': lambda: attempt_service,
        'src.api.routes_admin.build_attempt_service': lambda: attempt_service,
        'src.api.routes_admin.build_stats_service': lambda: stats_service,
    }
    patchers = [patch(target, new=factory) for target, factory in targets.items()]
    for patcher in patchers:
        patcher.start()
    yield repos
    for patcher in patchers:
        patcher.stop()


@pytest.fixture
def mock_db():
    """Provides a mocked MongoDB database."""
    return MagicMock()
