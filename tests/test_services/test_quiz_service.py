import pytest

from src.domain.errors import ForbiddenError, NotFoundError
from src.domain.models.api_models import QuizCreateRequest, QuizUpdateRequest
from src.domain.models.db_models import Attempt, Quiz


class TestQuizService:
    def test_create_quiz(self, quiz_service, repos, admin_user):
        payload = QuizCreateRequest.model_validate({"title": "SQL", "timeLimit": 15, "passScore": 70, "difficulty": "hard"})
        quiz = quiz_service.create_quiz(admin_user, payload)

        stored = repos.quizzes.items[quiz.id]
        assert stored.title == "SQL"
        assert stored.time_limit == 15
        assert stored.pass_score == 70
        assert stored.difficulty == "hard"
        assert stored.created_by == admin_user.id

    def test_create_is_admin_only(self, quiz_service, regular_user):
        with pytest.raises(ForbiddenError):
            quiz_service.create_quiz(regular_user, QuizCreateRequest(title="Nope"))

    def test_list_shows_inactive_to_admins_only(self, quiz_service, repos, regular_user, admin_user, quiz):
        repos.quizzes.create(Quiz(_id="draft", title="Draft", is_active=False))

        assert [q.id for q in quiz_service.list_quizzes(regular_user)] == [quiz.id]
        assert [q.id for q in quiz_service.list_quizzes(None)] == [quiz.id]
        assert {q.id for q in quiz_service.list_quizzes(admin_user)} == {quiz.id, "draft"}

    def test_list_filters(self, quiz_service, repos, regular_user, quiz):
        repos.quizzes.create(Quiz(_id="history", title="World History", category="history"))
        found = quiz_service.list_quizzes(regular_user, category="history", search="world")
        assert [q.id for q in found] == ["history"]

    def test_get_quiz_hides_correct_options_from_takers(self, quiz_service, regular_user, admin_user, quiz, two_questions):
        data = quiz_service.get_quiz(regular_user, quiz.id)
        assert data["quiz"]["_id"] == quiz.id
        assert len(data["questions"]) == 2
        assert all("isCorrect" not in option for option in data["questions"][0]["options"])

        data = quiz_service.get_quiz(admin_user, quiz.id)
        assert "isCorrect" in data["questions"][0]["options"][0]

    def test_get_inactive_quiz_is_forbidden(self, quiz_service, repos, regular_user):
        repos.quizzes.create(Quiz(_id="draft", title="Draft", is_active=False))
        with pytest.raises(ForbiddenError):
            quiz_service.get_quiz(regular_user, "draft")

    def test_get_missing_quiz(self, quiz_service, regular_user):
        with pytest.raises(NotFoundError):
            quiz_service.get_quiz(regular_user, "missing")

    def test_update_applies_only_given_fields(self, quiz_service, repos, admin_user, quiz):
        updated = quiz_service.update_quiz(admin_user, quiz.id, QuizUpdateRequest.model_validate({"passScore": 80}))
        assert updated.pass_score == 80
        assert updated.title == quiz.title

    def test_update_missing_quiz(self, quiz_service, admin_user):
        with pytest.raises(NotFoundError):
            quiz_service.update_quiz(admin_user, "missing", QuizUpdateRequest(title="X"))

    def test_delete_removes_questions_but_keeps_attempts(self, quiz_service, repos, admin_user, regular_user,
                                                         quiz, two_questions):
        repos.attempts.create(Attempt(user_id=regular_user.id, quiz_id=quiz.id))
        quiz_service.delete_quiz(admin_user, quiz.id)

        assert quiz.id not in repos.quizzes.items
        assert repos.questions.items == {}
        assert len(repos.attempts.items) == 1

    def test_delete_is_admin_only(self, quiz_service, regular_user, quiz):
        with pytest.raises(ForbiddenError):
            quiz_service.delete_quiz(regular_user, quiz.id)
