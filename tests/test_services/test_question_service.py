import pytest

from src.domain.errors import ForbiddenError, NotFoundError, RequestValidationError
from src.domain.models.api_models import BulkQuestionsRequest, QuestionCreateRequest, QuestionUpdateRequest
from src.domain.models.db_models import Question, QuestionOption
from src.services.question_service import validate_question


def single_payload(quiz_id, **overrides):
    data = {
        "quizId": quiz_id,
        "text": "What is 2 + 2?",
        "type": "single",
        "options": [{"text": "3"}, {"text": "4", "isCorrect": True}],
        "points": 2,
    }
    data.update(overrides)
    return data


class TestValidateQuestion:
    def test_needs_options(self):
        with pytest.raises(RequestValidationError):
            validate_question(Question(quiz_id="quiz-1", text="?", type="single"))

    def test_single_needs_exactly_one_correct(self):
        options = [QuestionOption(text="a", is_correct=True), QuestionOption(text="b", is_correct=True)]
        with pytest.raises(RequestValidationError):
            validate_question(Question(quiz_id="quiz-1", text="?", type="single", options=options))

    def test_multiple_needs_at_least_one_correct(self):
        options = [QuestionOption(text="a"), QuestionOption(text="b")]
        with pytest.raises(RequestValidationError):
            validate_question(Question(quiz_id="quiz-1", text="?", type="multiple", options=options))

    def test_truefalse_needs_true_and_false_options(self):
        options = [QuestionOption(text="Yes", is_correct=True), QuestionOption(text="No")]
        with pytest.raises(RequestValidationError):
            validate_question(Question(quiz_id="quiz-1", text="?", type="truefalse", options=options))

    def test_valid_multiple(self):
        options = [QuestionOption(text="a", is_correct=True), QuestionOption(text="b", is_correct=True)]
        validate_question(Question(quiz_id="quiz-1", text="?", type="multiple", options=options))


class TestQuestionService:
    def test_create_question(self, question_service, repos, admin_user, quiz):
        payload = QuestionCreateRequest.model_validate(single_payload(quiz.id))
        question = question_service.create_question(admin_user, payload)

        assert question.quiz_id == quiz.id
        assert question.type == "single"
        assert question.points == 2
        assert question.order == 0
        assert [option.is_correct for option in question.options] == [False, True]
        assert question.id in repos.questions.items
        assert repos.quizzes.items[quiz.id].total_questions == 1

    def test_create_requires_editor(self, question_service, regular_user, quiz):
        payload = QuestionCreateRequest.model_validate(single_payload(quiz.id))
        with pytest.raises(ForbiddenError):
            question_service.create_question(regular_user, payload)

    def test_create_for_missing_quiz(self, question_service, admin_user):
        payload = QuestionCreateRequest.model_validate(single_payload("missing"))
        with pytest.raises(NotFoundError):
            question_service.create_question(admin_user, payload)

    def test_invalid_definition_is_not_stored(self, question_service, repos, admin_user, quiz):
        payload = QuestionCreateRequest.model_validate(
            single_payload(quiz.id, options=[{"text": "3"}, {"text": "4"}])
        )
        with pytest.raises(RequestValidationError):
            question_service.create_question(admin_user, payload)
        assert repos.questions.items == {}
        assert repos.quizzes.items[quiz.id].total_questions == 0

    def test_bulk_create_is_all_or_nothing(self, question_service, repos, admin_user, quiz):
        good = single_payload(quiz.id)
        bad = single_payload(quiz.id, type="truefalse")
        payload = BulkQuestionsRequest.model_validate({"quizId": quiz.id, "questions": [good, bad]})
        with pytest.raises(RequestValidationError):
            question_service.bulk_create_questions(admin_user, payload)
        assert repos.questions.items == {}

    def test_bulk_create_orders_after_existing(self, question_service, repos, admin_user, quiz, two_questions):
        payload = BulkQuestionsRequest.model_validate(
            {"quizId": quiz.id, "questions": [single_payload(quiz.id), single_payload(quiz.id)]}
        )
        created = question_service.bulk_create_questions(admin_user, payload)
        assert [question.order for question in created] == [2, 3]
        assert repos.quizzes.items[quiz.id].total_questions == 2

    def test_list_hides_answers_from_takers(self, question_service, regular_user, admin_user, quiz, two_questions):
        public = question_service.list_questions(regular_user, quiz.id, with_answers=True)
        assert all("isCorrect" not in option for option in public[0]["options"])

        full = question_service.list_questions(admin_user, quiz.id, with_answers=True)
        assert [option["isCorrect"] for option in full[0]["options"]] == [False, True, False]

    def test_update_question(self, question_service, repos, admin_user, quiz, two_questions):
        payload = QuestionUpdateRequest.model_validate({"text": "Renamed", "points": 4})
        updated = question_service.update_question(admin_user, "q1", payload)

        assert updated.text == "Renamed"
        assert updated.points == 4
        assert updated.options == two_questions[0].options
        assert repos.questions.items["q1"].points == 4

    def test_update_revalidates(self, question_service, repos, admin_user, quiz, two_questions):
        payload = QuestionUpdateRequest.model_validate({"options": [{"text": "x"}, {"text": "y"}]})
        with pytest.raises(RequestValidationError):
            question_service.update_question(admin_user, "q1", payload)
        assert repos.questions.items["q1"].options == two_questions[0].options

    def test_update_keeps_option_ids(self, question_service, admin_user, quiz, two_questions):
        payload = QuestionUpdateRequest.model_validate({
            "options": [{"_id": "a", "text": "A"}, {"_id": "b", "text": "B", "isCorrect": True}],
        })
        updated = question_service.update_question(admin_user, "q1", payload)
        assert [option.id for option in updated.options] == ["a", "b"]

    def test_delete_question(self, question_service, repos, admin_user, quiz, two_questions):
        repos.quizzes.items[quiz.id].total_questions = 2
        question_service.delete_question(admin_user, "q1")
        assert "q1" not in repos.questions.items
        assert repos.quizzes.items[quiz.id].total_questions == 1

    def test_delete_unknown_question(self, question_service, admin_user):
        with pytest.raises(NotFoundError):
            question_service.delete_question(admin_user, "missing")
