from flask import Blueprint, request, jsonify
from flask_login import current_user, login_required

from src.api.routes_auth import admin_required, get_current_user
from src.domain.models.api_models import BulkSubmitRequest, QuizCreateRequest, QuizUpdateRequest
from src.services.attempt_service import build_attempt_service
from src.services.grading_service import SubmittedAnswer
from src.services.quiz_service import build_quiz_service
from src.services.stats_service import build_stats_service
from qz_utils.logger_utils import logger

quizzes_bp = Blueprint('quizzes_bp', __name__)


@quizzes_bp.route('/', methods=['GET'])
def list_quizzes():
    """Lists quizzes, public. Filters: category, difficulty, search (title)."""
    quizzes = build_quiz_service().list_quizzes(
        get_current_user() if current_user.is_authenticated else None,
        category=request.args.get('category'),
        difficulty=request.args.get('difficulty'),
        search=request.args.get('search'),
    )
    return jsonify({"quizzes": [quiz.to_json() for quiz in quizzes]}), 200


@quizzes_bp.route('/', methods=['POST'])
@admin_required
def create_quiz():
    req_data = QuizCreateRequest.model_validate(request.get_json(silent=True) or {})
    quiz = build_quiz_service().create_quiz(get_current_user(), req_data)
    return jsonify({"message": "Quiz created successfully", "quiz": quiz.to_json()}), 201


@quizzes_bp.route('/<string:quiz_id>', methods=['GET'])
@quizzes_bp.route('/<string:quiz_id>/questions', methods=['GET'])
@login_required
def get_quiz(quiz_id: str):
    return jsonify(build_quiz_service().get_quiz(get_current_user(), quiz_id)), 200


@quizzes_bp.route('/<string:quiz_id>', methods=['PUT'])
@admin_required
def update_quiz(quiz_id: str):
    req_data = QuizUpdateRequest.model_validate(request.get_json(silent=True) or {})
    quiz = build_quiz_service().update_quiz(get_current_user(), quiz_id, req_data)
    return jsonify({"message": "Quiz updated successfully", "quiz": quiz.to_json()}), 200


@quizzes_bp.route('/<string:quiz_id>', methods=['DELETE'])
@admin_required
def delete_quiz(quiz_id: str):
    build_quiz_service().delete_quiz(get_current_user(), quiz_id)
    return jsonify({"message": "Quiz deleted successfully"}), 200


@quizzes_bp.route('/<string:quiz_id>/submit', methods=['POST'])
@login_required
def submit_quiz(quiz_id: str):
    """
    Submits a whole quiz in one request. startedAt/completedAt are taken
    from the client as-is and only used for the time-taken figure.
    """
    req_data = BulkSubmitRequest.model_validate(request.get_json(silent=True) or {})
    user = get_current_user()
    result = build_attempt_service().submit_quiz(
        user,
        quiz_id,
        [SubmittedAnswer(item.question_id, item.selected_answer) for item in req_data.answers],
        started_at=req_data.started_at,
        completed_at=req_data.completed_at,
    )
    logger.info(f"Quiz {quiz_id} submitted by {user.id}: {result.attempt.score}/{result.attempt.max_score}")
    body = result.to_json()
    body.update({"message": "Quiz submitted successfully", "attemptId": result.attempt.id})
    return jsonify(body), 201


@quizzes_bp.route('/<string:quiz_id>/statistics', methods=['GET'])
@login_required
def quiz_statistics(quiz_id: str):
    return jsonify({"stats": build_stats_service().quiz_stats(get_current_user(), quiz_id)}), 200


@quizzes_bp.route('/<string:quiz_id>/attempts', methods=['GET'])
@login_required
def recent_attempts(quiz_id: str):
    """Most recent completed attempts with the taker's name and email (quiz editors)."""
    limit = min(max(request.args.get('limit', 10, type=int) or 10, 1), 100)
    attempts = build_stats_service().recent_quiz_attempts(get_current_user(), quiz_id, limit=limit)
    return jsonify({"attempts": attempts}), 200
