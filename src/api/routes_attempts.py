from flask import Blueprint, request, jsonify
from flask_login import login_required

from src.api.routes_auth import admin_required, get_current_user
from src.domain.models.api_models import (
    CompleteAttemptRequest,
    StartAttemptRequest,
    SubmitAnswerRequest,
    SubmitAnswersRequest,
)
from src.services.attempt_service import build_attempt_service
from src.services.grading_service import SubmittedAnswer

attempts_bp = Blueprint('attempts_bp', __name__)


@attempts_bp.route('/start', methods=['POST'])
@login_required
def start_attempt():
    """Starts an attempt, or returns the user's unfinished one for the same quiz."""
    req_data = StartAttemptRequest.model_validate(request.get_json(silent=True) or {})
    attempt, created = build_attempt_service().start_attempt(get_current_user(), req_data.quiz_id)
    message = "Quiz attempt started" if created else "Resuming quiz attempt"
    return jsonify({"message": message, "attempt": attempt.to_json()}), 201 if created else 200


@attempts_bp.route('/<string:attempt_id>/answers', methods=['POST'])
@login_required
def submit_answers(attempt_id: str):
    req_data = SubmitAnswersRequest.model_validate(request.get_json(silent=True) or {})
    attempt, results = build_attempt_service().submit_answers(
        attempt_id,
        get_current_user(),
        [SubmittedAnswer(item.question_id, item.selected_answer) for item in req_data.answers],
    )
    return jsonify({
        "message": "Answers submitted successfully",
        "score": attempt.score,
        "maxScore": attempt.max_score,
        "answers": [attempt.answer_for(result.question_id).to_json() for result in results],
    }), 200


@attempts_bp.route('/answer', methods=['POST'])
@login_required
def submit_answer():
    req_data = SubmitAnswerRequest.model_validate(request.get_json(silent=True) or {})
    attempt, result = build_attempt_service().submit_answer(
        req_data.attempt_id,
        get_current_user(),
        req_data.question_id,
        req_data.selected_answer,
    )
    return jsonify({
        "message": "Answer submitted successfully",
        "answer": attempt.answer_for(result.question_id).to_json(),
        "currentScore": attempt.score,
        "maxScore": attempt.max_score,
    }), 200


@attempts_bp.route('/<string:attempt_id>/complete', methods=['POST', 'PUT'])
@login_required
def complete_attempt(attempt_id: str):
    req_data = CompleteAttemptRequest.model_validate(request.get_json(silent=True) or {})
    result = build_attempt_service().complete_attempt(
        attempt_id, get_current_user(), time_taken=req_data.time_taken
    )
    body = result.to_json()
    body["message"] = "Quiz attempt completed"
    return jsonify(body), 200


@attempts_bp.route('/user', methods=['GET'])
@login_required
def user_attempts():
    """The current user's attempts. Filters: quizId, status (in_progress | completed)."""
    attempts = build_attempt_service().list_user_attempts(
        get_current_user(),
        quiz_id=request.args.get('quizId'),
        status=request.args.get('status'),
    )
    return jsonify({"attempts": attempts}), 200


@attempts_bp.route('/<string:attempt_id>', methods=['GET'])
@login_required
def attempt_detail(attempt_id: str):
    return jsonify({"attempt": build_attempt_service().get_attempt_detail(attempt_id, get_current_user())}), 200


@attempts_bp.route('/<string:attempt_id>', methods=['DELETE'])
@admin_required
def delete_attempt(attempt_id: str):
    build_attempt_service().delete_attempt(attempt_id, get_current_user())
    return jsonify({"message": "Attempt deleted successfully"}), 200
