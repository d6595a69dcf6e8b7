from flask import Blueprint, request, jsonify
from flask_login import login_required

from src.api.routes_auth import get_current_user
from src.domain.models.api_models import BulkQuestionsRequest, QuestionCreateRequest, QuestionUpdateRequest
from src.services.question_service import build_question_service

questions_bp = Blueprint('questions_bp', __name__)


@questions_bp.route('/', methods=['POST'])
@login_required
def create_question():
    req_data = QuestionCreateRequest.model_validate(request.get_json(silent=True) or {})
    question = build_question_service().create_question(get_current_user(), req_data)
    return jsonify({"message": "Question created successfully", "question": question.to_json()}), 201


@questions_bp.route('/bulk', methods=['POST'])
@login_required
def bulk_create_questions():
    req_data = BulkQuestionsRequest.model_validate(request.get_json(silent=True) or {})
    questions = build_question_service().bulk_create_questions(get_current_user(), req_data)
    return jsonify({
        "message": f"{len(questions)} questions created successfully",
        "questions": [question.to_json() for question in questions],
    }), 201


@questions_bp.route('/quiz/<string:quiz_id>', methods=['GET'])
@login_required
def list_questions(quiz_id: str):
    """Questions of a quiz. ?withAnswers=true reveals correct options to admins and the quiz's creator."""
    with_answers = request.args.get('withAnswers', 'false').lower() == 'true'
    questions = build_question_service().list_questions(get_current_user(), quiz_id, with_answers=with_answers)
    return jsonify({"questions": questions}), 200


@questions_bp.route('/<string:question_id>', methods=['PUT'])
@login_required
def update_question(question_id: str):
    req_data = QuestionUpdateRequest.model_validate(request.get_json(silent=True) or {})
    question = build_question_service().update_question(get_current_user(), question_id, req_data)
    return jsonify({"message": "Question updated successfully", "question": question.to_json()}), 200


@questions_bp.route('/<string:question_id>', methods=['DELETE'])
@login_required
def delete_question(question_id: str):
    build_question_service().delete_question(get_current_user(), question_id)
    return jsonify({"message": "Question deleted successfully"}), 200
