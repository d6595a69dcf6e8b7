"""Admin routes for the dashboard, attempt history and user management."""
from flask import Blueprint, request, jsonify
from flask_login import login_required

from src.api.routes_auth import admin_required, get_current_user, user_repository
from src.domain.errors import NotFoundError
from src.domain.models.api_models import PasswordChangeRequest, ProfileUpdateRequest, UserUpdateRequest
from src.infrastructure.config import settings
from src.services import auth_service
from src.services.attempt_service import build_attempt_service
from src.services.stats_service import build_stats_service

admin_bp = Blueprint('admin', __name__)
users_bp = Blueprint('users', __name__)


def _page_args(default_limit: int = 20):
    page = request.args.get('page', 1, type=int) or 1
    limit = request.args.get('limit', default_limit, type=int) or default_limit
    return max(page, 1), min(max(limit, 1), 100)


@admin_bp.route('/dashboard', methods=['GET'])
@admin_required
def dashboard():
    return jsonify({"stats": build_stats_service().admin_dashboard(get_current_user())}), 200


@admin_bp.route('/attempts', methods=['GET'])
@admin_required
def all_attempts():
    page, limit = _page_args()
    return jsonify(build_attempt_service().list_all_attempts(get_current_user(), page=page, limit=limit)), 200


@admin_bp.route('/users', methods=['GET'])
@admin_required
def list_users():
    """List users with pagination and an email/name search."""
    page, limit = _page_args()
    users, total = auth_service.get_all_users(
        user_repository(), search=request.args.get('search', ''), page=page, limit=limit
    )
    return jsonify({
        "users": [user.to_json() for user in users],
        "total": total,
        "currentPage": page,
        "totalPages": (total + limit - 1) // limit,
    }), 200


@admin_bp.route('/users/<string:user_id>', methods=['PUT'])
@admin_required
def update_user(user_id: str):
    req_data = UserUpdateRequest.model_validate(request.get_json(silent=True) or {})
    user = auth_service.update_user(user_repository(), get_current_user(), user_id, req_data)
    return jsonify({"message": "User updated successfully", "user": user.to_json()}), 200


@admin_bp.route('/users/<string:user_id>', methods=['GET'])
@admin_required
def get_user(user_id: str):
    """A user with their ten latest attempts."""
    user = auth_service.get_user_by_id(user_repository(), user_id)
    if user is None:
        raise NotFoundError("User not found", details={"userId": user_id})
    attempts = build_attempt_service().list_user_attempts(user)
    return jsonify({"user": user.to_json(), "attempts": attempts[:10]}), 200


@admin_bp.route('/users/<string:user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id: str):
    auth_service.delete_user(user_repository(), get_current_user(), user_id)
    return jsonify({"message": "User deleted successfully"}), 200


@users_bp.route('/dashboard', methods=['GET'])
@login_required
def user_dashboard():
    """The current user's own progress summary."""
    return jsonify({"stats": build_stats_service().user_dashboard(get_current_user())}), 200


@users_bp.route('/<string:user_id>', methods=['PUT'])
@login_required
def update_profile(user_id: str):
    req_data = ProfileUpdateRequest.model_validate(request.get_json(silent=True) or {})
    user = auth_service.update_profile(user_repository(), get_current_user(), user_id, req_data)
    return jsonify({"message": "Profile updated successfully", "user": user.to_json()}), 200


@users_bp.route('/<string:user_id>/password', methods=['PUT'])
@login_required
def change_password(user_id: str):
    req_data = PasswordChangeRequest.model_validate(request.get_json(silent=True) or {})
    auth_service.change_password(
        user_repository(), get_current_user(), user_id, req_data,
        min_password_length=settings.MIN_PASSWORD_LENGTH,
    )
    return jsonify({"message": "Password changed successfully"}), 200
