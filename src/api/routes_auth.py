"""Authentication routes for registration, login and the current user."""
from functools import wraps
from flask import Blueprint, request, jsonify
from flask_login import LoginManager, login_user, logout_user, login_required, current_user

from src.infrastructure.config import settings
from src.infrastructure.database import db
from src.infrastructure.repositories import MongoUserRepository
from src.services import auth_service
from src.domain.errors import ForbiddenError
from src.domain.models.api_models import LoginRequest, RegisterRequest
from src.domain.models.db_models import User
from qz_utils.logger_utils import logger

auth_bp = Blueprint('auth', __name__)

# Initialize Login Manager
login_manager = LoginManager()


class FlaskUser:
    """Flask-Login compatible user wrapper."""

    def __init__(self, user: User):
        self.user = user
        self.id = user.id
        self.is_authenticated = True
        self.is_active = user.is_active
        self.is_anonymous = False

    def get_id(self):
        return self.id


def user_repository() -> MongoUserRepository:
    return MongoUserRepository(db)


def get_current_user() -> User:
    """The domain user behind the current session."""
    return current_user.user


@login_manager.user_loader
def load_user(user_id):
    """Load user by ID for Flask-Login."""
    user = auth_service.get_user_by_id(user_repository(), user_id)
    if user and user.is_active:
        return FlaskUser(user)
    return None


@login_manager.unauthorized_handler
def unauthorized():
    """Handle unauthorized access."""
    return jsonify({"error": "Unauthorized", "message": "Authentication required"}), 401


def admin_required(f):
    """Decorator to require admin role."""
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if not get_current_user().is_admin:
            raise ForbiddenError("Access denied. Admin only.")
        return f(*args, **kwargs)
    return decorated_function


@auth_bp.route('/register', methods=['POST'])
def register():
    req_data = RegisterRequest.model_validate(request.get_json(silent=True) or {})
    user = auth_service.create_user(
        user_repository(),
        email=req_data.email,
        password=req_data.password,
        name=req_data.name,
        admin_email=settings.ADMIN_EMAIL,
        min_password_length=settings.MIN_PASSWORD_LENGTH,
    )
    login_user(FlaskUser(user))
    return jsonify({"message": "User registered successfully", "user": user.to_json()}), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    req_data = LoginRequest.model_validate(request.get_json(silent=True) or {})
    user = auth_service.authenticate_user(user_repository(), req_data.email, req_data.password)
    remember = bool((request.get_json(silent=True) or {}).get('remember', False))
    login_user(FlaskUser(user), remember=remember)
    return jsonify({"message": "Login successful", "user": user.to_json()}), 200


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    """Logout the current user."""
    logger.info(f"User logged out: {current_user.id}")
    logout_user()
    return jsonify({"message": "Logged out"}), 200


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify({"user": get_current_user().to_json()}), 200
