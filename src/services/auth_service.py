"""Authentication service for user management."""
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import bcrypt

from src.domain.errors import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    RequestValidationError,
)
from src.domain.models.api_models import PasswordChangeRequest, ProfileUpdateRequest, UserUpdateRequest
from src.domain.models.db_models import User, UserRole
from src.domain.repositories import IUserRepository
from qz_utils.logger_utils import logger


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against a hash."""
    if not password_hash:
        return False
    return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))


def create_user(users: IUserRepository, email: str, password: str, name: str = "",
                admin_email: str = "", min_password_length: int = 6) -> User:
    """Create a new user. The account matching ADMIN_EMAIL becomes an admin."""
    if len(password) < min_password_length:
        raise RequestValidationError(f"Password must be at least {min_password_length} characters")

    email = email.strip().lower()
    role = UserRole.ADMIN if admin_email and email == admin_email.lower() else UserRole.USER

    user = User(
        email=email,
        password_hash=hash_password(password),
        name=name.strip(),
        role=role,
    )
    if users.get_by_email(email) is not None or not users.create(user):
        raise ConflictError("Email already registered")

    logger.info(f"Created new user: {email} with role: {user.role}")
    return user


def authenticate_user(users: IUserRepository, email: str, password: str) -> User:
    """Authenticate a user by email and password."""
    user = users.get_by_email(email.strip().lower())
    if user is None or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid email or password")

    if not user.is_active:
        raise AuthenticationError("This account has been deactivated")

    # Update last login
    user.last_login_at = datetime.now(timezone.utc)
    users.update_fields(user.id, {"lastLoginAt": user.last_login_at})

    logger.info(f"User authenticated: {user.email}")
    return user


def get_all_users(users: IUserRepository, search: str = "", page: int = 1, limit: int = 20) -> Tuple[List[User], int]:
    """Get users page by page (for admin panel)."""
    page = max(page, 1)
    return users.list(search=search, skip=(page - 1) * limit, limit=limit)


def update_user(users: IUserRepository, admin: User, user_id: str, payload: UserUpdateRequest) -> User:
    """Update a user's name, role or active status."""
    user = users.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found", details={"userId": user_id})

    fields = payload.model_dump(by_alias=True, mode="json", exclude_unset=True, exclude_none=True)
    if user.id == admin.id and (fields.get("role") == UserRole.USER.value or fields.get("isActive") is False):
        raise ConflictError("Admins cannot demote or deactivate themselves")

    if fields:
        users.update_fields(user.id, fields)
        logger.info("User updated", extra={"user_id": user.id, "fields": sorted(fields)})
    return user.model_copy(update=payload.model_dump(exclude_unset=True, exclude_none=True))


def get_user_by_id(users: IUserRepository, user_id: str) -> Optional[User]:
    """Get a user by their ID."""
    return users.get_by_id(user_id)


def _get_user(users: IUserRepository, user_id: str) -> User:
    user = users.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found", details={"userId": user_id})
    return user


def update_profile(users: IUserRepository, actor: User, user_id: str, payload: ProfileUpdateRequest) -> User:
    """Let a user change their own name or email. Admins may edit anyone's profile."""
    if actor.id != user_id and not actor.is_admin:
        raise ForbiddenError("Not authorized to update this profile")
    user = _get_user(users, user_id)

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in changes:
        changes["name"] = changes["name"].strip()
    if "email" in changes:
        changes["email"] = changes["email"].strip().lower()
        owner = users.get_by_email(changes["email"])
        if owner is not None and owner.id != user.id:
            raise ConflictError("Email already registered")

    if changes:
        users.update_fields(user.id, changes)
        logger.info("Profile updated", extra={"user_id": user.id, "fields": sorted(changes)})
    return user.model_copy(update=changes)


def change_password(users: IUserRepository, actor: User, user_id: str, payload: PasswordChangeRequest,
                    min_password_length: int = 6) -> None:
    """Replace a user's password after checking the current one. Only the owner may do this."""
    if actor.id != user_id:
        raise ForbiddenError("Not authorized to change this password")
    user = _get_user(users, user_id)

    if not verify_password(payload.current_password, user.password_hash):
        raise RequestValidationError("Current password is incorrect")
    if len(payload.new_password) < min_password_length:
        raise RequestValidationError(f"Password must be at least {min_password_length} characters")

    users.update_fields(user.id, {"passwordHash": hash_password(payload.new_password)})
    logger.info(f"Password changed for user: {user.email}")


def delete_user(users: IUserRepository, admin: User, user_id: str) -> None:
    """Delete an account. Its attempts are kept for history."""
    user = _get_user(users, user_id)
    if user.id == admin.id:
        raise ConflictError("Admins cannot delete themselves")
    if user.is_admin and users.count(role=UserRole.ADMIN.value) <= 1:
        raise ConflictError("Cannot delete the last admin user")

    users.delete(user.id)
    logger.info("User deleted", extra={"user_id": user.id, "admin_id": admin.id})
