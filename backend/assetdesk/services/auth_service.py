# Overview: Service-layer operations for auth; password hashing and user accounts.

"""
Authentication and user accounts

WHY: Every assignment and stock transaction is attributed to a user.
Uses bcrypt for password hashing.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Soft-deleted users cannot log in
- Only super_admin may create super_admin users or change roles
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import bcrypt
from flask import current_app

from ..errors import ConflictError, ForbiddenError, ValidationError
from ..models import User
from ..models.auth import ROLE_SUPER_ADMIN, ROLE_USER, ROLES
from ..time_utils import utcnow
from . import repository, session_service
from .unit_of_work import transaction


MIN_PASSWORD_LENGTH = 8


def validate_password_strength(password) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def authenticate(username: str, password: str) -> User | None:
    """Return the live user for valid credentials, else None."""
    if not username or not password:
        return None
    user = repository.users.filter(User.username == username).first()
    if user is None or not verify_password(password, user.password_hash):
        return None
    with transaction():
        user.last_login_at = utcnow()
    return user


def _normalize_role(role) -> str:
    role = role or ROLE_USER
    if not isinstance(role, str):
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    role = role.strip().lower()
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    return role


def _ensure_username_free(username: str, exclude_id: int | None = None) -> None:
    criteria = [User.username == username]
    if exclude_id is not None:
        criteria.append(User.id != exclude_id)
    if repository.users.exists(*criteria):
        raise ConflictError("Username already exists")


def create_user(username: str, password: str, role: str | None = None, acting_role: str | None = None) -> User:
    """
    acting_role None means a trusted caller (CLI bootstrap); the super_admin
    check is applied only for API callers.
    """
    username = username or ""
    if not isinstance(username, str):
        raise ValidationError("Username must be a string")
    username = username.strip()
    if not username:
        raise ValidationError("Username is required")
    role = _normalize_role(role)
    if role == ROLE_SUPER_ADMIN and acting_role is not None and acting_role != ROLE_SUPER_ADMIN:
        raise ForbiddenError("Only super admins can create super admin users")
    password_hash = hash_password(password)
    _ensure_username_free(username)

    with transaction("Username already exists"):
        user = repository.users.add(User(username=username, password_hash=password_hash, role=role))
    current_app.logger.info("User %s created with role %s", user.username, user.role)
    return user


def update_user(user_id: int, payload: dict, acting_role: str | None = None) -> User:
    user = repository.users.get_or_404(user_id)
    payload = payload or {}
    changes = {}

    if payload.get("username") is not None:
        if not isinstance(payload["username"], str):
            raise ValidationError("Username must be a string")
        username = payload["username"].strip()
        if not username:
            raise ValidationError("Username cannot be blank")
        if username != user.username:
            _ensure_username_free(username, exclude_id=user.id)
        changes["username"] = username

    if payload.get("password"):
        changes["password_hash"] = hash_password(payload["password"])

    if payload.get("role") is not None:
        role = _normalize_role(payload["role"])
        if role != user.role:
            if acting_role is not None and acting_role != ROLE_SUPER_ADMIN:
                raise ForbiddenError("Only super admins can change user roles")
            if user.role == ROLE_SUPER_ADMIN:
                raise ForbiddenError("Cannot change the role of a super admin")
            changes["role"] = role

    with transaction("Username already exists"):
        for key, value in changes.items():
            setattr(user, key, value)
    return user


def delete_user(user_id: int, acting_user_id: int | None = None) -> None:
    user = repository.users.get_or_404(user_id)
    if acting_user_id is not None and user.id == acting_user_id:
        raise ConflictError("You cannot delete your own account")
    with transaction():
        repository.users.delete(user)
        session_service.revoke_all_user_sessions(user.id, reason="User deleted")
    current_app.logger.info("User %s soft-deleted", user.id)


def list_users() -> list[User]:
    return repository.users.list(order_by=User.username.asc())
