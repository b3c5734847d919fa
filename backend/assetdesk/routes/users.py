# Overview: Flask API routes for user accounts (admin only).

from flask import Blueprint, g

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN, ROLE_SUPER_ADMIN
from ..responses import json_body, ok
from ..services import auth_service, repository

users_bp = Blueprint("users", __name__, url_prefix="/api/users")

ADMINS = (ROLE_SUPER_ADMIN, ROLE_ADMIN)


@users_bp.get("")
@require_auth
@require_role(*ADMINS)
def list_users_route():
    return ok([u.to_dict() for u in auth_service.list_users()])


@users_bp.get("/<int:user_id>")
@require_auth
@require_role(*ADMINS)
def get_user_route(user_id: int):
    return ok(repository.users.get_or_404(user_id).to_dict())


@users_bp.post("")
@require_auth
@require_role(*ADMINS)
def create_user_route():
    data = json_body()
    user = auth_service.create_user(
        data.get("username"),
        data.get("password"),
        role=data.get("role"),
        acting_role=g.current_user.role,
    )
    return ok(user.to_dict(), message="User created", status=201)


@users_bp.put("/<int:user_id>")
@require_auth
@require_role(*ADMINS)
def update_user_route(user_id: int):
    user = auth_service.update_user(user_id, json_body(), acting_role=g.current_user.role)
    return ok(user.to_dict(), message="User updated")


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role(*ADMINS)
def delete_user_route(user_id: int):
    auth_service.delete_user(user_id, acting_user_id=g.current_user.id)
    return ok(message="User deleted")
