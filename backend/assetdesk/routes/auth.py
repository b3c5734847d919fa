# Overview: Flask API routes for login/logout; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import require_auth
from ..responses import fail, json_body, ok
from ..services import auth_service, session_service
from ..time_utils import to_utc_z

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Request body: {"username": "...", "password": "..."}

    Returns:
        200: {"token": "...", "user": {...}}
        400: Missing credentials
        401: Invalid credentials
    """
    data = json_body()
    username = data.get("username") or ""
    password = data.get("password") or ""
    if not isinstance(username, str) or not isinstance(password, str):
        return fail("Username and password must be strings", 400)
    username = username.strip()
    if not username or not password:
        return fail("Username and password are required", 400)

    user = auth_service.authenticate(username, password)
    if user is None:
        return fail("Invalid credentials", 401)

    session, token = session_service.create_session(
        user,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return ok({"token": token, "expiresAt": to_utc_z(session.expires_at), "user": user.to_dict()},
              message="Login successful")


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.session_token)
    return ok(message="Logged out")


@auth_bp.get("/me")
@require_auth
def me_route():
    return ok(g.current_user.to_dict())
