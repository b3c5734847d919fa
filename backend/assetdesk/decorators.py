# Overview: Request authentication and role decorators for API routes.

from functools import wraps

from flask import g, request

from .responses import fail
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def require_auth(f):
    """
    Require a valid bearer session.

    Sets g.current_user (the authenticated User) and g.session_token.
    Returns 401 if the header is missing or the token is invalid, expired,
    revoked, or belongs to a deleted user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            return fail("Authentication required", 401)

        user = session_service.validate_session(token)
        if user is None:
            return fail("Invalid or expired token", 401)

        g.current_user = user
        g.session_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the authenticated user's role to be one of `roles`.
    Must be stacked under @require_auth.
    """
    allowed = set(roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return fail("Authentication required", 401)
            if user.role not in allowed:
                return fail("You do not have permission to perform this action", 403)
            return f(*args, **kwargs)

        return decorated_function
    return decorator
