# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, g

from .errors import ForbiddenError, UnauthorizedError, error_response
from .services import session_service


def current_user_id() -> int | None:
    user = getattr(g, "current_user", None)
    return user.id if user else None


def require_auth(f):
    """
    Require a valid bearer session and set g.current_user.

    Returns 401 when the Authorization header is missing or the token is
    invalid, expired, revoked, or belongs to a deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return error_response(UnauthorizedError("Authentication required"))

        token = auth_header.split(" ", 1)[1]
        user = session_service.validate_session(token)

        if not user:
            return error_response(UnauthorizedError("Invalid or expired token"))

        g.current_user = user
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require the authenticated user to hold one of ``roles``. Apply after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return error_response(UnauthorizedError("Authentication required"))

            if user.role not in roles:
                return error_response(ForbiddenError(
                    "Permission denied",
                    details={"required_roles": list(roles), "role": user.role},
                ))

            return f(*args, **kwargs)

        return decorated_function
    return decorator
