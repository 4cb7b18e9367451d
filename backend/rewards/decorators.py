# Overview: Request and role decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .roles import Principal, Role
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, "principal")


def require_auth(f):
    """
    Require a valid bearer token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.principal: Principal(id, utorid, role) handed to services

    Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        user = session_service.validate_session(token)

        if not user:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        g.principal = Principal(id=user.id, utorid=user.utorid, role=user.tier)

        return f(*args, **kwargs)

    return decorated_function


def require_role(minimum: Role):
    """
    Require the caller's tier to be at least ``minimum``.

    Must be stacked under @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if g.principal.role < minimum:
                return jsonify({
                    "error": "Permission denied",
                    "required_role": minimum.label,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
