# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import AuthError, PermissionDenied
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def _reject(error):
    return jsonify(error.to_dict()), error.status_code


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_user to the authenticated User.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, revoked or expired token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return _reject(AuthError("Authentication required"))

        token = auth_header.split(" ", 1)[1]
        user = session_service.validate_session(token)

        if not user:
            return _reject(AuthError("Invalid or expired token"))

        g.current_user = user
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_role(role: str):
    """
    Require the authenticated user to hold a role.

    Must be stacked below @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return _reject(AuthError("Authentication required"))

            if g.current_user.role != role:
                return _reject(PermissionDenied("Permission denied", {"required_role": role}))

            return f(*args, **kwargs)

        return decorated_function
    return decorator
