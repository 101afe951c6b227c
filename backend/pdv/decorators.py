# Overview: Request authentication and role decorators for API routes.

from functools import wraps

from flask import g, request

from .errors import AuthenticationError, PermissionDeniedError
from .permissions import can
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, "current_user")


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_user (Employee) and g.session_token (SessionToken).

    Raises AuthenticationError (401) when:
    - No Authorization header
    - Invalid, expired or revoked token
    - Employee deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            raise AuthenticationError("Authentication required")

        token = auth_header.split(" ", 1)[1].strip()

        context = session_service.validate_session(token)
        if not context:
            raise AuthenticationError("Invalid or expired token")

        g.current_user = context.employee
        g.session_token = context.session
        g.raw_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_role(required_role: str):
    """
    Require the authenticated employee to hold at least required_role.

    Must be stacked below @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                raise AuthenticationError("Authentication required")

            if not can(g.current_user.role, required_role):
                raise PermissionDeniedError(
                    f"Requires role {required_role}",
                    details={"required_role": required_role},
                )

            return f(*args, **kwargs)

        return decorated_function
    return decorator
