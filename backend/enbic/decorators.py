# Overview: Request authentication and role decorators for API routes.

from functools import wraps

from flask import g, request

from .errors import ForbiddenError, UnauthenticatedError
from .services import session_service
from .services.access import has_role


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer session.

    Sets on flask.g:
    - g.current_user: the authenticated User
    - g.actor: the Actor passed to every service call
    - g.session_context: the full SessionContext
    - g.token: the raw bearer token (logout)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            raise UnauthenticatedError("Authentication required")

        context = session_service.validate_session(token)
        if context is None:
            raise UnauthenticatedError("Invalid or expired token")

        g.current_user = context.user
        g.actor = context.actor
        g.session_context = context
        g.token = token
        return f(*args, **kwargs)

    return decorated_function


def require_roles(*roles: str):
    """
    Require one of the given roles (admin always passes).

    Must be stacked under @require_auth. Services re-check roles on the
    explicit actor; this only rejects early at the HTTP boundary.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                raise UnauthenticatedError("Authentication required")
            if not has_role(actor, *roles):
                raise ForbiddenError(
                    f"Role '{actor.role}' may not access this resource",
                    role=actor.role,
                )
            return f(*args, **kwargs)

        return decorated_function
    return decorator
