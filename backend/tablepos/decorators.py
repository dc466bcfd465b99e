# Overview: Request authentication and role decorators for API routes.

"""
Authentication context

Staff terminals authenticate with a bearer token issued by the login
provider: an itsdangerous-signed payload {"user_id": int, "role": str}
signed with SECRET_KEY and valid for AUTH_TOKEN_MAX_AGE_SECONDS.

require_auth sets g.actor; require_role restricts a route to some roles.
Failures use the same JSON error envelope as every other error.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps

from flask import current_app, g, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .errors import ForbiddenError, UnauthenticatedError, error_response


TOKEN_SALT = "tablepos-actor"

ROLES = ("admin", "manager", "server", "counter", "kitchen")


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: str


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def issue_actor_token(user_id: int, role: str) -> str:
    """Sign a bearer token for a staff member (CLI and tests)."""
    if role not in ROLES:
        raise ValueError(f"unknown role {role!r}")
    return _serializer().dumps({"user_id": int(user_id), "role": role})


def load_actor(token: str) -> Actor | None:
    max_age = int(current_app.config["AUTH_TOKEN_MAX_AGE_SECONDS"])
    try:
        payload = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        return None
    except BadSignature:
        return None

    if not isinstance(payload, dict):
        return None
    user_id = payload.get("user_id")
    role = payload.get("role")
    if not isinstance(user_id, int) or isinstance(user_id, bool) or role not in ROLES:
        return None
    return Actor(user_id=user_id, role=role)


def current_actor() -> Actor | None:
    return getattr(g, "actor", None)


def require_auth(f):
    """
    Require a valid bearer token.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Malformed, tampered or expired token
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return error_response(UnauthenticatedError())

        token = auth_header.split(" ", 1)[1].strip()
        actor = load_actor(token)
        if actor is None:
            return error_response(UnauthenticatedError("Invalid or expired token", code="invalid_token"))

        g.actor = actor
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Restrict a route to the given roles. Must be stacked under @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = current_actor()
            if actor is None:
                return error_response(UnauthenticatedError())

            if actor.role not in roles:
                current_app.logger.warning(
                    "AUTHORIZATION_ALERT: role %s denied on %s %s (user %s)",
                    actor.role, request.method, request.path, actor.user_id,
                )
                return error_response(ForbiddenError(
                    "Permission denied",
                    details={"required_roles": list(roles)},
                ))

            return f(*args, **kwargs)

        return decorated_function
    return decorator
