from collections.abc import Callable, Iterable
from functools import wraps
from typing import Any

from flask import g, request

from app.fincrm.api import forbidden, unauthorized
from app.fincrm.roles import Role, effective_role, held_roles
from app.fincrm.sessions import Identity


def current_identity() -> Identity | None:
    return getattr(g, "identity", None)


def identity_has_role(identity: Identity | None, roles: Iterable[Role]) -> bool:
    """True when the primary or the secondary role is in `roles`."""
    if identity is None:
        return False
    allowed = set(roles)
    return any(r in allowed for r in held_roles(identity))


def _deny(missing: str):
    g.missing_role = missing
    return forbidden()


def api_login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if current_identity() is None:
            return unauthorized()
        return fn(*args, **kwargs)

    return wrapped


def require_roles(*roles: Role) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    API guard: 401 without a session, 403 unless either held role is allowed.
    """
    allowed = frozenset(roles)

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            identity = current_identity()
            if identity is None:
                return unauthorized()
            if not identity_has_role(identity, allowed):
                return _deny(",".join(sorted(r.value for r in allowed)))
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def require_effective_role(*roles: Role) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Like require_roles, but only the single effective role counts.
    """
    allowed = frozenset(roles)

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            identity = current_identity()
            if identity is None:
                return unauthorized()
            if effective_role(identity) not in allowed:
                return _deny(",".join(sorted(r.value for r in allowed)))
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def install_forbidden_logging(app) -> None:
    @app.after_request
    def _log_forbidden(response):
        missing = getattr(g, "missing_role", None)
        if response.status_code == 403 and missing:
            identity = current_identity()
            app.logger.warning(
                "Forbidden: path=%s user_id=%s required_roles=%s request_id=%s",
                request.path,
                identity.id if identity else None,
                missing,
                getattr(g, "request_id", None),
            )
        return response
