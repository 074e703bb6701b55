import secrets

from flask import Request, g, session

# Blueprints whose mutations run before a session exists (login, password reset).
CSRF_EXEMPT_BLUEPRINTS = ("auth", "auth_api")


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def csrf_required(req: Request) -> bool:
    """
    Only cookie-authenticated mutations can be forged cross-site. Anonymous
    requests and bearer-token clients are not checked.
    """
    if req.method not in ("POST", "PUT", "PATCH", "DELETE"):
        return False
    if (req.blueprint or "") in CSRF_EXEMPT_BLUEPRINTS:
        return False
    return getattr(g, "identity_source", None) == "cookie"


def validate_csrf(req: Request) -> bool:
    """Validate CSRF token from header, form, or JSON body."""
    token = req.headers.get("X-CSRF-Token") or req.form.get("csrf_token")
    if not token and req.is_json:
        json_data = req.get_json(silent=True) or {}
        if isinstance(json_data, dict):
            token = json_data.get("csrf_token")
    expected = session.get("csrf_token")
    return bool(token and expected and secrets.compare_digest(str(token), str(expected)))
