from __future__ import annotations

import hmac
import secrets
import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import (
    Blueprint,
    Response,
    current_app,
    flash,
    g,
    redirect,
    render_template,
    request,
    url_for,
)
from werkzeug.security import generate_password_hash

from app.fincrm.active_role import active_role_store
from app.fincrm.api import bad_request, fail, ok
from app.fincrm.audit import record_activity
from app.fincrm.db import db_session
from app.fincrm.mailer import MailError, get_mailer, otp_email_html
from app.fincrm.models import Employee, EmployeeLoginLog, PasswordResetToken
from app.fincrm.notifications import create_notification
from app.fincrm.roles import LOGIN_PATH, dashboard_path, held_roles, parse_role
from app.fincrm.security import validate_csrf
from app.fincrm.sessions import (
    AuthFailure,
    EmployeeCredentialStore,
    Identity,
    authenticate,
    normalize_email,
    session_provider,
)

bp = Blueprint("auth", __name__)
api_bp = Blueprint("auth_api", __name__)

_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds
MIN_PASSWORD_LENGTH = 8
SELECT_ROLE_PATH = "/select-role"


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def _token_cookie_name() -> str:
    return current_app.config.get("SESSION_TOKEN_COOKIE") or "fincrm_session"


def _request_token() -> tuple[str | None, str | None]:
    token = request.cookies.get(_token_cookie_name())
    if token:
        return token, "cookie"
    header = request.headers.get("Authorization") or ""
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip() or None, "bearer"
    return None, None


def load_current_identity() -> None:
    """
    Verifies the session token (cookie or bearer header) into g.identity.
    Also assigns a per-request request_id for log/activity correlation.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.identity = None
    g.identity_source = None

    token, source = _request_token()
    if not token:
        return
    identity = session_provider().verify_session(token)
    if identity is None:
        current_app.logger.info("Rejected session token (source=%s request_id=%s)", source, g.request_id)
        return
    g.identity = identity
    g.identity_source = source


def refresh_session_cookie(response: Response) -> Response:
    """
    Writes the token cookie: a fresh one after login, a renewed one on every
    cookie-authenticated request, or a deletion after logout.
    """
    name = _token_cookie_name()
    cfg = current_app.config
    if getattr(g, "clear_session", False):
        response.delete_cookie(name, httponly=True, samesite=cfg.get("SESSION_COOKIE_SAMESITE"))
        return response

    token = getattr(g, "issued_token", None)
    if token is None and getattr(g, "identity_source", None) == "cookie":
        token = session_provider().issue_session(g.identity)
    if token is not None:
        response.set_cookie(
            name,
            token,
            max_age=session_provider().max_age_seconds,
            httponly=True,
            secure=bool(cfg.get("SESSION_COOKIE_SECURE")),
            samesite=cfg.get("SESSION_COOKIE_SAMESITE"),
        )
    return response


def _safe_next(nxt: str) -> str | None:
    # Only local paths, to avoid open redirects.
    if nxt.startswith("/") and not nxt.startswith("//") and not nxt.startswith(LOGIN_PATH):
        return nxt
    return None


@bp.get("/login")
def login_get():
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt)


@bp.post("/login")
def login_post():
    email = normalize_email(request.form.get("email"))
    password = request.form.get("password") or ""
    requested_role = parse_role(request.form.get("role"))
    nxt = (request.form.get("next") or "").strip()
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(LOGIN_PATH)

    _record_attempt(ip)

    s = db_session()
    result = authenticate(EmployeeCredentialStore(s), email, password)
    if isinstance(result, AuthFailure):
        record_activity(s, user_id=None, action="LOGIN_FAILED", module="AUTH", details=email or None)
        s.commit()
        flash(result.message, "danger")
        return redirect(LOGIN_PATH)

    identity: Identity = result
    _login_attempts[ip].clear()
    s.add(EmployeeLoginLog(employee_id=identity.id, ip_address=ip))
    record_activity(s, user_id=identity.id, action="LOGIN", module="AUTH")
    s.commit()
    current_app.logger.info("Login user_id=%s request_id=%s", identity.id, g.request_id)

    g.issued_token = session_provider().issue_session(identity)
    store = active_role_store()
    roles = held_roles(identity)
    if requested_role in roles:
        chosen = requested_role
    elif len(roles) == 1:
        chosen = identity.role
    else:
        # Primary role until the picker answers.
        store.set_role_for_new_login(identity.id, identity.role)
        return redirect(url_for("auth.select_role_get", next=_safe_next(nxt)))

    store.set_role_for_new_login(identity.id, chosen)
    return redirect(_safe_next(nxt) or dashboard_path(chosen))


@bp.get(SELECT_ROLE_PATH)
def select_role_get():
    """Workspace picker shown after a dual-role user signs in."""
    identity: Identity = g.identity
    roles = held_roles(identity)
    nxt = _safe_next((request.args.get("next") or "").strip())
    if len(roles) == 1:
        return redirect(nxt or dashboard_path(identity.role))
    return render_template("auth/select_role.html", roles=roles, next=nxt or "")


@bp.post(SELECT_ROLE_PATH)
def select_role_post():
    identity: Identity = g.identity
    # The auth blueprint skips the global CSRF guard; this form runs with a session.
    if not validate_csrf(request):
        return render_template("errors/400.html", message="CSRF token missing or invalid."), 400

    nxt = _safe_next((request.form.get("next") or "").strip())
    role = parse_role(request.form.get("role"))
    if role is None or role not in held_roles(identity):
        flash("Choose one of your workspaces.", "danger")
        return redirect(url_for("auth.select_role_get", next=nxt))

    active_role_store().set_role_for_new_login(identity.id, role)
    current_app.logger.info("Workspace chosen user_id=%s role=%s request_id=%s", identity.id, role.value, g.request_id)
    return redirect(nxt or dashboard_path(role))


@bp.route("/logout", methods=["GET", "POST"])
def logout():
    identity: Identity | None = getattr(g, "identity", None)
    if identity is not None:
        s = db_session()
        open_log = (
            s.query(EmployeeLoginLog)
            .filter(EmployeeLoginLog.employee_id == identity.id, EmployeeLoginLog.logout_at.is_(None))
            .order_by(EmployeeLoginLog.login_at.desc())
            .first()
        )
        if open_log is not None:
            open_log.logout_at = datetime.utcnow()
        record_activity(s, user_id=identity.id, action="LOGOUT", module="AUTH")
        s.commit()
        current_app.logger.info("Logout user_id=%s request_id=%s", identity.id, g.request_id)
    active_role_store().clear()
    g.clear_session = True
    return redirect(LOGIN_PATH)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _generate_otp() -> str:
    return str(100000 + secrets.randbelow(900000))


@api_bp.post("/forgot-password")
def forgot_password():
    email = _json_body().get("email")
    if not email or not isinstance(email, str):
        return bad_request("Email is required")

    s = db_session()
    employee = s.query(Employee).filter(Employee.email == normalize_email(email)).one_or_none()
    # Same response for unknown and deactivated accounts.
    if employee is None or not employee.is_active:
        return ok()

    s.query(PasswordResetToken).filter(PasswordResetToken.email == employee.email).delete()
    ttl = int(current_app.config.get("OTP_TTL_MINUTES") or 10)
    otp = _generate_otp()
    s.add(PasswordResetToken(email=employee.email, otp=otp, expires_at=datetime.utcnow() + timedelta(minutes=ttl)))
    s.commit()

    try:
        get_mailer().send(
            to=employee.email,
            subject="Your password reset OTP",
            html=otp_email_html(employee.name, otp, ttl),
        )
    except MailError:
        current_app.logger.exception("OTP delivery failed (request_id=%s)", g.request_id)
        return fail("Failed to send OTP", 500)
    return ok()


@api_bp.post("/verify-otp")
def verify_otp():
    body = _json_body()
    email = body.get("email")
    otp = body.get("otp")
    if not email or not otp:
        return bad_request("Email and OTP are required")

    s = db_session()
    record = (
        s.query(PasswordResetToken)
        .filter(PasswordResetToken.email == normalize_email(str(email)), PasswordResetToken.otp != "")
        .order_by(PasswordResetToken.created_at.desc())
        .first()
    )
    if record is None:
        return bad_request("Invalid or expired OTP")

    if datetime.utcnow() > record.expires_at:
        s.delete(record)
        s.commit()
        return bad_request("OTP has expired. Request a new one.")

    if not hmac.compare_digest(record.otp, str(otp).strip()):
        return bad_request("Incorrect OTP")

    ttl = int(current_app.config.get("RESET_TOKEN_TTL_MINUTES") or 15)
    record.token = uuid.uuid4().hex
    record.otp = ""
    record.expires_at = datetime.utcnow() + timedelta(minutes=ttl)
    s.commit()
    return ok({"token": record.token})


@api_bp.post("/reset-password")
def reset_password():
    body = _json_body()
    token = body.get("token")
    password = body.get("password")
    if not token or not password:
        return bad_request("Token and password are required")
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        return bad_request(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    s = db_session()
    record = s.query(PasswordResetToken).filter(PasswordResetToken.token == str(token)).one_or_none()
    if record is None:
        return bad_request("Invalid or expired reset link")

    if datetime.utcnow() > record.expires_at:
        s.delete(record)
        s.commit()
        return bad_request("Reset link has expired. Start over.")

    employee = s.query(Employee).filter(Employee.email == record.email).one_or_none()
    if employee is None:
        s.delete(record)
        s.commit()
        return bad_request("Invalid or expired reset link")

    employee.password_hash = generate_password_hash(password)
    s.delete(record)
    record_activity(s, user_id=employee.id, action="PASSWORD_RESET", module="AUTH")
    create_notification(
        s,
        user_id=employee.id,
        type="PASSWORD_CHANGED",
        title="Password changed",
        message="Your password was reset. If this was not you, contact an administrator.",
        link="/settings",
    )
    s.commit()
    return ok()
