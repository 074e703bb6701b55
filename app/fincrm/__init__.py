import logging

from flask import Flask, g, render_template, request
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from app.fincrm.config import load_config
from app.fincrm.db import init_db, teardown_db_session
from app.fincrm.sessions import init_sessions
from app.fincrm.mailer import init_mailer
from app.fincrm.auth import api_bp as auth_api_bp, bp as auth_bp, load_current_identity, refresh_session_cookie
from app.fincrm.active_role import current_active_role, load_active_role_store
from app.fincrm.gate import BYPASS_PREFIXES, install_gate
from app.fincrm.rbac import install_forbidden_logging
from app.fincrm.routes import api_bp as routes_api_bp, bp as routes_bp
from app.fincrm.pages import bp as pages_bp
from app.fincrm.notifications import bp as notifications_bp
from app.fincrm.employees import bp as employees_bp
from app.fincrm.admin import bp as admin_bp
from app.fincrm.audit import bp as audit_bp

logger = logging.getLogger(__name__)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())

    from app.fincrm.security import csrf_required, ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_identity() -> dict:
        from app.fincrm.roles import held_roles, role_label

        identity = getattr(g, "identity", None)
        return {
            "csrf_token": ensure_csrf_token(),
            "identity": identity,
            "active_role": current_active_role(identity) if identity else None,
            "held_roles": held_roles(identity) if identity else (),
            "role_label": role_label,
        }

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)
    init_sessions(app)
    init_mailer(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(pages_bp)
    app.register_blueprint(auth_api_bp, url_prefix="/api/auth")
    app.register_blueprint(routes_api_bp, url_prefix="/api")
    app.register_blueprint(notifications_bp, url_prefix="/api/notifications")
    app.register_blueprint(employees_bp, url_prefix="/api/employees")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")
    app.register_blueprint(audit_bp, url_prefix="/api")

    # Order matters: identity -> active role (rehydrate, then reconcile) -> route gate -> CSRF.
    @app.before_request
    def _load_identity():
        if request.path.startswith(BYPASS_PREFIXES):
            g.identity = None
            return None
        return load_current_identity()

    @app.before_request
    def _load_active_role():
        if request.path.startswith(BYPASS_PREFIXES):
            return None
        return load_active_role_store()

    install_gate(app)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(BYPASS_PREFIXES):
            return None
        ensure_csrf_token()
        if csrf_required(request) and not validate_csrf(request):
            if request.path.startswith("/api/"):
                from app.fincrm.api import fail

                return fail("CSRF token missing or invalid", 400)
            return render_template("errors/400.html", message="CSRF token missing or invalid."), 400
        return None

    app.after_request(refresh_session_cookie)
    install_forbidden_logging(app)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):
        if request.path.startswith("/api/"):
            from app.fincrm.api import fail

            return fail(e.name, e.code or 500)
        return e

    @app.errorhandler(Exception)
    def _err_500(e: Exception):
        # Ensure stack trace shows in logs.
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        if request.path.startswith("/api/"):
            from app.fincrm.api import fail

            return fail("Internal server error", 500)
        return render_template("errors/500.html"), 500

    logger.info("create_app() complete; app ready to serve")
    return app
