from __future__ import annotations

from datetime import datetime

from flask import Blueprint, redirect, request

from app.fincrm.active_role import active_role_store, current_active_role
from app.fincrm.api import bad_request, forbidden, ok
from app.fincrm.db import db_session
from app.fincrm.models import Employee
from app.fincrm.rbac import api_login_required, current_identity
from app.fincrm.roles import dashboard_path, effective_role, held_roles, parse_role, role_label
from app.fincrm.security import ensure_csrf_token

bp = Blueprint("routes", __name__)
api_bp = Blueprint("routes_api", __name__)


@bp.get("/")
def index():
    # The gate has already sent anonymous users to /login.
    return redirect(dashboard_path(current_active_role(current_identity())))


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for probes. No DB access, minimal overhead.
    """
    return "ok", 200


@api_bp.get("/me")
@api_login_required
def me():
    identity = current_identity()
    active = current_active_role(identity)
    return ok(
        {
            **identity.to_claims(),
            "effectiveRole": effective_role(identity).value,
            "activeRole": active.value,
            "roles": [{"role": r.value, "label": role_label(r), "dashboard": dashboard_path(r)} for r in held_roles(identity)],
            "csrfToken": ensure_csrf_token(),
        }
    )


@api_bp.post("/active-role")
@api_login_required
def switch_active_role():
    """Switch the workspace a dual-role user is acting in."""
    identity = current_identity()
    body = request.get_json(silent=True) or {}
    role = parse_role(body.get("role") if isinstance(body, dict) else None)
    if role is None:
        return bad_request("Unknown role")
    if role not in held_roles(identity):
        return forbidden()
    active_role_store().set_active_role(role)
    return ok({"activeRole": role.value, "redirect": dashboard_path(role)})


@api_bp.post("/heartbeat")
@api_login_required
def heartbeat():
    """Presence ping; the client calls this every few minutes."""
    identity = current_identity()
    s = db_session()
    e = s.get(Employee, identity.id)
    if e is None:
        return forbidden()
    e.last_seen_at = datetime.utcnow()
    s.commit()
    return ok()
