from __future__ import annotations

from flask import Blueprint, render_template

from app.fincrm.active_role import current_active_role
from app.fincrm.db import db_session
from app.fincrm.models import Notification
from app.fincrm.notifications import unread_count
from app.fincrm.rbac import current_identity
from app.fincrm.roles import Role

bp = Blueprint("pages", __name__)

# Access to these paths is decided by the route gate before any view runs.
WORKSPACES: dict[str, tuple[str, Role]] = {
    "/dashboard": ("Admin Dashboard", Role.ADMIN),
    "/equity/dashboard": ("Equity Dashboard", Role.EQUITY_DEALER),
    "/mf/dashboard": ("Mutual Fund Dashboard", Role.MF_DEALER),
    "/backoffice/dashboard": ("Back Office Dashboard", Role.BACK_OFFICE),
}


def _render_workspace(path: str):
    identity = current_identity()
    title, workspace_role = WORKSPACES[path]
    return render_template(
        "pages/dashboard.html",
        title=title,
        workspace_role=workspace_role,
        unread=unread_count(db_session(), identity.id),
    )


@bp.get("/dashboard")
def admin_dashboard():
    return _render_workspace("/dashboard")


@bp.get("/equity/dashboard")
def equity_dashboard():
    return _render_workspace("/equity/dashboard")


@bp.get("/mf/dashboard")
def mf_dashboard():
    return _render_workspace("/mf/dashboard")


@bp.get("/backoffice/dashboard")
def backoffice_dashboard():
    return _render_workspace("/backoffice/dashboard")


@bp.get("/notifications")
def notifications_page():
    identity = current_identity()
    rows = (
        db_session()
        .query(Notification)
        .filter(Notification.user_id == identity.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(50)
        .all()
    )
    return render_template("pages/notifications.html", notifications=rows)


@bp.get("/settings")
def settings_page():
    identity = current_identity()
    return render_template("pages/settings.html", active_role=current_active_role(identity))
