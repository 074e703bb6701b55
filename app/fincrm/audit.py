from __future__ import annotations

from flask import Blueprint, g, has_request_context, request
from sqlalchemy.orm import Session

from app.fincrm.api import ok, parse_int_arg
from app.fincrm.db import db_session
from app.fincrm.models import ActivityLog
from app.fincrm.rbac import require_roles
from app.fincrm.roles import Role

bp = Blueprint("audit", __name__)


def record_activity(
    s: Session,
    *,
    user_id: int | None,
    action: str,
    module: str,
    details: str | None = None,
    ip_address: str | None = None,
) -> ActivityLog:
    """
    Append-only activity helper. Caller owns the commit.
    """
    rid = None
    if has_request_context():
        rid = getattr(g, "request_id", None)
        if ip_address is None:
            ip_address = request.remote_addr
    log = ActivityLog(
        request_id=rid,
        user_id=user_id,
        action=action,
        module=module,
        details=details,
        ip_address=ip_address,
    )
    s.add(log)
    return log


@bp.get("/settings/activity-log")
@require_roles(Role.SUPER_ADMIN)
def activity_log_list():
    s = db_session()
    page = parse_int_arg(request.args.get("page"), 1)
    limit = parse_int_arg(request.args.get("limit"), 50, hi=200)
    module = (request.args.get("module") or "").strip()

    query = s.query(ActivityLog)
    if module:
        query = query.filter(ActivityLog.module == module)
    total = query.count()
    logs = (
        query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return ok(
        {
            "logs": [
                {
                    "id": log.id,
                    "action": log.action,
                    "module": log.module,
                    "details": log.details,
                    "ipAddress": log.ip_address,
                    "createdAt": log.created_at.isoformat(),
                    "user": {"name": log.user.name} if log.user else None,
                }
                for log in logs
            ],
            "total": total,
            "page": page,
            "limit": limit,
        }
    )
