from __future__ import annotations

from datetime import date, datetime, time, timedelta

from flask import Blueprint, request

from app.fincrm.api import bad_request, ok, parse_int_arg
from app.fincrm.db import db_session
from app.fincrm.models import Employee, EmployeeLoginLog
from app.fincrm.rbac import require_effective_role
from app.fincrm.roles import ADMIN_ROLES

bp = Blueprint("admin", __name__)

ONLINE_THRESHOLD = timedelta(minutes=10)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def is_online(last_seen_at: datetime | None, now: datetime) -> bool:
    return last_seen_at is not None and now - last_seen_at < ONLINE_THRESHOLD


@bp.get("/employee-status")
@require_effective_role(*ADMIN_ROLES)
def employee_status():
    """Active employees with presence and today's login/logout summary."""
    s = db_session()
    now = datetime.utcnow()
    day_start = datetime.combine(now.date(), time.min)

    employees = s.query(Employee).filter(Employee.is_active.is_(True)).order_by(Employee.name.asc()).all()
    todays_logs: dict[int, list[EmployeeLoginLog]] = {}
    for log in (
        s.query(EmployeeLoginLog)
        .filter(EmployeeLoginLog.login_at >= day_start)
        .order_by(EmployeeLoginLog.login_at.desc())
        .all()
    ):
        todays_logs.setdefault(log.employee_id, []).append(log)

    result = []
    for e in employees:
        logs = todays_logs.get(e.id, [])
        first_login = logs[-1].login_at if logs else None
        last_logout = next((log.logout_at for log in logs if log.logout_at), None)
        result.append(
            {
                "id": e.id,
                "name": e.name,
                "department": e.department.value,
                "designation": e.designation,
                "isOnline": is_online(e.last_seen_at, now),
                "lastSeenAt": _iso(e.last_seen_at),
                "firstLoginToday": _iso(first_login),
                "lastLogoutToday": _iso(last_logout),
                "todaySessionCount": len(logs),
            }
        )
    return ok(result)


@bp.get("/login-history")
@require_effective_role(*ADMIN_ROLES)
def login_history():
    """Paginated login/logout history. ?page=&limit=&employeeId=&date=YYYY-MM-DD"""
    s = db_session()
    page = parse_int_arg(request.args.get("page"), 1)
    limit = parse_int_arg(request.args.get("limit"), 50, hi=100)

    query = s.query(EmployeeLoginLog)
    employee_id = (request.args.get("employeeId") or "").strip()
    if employee_id:
        if not employee_id.isdigit():
            return bad_request("employeeId must be numeric")
        query = query.filter(EmployeeLoginLog.employee_id == int(employee_id))
    day = (request.args.get("date") or "").strip()
    if day:
        try:
            d = date.fromisoformat(day)
        except ValueError:
            return bad_request("date must be YYYY-MM-DD")
        query = query.filter(
            EmployeeLoginLog.login_at >= datetime.combine(d, time.min),
            EmployeeLoginLog.login_at <= datetime.combine(d, time.max),
        )

    total = query.count()
    logs = (
        query.order_by(EmployeeLoginLog.login_at.desc(), EmployeeLoginLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    data = [
        {
            "id": log.id,
            "loginAt": _iso(log.login_at),
            "logoutAt": _iso(log.logout_at),
            "ipAddress": log.ip_address,
            "employee": {
                "id": log.employee.id,
                "name": log.employee.name,
                "department": log.employee.department.value,
                "designation": log.employee.designation,
            },
        }
        for log in logs
    ]
    pages = (total + limit - 1) // limit
    return ok(data, pagination={"total": total, "page": page, "limit": limit, "pages": pages})
