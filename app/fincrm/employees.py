from __future__ import annotations

import logging
from typing import Any

from flask import Blueprint, request
from sqlalchemy import or_
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from app.fincrm.api import bad_request, fail, ok
from app.fincrm.audit import record_activity
from app.fincrm.db import db_session
from app.fincrm.models import Employee
from app.fincrm.notifications import create_notification_for_many
from app.fincrm.rbac import api_login_required, current_identity, require_roles
from app.fincrm.roles import ADMIN_ROLES, Department, parse_role, role_label
from app.fincrm.sessions import normalize_email

logger = logging.getLogger(__name__)

bp = Blueprint("employees", __name__)

MIN_PASSWORD_LENGTH = 8


def _parse_department(value: object) -> Department | None:
    if not isinstance(value, str):
        return None
    try:
        return Department(value.strip().upper())
    except ValueError:
        return None


def employee_to_dict(e: Employee) -> dict[str, Any]:
    return {
        "id": e.id,
        "name": e.name,
        "email": e.email,
        "phone": e.phone,
        "department": e.department.value,
        "designation": e.designation,
        "role": e.role.value,
        "secondaryRole": e.secondary_role.value if e.secondary_role else None,
        "isActive": e.is_active,
        "createdAt": e.created_at.isoformat() if e.created_at else None,
        "updatedAt": e.updated_at.isoformat() if e.updated_at else None,
    }


def validate_employee_payload(payload: dict[str, Any]) -> list[str]:
    """Validate an employee creation payload. Returns a list of errors."""
    errors: list[str] = []
    if not str(payload.get("name") or "").strip():
        errors.append("Name is required")
    email = normalize_email(payload.get("email") if isinstance(payload.get("email"), str) else "")
    if not email or "@" not in email:
        errors.append("Valid email is required")
    if _parse_department(payload.get("department")) is None:
        errors.append(f"Department must be one of: {', '.join(d.value for d in Department)}")
    if parse_role(payload.get("role")) is None:
        errors.append("Role is invalid")
    secondary = payload.get("secondaryRole")
    if secondary not in (None, "") and parse_role(secondary) is None:
        errors.append("Secondary role is invalid")
    password = payload.get("password")
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return errors


def create_employee(s: Session, payload: dict[str, Any], *, actor_id: int) -> Employee:
    role = parse_role(payload["role"])
    secondary = parse_role(payload.get("secondaryRole")) if payload.get("secondaryRole") else None
    if secondary is not None and secondary == role:
        # Accepted as-is; held_roles collapses the duplicate.
        logger.warning("Employee %s created with secondary role equal to primary (%s)", payload.get("email"), role)
    e = Employee(
        name=str(payload["name"]).strip(),
        email=normalize_email(payload["email"]),
        phone=(str(payload.get("phone") or "").strip() or None),
        password_hash=generate_password_hash(payload["password"]),
        is_active=bool(payload.get("isActive", True)),
        role=role,
        secondary_role=secondary,
        department=_parse_department(payload["department"]),
        designation=str(payload.get("designation") or "").strip(),
    )
    s.add(e)
    s.flush()
    record_activity(s, user_id=actor_id, action="CREATE", module="EMPLOYEES", details=f"Created employee {e.email}")
    admin_ids = [
        uid
        for (uid,) in s.query(Employee.id).filter(
            Employee.is_active.is_(True),
            Employee.id.not_in([actor_id, e.id]),
            or_(Employee.role.in_(list(ADMIN_ROLES)), Employee.secondary_role.in_(list(ADMIN_ROLES))),
        )
    ]
    create_notification_for_many(
        s,
        user_ids=admin_ids,
        type="EMPLOYEE_CREATED",
        title="New employee added",
        message=f"{e.name} ({e.email}) joined as {role_label(e.role)}.",
        link="/masters/employees",
    )
    return e


@bp.get("")
@api_login_required
def employees_list():
    s = db_session()
    query = s.query(Employee)

    department = _parse_department(request.args.get("department"))
    if department is not None:
        query = query.filter(Employee.department == department)
    role = parse_role(request.args.get("role"))
    if role is not None:
        query = query.filter(Employee.role == role)
    is_active = (request.args.get("isActive") or "").strip().lower()
    if is_active in ("true", "false"):
        query = query.filter(Employee.is_active.is_(is_active == "true"))
    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        query = query.filter(or_(Employee.name.ilike(like), Employee.email.ilike(like), Employee.phone.ilike(like)))

    rows = query.order_by(Employee.created_at.desc(), Employee.id.desc()).all()
    return ok([employee_to_dict(e) for e in rows])


@bp.post("")
@require_roles(*ADMIN_ROLES)
def employees_create():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return bad_request("Request body must be a JSON object")
    errors = validate_employee_payload(payload)
    if errors:
        return bad_request(errors[0])

    s = db_session()
    email = normalize_email(payload["email"])
    if s.query(Employee).filter(Employee.email == email).one_or_none() is not None:
        return fail("Employee with this email already exists", 409)

    e = create_employee(s, payload, actor_id=current_identity().id)
    s.commit()
    return ok(employee_to_dict(e), status=201)
