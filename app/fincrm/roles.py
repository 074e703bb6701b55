"""
Role model: the closed role set, its priority ranking and the per-role
landing pages.

Adding a role means updating ROLE_PRIORITY, DASHBOARD_PATHS and ROLE_LABELS
together; the import-time check at the bottom refuses to load otherwise.
"""
from __future__ import annotations

import enum
from typing import Protocol


class Role(str, enum.Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    EQUITY_DEALER = "EQUITY_DEALER"
    MF_DEALER = "MF_DEALER"
    BACK_OFFICE = "BACK_OFFICE"


class Department(str, enum.Enum):
    EQUITY = "EQUITY"
    MUTUAL_FUND = "MUTUAL_FUND"
    BACK_OFFICE = "BACK_OFFICE"
    ADMIN = "ADMIN"


ADMIN_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN})

# Higher number means broader access. EQUITY_DEALER and MF_DEALER tie.
ROLE_PRIORITY: dict[Role, int] = {
    Role.SUPER_ADMIN: 5,
    Role.ADMIN: 4,
    Role.EQUITY_DEALER: 3,
    Role.MF_DEALER: 3,
    Role.BACK_OFFICE: 2,
}

DASHBOARD_PATHS: dict[Role, str] = {
    Role.SUPER_ADMIN: "/dashboard",
    Role.ADMIN: "/dashboard",
    Role.EQUITY_DEALER: "/equity/dashboard",
    Role.MF_DEALER: "/mf/dashboard",
    Role.BACK_OFFICE: "/backoffice/dashboard",
}

ROLE_LABELS: dict[Role, str] = {
    Role.SUPER_ADMIN: "Super Admin",
    Role.ADMIN: "Admin",
    Role.EQUITY_DEALER: "Equity Dealer",
    Role.MF_DEALER: "MF Dealer",
    Role.BACK_OFFICE: "Back Office",
}

LOGIN_PATH = "/login"


class HasRoles(Protocol):
    role: Role
    secondary_role: Role | None


def parse_role(value: object) -> Role | None:
    """Return the Role for a string (or Role), or None when it is not one of ours."""
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Role(value.strip().upper())
    except ValueError:
        return None


def effective_role(identity: HasRoles) -> Role:
    """
    The single acting role of a (possibly dual-role) identity.

    The secondary role wins only when its priority is strictly higher; a tie
    keeps the primary role.
    """
    secondary = identity.secondary_role
    if secondary is None:
        return identity.role
    if ROLE_PRIORITY[secondary] > ROLE_PRIORITY[identity.role]:
        return secondary
    return identity.role


def held_roles(identity: HasRoles) -> tuple[Role, ...]:
    """Primary role first, then the secondary role if it adds a distinct one."""
    secondary = identity.secondary_role
    if secondary is None or secondary == identity.role:
        return (identity.role,)
    return (identity.role, secondary)


def dashboard_path(role: Role | str | None) -> str:
    r = parse_role(role)
    if r is None:
        return LOGIN_PATH
    return DASHBOARD_PATHS[r]


def role_label(role: Role | str | None) -> str:
    r = parse_role(role)
    return ROLE_LABELS[r] if r is not None else "-"


def _check_role_tables() -> None:
    every = set(Role)
    for name, table in (
        ("ROLE_PRIORITY", ROLE_PRIORITY),
        ("DASHBOARD_PATHS", DASHBOARD_PATHS),
        ("ROLE_LABELS", ROLE_LABELS),
    ):
        missing = every - set(table)
        if missing:
            raise RuntimeError(f"{name} is missing roles: {', '.join(sorted(r.value for r in missing))}")


_check_role_tables()
