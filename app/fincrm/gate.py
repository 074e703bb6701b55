"""
Route authorization gate.

`evaluate()` is a pure function of (path, identity). `install_gate()` hooks it
into Flask so it runs before every page and API handler.

Request classes:
  public (login page, any /api path)  -> pass; logged-in users on /login go to their dashboard
  unauthenticated + protected         -> /login
  authenticated + protected           -> rule table, either held role may satisfy it
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import Flask, g, redirect, request

from app.fincrm.roles import LOGIN_PATH, Role, dashboard_path, effective_role, held_roles
from app.fincrm.sessions import Identity

logger = logging.getLogger(__name__)

API_PREFIX = "/api"
BYPASS_PREFIXES = ("/static/", "/health", "/healthz")

# (path prefixes, roles allowed). First match wins; unmatched paths are open to any session.
ROUTE_RULES: tuple[tuple[tuple[str, ...], frozenset[Role]], ...] = (
    (("/equity",), frozenset({Role.EQUITY_DEALER})),
    (("/mf",), frozenset({Role.MF_DEALER})),
    (("/backoffice",), frozenset({Role.BACK_OFFICE})),
    (("/dashboard", "/brokerage", "/masters"), frozenset({Role.SUPER_ADMIN, Role.ADMIN})),
)


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    location: str | None = None

    @classmethod
    def allow(cls) -> "GateDecision":
        return cls(allowed=True)

    @classmethod
    def redirect_to(cls, location: str) -> "GateDecision":
        return cls(allowed=False, location=location)


def is_public(path: str) -> bool:
    return path.startswith(LOGIN_PATH) or path.startswith(API_PREFIX)


def allowed_roles_for(path: str) -> frozenset[Role] | None:
    """Roles allowed on `path`, or None when any authenticated user may enter."""
    for prefixes, roles in ROUTE_RULES:
        if path.startswith(prefixes):
            return roles
    return None


def evaluate(path: str, identity: Identity | None) -> GateDecision:
    if is_public(path):
        if identity is not None and path.startswith(LOGIN_PATH):
            return GateDecision.redirect_to(dashboard_path(effective_role(identity)))
        return GateDecision.allow()

    if identity is None:
        return GateDecision.redirect_to(LOGIN_PATH)

    allowed = allowed_roles_for(path)
    if allowed is None:
        return GateDecision.allow()
    if any(r in allowed for r in held_roles(identity)):
        return GateDecision.allow()
    return GateDecision.redirect_to(dashboard_path(identity.role))


def install_gate(app: Flask) -> None:
    """Register the gate; must run after the identity loader."""

    @app.before_request
    def _route_gate():
        path = request.path
        if path.startswith(BYPASS_PREFIXES):
            return None
        identity: Identity | None = getattr(g, "identity", None)
        decision = evaluate(path, identity)
        if decision.allowed:
            return None
        if identity is not None and not is_public(path):
            logger.warning(
                "Route denied: user_id=%s path=%s redirect=%s request_id=%s",
                identity.id,
                path,
                decision.location,
                getattr(g, "request_id", None),
            )
        return redirect(decision.location)
