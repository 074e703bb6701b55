"""
Active-role selection for dual-role users.

The store remembers which workspace (role) a user is currently acting in and
persists `(activeRole, userId)` in browser-scoped storage. It has an explicit
two-phase lifecycle: nothing may reset the selection to a default until the
persisted value has been read back (`rehydrate()`), otherwise a role chosen
at login could be replaced by a stale default.
"""
from __future__ import annotations

import enum
import json
import logging
from typing import Protocol

from flask import g, session

from app.fincrm.roles import Role, held_roles, parse_role
from app.fincrm.sessions import Identity

logger = logging.getLogger(__name__)

STORAGE_KEY = "finance-crm-active-role"


class HydrationState(enum.Enum):
    UNHYDRATED = "unhydrated"
    HYDRATED = "hydrated"


class RoleStorage(Protocol):
    def get_item(self, name: str) -> str | None: ...

    def set_item(self, name: str, value: str) -> None: ...

    def remove_item(self, name: str) -> None: ...


class MemoryStorage:
    def __init__(self, initial: dict[str, str] | None = None):
        self.items: dict[str, str] = dict(initial or {})

    def get_item(self, name: str) -> str | None:
        return self.items.get(name)

    def set_item(self, name: str, value: str) -> None:
        self.items[name] = value

    def remove_item(self, name: str) -> None:
        self.items.pop(name, None)


class FlaskSessionStorage:
    """
    Browser-scoped storage backed by Flask's signed session cookie.

    The cookie is not marked permanent, so it lasts for the browser session
    only.
    """

    def get_item(self, name: str) -> str | None:
        value = session.get(name)
        return value if isinstance(value, str) else None

    def set_item(self, name: str, value: str) -> None:
        session[name] = value

    def remove_item(self, name: str) -> None:
        session.pop(name, None)


class ActiveRoleStore:
    def __init__(self, storage: RoleStorage, *, name: str = STORAGE_KEY):
        self.storage = storage
        self.name = name
        self.active_role: Role | None = None
        self.user_id: str = ""
        self.state = HydrationState.UNHYDRATED

    @property
    def hydrated(self) -> bool:
        return self.state is HydrationState.HYDRATED

    def init_for_user(self, user_id: object, primary_role: Role) -> None:
        if not self.hydrated:
            return
        uid = str(user_id)
        if self.user_id != uid:
            self._set(active_role=primary_role, user_id=uid)
        elif self.active_role is None:
            self._set(active_role=primary_role)

    def set_active_role(self, role: Role) -> None:
        # Callers check the role is one the identity holds.
        self._set(active_role=role)

    def set_role_for_new_login(self, user_id: object, role: Role) -> None:
        self._set(active_role=role, user_id=str(user_id))

    def rehydrate(self) -> None:
        """Read the persisted selection back and mark the store hydrated. Runs once."""
        if self.hydrated:
            return
        raw = self.storage.get_item(self.name)
        if raw:
            try:
                data = json.loads(raw)
            except ValueError:
                logger.warning("Discarding unreadable active-role state")
                data = None
            if isinstance(data, dict):
                self.active_role = parse_role(data.get("activeRole"))
                self.user_id = str(data.get("userId") or "")
        self.state = HydrationState.HYDRATED

    def clear(self) -> None:
        self.active_role = None
        self.user_id = ""
        self.storage.remove_item(self.name)

    def _set(self, **changes) -> None:
        if "active_role" in changes:
            self.active_role = changes["active_role"]
        if "user_id" in changes:
            self.user_id = changes["user_id"]
        self._persist()

    def _persist(self) -> None:
        # The hydration state is recomputed on every load and never stored.
        payload = {
            "activeRole": self.active_role.value if self.active_role else "",
            "userId": self.user_id,
        }
        self.storage.set_item(self.name, json.dumps(payload, sort_keys=True))


def load_active_role_store() -> None:
    """
    Per-request ownership point: rehydrate from the browser session first,
    then reconcile against the authenticated identity.
    """
    identity: Identity | None = getattr(g, "identity", None)
    store = ActiveRoleStore(FlaskSessionStorage())
    store.rehydrate()
    if identity is not None:
        store.init_for_user(identity.id, identity.role)
    g.active_role_store = store


def active_role_store() -> ActiveRoleStore:
    store = getattr(g, "active_role_store", None)
    if store is None:
        load_active_role_store()
        store = g.active_role_store
    return store


def current_active_role(identity: Identity) -> Role:
    """The workspace the user is acting in, limited to roles the identity holds."""
    store = active_role_store()
    if store.user_id == str(identity.id) and store.active_role in held_roles(identity):
        return store.active_role  # type: ignore[return-value]
    return identity.role
