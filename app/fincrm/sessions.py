"""
Session provider: credential checks and the signed, stateless session token.

The token is an itsdangerous timed signature over the identity claims (the
same primitive Flask's own session cookie uses). Nothing is kept server-side;
a token stays valid until its 30-day age limit or until the client drops it.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Protocol

from flask import current_app
from itsdangerous import BadData, URLSafeTimedSerializer
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from app.fincrm.roles import Role, parse_role

SESSION_SALT = "fincrm.session.v1"
DEFAULT_MAX_AGE = timedelta(days=30)

# Compared against when the email is unknown so both failure paths do the same work.
_DUMMY_HASH = generate_password_hash("fincrm-no-such-user")


@dataclass(frozen=True)
class Identity:
    id: int
    email: str
    name: str
    role: Role
    secondary_role: Role | None
    department: str
    designation: str

    def to_claims(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role.value,
            "secondaryRole": self.secondary_role.value if self.secondary_role else None,
            "department": self.department,
            "designation": self.designation,
        }

    @classmethod
    def from_claims(cls, claims: Any) -> "Identity":
        """Rebuild an identity from token claims. Raises ValueError on any malformed field."""
        if not isinstance(claims, dict):
            raise ValueError("claims must be an object")
        role = parse_role(claims.get("role"))
        if role is None:
            raise ValueError("unknown primary role")
        raw_secondary = claims.get("secondaryRole")
        secondary = parse_role(raw_secondary) if raw_secondary else None
        if raw_secondary and secondary is None:
            raise ValueError("unknown secondary role")
        user_id = claims.get("id")
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            raise ValueError("id must be an integer")
        return cls(
            id=user_id,
            email=str(claims.get("email") or ""),
            name=str(claims.get("name") or ""),
            role=role,
            secondary_role=secondary,
            department=str(claims.get("department") or ""),
            designation=str(claims.get("designation") or ""),
        )


@dataclass(frozen=True)
class AuthFailure:
    """The one authentication failure outcome. Never says which check failed."""

    message: str = "Invalid email or password."


AUTH_FAILURE = AuthFailure()


class CredentialRecord(Protocol):
    id: int
    name: str
    email: str
    password_hash: str
    is_active: bool
    role: Role
    secondary_role: Role | None
    department: Any
    designation: str


class CredentialStore(Protocol):
    def find_by_email(self, normalized_email: str) -> CredentialRecord | None: ...


class EmployeeCredentialStore:
    """CredentialStore over the employees table."""

    def __init__(self, s: Session):
        self.s = s

    def find_by_email(self, normalized_email: str):
        from app.fincrm.models import Employee

        return self.s.query(Employee).filter(Employee.email == normalized_email).one_or_none()


def normalize_email(email: str | None) -> str:
    return (email or "").strip().casefold()


def identity_from_record(record: CredentialRecord) -> Identity:
    department = record.department
    return Identity(
        id=record.id,
        email=record.email,
        name=record.name,
        role=record.role,
        secondary_role=record.secondary_role,
        department=getattr(department, "value", department) or "",
        designation=record.designation or "",
    )


def authenticate(store: CredentialStore, email: str | None, password: str | None) -> Identity | AuthFailure:
    normalized = normalize_email(email)
    password = password or ""
    if not normalized or not password:
        return AUTH_FAILURE

    record = store.find_by_email(normalized)
    if record is None:
        check_password_hash(_DUMMY_HASH, password)
        return AUTH_FAILURE
    if not check_password_hash(record.password_hash, password):
        return AUTH_FAILURE
    if not record.is_active:
        return AUTH_FAILURE
    return identity_from_record(record)


class SessionProvider:
    def __init__(self, secret_key: str, *, max_age: timedelta = DEFAULT_MAX_AGE, salt: str = SESSION_SALT):
        if not secret_key:
            raise ValueError("secret_key is required")
        self.max_age = max_age
        self._serializer = URLSafeTimedSerializer(secret_key, salt=salt)

    @property
    def max_age_seconds(self) -> int:
        return int(self.max_age.total_seconds())

    def issue_session(self, identity: Identity) -> str:
        return self._serializer.dumps(identity.to_claims())

    def verify_session(self, token: str | None) -> Identity | None:
        """Fails closed: any signature, expiry or payload problem returns None."""
        if not token:
            return None
        try:
            claims = self._serializer.loads(token, max_age=self.max_age_seconds)
            return Identity.from_claims(claims)
        except (BadData, ValueError, TypeError, KeyError):
            return None


def init_sessions(app) -> SessionProvider:
    provider = SessionProvider(
        app.config["SECRET_KEY"],
        max_age=timedelta(days=int(app.config.get("SESSION_MAX_AGE_DAYS") or 30)),
    )
    app.extensions["session_provider"] = provider
    return provider


def session_provider() -> SessionProvider:
    return current_app.extensions["session_provider"]
