from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from app.fincrm.roles import Department, Role


class Base(DeclarativeBase):
    pass


def _role_column(nullable: bool):
    return mapped_column(
        Enum(Role, name="role", native_enum=False, validate_strings=True, length=32),
        nullable=nullable,
    )


class Employee(Base):
    """
    Credential-store row and the source of every Identity.

    `secondary_role` may be NULL. It is not constrained to differ from `role`.
    """

    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)  # stored lower-case
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    role: Mapped[Role] = _role_column(nullable=False)
    secondary_role: Mapped[Role | None] = _role_column(nullable=True)
    department: Mapped[Department] = mapped_column(
        Enum(Department, name="department", native_enum=False, validate_strings=True, length=32),
        nullable=False,
    )
    designation: Mapped[str] = mapped_column(String(128), nullable=False, default="")

    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    login_logs: Mapped[list["EmployeeLoginLog"]] = relationship(
        back_populates="employee",
        cascade="all, delete-orphan",
        order_by="EmployeeLoginLog.login_at.desc()",
    )


class EmployeeLoginLog(Base):
    __tablename__ = "employee_login_logs"
    __table_args__ = (Index("idx_login_logs_employee_login_at", "employee_id", "login_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    login_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    logout_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)

    employee: Mapped[Employee] = relationship(back_populates="login_logs")


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (Index("idx_notifications_user_read", "user_id", "is_read"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "TASK_ASSIGNED"
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str | None] = mapped_column(String(512), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "link": self.link,
            "isRead": self.is_read,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class ActivityLog(Base):
    """
    Append-only activity trail (who did what, in which module).
    """

    __tablename__ = "activity_logs"
    __table_args__ = (Index("idx_activity_logs_module_created", "module", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    user_id: Mapped[int | None] = mapped_column(ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)
    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "LOGIN"
    module: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "AUTH"
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)

    user: Mapped[Employee | None] = relationship(lazy="joined")


class PasswordResetToken(Base):
    """
    One row per in-flight reset. `otp` is cleared once verified and `token`
    becomes the short-lived reset credential.
    """

    __tablename__ = "password_reset_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    otp: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    token: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
