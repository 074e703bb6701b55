"""initial access core tables

Revision ID: 3f1a2b4c5d6e
Revises:
Create Date: 2026-10-19 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f1a2b4c5d6e"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ROLE_VALUES = ("SUPER_ADMIN", "ADMIN", "EQUITY_DEALER", "MF_DEALER", "BACK_OFFICE")
DEPARTMENT_VALUES = ("EQUITY", "MUTUAL_FUND", "BACK_OFFICE", "ADMIN")


def _role(name: str) -> sa.Enum:
    return sa.Enum(*ROLE_VALUES, name=name, native_enum=False, length=32, create_constraint=False)


def upgrade() -> None:
    """Create employees, login logs, notifications, activity logs and password reset tokens."""
    conn = op.get_bind()
    existing_tables = set(sa.inspect(conn).get_table_names())

    if "employees" not in existing_tables:
        op.create_table(
            "employees",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("phone", sa.String(32), nullable=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("role", _role("role"), nullable=False),
            sa.Column("secondary_role", _role("role"), nullable=True),
            sa.Column(
                "department",
                sa.Enum(*DEPARTMENT_VALUES, name="department", native_enum=False, length=32, create_constraint=False),
                nullable=False,
            ),
            sa.Column("designation", sa.String(128), nullable=False, server_default=""),
            sa.Column("last_seen_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "employee_login_logs" not in existing_tables:
        op.create_table(
            "employee_login_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("employee_id", sa.Integer(), sa.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False),
            sa.Column("login_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("logout_at", sa.DateTime(), nullable=True),
            sa.Column("ip_address", sa.String(64), nullable=True),
        )
        op.create_index("idx_login_logs_employee_login_at", "employee_login_logs", ["employee_id", "login_at"])

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False),
            sa.Column("type", sa.String(64), nullable=False),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("link", sa.String(512), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_notifications_user_read", "notifications", ["user_id", "is_read"])

    if "activity_logs" not in existing_tables:
        op.create_table(
            "activity_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("module", sa.String(64), nullable=False),
            sa.Column("details", sa.Text(), nullable=True),
            sa.Column("ip_address", sa.String(64), nullable=True),
        )
        op.create_index("idx_activity_logs_module_created", "activity_logs", ["module", "created_at"])

    if "password_reset_tokens" not in existing_tables:
        op.create_table(
            "password_reset_tokens",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("otp", sa.String(16), nullable=False, server_default=""),
            sa.Column("token", sa.String(64), nullable=True, unique=True),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_password_reset_tokens_email", "password_reset_tokens", ["email"])


def downgrade() -> None:
    op.drop_index("ix_password_reset_tokens_email", table_name="password_reset_tokens")
    op.drop_table("password_reset_tokens")
    op.drop_index("idx_activity_logs_module_created", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_index("idx_notifications_user_read", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("idx_login_logs_employee_login_at", table_name="employee_login_logs")
    op.drop_table("employee_login_logs")
    op.drop_table("employees")
