import pytest
from werkzeug.security import generate_password_hash

from app.fincrm import auth as auth_module
from app.fincrm import create_app
from app.fincrm.db import create_schema, session_scope
from app.fincrm.models import Employee
from app.fincrm.roles import Department, Role
from tests.helpers import PASSWORD


# email -> (name, role, secondary_role, department)
EMPLOYEES = {
    "super@example.com": ("Super Admin", Role.SUPER_ADMIN, None, Department.ADMIN),
    "admin@example.com": ("Admin", Role.ADMIN, None, Department.ADMIN),
    "equity@example.com": ("Equity Dealer", Role.EQUITY_DEALER, None, Department.EQUITY),
    "mf@example.com": ("MF Dealer", Role.MF_DEALER, None, Department.MUTUAL_FUND),
    "dual@example.com": ("Dual Dealer", Role.EQUITY_DEALER, Role.MF_DEALER, Department.EQUITY),
    "backoffice@example.com": ("Back Office Lead", Role.BACK_OFFICE, Role.ADMIN, Department.BACK_OFFICE),
    "bo@example.com": ("Back Office", Role.BACK_OFFICE, None, Department.BACK_OFFICE),
}


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("MAIL_BACKEND", "log")
    for k in ("SESSION_MAX_AGE_DAYS", "OTP_TTL_MINUTES", "RESET_TOKEN_TTL_MINUTES", "RESEND_API_KEY"):
        monkeypatch.delenv(k, raising=False)
    auth_module._login_attempts.clear()

    app = create_app()
    create_schema(app)

    with session_scope(app) as s:
        for email, (name, role, secondary, department) in EMPLOYEES.items():
            s.add(
                Employee(
                    name=name,
                    email=email,
                    password_hash=generate_password_hash(PASSWORD),
                    is_active=True,
                    role=role,
                    secondary_role=secondary,
                    department=department,
                    designation=name,
                )
            )
        s.add(
            Employee(
                name="Former Employee",
                email="gone@example.com",
                password_hash=generate_password_hash(PASSWORD),
                is_active=False,
                role=Role.EQUITY_DEALER,
                department=Department.EQUITY,
                designation="Dealer",
            )
        )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()
