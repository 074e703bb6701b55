import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.fincrm.models import Employee
from app.fincrm.roles import Department, Role
from app.fincrm.sessions import normalize_email
from scripts._db_utils import script_database_url, script_session


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the super admin account in an idempotent way.
    Does NOT overwrite an existing account's password or roles.
    """
    admin_email = normalize_email(os.environ.get("ADMIN_EMAIL") or "admin@financecrm.com")
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    admin_name = (os.environ.get("ADMIN_NAME") or "Administrator").strip()

    with script_session(script_database_url(database_url)) as s:
        admin = s.query(Employee).filter(Employee.email == admin_email).one_or_none()
        if admin is None:
            s.add(
                Employee(
                    name=admin_name,
                    email=admin_email,
                    password_hash=generate_password_hash(admin_password),
                    is_active=True,
                    role=Role.SUPER_ADMIN,
                    department=Department.ADMIN,
                    designation="Administrator",
                )
            )
            print(f"Created super admin: {admin_email}")
        else:
            print(f"Super admin already present: {admin_email}")

    print("Initialized database (seed_only).")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
