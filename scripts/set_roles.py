#!/usr/bin/env python3
"""Set an employee's primary and/or secondary role.

Usage:
  python scripts/set_roles.py --email dealer@example.com --role EQUITY_DEALER
  python scripts/set_roles.py --email dealer@example.com --secondary-role MF_DEALER
  python scripts/set_roles.py --email dealer@example.com --clear-secondary
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.fincrm.models import Employee
from app.fincrm.roles import Role, parse_role
from app.fincrm.sessions import normalize_email
from scripts._db_utils import script_database_url, script_session


def _role_arg(value: str) -> Role:
    role = parse_role(value)
    if role is None:
        raise argparse.ArgumentTypeError(f"unknown role {value!r} (one of: {', '.join(r.value for r in Role)})")
    return role


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="Employee email")
    parser.add_argument("--role", type=_role_arg, help="New primary role")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--secondary-role", type=_role_arg, help="New secondary role")
    group.add_argument("--clear-secondary", action="store_true", help="Remove the secondary role")
    args = parser.parse_args()

    if args.role is None and args.secondary_role is None and not args.clear_secondary:
        parser.error("nothing to change")

    with script_session(script_database_url()) as s:
        emp = s.query(Employee).filter(Employee.email == normalize_email(args.email)).one_or_none()
        if emp is None:
            print(f"Employee not found: {args.email}")
            sys.exit(1)
        if args.role is not None:
            emp.role = args.role
        if args.secondary_role is not None:
            emp.secondary_role = args.secondary_role
        if args.clear_secondary:
            emp.secondary_role = None
        if emp.secondary_role is not None and emp.secondary_role == emp.role:
            print("WARNING: secondary role equals primary role; stored as-is.")
        secondary = emp.secondary_role.value if emp.secondary_role else "-"
        print(f"{emp.email}: role={emp.role.value} secondary={secondary}")
        print("Existing sessions keep their old roles until the user signs in again.")


if __name__ == "__main__":
    main()
