"""
Release-phase helper: migrate the schema, then seed the super admin.

Refuses to run without DATABASE_URL, and refuses SQLite when ENV is production.
Both steps are idempotent, so every deploy can run this.

Usage:
  python scripts/release.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _require_env(name: str) -> str:
    v = (os.environ.get(name) or "").strip()
    if not v:
        raise RuntimeError(f"Missing required environment variable {name}.")
    return v


def upgrade_database(db_url: str, revision: str = "head") -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    # ConfigParser interpolation: a literal % in a password must be doubled.
    cfg.set_main_option("sqlalchemy.url", db_url.replace("%", "%%"))
    command.upgrade(cfg, revision)


def run_release() -> None:
    db_url = _require_env("DATABASE_URL")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release against a sqlite DATABASE_URL in production.")

    print(f"=== FinanceCRM release (ENV={env or 'unset'}) ===", flush=True)
    upgrade_database(db_url)
    print("Schema at head.", flush=True)

    from scripts import init_db

    init_db.seed_only(database_url=db_url)
    print("=== FinanceCRM release done ===", flush=True)


def main() -> None:
    run_release()


if __name__ == "__main__":
    main()
