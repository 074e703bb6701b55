from __future__ import annotations

import os
from contextlib import contextmanager

from sqlalchemy.orm import Session

from app.fincrm.db import build_engine, make_sessionmaker


def script_database_url(database_url: str | None = None) -> str:
    return (database_url or os.environ.get("DATABASE_URL") or "sqlite:///fincrm.db").strip()


@contextmanager
def script_session(db_url: str):
    engine = build_engine(db_url)
    s: Session = make_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
