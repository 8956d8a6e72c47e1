from __future__ import annotations

import os
from contextlib import contextmanager

from sqlalchemy.orm import Session

from app.feedback.db import make_engine, make_sessionmaker


def resolve_database_url(database_url: str | None = None) -> str:
    return (database_url or os.environ.get("DATABASE_URL") or "sqlite:///feedback.db").strip()


@contextmanager
def script_session(db_url: str):
    # Same engine setup as the app so SQLite foreign keys and SAVEPOINTs behave identically.
    engine = make_engine(db_url)
    sm = make_sessionmaker(engine)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
