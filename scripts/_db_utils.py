"""Database plumbing for the maintenance scripts (release, seed, cleanup)."""
from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session

from app.impgeo.config import load_config, normalize_database_url
from app.impgeo.db import engine_options, make_sessionmaker, run_with_retry

# scripts run one at a time; no need for the web pool
SCRIPT_POOL_SIZE = 2


def resolve_database_url(database_url: str | None = None) -> str:
    """Explicit URL first, then the app config (DATABASE_URL or DB_* parts)."""
    if database_url and database_url.strip():
        return normalize_database_url(database_url)
    return load_config()["DATABASE_URL"]


def create_script_engine(db_url: str):
    config = {**load_config(), "DB_POOL_SIZE": SCRIPT_POOL_SIZE}
    return create_engine(db_url, **engine_options(config, db_url))


@contextmanager
def script_session(db_url: str):
    engine = create_script_engine(db_url)
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


def wait_for_database(db_url: str) -> None:
    """Ping the database, retrying while it still refuses connections (fresh containers)."""
    with script_session(db_url) as s:
        run_with_retry(s, lambda: s.execute(text("SELECT 1")).scalar())
