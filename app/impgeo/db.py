from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from collections.abc import Callable, Generator
from typing import TypeVar

from flask import Flask, g
from sqlalchemy import create_engine, event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONNECT_RETRIES = 3
CONNECT_RETRY_DELAY = 1.0  # seconds, multiplied by the attempt number


def engine_options(config: dict, db_url: str) -> dict[str, object]:
    """create_engine kwargs shared by the app and the maintenance scripts."""
    options: dict[str, object] = {
        "future": True,
        "pool_pre_ping": True,
    }
    if db_url.startswith("postgres"):
        options.update(
            {
                "pool_recycle": 1800,
                "pool_size": int(config.get("DB_POOL_SIZE") or 20),
                "max_overflow": int(config.get("DB_MAX_OVERFLOW") or 0),
                "pool_timeout": int(config.get("DB_POOL_TIMEOUT") or 30),
                "connect_args": {"connect_timeout": int(config.get("DB_CONNECT_TIMEOUT") or 2)},
            }
        )
    return options


def make_sessionmaker(engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def init_db(app: Flask) -> None:
    db_url = app.config["DATABASE_URL"]
    engine = create_engine(db_url, **engine_options(app.config, db_url))
    if app.config.get("ENV") != "production":
        @event.listens_for(engine, "checkout")
        def _receive_checkout(dbapi_connection, connection_record, connection_proxy):  # type: ignore[no-redef]
            app.logger.debug("DB connection checkout from pool")
    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = make_sessionmaker(engine)


def db_session(app: Flask | None = None) -> Session:
    """
    Request-scoped session. Use inside request handlers.
    """
    if hasattr(g, "db_session") and g.db_session is not None:
        return g.db_session
    if app is None:
        from flask import current_app

        app = current_app
    sm = app.extensions["sqlalchemy_sessionmaker"]
    g.db_session = sm()  # type: ignore[assignment]
    return g.db_session


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = getattr(g, "db_session", None)
    if s is not None:
        try:
            s.close()
        except Exception:
            pass
        g.db_session = None


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """
    Non-request helper for scripts: yields a session and commits/rolls back.
    """
    sm = app.extensions["sqlalchemy_sessionmaker"]
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def _is_connection_refused(exc: OperationalError) -> bool:
    text = str(getattr(exc, "orig", None) or exc).lower()
    return "connection refused" in text or "econnrefused" in text


def run_with_retry(
    s: Session,
    work: Callable[[], T],
    *,
    retries: int = CONNECT_RETRIES,
    delay: float = CONNECT_RETRY_DELAY,
) -> T:
    """
    Run a unit of DB work, retrying when the server refuses the connection
    (database restarting, pool not ready yet). Other errors propagate at once.
    """
    attempt = 1
    while True:
        try:
            return work()
        except OperationalError as e:
            if attempt >= retries or not _is_connection_refused(e):
                raise
            s.rollback()
            logger.warning("Database refused connection (attempt %s/%s); retrying", attempt, retries)
            time.sleep(delay * attempt)
            attempt += 1
