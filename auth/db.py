"""
auth/db.py -- Engine construction and driver-error translation shared by the
credential store and the SQL role registry.

Timeouts:
  SQLite:     "timeout" is the busy-wait before a locked database raises.
  PostgreSQL: "connect_timeout" bounds connection setup (whole seconds).
              "statement_timeout" (milliseconds) bounds each query.
  Any dialect: pool_timeout bounds the wait for a pooled connection.

Expired timeouts and unreachable databases surface from SQLAlchemy as
OperationalError or sqlalchemy.exc.TimeoutError; transient_errors() turns both
into TransientError so callers see a single retryable kind.
"""

from __future__ import annotations

import math
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from auth.errors import TransientError


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _engine_options(db_url: str, timeout: float) -> tuple[dict, dict]:
    """Return (connect_args, create_engine kwargs) for db_url."""
    connect_args: dict = {}
    kwargs: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = timeout
    else:
        if db_url.startswith("postgresql"):
            connect_args["connect_timeout"] = max(1, math.ceil(timeout))
            connect_args["options"] = f"-c statement_timeout={int(timeout * 1000)}"
        kwargs["pool_timeout"] = timeout
        kwargs["pool_pre_ping"] = True
    return connect_args, kwargs


def make_engine(db_url: str, timeout: float) -> Engine:
    """Create an Engine whose database waits are bounded by timeout seconds."""
    connect_args, kwargs = _engine_options(db_url, timeout)
    engine = create_engine(db_url, connect_args=connect_args, **kwargs)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


@contextmanager
def transient_errors(what: str) -> Iterator[None]:
    """Re-raise connectivity and timeout failures as TransientError."""
    try:
        yield
    except (OperationalError, PoolTimeoutError) as exc:
        raise TransientError(f"{what} unavailable: {exc.__class__.__name__}") from exc
