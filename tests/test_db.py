"""
tests/test_db.py -- Engine options built by auth/db.py.

Options are checked without connecting, so no PostgreSQL driver or server is
needed.
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from auth.db import _engine_options, transient_errors
from auth.errors import TransientError


def test_sqlite_options() -> None:
    connect_args, kwargs = _engine_options("sqlite:///claimgate.db", 2.5)
    assert connect_args == {"check_same_thread": False, "timeout": 2.5}
    assert kwargs == {}


def test_postgresql_bounds_connect_and_statements() -> None:
    connect_args, kwargs = _engine_options("postgresql://u:p@localhost/claimgate", 2.5)
    assert connect_args["connect_timeout"] == 3
    assert connect_args["options"] == "-c statement_timeout=2500"
    assert kwargs == {"pool_timeout": 2.5, "pool_pre_ping": True}


def test_postgresql_driver_url_gets_statement_timeout() -> None:
    connect_args, _ = _engine_options("postgresql+psycopg2://u:p@localhost/claimgate", 0.5)
    assert connect_args["connect_timeout"] == 1
    assert connect_args["options"] == "-c statement_timeout=500"


def test_transient_errors_maps_operational_error() -> None:
    with pytest.raises(TransientError, match="role registry unavailable") as exc_info:
        with transient_errors("role registry"):
            raise OperationalError("SELECT 1", {}, Exception("timeout"))
    assert exc_info.value.retryable is True
