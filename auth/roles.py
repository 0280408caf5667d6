"""
auth/roles.py -- Role validation against an external registry of role names.

A role tag may only be attached to a user if the surrounding authorization
system recognizes it. Two registries are provided:

  StaticRoleValidator -- a fixed set, by default Settings.known_roles
      (anonymous, webuser, admin).

  SqlRoleValidator -- a read-only query against a table this core does not
      own (the equivalent of looking a name up in pg_roles). Role creation is
      the database administrator's job, never this module's.

Failure policy: fail closed. If the registry cannot be reached, exists()
raises TransientError instead of returning an answer, so no write that
depends on it can go through with an unchecked role.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import column, select, table
from sqlalchemy.engine import Engine

from auth.db import make_engine, transient_errors
from core.config import get_settings


class RoleValidator:
    """Interface: answers whether a role name is recognized."""

    def exists(self, role: str) -> bool:
        raise NotImplementedError


class StaticRoleValidator(RoleValidator):
    def __init__(self, roles: Iterable[str] | None = None) -> None:
        self._roles = frozenset(roles if roles is not None else get_settings().known_roles)

    def exists(self, role: str) -> bool:
        return role in self._roles


class SqlRoleValidator(RoleValidator):
    """Looks role names up in an existing table.

    Usage:
        validator = SqlRoleValidator("postgresql://.../db", table_name="pg_roles", column_name="rolname")
        validator.exists("webuser")
        validator.close()

    table_name and column_name are identifiers chosen by the operator at
    construction time, never request input. The role value itself is always
    a bound parameter.
    """

    def __init__(
        self,
        db_url: str,
        table_name: str = "roles",
        column_name: str = "name",
        timeout: float | None = None,
    ) -> None:
        timeout = timeout if timeout is not None else get_settings().store_timeout_seconds
        self.engine: Engine = make_engine(db_url, timeout)
        self._name_col = column(column_name)
        self._roles = table(table_name, self._name_col)

    def exists(self, role: str) -> bool:
        query = select(self._name_col).select_from(self._roles).where(self._name_col == role).limit(1)
        with transient_errors("role registry"):
            with self.engine.connect() as conn:
                row = conn.execute(query).fetchone()
        return row is not None

    def close(self) -> None:
        self.engine.dispose()
