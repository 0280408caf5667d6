"""
auth/store.py -- SQLAlchemy Core persistence layer for user credentials.

Pattern: Repository + Data Mapper.
CredentialStore is the repository; _row_to_record is the mapper. Service and
CLI code never touch SQL directly.

Write interceptors:
  Every write goes through _before_insert() or _before_update() before any
  SQL runs. They are the only place where:
    - the role is checked against the RoleValidator (create and update), and
    - a plaintext secret is turned into a bcrypt hash.
  A secret is hashed only when it is new or differs from the stored hash, so
  writing the stored hash back unchanged does not hash a hash.

  Hashing happens before the write transaction opens. The transaction itself
  only holds the row for the INSERT/UPDATE statement.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Callers pass plaintext secrets; pre-hashed values are never accepted from
  outside (a bcrypt-shaped input is hashed like any other string).

Uniqueness:
  identifier is the primary key. Two concurrent inserts for the same
  identifier race on the key; the loser's IntegrityError becomes
  DuplicateIdentifierError. No application-level lock is needed.

DB path: claimgate.db at the project root unless DATABASE_URL says otherwise.
"""

from __future__ import annotations

import logging

from sqlalchemy import Boolean, CheckConstraint, Column, MetaData, Table, Text, false, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.db import make_engine, transient_errors
from auth.errors import (
    DuplicateIdentifierError,
    InvalidIdentifierError,
    InvalidRoleError,
    InvalidSecretError,
    NotFoundError,
    TransientError,
)
from auth.hashing import MAX_SECRET_BYTES, PasswordHasher
from auth.models import MAX_FIELD_LENGTH, UserRecord, is_valid_identifier
from auth.roles import RoleValidator, StaticRoleValidator
from core.config import get_settings

logger = logging.getLogger("claimgate.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("identifier", Text, primary_key=True),
    Column("secret_hash", Text, nullable=False),
    Column("role", Text, nullable=False),
    Column("verified", Boolean, nullable=False, server_default=false()),
    CheckConstraint(f"length(secret_hash) < {MAX_FIELD_LENGTH}", name="ck_users_secret_hash_length"),
    CheckConstraint(f"length(role) < {MAX_FIELD_LENGTH}", name="ck_users_role_length"),
)

# Fields update() accepts. identifier is immutable; verified belongs to the
# external verification workflow.
_UPDATABLE = frozenset({"secret", "role"})


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for UserRecord entities.

    Usage:
        store = CredentialStore("sqlite:///claimgate.db")
        record = store.insert("a@b.com", "pw123", "webuser")
        store.update_secret("a@b.com", "new-secret")
        store.close()
    """

    def __init__(
        self,
        db_url: str | None = None,
        hasher: PasswordHasher | None = None,
        role_validator: RoleValidator | None = None,
        timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self.hasher = hasher or PasswordHasher()
        self.role_validator = role_validator or StaticRoleValidator()
        self.engine: Engine = make_engine(
            db_url or settings.database_url,
            timeout if timeout is not None else settings.store_timeout_seconds,
        )
        try:
            with transient_errors("credential store"):
                _metadata.create_all(self.engine)
        except TransientError:
            self.engine.dispose()
            raise

    # ------------------------------------------------------------------
    # Write interceptors
    # ------------------------------------------------------------------

    def _check_role(self, role: str) -> None:
        if not role or len(role) >= MAX_FIELD_LENGTH:
            raise InvalidRoleError(f"invalid role name length: {len(role)}")
        if not self.role_validator.exists(role):
            raise InvalidRoleError(f"unknown role: {role}")

    def _hash_secret(self, secret: str) -> str:
        if not secret:
            raise InvalidSecretError("secret must not be empty")
        try:
            raw = secret.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise InvalidSecretError("secret must be valid UTF-8") from exc
        if len(raw) > MAX_SECRET_BYTES:
            raise InvalidSecretError(f"secret must be at most {MAX_SECRET_BYTES} bytes")
        return self.hasher.hash(secret)

    def _before_insert(self, identifier: str, secret: str, role: str) -> dict:
        if not is_valid_identifier(identifier):
            raise InvalidIdentifierError(f"identifier is not email-shaped: {identifier!r}")
        self._check_role(role)
        return {"identifier": identifier, "secret_hash": self._hash_secret(secret), "role": role}

    def _before_update(self, current: UserRecord, fields: dict) -> dict:
        values: dict = {}
        if "role" in fields:
            self._check_role(fields["role"])
            values["role"] = fields["role"]
        if "secret" in fields:
            if fields["secret"] != current.secret_hash:
                values["secret_hash"] = self._hash_secret(fields["secret"])
            else:
                logger.debug("secret unchanged for %s, not re-hashing", current.identifier)
        return values

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, identifier: str, secret: str, role: str) -> UserRecord:
        """Hash secret, validate role, and insert a new record.

        Raises InvalidIdentifierError, InvalidSecretError, InvalidRoleError,
        DuplicateIdentifierError or TransientError. Nothing is written unless
        every check passes.
        """
        values = self._before_insert(identifier, secret, role)
        try:
            with transient_errors("credential store"):
                with self.engine.begin() as conn:
                    conn.execute(_users.insert().values(**values))
        except IntegrityError as exc:
            raise DuplicateIdentifierError(f"identifier already registered: {identifier}") from exc
        return UserRecord(
            identifier=values["identifier"],
            secret_hash=values["secret_hash"],
            role=values["role"],
            verified=False,
        )

    def update(self, identifier: str, **fields) -> UserRecord:
        """Update mutable fields on an existing record and return the result.

        Accepted fields: secret (plaintext, hashed if changed), role.
        Raises NotFoundError if identifier is not stored.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        current = self.find_by_identifier(identifier)
        values = self._before_update(current, fields)
        if values:
            with transient_errors("credential store"):
                with self.engine.begin() as conn:
                    result = conn.execute(_users.update().where(_users.c.identifier == identifier).values(**values))
            if result.rowcount == 0:
                raise NotFoundError(f"no such user: {identifier}")
        return UserRecord(
            identifier=current.identifier,
            secret_hash=values.get("secret_hash", current.secret_hash),
            role=values.get("role", current.role),
            verified=current.verified,
        )

    def update_secret(self, identifier: str, new_secret: str) -> None:
        self.update(identifier, secret=new_secret)

    def update_role(self, identifier: str, new_role: str) -> None:
        self.update(identifier, role=new_role)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, identifier: str) -> UserRecord | None:
        """Look up a record by exact identifier. Returns None if not found."""
        with transient_errors("credential store"):
            with self.engine.connect() as conn:
                row = conn.execute(_users.select().where(_users.c.identifier == identifier)).fetchone()
        return _row_to_record(row) if row is not None else None

    def find_by_identifier(self, identifier: str) -> UserRecord:
        """Like get(), but raises NotFoundError instead of returning None."""
        record = self.get(identifier)
        if record is None:
            raise NotFoundError(f"no such user: {identifier}")
        return record

    def list_users(self) -> list[UserRecord]:
        """Return all records ordered by identifier."""
        with transient_errors("credential store"):
            with self.engine.connect() as conn:
                rows = conn.execute(_users.select().order_by(_users.c.identifier)).fetchall()
        return [_row_to_record(r) for r in rows]

    def count(self) -> int:
        with transient_errors("credential store"):
            with self.engine.connect() as conn:
                result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_record(row) -> UserRecord:
    return UserRecord(
        identifier=row.identifier,
        secret_hash=row.secret_hash,
        role=row.role,
        verified=bool(row.verified),
    )
