"""
tests/conftest.py -- Shared fixtures for claimgate tests.

This module provides:
  - hasher: a PasswordHasher at bcrypt's minimum cost (4 rounds)
  - store: an isolated CredentialStore on a named shared-memory SQLite DB
  - service: an AuthService over that store
  - file_db_url: a SQLite file URL under tmp_path, for tests that run
    several threads against the same database

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because the pool may hand different connections to different calls. Plain
:memory: DBs are per-connection and would present a blank schema to each.
Each store gets a unique name so tests never share state.

DEBUG and BCRYPT_ROUNDS must be set before any auth/core import so
get_settings() auto-generates SECRET_KEY and every default PasswordHasher
(including the CLI's) runs at test speed.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator

# CRITICAL: Set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest

from auth.hashing import PasswordHasher
from auth.roles import StaticRoleValidator
from auth.service import AuthService
from auth.store import CredentialStore


def memory_db_url() -> str:
    return f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def memory_url() -> str:
    """A fresh, isolated shared-memory SQLite URL."""
    return memory_db_url()


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def store(hasher: PasswordHasher) -> Generator[CredentialStore, None, None]:
    s = CredentialStore(
        db_url=memory_db_url(),
        hasher=hasher,
        role_validator=StaticRoleValidator(["anonymous", "webuser", "admin"]),
    )
    yield s
    s.close()


@pytest.fixture
def service(store: CredentialStore) -> AuthService:
    return AuthService(store)


@pytest.fixture
def file_db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'claimgate_test.db'}"
