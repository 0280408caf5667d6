"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data containers, near-zero logic). Stores and the
service do the work; these only own domain shape.

Layer rule: no imports from outside auth/.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

MASKED_SECRET = "***"

# Same shape check as the users.identifier column constraint: something, an
# "@", something, a ".", something.
IDENTIFIER_RE = re.compile(r".+@.+\..+", re.IGNORECASE)

# Exclusive upper bound on stored secret_hash and role lengths.
MAX_FIELD_LENGTH = 512


def is_valid_identifier(identifier: str) -> bool:
    return IDENTIFIER_RE.fullmatch(identifier) is not None


@dataclass
class UserRecord:
    """A persisted user.

    identifier is the email-shaped login name and the primary key; it never
    changes after insert. secret_hash is always a bcrypt hash -- the store
    hashes plaintext on the way in, so no caller ever sees a raw secret here.

    verified is owned by an external verification workflow. This core reads
    it but never sets it.
    """

    identifier: str
    secret_hash: str
    role: str
    verified: bool = False


@dataclass(frozen=True)
class Claims:
    """The authenticated-session payload issued after a successful login.

    Built fresh per login. Carries no secret material.
    """

    role: str
    identifier: str


@dataclass(frozen=True)
class UserView:
    """Masked projection of a UserRecord for external listings."""

    identifier: str
    role: str
    verified: bool
    secret: str = MASKED_SECRET

    @classmethod
    def from_record(cls, record: UserRecord) -> UserView:
        return cls(identifier=record.identifier, role=record.role, verified=record.verified)


@dataclass(frozen=True)
class CallerContext:
    """Identity of whoever is making the call, passed explicitly to every read
    or write that depends on it.

    identifier is None for anonymous callers. privileged is decided by the
    service from the role (role == Settings.admin_role) when the context is
    built through AuthService.caller_from_claims(); it is never inferred from
    ambient state.
    """

    identifier: str | None
    role: str
    privileged: bool = False

    def can_see(self, identifier: str) -> bool:
        """Owner-or-admin predicate used by every read of another user's record."""
        return self.privileged or (self.identifier is not None and self.identifier == identifier)
