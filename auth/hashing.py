"""
auth/hashing.py -- Password hashing and constant-time verification.

Security design decisions:
  bcrypt, used directly (no passlib wrapper). Its cost factor makes brute
  force expensive, and every hash embeds its own random salt, so hashing the
  same secret twice yields two different strings that both verify.

  Secrets longer than 72 bytes are rejected rather than truncated. bcrypt
  only reads the first 72 bytes, so truncation would let two different
  secrets verify against the same hash.

  verify() never raises. Mismatch, malformed hash, oversize or unencodable
  input all return False, so callers treat every failure the same way.

  The dummy hash enables timing equalization in AuthService.login(): an
  unknown identifier still costs one full bcrypt check, so response time
  does not reveal whether the identifier exists.
"""

from __future__ import annotations

import bcrypt

from core.config import get_settings

# bcrypt input limit in bytes.
MAX_SECRET_BYTES = 72


class PasswordHasher:
    """Salted one-way hashing of secrets.

    Usage:
        hasher = PasswordHasher()
        stored = hasher.hash("pw123")
        hasher.verify("pw123", stored)   # True
    """

    def __init__(self, rounds: int | None = None) -> None:
        self.rounds = rounds if rounds is not None else get_settings().bcrypt_rounds
        # Computed once so the first unknown-identifier login is not measurably
        # slower than subsequent ones.
        self._dummy_hash = self.hash("claimgate_timing_dummy")

    def hash(self, secret: str) -> str:
        """Return a bcrypt hash of secret with a fresh salt.

        Raises ValueError if secret exceeds MAX_SECRET_BYTES once encoded.
        """
        raw = secret.encode("utf-8")
        if len(raw) > MAX_SECRET_BYTES:
            raise ValueError(f"secret exceeds {MAX_SECRET_BYTES} bytes")
        return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, secret: str, hashed: str) -> bool:
        """Return True if secret matches hashed. False on any failure."""
        try:
            raw = secret.encode("utf-8")
            if len(raw) > MAX_SECRET_BYTES:
                return False
            return bcrypt.checkpw(raw, hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def verify_dummy(self, secret: str) -> None:
        """Spend one verification's worth of work against the dummy hash."""
        self.verify(secret, self._dummy_hash)
