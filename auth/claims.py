"""
auth/claims.py -- Claims construction and JWT encode/decode.

issue() is pure construction. encode()/decode() wrap the claims in an HS256
JWT signed with SECRET_KEY (python-jose), the form a REST layer hands to
clients. The token carries the identifier as "sub" and "email", the role,
and an expiry; never any secret material.

decode() returns None on any failure -- the caller treats an invalid token
as unauthenticated.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.models import Claims
from core.config import get_settings

_ALGORITHM = "HS256"


class ClaimsIssuer:
    def __init__(self, secret_key: str | None = None, expire_seconds: int | None = None) -> None:
        settings = get_settings()
        self._secret_key = secret_key or settings.secret_key
        self.expire_seconds = expire_seconds if expire_seconds is not None else settings.token_expire_seconds

    def issue(self, role: str, identifier: str) -> Claims:
        return Claims(role=role, identifier=identifier)

    def encode(self, claims: Claims, expire_seconds: int = 0) -> str:
        """Encode claims as a signed JWT.

        Args:
            claims:         The claims returned by issue().
            expire_seconds: Token lifetime. If 0 (default), uses the issuer's
                            configured lifetime (Settings.token_expire_seconds).
        """
        duration = expire_seconds if expire_seconds > 0 else self.expire_seconds
        payload = {
            "sub": claims.identifier,
            "email": claims.identifier,
            "role": claims.role,
            "exp": datetime.now(timezone.utc) + timedelta(seconds=duration),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def decode(self, token: str) -> Claims | None:
        """Verify a JWT and return its Claims, or None if invalid or expired."""
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        identifier = payload.get("sub")
        role = payload.get("role")
        if not isinstance(identifier, str) or not isinstance(role, str):
            return None
        return self.issue(role, identifier)
