"""
auth/service.py -- Registration, login, and account changes.

AuthService is the only entry point callers need. It orchestrates the other
components and owns the rules that are not per-write invariants:

  register():  identifier shape -> effective role -> store.insert().
               Unprivileged callers always get Settings.default_role, whatever
               they asked for. The store hashes the secret and validates the
               role on the way in.

  login():     lookup -> constant-time verify -> Claims. An unknown identifier
               still costs one bcrypt check (dummy hash) and every failure is
               the same InvalidCredentialsError, so neither timing nor message
               reveals whether the identifier exists.

  Reads of user data go through the masked view (UserView) and the
  owner-or-admin predicate on CallerContext. Caller identity is always an
  explicit argument; there is no ambient session.

Errors propagate unchanged. Nothing here logs or swallows a failure; only
successful state changes are logged.
"""

from __future__ import annotations

import logging

from auth.claims import ClaimsIssuer
from auth.errors import InvalidCredentialsError, InvalidIdentifierError, NotFoundError, PermissionDeniedError
from auth.models import CallerContext, Claims, UserRecord, UserView, is_valid_identifier
from auth.store import CredentialStore
from core.config import get_settings

logger = logging.getLogger("claimgate.auth")


class AuthService:
    """Usage:
    service = AuthService(CredentialStore())
    service.register("a@b.com", "pw123")
    claims = service.login("a@b.com", "pw123")   # Claims(role="webuser", identifier="a@b.com")
    """

    def __init__(
        self,
        store: CredentialStore,
        issuer: ClaimsIssuer | None = None,
        default_role: str | None = None,
        admin_role: str | None = None,
    ) -> None:
        settings = get_settings()
        self.store = store
        self.issuer = issuer or ClaimsIssuer()
        self.default_role = default_role or settings.default_role
        self.admin_role = admin_role or settings.admin_role

    # ------------------------------------------------------------------
    # Caller context
    # ------------------------------------------------------------------

    def caller_from_claims(self, claims: Claims | None) -> CallerContext:
        """Build the explicit caller context for a request; None means anonymous."""
        if claims is None:
            return CallerContext(identifier=None, role="anonymous")
        return CallerContext(
            identifier=claims.identifier,
            role=claims.role,
            privileged=claims.role == self.admin_role,
        )

    def caller_from_token(self, token: str) -> CallerContext:
        return self.caller_from_claims(self.issuer.decode(token))

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(
        self,
        identifier: str,
        secret: str,
        requested_role: str | None = None,
        caller_is_privileged: bool = False,
    ) -> UserRecord:
        """Create a user and return the stored record.

        Raises InvalidIdentifierError, InvalidSecretError, InvalidRoleError,
        DuplicateIdentifierError or TransientError.
        """
        if not is_valid_identifier(identifier):
            raise InvalidIdentifierError(f"identifier is not email-shaped: {identifier!r}")
        if caller_is_privileged and requested_role:
            role = requested_role
        else:
            role = self.default_role
        record = self.store.insert(identifier, secret, role)
        logger.info("Registered %s with role %s", record.identifier, record.role)
        return record

    def login(self, identifier: str, secret: str) -> Claims:
        """Verify a secret and return fresh Claims.

        Raises InvalidCredentialsError for an unknown identifier and for a
        wrong secret alike. TransientError if the store is unreachable.
        """
        record = self.store.get(identifier)
        if record is None:
            self.store.hasher.verify_dummy(secret)
            raise InvalidCredentialsError()
        if not self.store.hasher.verify(secret, record.secret_hash):
            raise InvalidCredentialsError()
        logger.debug("Login ok for %s", record.identifier)
        return self.issuer.issue(record.role, record.identifier)

    def login_token(self, identifier: str, secret: str) -> str:
        """login() and sign the resulting claims as a JWT."""
        return self.issuer.encode(self.login(identifier, secret))

    # ------------------------------------------------------------------
    # Account changes
    # ------------------------------------------------------------------

    def change_secret(self, caller: CallerContext, identifier: str, new_secret: str) -> None:
        """Replace a user's secret. Owner or privileged caller only.

        A record the caller may not see is reported as NotFoundError, the same
        as one that does not exist.
        """
        if not caller.can_see(identifier):
            raise NotFoundError(f"no such user: {identifier}")
        self.store.update_secret(identifier, new_secret)
        logger.info("Secret changed for %s", identifier)

    def change_role(self, caller: CallerContext, identifier: str, new_role: str) -> None:
        """Set a user's role. Privileged callers only."""
        if not caller.privileged:
            raise PermissionDeniedError("role changes require the admin role")
        self.store.update_role(identifier, new_role)
        logger.info("Role of %s changed to %s by %s", identifier, new_role, caller.identifier)

    # ------------------------------------------------------------------
    # Masked reads
    # ------------------------------------------------------------------

    def list_users(self, caller: CallerContext) -> list[UserView]:
        """Masked listing: everyone for privileged callers, otherwise only the caller's own row."""
        if caller.privileged:
            records = self.store.list_users()
        elif caller.identifier is None:
            records = []
        else:
            own = self.store.get(caller.identifier)
            records = [own] if own is not None else []
        return [UserView.from_record(r) for r in records]

    def get_user(self, caller: CallerContext, identifier: str) -> UserView:
        """Masked single-record read. NotFoundError if missing or not visible to caller."""
        if not caller.can_see(identifier):
            raise NotFoundError(f"no such user: {identifier}")
        return UserView.from_record(self.store.find_by_identifier(identifier))
