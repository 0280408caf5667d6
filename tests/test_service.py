"""
tests/test_service.py -- AuthService registration, login, and masked reads.

Coverage:
  - End-to-end: register unprivileged -> login -> wrong secret
  - Role selection: unprivileged callers always get "webuser"
  - Login failures are indistinguishable (unknown identifier vs wrong secret)
  - Concurrent registers of one identifier: exactly one winner
  - Masked view: secret replaced, rows filtered to owner or admin
  - Secret and role changes honor caller context
"""

from __future__ import annotations

import threading

import pytest

from auth.errors import (
    DuplicateIdentifierError,
    InvalidCredentialsError,
    InvalidIdentifierError,
    InvalidRoleError,
    InvalidSecretError,
    NotFoundError,
    PermissionDeniedError,
)
from auth.models import CallerContext, Claims, UserRecord
from auth.roles import StaticRoleValidator
from auth.service import AuthService
from auth.store import CredentialStore


def _admin() -> CallerContext:
    return CallerContext(identifier="root@example.com", role="admin", privileged=True)


class TestRegisterAndLogin:
    def test_end_to_end(self, service: AuthService) -> None:
        record = service.register("a@b.com", "pw123")
        assert record.identifier == "a@b.com"
        assert record.role == "webuser"
        assert record.verified is False

        claims = service.login("a@b.com", "pw123")
        assert claims == Claims(role="webuser", identifier="a@b.com")

        with pytest.raises(InvalidCredentialsError):
            service.login("a@b.com", "wrong")

    def test_unprivileged_requested_role_is_ignored(self, service: AuthService) -> None:
        record = service.register("a@b.com", "pw123", requested_role="admin")
        assert record.role == "webuser"
        assert service.login("a@b.com", "pw123").role == "webuser"

    def test_unprivileged_unknown_role_is_ignored(self, service: AuthService) -> None:
        record = service.register("a@b.com", "pw123", requested_role="no-such-role")
        assert record.role == "webuser"

    def test_privileged_may_choose_role(self, service: AuthService) -> None:
        record = service.register("boss@b.com", "pw123", requested_role="admin", caller_is_privileged=True)
        assert record.role == "admin"
        assert service.login("boss@b.com", "pw123") == Claims(role="admin", identifier="boss@b.com")

    def test_privileged_without_role_gets_default(self, service: AuthService) -> None:
        record = service.register("a@b.com", "pw123", caller_is_privileged=True)
        assert record.role == "webuser"

    def test_privileged_unknown_role_not_persisted(self, service: AuthService) -> None:
        with pytest.raises(InvalidRoleError):
            service.register("a@b.com", "pw123", requested_role="superuser", caller_is_privileged=True)
        assert service.store.count() == 0

    def test_invalid_identifier(self, service: AuthService) -> None:
        with pytest.raises(InvalidIdentifierError) as exc_info:
            service.register("not-an-email", "pw123")
        assert exc_info.value.to_dict()["error"]["code"] == "invalid_identifier"
        assert service.store.count() == 0

    def test_register_twice(self, service: AuthService) -> None:
        service.register("a@b.com", "pw123")
        with pytest.raises(DuplicateIdentifierError):
            service.register("a@b.com", "pw456")
        assert service.login("a@b.com", "pw123").identifier == "a@b.com"

    def test_register_never_echoes_plaintext(self, service: AuthService) -> None:
        record = service.register("a@b.com", "pw123")
        assert "pw123" not in repr(record)

    def test_unencodable_secret_rejected(self, service: AuthService) -> None:
        with pytest.raises(InvalidSecretError):
            service.register("a@b.com", "\ud800")
        assert service.store.count() == 0

    def test_identifier_with_trailing_newline_rejected(self, service: AuthService) -> None:
        with pytest.raises(InvalidIdentifierError):
            service.register("a@b.com\n", "pw123")
        assert service.store.count() == 0


class TestLoginFailures:
    def test_unknown_and_wrong_secret_are_indistinguishable(self, service: AuthService) -> None:
        service.register("real@example.com", "pw123")
        with pytest.raises(InvalidCredentialsError) as unknown:
            service.login("nobody@example.com", "anything")
        with pytest.raises(InvalidCredentialsError) as wrong:
            service.login("real@example.com", "wrongsecret")
        assert type(unknown.value) is type(wrong.value)
        assert str(unknown.value) == str(wrong.value)
        assert unknown.value.to_dict() == wrong.value.to_dict()

    def test_unknown_identifier_still_runs_verification(self, service: AuthService, monkeypatch) -> None:
        calls: list[str] = []
        original = service.store.hasher.verify

        def spy(secret: str, hashed: str) -> bool:
            calls.append(secret)
            return original(secret, hashed)

        monkeypatch.setattr(service.store.hasher, "verify", spy)
        with pytest.raises(InvalidCredentialsError):
            service.login("nobody@example.com", "anything")
        assert calls == ["anything"]

    def test_oversize_secret_is_invalid_credentials(self, service: AuthService) -> None:
        service.register("a@b.com", "pw123")
        with pytest.raises(InvalidCredentialsError):
            service.login("a@b.com", "x" * 200)

    def test_unencodable_secret_is_invalid_credentials(self, service: AuthService) -> None:
        service.register("a@b.com", "pw123")
        with pytest.raises(InvalidCredentialsError):
            service.login("a@b.com", "\ud800")
        with pytest.raises(InvalidCredentialsError):
            service.login("nobody@b.com", "\ud800")


class TestConcurrency:
    def test_concurrent_register_single_winner(self, hasher, file_db_url: str) -> None:
        store = CredentialStore(
            db_url=file_db_url,
            hasher=hasher,
            role_validator=StaticRoleValidator(["webuser", "admin"]),
        )
        service = AuthService(store)
        workers = 8
        barrier = threading.Barrier(workers)
        results: list[object] = []
        lock = threading.Lock()

        def attempt(n: int) -> None:
            barrier.wait()
            try:
                outcome: object = service.register("race@b.com", f"pw{n}")
            except DuplicateIdentifierError as exc:
                outcome = exc
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=attempt, args=(n,)) for n in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        try:
            winners = [r for r in results if isinstance(r, UserRecord)]
            losers = [r for r in results if isinstance(r, DuplicateIdentifierError)]
            assert len(winners) == 1
            assert len(losers) == workers - 1
            assert store.count() == 1
            stored = store.find_by_identifier("race@b.com")
            assert stored.secret_hash == winners[0].secret_hash
        finally:
            store.close()


class TestMaskedView:
    @pytest.fixture
    def populated(self, service: AuthService) -> AuthService:
        service.register("a@b.com", "pw123")
        service.register("c@d.com", "pw456")
        return service

    def test_admin_sees_all_masked(self, populated: AuthService) -> None:
        views = populated.list_users(_admin())
        assert [v.identifier for v in views] == ["a@b.com", "c@d.com"]
        assert all(v.secret == "***" for v in views)
        assert all(v.role == "webuser" and v.verified is False for v in views)

    def test_owner_sees_only_own_row(self, populated: AuthService) -> None:
        caller = populated.caller_from_claims(populated.login("a@b.com", "pw123"))
        views = populated.list_users(caller)
        assert [v.identifier for v in views] == ["a@b.com"]
        assert views[0].secret == "***"

    def test_anonymous_sees_nothing(self, populated: AuthService) -> None:
        assert populated.list_users(populated.caller_from_claims(None)) == []

    def test_get_user_hides_other_rows(self, populated: AuthService) -> None:
        caller = CallerContext(identifier="a@b.com", role="webuser")
        assert populated.get_user(caller, "a@b.com").identifier == "a@b.com"
        with pytest.raises(NotFoundError):
            populated.get_user(caller, "c@d.com")
        assert populated.get_user(_admin(), "c@d.com").secret == "***"

    def test_caller_from_claims_sets_privilege(self, service: AuthService) -> None:
        assert service.caller_from_claims(Claims(role="admin", identifier="x@y.com")).privileged
        assert not service.caller_from_claims(Claims(role="webuser", identifier="x@y.com")).privileged

    def test_caller_from_token(self, populated: AuthService) -> None:
        caller = populated.caller_from_token(populated.login_token("a@b.com", "pw123"))
        assert caller.identifier == "a@b.com"
        assert not caller.privileged
        assert populated.caller_from_token("garbage").identifier is None


class TestAccountChanges:
    def test_owner_changes_secret(self, service: AuthService) -> None:
        service.register("a@b.com", "pw123")
        owner = CallerContext(identifier="a@b.com", role="webuser")
        service.change_secret(owner, "a@b.com", "new-secret")
        assert service.login("a@b.com", "new-secret").identifier == "a@b.com"
        with pytest.raises(InvalidCredentialsError):
            service.login("a@b.com", "pw123")

    def test_other_user_cannot_change_secret(self, service: AuthService) -> None:
        service.register("a@b.com", "pw123")
        other = CallerContext(identifier="c@d.com", role="webuser")
        with pytest.raises(NotFoundError):
            service.change_secret(other, "a@b.com", "hijacked")
        assert service.login("a@b.com", "pw123").identifier == "a@b.com"

    def test_admin_changes_role(self, service: AuthService) -> None:
        service.register("a@b.com", "pw123")
        service.change_role(_admin(), "a@b.com", "admin")
        assert service.login("a@b.com", "pw123").role == "admin"

    def test_admin_role_change_is_validated(self, service: AuthService) -> None:
        service.register("a@b.com", "pw123")
        with pytest.raises(InvalidRoleError):
            service.change_role(_admin(), "a@b.com", "superuser")
        with pytest.raises(NotFoundError):
            service.change_role(_admin(), "ghost@b.com", "admin")

    def test_non_admin_cannot_change_role(self, service: AuthService) -> None:
        service.register("a@b.com", "pw123")
        owner = CallerContext(identifier="a@b.com", role="webuser")
        with pytest.raises(PermissionDeniedError):
            service.change_role(owner, "a@b.com", "admin")
        assert service.login("a@b.com", "pw123").role == "webuser"
