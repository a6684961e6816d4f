"""
Test suite for the credential store

Tests registration, authentication outcomes, the lockout policy, the
bootstrap admin exemption, unlock and password changes.
"""

import hashlib
import pytest

from minibank.credentials import CredentialStore, hash_password
from minibank.errors import DuplicateUsernameError, IdentityNotFoundError, ValidationError
from minibank.models import AuthResult, Role
from minibank.persistence import RecordStore
from minibank.storage import InMemoryStorage


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def credentials(storage):
    """Credential store with a customer 'bob' (password 'secret')"""
    store = CredentialStore(RecordStore(storage), lockout_threshold=3)
    store.register("bob", "secret", Role.CUSTOMER)
    return store


def always(answer):
    return lambda prompt: answer


class TestRegistration:

    def test_digest_is_sha256_hex(self, credentials):
        identity = credentials.get("bob")
        assert identity.password_digest == hashlib.sha256(b"secret").hexdigest()
        assert identity.password_digest == hash_password("secret")
        assert "secret" not in identity.password_digest

    def test_usernames_unique_across_roles(self, credentials):
        with pytest.raises(DuplicateUsernameError):
            credentials.register("bob", "other", Role.ADMIN)

    def test_empty_password_rejected(self, credentials):
        with pytest.raises(ValidationError):
            credentials.register("carol", "", Role.CUSTOMER)

    def test_username_with_delimiter_rejected(self, credentials):
        with pytest.raises(ValidationError):
            credentials.register("car,ol", "pw", Role.CUSTOMER)

    def test_registration_is_persisted(self, storage, credentials):
        lines = storage.read_lines("users.txt")
        assert lines == [f"bob,{hash_password('secret')},Customer,False,0"]


class TestAuthentication:

    def test_success(self, credentials):
        assert credentials.authenticate("bob", "secret", Role.CUSTOMER) == AuthResult.SUCCESS

    def test_wrong_password(self, credentials):
        assert credentials.authenticate("bob", "nope", Role.CUSTOMER) == AuthResult.WRONG_PASSWORD
        assert credentials.get("bob").failed_attempts == 1

    def test_unknown_user(self, credentials):
        assert credentials.authenticate("nobody", "x", Role.CUSTOMER) == AuthResult.NOT_FOUND

    def test_identity_is_username_and_role(self, credentials):
        assert credentials.authenticate("bob", "secret", Role.ADMIN) == AuthResult.NOT_FOUND

    def test_success_after_two_failures_resets_count(self, credentials):
        """Two failures then a success leave the identity clean"""
        credentials.authenticate("bob", "bad1", Role.CUSTOMER)
        credentials.authenticate("bob", "bad2", Role.CUSTOMER)

        assert credentials.authenticate("bob", "secret", Role.CUSTOMER) == AuthResult.SUCCESS
        identity = credentials.get("bob")
        assert identity.failed_attempts == 0
        assert not identity.is_locked

    def test_three_failures_lock(self, credentials):
        """The third consecutive failure locks, and the right password no longer helps"""
        assert credentials.authenticate("bob", "bad", Role.CUSTOMER) == AuthResult.WRONG_PASSWORD
        assert credentials.authenticate("bob", "bad", Role.CUSTOMER) == AuthResult.WRONG_PASSWORD
        assert credentials.authenticate("bob", "bad", Role.CUSTOMER) == AuthResult.LOCKED

        assert credentials.get("bob").is_locked
        assert credentials.authenticate("bob", "secret", Role.CUSTOMER) == AuthResult.LOCKED

    def test_lockout_state_is_persisted(self, storage, credentials):
        for _ in range(3):
            credentials.authenticate("bob", "bad", Role.CUSTOMER)

        reloaded = CredentialStore(RecordStore(storage))
        reloaded.load()
        assert reloaded.get("bob").is_locked
        assert reloaded.get("bob").failed_attempts == 3


class TestBootstrapAdmin:

    def test_created_when_absent(self, credentials):
        admin = credentials.ensure_bootstrap_admin("q", "q")
        assert admin.role == Role.ADMIN
        assert admin.lockout_exempt
        assert credentials.authenticate("q", "q", Role.ADMIN) == AuthResult.SUCCESS

    def test_never_locks_but_counts_failures(self, credentials):
        credentials.ensure_bootstrap_admin("q", "q")
        for _ in range(5):
            assert credentials.authenticate("q", "wrong", Role.ADMIN) == AuthResult.WRONG_PASSWORD

        admin = credentials.get("q")
        assert admin.failed_attempts == 5
        assert not admin.is_locked
        assert credentials.authenticate("q", "q", Role.ADMIN) == AuthResult.SUCCESS

    def test_existing_admin_is_kept(self, credentials):
        credentials.ensure_bootstrap_admin("q", "q")
        credentials.change_password("q", Role.ADMIN, "q", "new")

        credentials.ensure_bootstrap_admin("q", "q")
        assert credentials.count(Role.ADMIN) == 1
        assert credentials.verify_password("q", "new")


class TestUnlock:

    def lock_bob(self, credentials):
        for _ in range(3):
            credentials.authenticate("bob", "bad", Role.CUSTOMER)

    def test_unlock_clears_lock_and_count(self, credentials):
        self.lock_bob(credentials)
        assert credentials.unlock("bob", always(True))

        identity = credentials.get("bob")
        assert not identity.is_locked
        assert identity.failed_attempts == 0
        assert credentials.authenticate("bob", "secret", Role.CUSTOMER) == AuthResult.SUCCESS

    def test_declined_confirmation_changes_nothing(self, credentials):
        self.lock_bob(credentials)
        assert not credentials.unlock("bob", always(False))
        assert credentials.get("bob").is_locked

    def test_unlocking_unlocked_identity_is_noop(self, credentials):
        assert not credentials.unlock("bob", always(True))

    def test_unknown_user(self, credentials):
        with pytest.raises(IdentityNotFoundError):
            credentials.unlock("ghost", always(True))

    def test_locked_identities(self, credentials):
        self.lock_bob(credentials)
        assert [i.username for i in credentials.locked_identities()] == ["bob"]


class TestChangePassword:

    def test_change_requires_old_password(self, credentials):
        assert not credentials.change_password("bob", Role.CUSTOMER, "wrong", "new")
        assert credentials.change_password("bob", Role.CUSTOMER, "secret", "new")
        assert credentials.authenticate("bob", "new", Role.CUSTOMER) == AuthResult.SUCCESS

    def test_wrong_old_password_does_not_count_as_failure(self, credentials):
        credentials.change_password("bob", Role.CUSTOMER, "wrong", "new")
        assert credentials.get("bob").failed_attempts == 0

    def test_rename(self, credentials):
        credentials.rename("bob", "robert")
        assert credentials.get("bob") is None
        assert credentials.authenticate("robert", "secret", Role.CUSTOMER) == AuthResult.SUCCESS
