"""
Credential Store Module

Usernames, password digests, roles and lockout state. Passwords are stored
only as SHA-256 hex digests. Three consecutive failed authentications lock an
identity until an admin unlocks it; identities flagged lockout_exempt count
failures but never lock.
"""

from typing import Callable, List, Optional
import hashlib
import threading

from .errors import DuplicateUsernameError, IdentityNotFoundError, ValidationError
from .logging_config import get_logger, log_action
from .models import AuthResult, Identity, Role
from .persistence import RecordStore, ensure_storable


def hash_password(password: str) -> str:
    """One-way SHA-256 digest of a password, hex encoded"""
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


class CredentialStore:
    """
    Owns the identity collection and the authentication policy
    """

    def __init__(self, record_store: RecordStore, lockout_threshold: int = 3,
                 lock: Optional[threading.RLock] = None):
        self.record_store = record_store
        self.lockout_threshold = lockout_threshold
        self._lock = lock or threading.RLock()
        self._identities: List[Identity] = []
        self.logger = get_logger("minibank.credentials")

    def load(self) -> None:
        with self._lock:
            self._identities = self.record_store.load_identities()

    def save(self) -> None:
        with self._lock:
            self.record_store.save_identities(self._identities)

    # Lookup

    def get(self, username: str, role: Optional[Role] = None) -> Optional[Identity]:
        """Find identity by username, optionally restricted to a role"""
        with self._lock:
            for identity in self._identities:
                if identity.username == username and (role is None or identity.role == role):
                    return identity
            return None

    def find(self, predicate: Callable[[Identity], bool]) -> List[Identity]:
        with self._lock:
            return [i for i in self._identities if predicate(i)]

    def exists(self, username: str) -> bool:
        return self.get(username) is not None

    def all(self) -> List[Identity]:
        with self._lock:
            return list(self._identities)

    def locked_identities(self) -> List[Identity]:
        with self._lock:
            return [i for i in self._identities if i.is_locked]

    def count(self, role: Optional[Role] = None) -> int:
        with self._lock:
            return sum(1 for i in self._identities if role is None or i.role == role)

    # Registration

    def register(self, username: str, password: str, role: Role) -> str:
        """Create an identity from a plaintext password and return its digest"""
        if not password:
            raise ValidationError("Password is required")
        digest = hash_password(password)
        self.add_identity(username, digest, role)
        return digest

    def add_identity(self, username: str, password_digest: str, role: Role,
                     lockout_exempt: bool = False, persist: bool = True) -> Identity:
        """Insert an identity whose digest is already computed"""
        if not username or not username.strip():
            raise ValidationError("Username is required")
        ensure_storable(username, ",", "Username")

        with self._lock:
            if self.exists(username):
                raise DuplicateUsernameError(f"Username '{username}' already exists")

            identity = Identity(
                username=username,
                password_digest=password_digest,
                role=role,
                lockout_exempt=lockout_exempt
            )
            self._identities.append(identity)

            log_action(
                self.logger, "info", f"Identity created: {username}",
                user_id=username, action="create_identity", resource=f"identity:{username}",
                extra={"role": role.value}
            )

            if persist:
                self.save()
            return identity

    def ensure_bootstrap_admin(self, username: str, password: str) -> Identity:
        """Guarantee the built-in admin exists; it is exempt from lockout"""
        with self._lock:
            admin = self.get(username, Role.ADMIN)
            if admin:
                admin.lockout_exempt = True
                return admin
            return self.add_identity(username, hash_password(password), Role.ADMIN, lockout_exempt=True)

    # Authentication

    def authenticate(self, username: str, password: str, role: Role) -> AuthResult:
        """
        Check a password against the stored digest.

        Locked identities are refused without comparing. A wrong password
        increments the failure count and locks the identity when the count
        reaches the threshold; success resets the count.
        """
        with self._lock:
            identity = self.get(username, role)
            if not identity:
                log_action(
                    self.logger, "info", "Login failed: unknown user",
                    user_id=username, action="login_failed", extra={"reason": "not_found"}
                )
                return AuthResult.NOT_FOUND

            if identity.is_locked:
                log_action(
                    self.logger, "info", "Login refused: identity locked",
                    user_id=username, action="login_failed", extra={"reason": "locked"}
                )
                return AuthResult.LOCKED

            if identity.password_digest == hash_password(password):
                identity.failed_attempts = 0
                self.save()
                log_action(self.logger, "info", "Login succeeded", user_id=username, action="login_success")
                return AuthResult.SUCCESS

            identity.failed_attempts += 1
            result = AuthResult.WRONG_PASSWORD
            if not identity.lockout_exempt and identity.failed_attempts >= self.lockout_threshold:
                identity.is_locked = True
                result = AuthResult.LOCKED

            self.save()
            log_action(
                self.logger, "warning", "Login failed: wrong password",
                user_id=username, action="login_failed",
                extra={"failed_attempts": identity.failed_attempts, "locked": identity.is_locked}
            )
            return result

    def unlock(self, username: str, confirm: Callable[[str], bool]) -> bool:
        """Clear the lock and failure count once the operator confirms"""
        with self._lock:
            identity = self.get(username)
            if not identity:
                raise IdentityNotFoundError(f"No such user: {username}")
            if not identity.is_locked:
                return False
            if not confirm(f"Unlock the account for '{username}'?"):
                return False

            identity.is_locked = False
            identity.failed_attempts = 0
            self.save()
            log_action(self.logger, "info", f"Identity unlocked: {username}",
                       user_id=username, action="unlock", resource=f"identity:{username}")
            return True

    def change_password(self, username: str, role: Role, old_password: str, new_password: str) -> bool:
        """Replace the password after re-checking the current one"""
        if not new_password:
            raise ValidationError("New password is required")

        with self._lock:
            identity = self.get(username, role)
            if not identity:
                raise IdentityNotFoundError(f"No such user: {username}")
            if identity.password_digest != hash_password(old_password):
                return False

            identity.password_digest = hash_password(new_password)
            self.save()
            log_action(self.logger, "info", "Password changed",
                       user_id=username, action="change_password")
            return True

    def verify_password(self, username: str, password: str) -> bool:
        """Digest comparison without touching failure counters"""
        identity = self.get(username)
        return identity is not None and identity.password_digest == hash_password(password)

    def rename(self, old_username: str, new_username: str, persist: bool = True) -> Identity:
        """Change a username, keeping it unique"""
        if not new_username or not new_username.strip():
            raise ValidationError("Username is required")
        ensure_storable(new_username, ",", "Username")

        with self._lock:
            identity = self.get(old_username)
            if not identity:
                raise IdentityNotFoundError(f"No such user: {old_username}")
            if self.exists(new_username):
                raise DuplicateUsernameError(f"Username '{new_username}' already exists")

            identity.username = new_username
            if persist:
                self.save()
            return identity

    def clear(self) -> None:
        with self._lock:
            self._identities = []
