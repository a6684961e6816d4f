"""
Bank Service Module

The engine as one owned service object. It builds every component around a
single shared re-entrant lock, loads all collections at startup, makes sure
the bootstrap admin exists, and implements the operations that span several
components: login, signup, profile updates, saving, backup and the full wipe.
"""

from decimal import Decimal
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple
import threading

from .accounts import AccountLedger
from .config import MinibankConfig, get_config
from .credentials import CredentialStore, hash_password
from .currency import RateTable
from .errors import (
    AuthorizationError, DuplicateNationalIDError, DuplicateUsernameError,
    IdentityNotFoundError, PersistenceError, SessionExpiredError, ValidationError
)
from .feedback import ComplaintStack, FeedbackBox
from .logging_config import get_logger, log_action
from .models import AuthResult, Identity, Role, SignupKind, SignupRequest
from .persistence import RecordStore, ensure_storable
from .reporting import ReportingEngine
from .session import Session, SessionManager
from .storage import FileStorage, StorageInterface
from .transactions import TransactionLog
from .workflows import AppointmentBook, LoanBook, SignupQueue


class Bank:
    """MiniBank engine with all components initialized"""

    def __init__(self, config: Optional[MinibankConfig] = None,
                 storage: Optional[StorageInterface] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.config = config or get_config()
        self.storage = storage if storage is not None else FileStorage(self.config.data_dir)
        self.clock = clock or datetime.now
        self.lock = threading.RLock()
        self.logger = get_logger("minibank.bank")

        self.record_store = RecordStore(self.storage)
        self.transaction_log = TransactionLog(self.record_store, self.clock, self.lock)
        self.ledger = AccountLedger(
            self.record_store, self.transaction_log,
            minimum_balance=Decimal(self.config.minimum_balance),
            account_number_floor=self.config.account_number_floor,
            lock=self.lock
        )
        self.credentials = CredentialStore(
            self.record_store, self.config.lockout_threshold, self.lock
        )
        self.signup_queues: Dict[SignupKind, SignupQueue] = {
            kind: SignupQueue(
                kind, self.record_store, self.credentials, self.ledger,
                default_admin_password=self.config.default_admin_password,
                lock=self.lock
            )
            for kind in SignupKind
        }
        queues = list(self.signup_queues.values())
        for queue in queues:
            queue.link(*queues)
        self.loans = LoanBook(
            self.record_store, self.ledger,
            minimum_balance=Decimal(self.config.loan_minimum_balance),
            interest_rate=Decimal(self.config.loan_interest_rate),
            lock=self.lock
        )
        self.appointments = AppointmentBook(self.record_store, self.lock)
        self.feedback = FeedbackBox(self.record_store, self.clock, self.lock)
        self.complaints = ComplaintStack(self.record_store, self.lock)
        self.rates = RateTable(
            self.record_store,
            (Decimal(self.config.rate_usd), Decimal(self.config.rate_eur), Decimal(self.config.rate_sar)),
            self.lock
        )
        self.reporting = ReportingEngine(
            self.ledger, self.credentials, self.loans, self.appointments,
            self.feedback, self.complaints, self.rates
        )
        self.sessions = SessionManager(self.config.session_idle_timeout_seconds)

        self.load()

    @property
    def account_requests(self) -> SignupQueue:
        return self.signup_queues[SignupKind.ACCOUNT_OPENING]

    @property
    def admin_requests(self) -> SignupQueue:
        return self.signup_queues[SignupKind.ADMIN_ENROLLMENT]

    def _components(self) -> list:
        return [
            self.credentials, self.ledger, self.transaction_log, *self.signup_queues.values(),
            self.loans, self.appointments, self.feedback, self.complaints
        ]

    def load(self) -> None:
        """Load every collection from storage"""
        with self.lock:
            for component in self._components():
                component.load()
            self.rates.load()
            self.credentials.ensure_bootstrap_admin(
                self.config.bootstrap_admin_username, self.config.bootstrap_admin_password
            )

        log_action(
            self.logger, "info", "Engine loaded", action="startup",
            extra={
                "identities": self.credentials.count(),
                "accounts": len(self.ledger.all()),
                "next_account_number": self.ledger.high_water_mark + 1
            }
        )

    # Authentication

    def login(self, username: str, password: str, role: Role) -> Tuple[AuthResult, Optional[Session]]:
        result = self.credentials.authenticate(username, password, role)
        if result != AuthResult.SUCCESS:
            return result, None
        return result, self.sessions.create(self.credentials.get(username, role))

    def logout(self, token: str) -> bool:
        return self.sessions.close(token)

    def session(self, token: str) -> Session:
        """Live session for token; it ends once its identity is locked or gone"""
        session = self.sessions.get(token)
        identity = self.credentials.get(session.username, session.role)
        if not identity or identity.is_locked:
            self.sessions.close(token)
            raise SessionExpiredError("Session expired or unknown", "session_expired")
        return session

    # Signup

    def signup(self, kind: SignupKind, username: str, password: str, full_name: str,
               national_id: str, phone: str, address: str, initial_deposit=Decimal("0")) -> SignupRequest:
        """Queue a signup for a new identity"""
        if not password or not password.strip():
            raise ValidationError("Password is required")
        if kind == SignupKind.ADMIN_ENROLLMENT:
            initial_deposit = Decimal("0")

        request = SignupRequest(
            kind=kind,
            username=username,
            full_name=full_name,
            national_id=national_id,
            phone=phone,
            address=address,
            initial_deposit=initial_deposit,
            password_digest=hash_password(password)
        )
        return self.signup_queues[kind].submit(request)

    def request_account(self, username: str, full_name: str, national_id: str,
                        initial_deposit, phone: str = "", address: str = "") -> SignupRequest:
        """Queue an additional account for an already registered customer"""
        request = SignupRequest(
            kind=SignupKind.ACCOUNT_OPENING,
            username=username,
            full_name=full_name,
            national_id=national_id,
            phone=phone,
            address=address,
            initial_deposit=initial_deposit
        )
        return self.account_requests.submit(request)

    def request_status(self, username: str) -> List[SignupRequest]:
        """Signup requests of username still waiting for a decision"""
        with self.lock:
            return [r for q in self.signup_queues.values() for r in q.pending_for(username)]

    # Profile

    def update_profile(self, username: str, current_password: str,
                       new_username: Optional[str] = None, new_password: Optional[str] = None,
                       national_id: Optional[str] = None, phone: Optional[str] = None,
                       address: Optional[str] = None) -> Identity:
        """
        Change profile fields after re-checking the current password.

        A username change follows the user's accounts, loans, appointments
        and queued account requests. Contact and national-ID changes apply to the user's
        first account.
        """
        with self.lock:
            identity = self.credentials.get(username)
            if not identity:
                raise IdentityNotFoundError(f"No such user: {username}")
            if not self.credentials.verify_password(username, current_password):
                raise AuthorizationError("Incorrect password", "wrong_password")

            account = self.ledger.get_by_username(username)
            if (national_id is not None or phone is not None or address is not None) and not account:
                raise ValidationError("No approved account to update")
            if national_id is not None and national_id != account.national_id and (
                    self.ledger.national_id_exists(national_id)
                    or self.account_requests.has_national_id(national_id)):
                raise DuplicateNationalIDError(f"National ID {national_id} already in use")
            renaming = bool(new_username) and new_username != username
            if renaming:
                if self.credentials.exists(new_username):
                    raise DuplicateUsernameError(f"Username '{new_username}' already taken")
                if any(q.has_username(new_username) for q in self.signup_queues.values()):
                    raise DuplicateUsernameError(f"Username '{new_username}' is pending approval")
                ensure_storable(new_username, ",", "Username")
                ensure_storable(new_username, "|", "Username")

            if national_id is not None:
                self.ledger.change_national_id(account.account_number, national_id)
            if phone is not None or address is not None:
                self.ledger.update_contact(account.account_number, phone=phone, address=address)
            if new_password:
                self.credentials.change_password(username, identity.role, current_password, new_password)
            if renaming:
                self.credentials.rename(username, new_username)
                self.ledger.rename_owner(username, new_username)
                self.loans.rename_owner(username, new_username)
                self.appointments.rename_owner(username, new_username)
                for queue in self.signup_queues.values():
                    queue.rename_owner(username, new_username)

            log_action(
                self.logger, "info", "Profile updated", user_id=identity.username,
                action="update_profile",
                extra={"renamed_from": username if identity.username != username else None}
            )
            return identity

    # Maintenance

    def save_all(self) -> None:
        """
        Rewrite every collection. Each one is attempted even if an earlier
        one fails; failures are reported together.
        """
        failures = []
        with self.lock:
            for component in self._components():
                if component is self.transaction_log:
                    for number, entries in self.transaction_log.all_histories().items():
                        try:
                            self.record_store.save_transaction_log(number, entries)
                        except PersistenceError as e:
                            failures.append(e)
                    continue
                try:
                    component.save()
                except PersistenceError as e:
                    failures.append(e)
            try:
                self.rates.save()
                self.record_store.save_account_counter(self.ledger.high_water_mark)
            except PersistenceError as e:
                failures.append(e)

        if failures:
            raise PersistenceError(
                f"{len(failures)} collection(s) failed to save: " + "; ".join(f.message for f in failures),
                "save_all_failed"
            )
        log_action(self.logger, "info", "All collections saved", action="save_all")

    def backup(self) -> str:
        """Copy every collection into backup_YYYYMMDD_HHMMSS/"""
        with self.lock:
            return self.record_store.backup(self.clock().strftime("%Y%m%d_%H%M%S"))

    def export_accounts(self) -> str:
        with self.lock:
            return self.record_store.export_accounts(self.ledger.all())

    def delete_all_data(self, confirm: Callable[[str], bool]) -> bool:
        """
        Erase every collection and transaction log once confirmed. Exchange
        rates and backups are kept; numbering restarts from the floor and
        the bootstrap admin is recreated.
        """
        if not confirm("Permanently delete ALL data in the bank system?"):
            return False

        with self.lock:
            self.record_store.wipe()
            for component in self._components():
                component.clear()
            self.sessions.close_all()
            self.credentials.ensure_bootstrap_admin(
                self.config.bootstrap_admin_username, self.config.bootstrap_admin_password
            )

        log_action(self.logger, "warning", "All data deleted", action="delete_all_data")
        return True

    def close(self) -> None:
        self.sessions.close_all()
        self.storage.close()
