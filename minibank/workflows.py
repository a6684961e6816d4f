"""
Workflow Queues Module

FIFO approval pipelines for account opening and admin enrollment, the loan
book, and the appointment book.

Signup queues are always decided head first; an unrecognized response leaves
the head in place. Approving a signup creates the identity and, for account
opening, the account in one locked step. Loans are never deleted, only moved
to a terminal status, and an approved loan is never closed, so its owner can
not request another. Appointments skipped by the operator go to the back of
the line.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Any, List, Optional
import threading

from .accounts import AccountLedger
from .credentials import CredentialStore, hash_password
from .currency import to_decimal
from .errors import (
    AccountNotFoundError, ActiveLoanExistsError, BalanceTooLowError,
    DuplicateNationalIDError, DuplicateUsernameError, NotFoundError,
    TerminalStateError, ValidationError
)
from .logging_config import get_logger, log_action
from .models import (
    APPOINTMENT_SERVICES, Appointment, AppointmentStatus, Decision, LoanRequest,
    LoanStatus, Role, SignupKind, SignupRequest
)
from .persistence import RecordStore, ensure_storable


@dataclass
class QueueOutcome:
    """Result of deciding the head of a queue"""
    decision: Decision
    request: Any
    result: Any = None


def _require_text(value: str, field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return value


class SignupQueue:
    """
    One FIFO signup pipeline. Queues of different kinds are linked so a
    username can only be pending once across all of them.
    """

    def __init__(self, kind: SignupKind, record_store: RecordStore,
                 credentials: CredentialStore, ledger: AccountLedger,
                 default_admin_password: str = "admin123",
                 lock: Optional[threading.RLock] = None):
        self.kind = kind
        self.record_store = record_store
        self.credentials = credentials
        self.ledger = ledger
        self.default_admin_password = default_admin_password
        self._lock = lock or threading.RLock()
        self._queue: List[SignupRequest] = []
        self._siblings: List['SignupQueue'] = []
        self.logger = get_logger("minibank.workflows")

    def link(self, *queues: 'SignupQueue') -> None:
        self._siblings = [q for q in queues if q is not self]

    def load(self) -> None:
        with self._lock:
            self._queue = self.record_store.load_signup_queue(self.kind)

    def save(self) -> None:
        with self._lock:
            self.record_store.save_signup_queue(self.kind, self._queue)

    # Queries

    def pending(self) -> List[SignupRequest]:
        with self._lock:
            return list(self._queue)

    def pending_for(self, username: str) -> List[SignupRequest]:
        with self._lock:
            return [r for r in self._queue if r.username == username]

    def has_username(self, username: str) -> bool:
        with self._lock:
            return any(r.username == username for r in self._queue)

    def has_national_id(self, national_id: str) -> bool:
        with self._lock:
            return any(r.national_id == national_id for r in self._queue)

    def rename_owner(self, old_username: str, new_username: str) -> int:
        with self._lock:
            owned = self.pending_for(old_username)
            for request in owned:
                request.username = new_username
            if owned:
                self.save()
            return len(owned)

    def process_next(self) -> Optional[SignupRequest]:
        """The request at the head of the queue, without removing it"""
        with self._lock:
            return self._queue[0] if self._queue else None

    # Submission

    def _validate(self, request: SignupRequest) -> None:
        if request.kind != self.kind:
            raise ValidationError(f"Request of kind {request.kind.value} submitted to {self.kind.value} queue")

        _require_text(request.username, "Username")
        _require_text(request.full_name, "Full name")
        _require_text(request.national_id, "National ID")
        for field_name, value in (("Username", request.username), ("Full name", request.full_name),
                                  ("National ID", request.national_id), ("Phone", request.phone),
                                  ("Address", request.address)):
            ensure_storable(value, "|", field_name)
        # Account and identity fields also land in comma-delimited files
        for field_name, value in (("Username", request.username), ("National ID", request.national_id),
                                  ("Phone", request.phone), ("Address", request.address)):
            ensure_storable(value, ",", field_name)

        deposit = to_decimal(request.initial_deposit, "Initial deposit")
        if deposit < 0:
            raise ValidationError("Initial deposit cannot be negative")
        request.initial_deposit = deposit

    def submit(self, request: SignupRequest) -> SignupRequest:
        """
        Validate and enqueue a signup.

        Raises:
            DuplicateUsernameError: username registered or already pending
            DuplicateNationalIDError: national ID used by an account or a
                queued account-opening request
        """
        self._validate(request)

        with self._lock:
            existing = self.credentials.get(request.username)
            if request.password_digest is None:
                # Registered customers may ask for an account without a new password
                if self.kind != SignupKind.ACCOUNT_OPENING or not existing or existing.role != Role.CUSTOMER:
                    raise ValidationError("Password is required")
            elif existing:
                raise DuplicateUsernameError(f"Username '{request.username}' already exists")

            if self.has_username(request.username) or any(
                    q.has_username(request.username) for q in self._siblings):
                raise DuplicateUsernameError(f"Username '{request.username}' already has a pending request")

            if self.kind == SignupKind.ACCOUNT_OPENING and (
                    self.ledger.national_id_exists(request.national_id)
                    or self.has_national_id(request.national_id)):
                raise DuplicateNationalIDError(
                    f"National ID {request.national_id} already exists or is pending"
                )

            self._queue.append(request)
            self.save()

            log_action(
                self.logger, "info", "Signup request queued",
                user_id=request.username, action="submit_signup",
                resource=f"queue:{self.kind.value}", extra={"position": len(self._queue)}
            )
            return request

    # Decisions

    def _require_queued(self, request: SignupRequest) -> None:
        if not any(r is request for r in self._queue):
            raise NotFoundError(f"Request for '{request.username}' is not in the {self.kind.value} queue")

    def _remove(self, request: SignupRequest) -> None:
        self._queue = [r for r in self._queue if r is not request]

    def approve(self, request: SignupRequest):
        """
        Convert a queued request into an identity and, for account opening,
        an account. Returns the new Account or, for admin enrollment, the new
        Identity.
        """
        with self._lock:
            self._require_queued(request)

            if self.kind == SignupKind.ADMIN_ENROLLMENT:
                result = self._approve_admin(request)
            else:
                result = self._approve_account(request)

            self._remove(request)
            self.save()

            log_action(
                self.logger, "info", "Signup request approved",
                user_id=request.username, action="approve_signup",
                resource=f"queue:{self.kind.value}"
            )
            return result

    def _approve_account(self, request: SignupRequest):
        if self.ledger.national_id_exists(request.national_id):
            raise DuplicateNationalIDError(f"National ID {request.national_id} is already registered")
        identity = self.credentials.get(request.username)
        if not identity and request.password_digest is None:
            raise ValidationError(f"No identity or password for '{request.username}'")

        number = self.ledger.allocate_account_number()
        account = self.ledger.open_account(
            number, request.username, request.initial_deposit,
            request.national_id, request.phone, request.address
        )
        if not identity:
            self.credentials.add_identity(request.username, request.password_digest, Role.CUSTOMER)
        return account

    def _approve_admin(self, request: SignupRequest):
        # The submitted password is never used; new admins start on the default
        return self.credentials.add_identity(
            request.username, hash_password(self.default_admin_password), Role.ADMIN
        )

    def reject(self, request: SignupRequest) -> None:
        """Discard a queued request; nothing is kept"""
        with self._lock:
            self._require_queued(request)
            self._remove(request)
            self.save()

            log_action(
                self.logger, "info", "Signup request rejected",
                user_id=request.username, action="reject_signup",
                resource=f"queue:{self.kind.value}"
            )

    def decide_next(self, response) -> Optional[QueueOutcome]:
        """Apply an operator response to the head; anything but A/R leaves it queued"""
        with self._lock:
            head = self.process_next()
            if head is None:
                return None

            decision = Decision.parse(response)
            result = None
            if decision == Decision.APPROVE:
                result = self.approve(head)
            elif decision == Decision.REJECT:
                self.reject(head)
            return QueueOutcome(decision=decision, request=head, result=result)

    def clear(self) -> None:
        with self._lock:
            self._queue = []


class LoanBook:
    """Loan requests; Approved and Rejected are terminal"""

    def __init__(self, record_store: RecordStore, ledger: AccountLedger,
                 minimum_balance: Decimal = Decimal("5000"),
                 interest_rate: Decimal = Decimal("0.05"),
                 lock: Optional[threading.RLock] = None):
        self.record_store = record_store
        self.ledger = ledger
        self.minimum_balance = Decimal(minimum_balance)
        self.interest_rate = Decimal(interest_rate)
        self._lock = lock or threading.RLock()
        self._loans: List[LoanRequest] = []
        self.logger = get_logger("minibank.loans")

    def load(self) -> None:
        with self._lock:
            self._loans = self.record_store.load_loans()

    def save(self) -> None:
        with self._lock:
            self.record_store.save_loans(self._loans)

    def all(self) -> List[LoanRequest]:
        with self._lock:
            return list(self._loans)

    def pending(self) -> List[LoanRequest]:
        with self._lock:
            return [l for l in self._loans if l.status == LoanStatus.PENDING]

    def next_pending(self) -> Optional[LoanRequest]:
        pending = self.pending()
        return pending[0] if pending else None

    def loans_for(self, username: str) -> List[LoanRequest]:
        with self._lock:
            return [l for l in self._loans if l.username == username]

    def has_active_loan(self, username: str) -> bool:
        return any(l.is_active for l in self.loans_for(username))

    def submit_loan(self, username: str, amount, reason: str) -> LoanRequest:
        """
        Create a Pending loan request.

        Raises:
            AccountNotFoundError: the user has no approved account
            BalanceTooLowError: balance below the loan minimum
            ActiveLoanExistsError: a Pending or Approved loan already exists
        """
        value = to_decimal(amount)
        if value <= 0:
            raise ValidationError("Loan amount must be greater than zero")
        ensure_storable(reason or "", "|", "Reason")

        with self._lock:
            account = self.ledger.get_by_username(username)
            if not account:
                raise AccountNotFoundError(f"'{username}' has no approved account")
            if account.balance < self.minimum_balance:
                raise BalanceTooLowError(
                    f"Balance must be at least {self.minimum_balance} to request a loan"
                )
            if self.has_active_loan(username):
                raise ActiveLoanExistsError(f"'{username}' already has a pending or approved loan")

            loan = LoanRequest(
                username=username,
                amount=value,
                reason=reason or "",
                interest_rate=self.interest_rate
            )
            self._loans.append(loan)
            self.save()

            log_action(
                self.logger, "info", "Loan requested", user_id=username,
                action="submit_loan", resource=f"account:{account.account_number}",
                extra={"amount": str(value), "interest_rate": str(self.interest_rate)}
            )
            return loan

    def decide(self, request: LoanRequest, approve: bool,
               interest_rate: Optional[Decimal] = None) -> LoanRequest:
        """Approve (crediting the owner's account) or reject a pending loan"""
        with self._lock:
            if not any(l is request for l in self._loans):
                raise NotFoundError(f"Loan request for '{request.username}' not found")
            if request.is_terminal:
                raise TerminalStateError(f"Loan request already {request.status.value}")

            if approve:
                account = self.ledger.get_by_username(request.username)
                if not account:
                    raise AccountNotFoundError(f"'{request.username}' has no account to credit")
                if interest_rate is not None:
                    rate = to_decimal(interest_rate, "Interest rate")
                    if rate < 0:
                        raise ValidationError("Interest rate cannot be negative")
                    request.interest_rate = rate
                self.ledger.credit_loan(account.account_number, request.amount)
                request.status = LoanStatus.APPROVED
            else:
                request.status = LoanStatus.REJECTED
            self.save()

            log_action(
                self.logger, "info", f"Loan {request.status.value.lower()}",
                user_id=request.username, action="decide_loan",
                extra={"amount": str(request.amount), "status": request.status.value}
            )
            return request

    def decide_next(self, response) -> Optional[QueueOutcome]:
        """Apply an operator response to the oldest pending loan"""
        with self._lock:
            loan = self.next_pending()
            if loan is None:
                return None

            decision = Decision.parse(response)
            if decision != Decision.SKIP:
                self.decide(loan, decision == Decision.APPROVE)
            return QueueOutcome(decision=decision, request=loan, result=loan)

    def rename_owner(self, old_username: str, new_username: str) -> int:
        with self._lock:
            owned = self.loans_for(old_username)
            for loan in owned:
                loan.username = new_username
            if owned:
                self.save()
            return len(owned)

    def interest_income(self) -> Decimal:
        """Sum of amount times rate over approved loans"""
        with self._lock:
            return sum(
                (l.amount * l.interest_rate for l in self._loans if l.status == LoanStatus.APPROVED),
                Decimal("0")
            )

    def clear(self) -> None:
        with self._lock:
            self._loans = []


class AppointmentBook:
    """Pending appointments in arrival order, plus the approved set"""

    def __init__(self, record_store: RecordStore, lock: Optional[threading.RLock] = None):
        self.record_store = record_store
        self._lock = lock or threading.RLock()
        self._pending: List[Appointment] = []
        self._approved: List[Appointment] = []
        self.logger = get_logger("minibank.appointments")

    def load(self) -> None:
        with self._lock:
            self._pending = self.record_store.load_pending_appointments()
            self._approved = self.record_store.load_approved_appointments()

    def save(self) -> None:
        with self._lock:
            self.record_store.save_pending_appointments(self._pending)
            self.record_store.save_approved_appointments(self._approved)

    def book(self, username: str, service: str, date: str, time: str,
             reason: str = "") -> Appointment:
        """Queue an appointment; unknown services are filed as Other"""
        _require_text(username, "Username")
        _require_text(date, "Date")
        _require_text(time, "Time")
        if service not in APPOINTMENT_SERVICES:
            service = "Other"
        reason = reason or ""
        for field_name, value in (("Username", username), ("Date", date),
                                  ("Time", time), ("Reason", reason)):
            ensure_storable(value, "|", field_name)

        with self._lock:
            appointment = Appointment(
                username=username, service=service, date=date, time=time, reason=reason
            )
            self._pending.append(appointment)
            self.save()

            log_action(
                self.logger, "info", "Appointment booked", user_id=username,
                action="book_appointment", extra={"service": service, "date": date}
            )
            return appointment

    def pending(self) -> List[Appointment]:
        with self._lock:
            return list(self._pending)

    def approved(self) -> List[Appointment]:
        with self._lock:
            return list(self._approved)

    def appointments_for(self, username: str) -> List[Appointment]:
        """Pending then approved appointments of one user"""
        with self._lock:
            return [a for a in self._pending + self._approved if a.username == username]

    def rename_owner(self, old_username: str, new_username: str) -> int:
        with self._lock:
            owned = self.appointments_for(old_username)
            for appointment in owned:
                appointment.username = new_username
            if owned:
                self.save()
            return len(owned)

    def process_next(self) -> Optional[Appointment]:
        with self._lock:
            return self._pending[0] if self._pending else None

    def decide_next(self, response) -> Optional[QueueOutcome]:
        """
        Pop the head and apply the response: approve moves it to the
        approved set, reject discards it, anything else re-queues it at the
        tail.
        """
        with self._lock:
            if not self._pending:
                return None

            appointment = self._pending.pop(0)
            decision = Decision.parse(response)
            if decision == Decision.APPROVE:
                appointment.status = AppointmentStatus.APPROVED
                self._approved.append(appointment)
            elif decision == Decision.SKIP:
                self._pending.append(appointment)
            self.save()

            log_action(
                self.logger, "info", f"Appointment {decision.value}",
                user_id=appointment.username, action="decide_appointment",
                extra={"service": appointment.service, "date": appointment.date}
            )
            return QueueOutcome(decision=decision, request=appointment, result=appointment)

    def clear(self) -> None:
        with self._lock:
            self._pending = []
            self._approved = []
