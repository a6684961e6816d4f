"""
Domain Records Module

Typed records for identities, accounts, requests and log entries. Every
collection the engine owns is a list or dict of these dataclasses.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from typing import Optional
from enum import Enum


class Role(Enum):
    """Identity roles"""
    ADMIN = "Admin"
    CUSTOMER = "Customer"


class AuthResult(Enum):
    """Outcome of an authentication attempt"""
    SUCCESS = "success"
    WRONG_PASSWORD = "wrong_password"
    LOCKED = "locked"
    NOT_FOUND = "not_found"


class LoanStatus(Enum):
    """Loan request lifecycle; Approved and Rejected are terminal"""
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class AppointmentStatus(Enum):
    """Appointment lifecycle; rejected appointments are discarded"""
    PENDING = "Pending"
    APPROVED = "Approved"


class TransactionType(Enum):
    """Type tags written to the transaction log"""
    DEPOSIT = "Deposit"
    WITHDRAW = "Withdraw"
    TRANSFER_OUT = "Transfer Out"
    TRANSFER_IN = "Transfer In"
    LOAN_APPROVED = "Loan Approved"


class SignupKind(Enum):
    """The two signup queues"""
    ACCOUNT_OPENING = "account_opening"
    ADMIN_ENROLLMENT = "admin_enrollment"

    @property
    def role(self) -> Role:
        """Role granted when a request of this kind is approved"""
        if self == SignupKind.ADMIN_ENROLLMENT:
            return Role.ADMIN
        return Role.CUSTOMER


class Decision(Enum):
    """Admin response to the request at the head of a queue"""
    APPROVE = "approve"
    REJECT = "reject"
    SKIP = "skip"

    @classmethod
    def parse(cls, response) -> 'Decision':
        """Map an operator response (A/R, approve/reject) to a decision; anything else skips"""
        if isinstance(response, Decision):
            return response
        text = str(response or "").strip().lower()
        if text in ("a", "approve", "approved"):
            return cls.APPROVE
        if text in ("r", "reject", "rejected"):
            return cls.REJECT
        return cls.SKIP


APPOINTMENT_SERVICES = ("Open Account", "Loan", "Consultation", "Other")
FEEDBACK_SERVICES = ("Account Opening", "Loans", "Transfers", "Other")


@dataclass
class Identity:
    """Login identity; the password is only ever held as a digest"""
    username: str
    password_digest: str
    role: Role
    is_locked: bool = False
    failed_attempts: int = 0
    lockout_exempt: bool = False


@dataclass
class Account:
    """Bank account owned by a customer identity"""
    account_number: int
    username: str
    balance: Decimal
    national_id: str
    phone: str
    address: str


@dataclass
class LoanRequest:
    """Loan request; never deleted, only transitioned"""
    username: str
    amount: Decimal
    reason: str
    status: LoanStatus = LoanStatus.PENDING
    interest_rate: Decimal = Decimal("0")

    @property
    def is_terminal(self) -> bool:
        return self.status != LoanStatus.PENDING

    @property
    def is_active(self) -> bool:
        """Pending or approved loans block new requests; approved loans never close"""
        return self.status in (LoanStatus.PENDING, LoanStatus.APPROVED)


@dataclass
class Appointment:
    """Branch appointment request"""
    username: str
    service: str
    date: str
    time: str
    reason: str
    status: AppointmentStatus = AppointmentStatus.PENDING


@dataclass
class Feedback:
    """Service feedback entry"""
    username: str
    service: str
    text: str
    timestamp: datetime


@dataclass
class SignupRequest:
    """
    Pending signup awaiting admin approval.

    password_digest is None when an already registered customer asks for
    an account; approval then reuses the existing identity.
    """
    kind: SignupKind
    username: str
    full_name: str
    national_id: str
    phone: str
    address: str
    initial_deposit: Decimal = Decimal("0")
    password_digest: Optional[str] = None


@dataclass(frozen=True)
class TransactionEntry:
    """Immutable transaction log line"""
    timestamp: datetime
    transaction_type: TransactionType
    amount: Decimal
    balance: Decimal
