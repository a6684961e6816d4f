"""
Persistence Layer Module

Line codecs for every collection and the RecordStore that loads and saves
them through a StorageInterface. Identities and accounts are comma
delimited, every other collection is pipe delimited. Loading is tolerant:
a line with the wrong field count or an unparseable value is skipped with a
warning. Saving rewrites the whole collection; a failed write raises
PersistenceError and leaves the caller's in-memory collection untouched.
"""

from decimal import Decimal, InvalidOperation
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple, TypeVar
import re

from .errors import PersistenceError, ValidationError
from .logging_config import get_logger, log_action
from .models import (
    Account, Appointment, AppointmentStatus, Feedback, Identity, LoanRequest,
    LoanStatus, Role, SignupKind, SignupRequest, TransactionEntry, TransactionType
)
from .storage import StorageInterface


T = TypeVar("T")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Culture-formatted stamps found in older data files, tried in order after ISO
LEGACY_TIMESTAMP_FORMATS = (
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
)

USERS_FILE = "users.txt"
ACCOUNTS_FILE = "accounts.txt"
ACCOUNT_COUNTER_FILE = "account_counter.txt"
LOAN_REQUESTS_FILE = "loan_requests.txt"
APPOINTMENTS_PENDING_FILE = "appointments_pending.txt"
APPOINTMENTS_APPROVED_FILE = "appointments_approved.txt"
FEEDBACK_FILE = "service_feedback.txt"
REVIEWS_FILE = "reviews.txt"
EXCHANGE_RATES_FILE = "exchange_rates.txt"
ACCOUNTS_EXPORT_FILE = "accounts_export.txt"
TRANSACTIONS_DIR = "transactions"
BACKUP_PREFIX = "backup_"

SIGNUP_QUEUE_FILES = {
    SignupKind.ACCOUNT_OPENING: "account_requests.txt",
    SignupKind.ADMIN_ENROLLMENT: "admin_requests.txt",
}

# Files removed by a full wipe; exchange rates and backups survive
WIPE_FILES = (
    USERS_FILE, ACCOUNTS_FILE, ACCOUNT_COUNTER_FILE, LOAN_REQUESTS_FILE,
    APPOINTMENTS_PENDING_FILE, APPOINTMENTS_APPROVED_FILE, FEEDBACK_FILE,
    REVIEWS_FILE,
) + tuple(SIGNUP_QUEUE_FILES.values())

_TRANSACTION_FILE_RE = re.compile(r"^acc_(\d+)\.txt$")


def ensure_storable(value: str, delimiter: str, field_name: str) -> str:
    """Reject values that would break the line format of their collection"""
    if value is None:
        raise ValidationError(f"{field_name} is required")
    if delimiter in value or "\n" in value or "\r" in value:
        raise ValidationError(f"{field_name} may not contain '{delimiter}' or line breaks")
    return value


def format_timestamp(value: datetime) -> str:
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """
    Parse a stored timestamp. ISO text is expected; older files may hold
    en-US style stamps such as "5/1/2024 9:30:00 AM". Ambiguous day/month
    values read month first.
    """
    text = value.strip()
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    for pattern in LEGACY_TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, pattern)
        except ValueError:
            continue
    raise ValueError(f"Unrecognized timestamp: {value!r}")


def _parse_bool(value: str) -> bool:
    text = value.strip().lower()
    if text == "true":
        return True
    if text == "false":
        return False
    raise ValueError(f"Not a boolean: {value!r}")


# Codecs

def encode_identity(identity: Identity) -> str:
    return ",".join([
        identity.username,
        identity.password_digest,
        identity.role.value,
        str(identity.is_locked),
        str(identity.failed_attempts),
    ])


def decode_identity(line: str) -> Identity:
    parts = line.split(",")
    # Older files carry only username,digest,role
    if not 3 <= len(parts) <= 5:
        raise ValueError(f"expected 3-5 fields, got {len(parts)}")
    return Identity(
        username=parts[0],
        password_digest=parts[1],
        role=Role(parts[2]),
        is_locked=_parse_bool(parts[3]) if len(parts) > 3 else False,
        failed_attempts=int(parts[4]) if len(parts) > 4 else 0,
    )


def encode_account(account: Account) -> str:
    return ",".join([
        str(account.account_number),
        account.username,
        str(account.balance),
        account.national_id,
        account.phone,
        account.address,
    ])


def decode_account(line: str) -> Account:
    parts = line.split(",")
    if len(parts) != 6:
        raise ValueError(f"expected 6 fields, got {len(parts)}")
    return Account(
        account_number=int(parts[0]),
        username=parts[1],
        balance=Decimal(parts[2]),
        national_id=parts[3],
        phone=parts[4],
        address=parts[5],
    )


def encode_loan(loan: LoanRequest) -> str:
    return "|".join([
        loan.username, str(loan.amount), loan.reason, loan.status.value, str(loan.interest_rate)
    ])


def decode_loan(line: str) -> LoanRequest:
    parts = line.split("|")
    if len(parts) != 5:
        raise ValueError(f"expected 5 fields, got {len(parts)}")
    return LoanRequest(
        username=parts[0],
        amount=Decimal(parts[1]),
        reason=parts[2],
        status=LoanStatus(parts[3]),
        interest_rate=Decimal(parts[4]),
    )


def encode_appointment(appointment: Appointment) -> str:
    return "|".join([
        appointment.username, appointment.service, appointment.date,
        appointment.time, appointment.reason, appointment.status.value
    ])


def decode_appointment(line: str) -> Appointment:
    parts = line.split("|")
    if len(parts) != 6:
        raise ValueError(f"expected 6 fields, got {len(parts)}")
    return Appointment(
        username=parts[0],
        service=parts[1],
        date=parts[2],
        time=parts[3],
        reason=parts[4],
        status=AppointmentStatus(parts[5]),
    )


def encode_feedback(feedback: Feedback) -> str:
    return "|".join([
        feedback.username, feedback.service, feedback.text, format_timestamp(feedback.timestamp)
    ])


def decode_feedback(line: str) -> Feedback:
    parts = line.split("|")
    if len(parts) != 4:
        raise ValueError(f"expected 4 fields, got {len(parts)}")
    return Feedback(
        username=parts[0],
        service=parts[1],
        text=parts[2],
        timestamp=parse_timestamp(parts[3]),
    )


def encode_signup(request: SignupRequest) -> str:
    return "|".join([
        request.kind.value,
        request.username,
        request.full_name,
        request.national_id,
        request.phone,
        request.address,
        str(request.initial_deposit),
        request.password_digest or "",
    ])


def decode_signup(line: str) -> SignupRequest:
    parts = line.split("|")
    if len(parts) != 8:
        raise ValueError(f"expected 8 fields, got {len(parts)}")
    return SignupRequest(
        kind=SignupKind(parts[0]),
        username=parts[1],
        full_name=parts[2],
        national_id=parts[3],
        phone=parts[4],
        address=parts[5],
        initial_deposit=Decimal(parts[6]),
        password_digest=parts[7] or None,
    )


def encode_transaction(entry: TransactionEntry) -> str:
    return (
        f"{format_timestamp(entry.timestamp)} | {entry.transaction_type.value} | "
        f"Amount: {entry.amount} | Balance: {entry.balance}"
    )


def decode_transaction(line: str) -> TransactionEntry:
    parts = [p.strip() for p in line.split("|")]
    if len(parts) != 4:
        raise ValueError(f"expected 4 fields, got {len(parts)}")
    if not parts[2].startswith("Amount:") or not parts[3].startswith("Balance:"):
        raise ValueError("missing Amount/Balance labels")
    return TransactionEntry(
        timestamp=parse_timestamp(parts[0]),
        transaction_type=TransactionType(parts[1]),
        amount=Decimal(parts[2][len("Amount:"):].strip()),
        balance=Decimal(parts[3][len("Balance:"):].strip()),
    )


def transaction_file(account_number: int) -> str:
    return f"{TRANSACTIONS_DIR}/acc_{account_number}.txt"


class RecordStore:
    """
    Loads and saves every engine collection through a storage backend
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.logger = get_logger("minibank.persistence")

    # Generic helpers

    def _load(self, name: str, decoder: Callable[[str], T]) -> List[T]:
        records = []
        for number, line in enumerate(self._read(name), start=1):
            if not line.strip():
                continue
            try:
                records.append(decoder(line))
            except (ValueError, InvalidOperation) as e:
                log_action(
                    self.logger, "warning", f"Skipping malformed line {number} in {name}",
                    action="load_skip", resource=name, extra={"error": str(e)}
                )
        return records

    def _read(self, name: str) -> List[str]:
        try:
            return self.storage.read_lines(name)
        except OSError as e:
            self.logger.error(f"Failed to read {name}: {e}")
            raise PersistenceError(f"Failed to read {name}: {e}", "read_failed")

    def _save(self, name: str, lines: List[str]) -> None:
        try:
            self.storage.write_lines(name, lines)
        except OSError as e:
            log_action(
                self.logger, "error", f"Failed to save {name}",
                action="save_failed", resource=name, extra={"error": str(e)}
            )
            raise PersistenceError(f"Failed to save {name}: {e}", "save_failed")

    # Identities

    def load_identities(self) -> List[Identity]:
        return self._load(USERS_FILE, decode_identity)

    def save_identities(self, identities: List[Identity]) -> None:
        self._save(USERS_FILE, [encode_identity(i) for i in identities])

    # Accounts and the account-number high-water mark

    def load_accounts(self) -> List[Account]:
        return self._load(ACCOUNTS_FILE, decode_account)

    def save_accounts(self, accounts: List[Account]) -> None:
        self._save(ACCOUNTS_FILE, [encode_account(a) for a in accounts])

    def load_account_counter(self) -> Optional[int]:
        """Persisted high-water mark, or None when absent or unreadable"""
        for line in self._read(ACCOUNT_COUNTER_FILE):
            try:
                return int(line.strip())
            except ValueError:
                self.logger.warning(f"Ignoring malformed {ACCOUNT_COUNTER_FILE}")
                return None
        return None

    def save_account_counter(self, value: int) -> None:
        self._save(ACCOUNT_COUNTER_FILE, [str(value)])

    def recover_high_water_mark(self, accounts: List[Account], floor: int) -> int:
        """max(persisted counter, largest account number, floor)"""
        candidates = [floor] + [a.account_number for a in accounts]
        counter = self.load_account_counter()
        if counter is not None:
            candidates.append(counter)
        return max(candidates)

    # Loans

    def load_loans(self) -> List[LoanRequest]:
        return self._load(LOAN_REQUESTS_FILE, decode_loan)

    def save_loans(self, loans: List[LoanRequest]) -> None:
        self._save(LOAN_REQUESTS_FILE, [encode_loan(l) for l in loans])

    # Appointments

    def load_pending_appointments(self) -> List[Appointment]:
        return self._load(APPOINTMENTS_PENDING_FILE, decode_appointment)

    def save_pending_appointments(self, appointments: List[Appointment]) -> None:
        self._save(APPOINTMENTS_PENDING_FILE, [encode_appointment(a) for a in appointments])

    def load_approved_appointments(self) -> List[Appointment]:
        return self._load(APPOINTMENTS_APPROVED_FILE, decode_appointment)

    def save_approved_appointments(self, appointments: List[Appointment]) -> None:
        self._save(APPOINTMENTS_APPROVED_FILE, [encode_appointment(a) for a in appointments])

    # Feedback and complaints

    def load_feedback(self) -> List[Feedback]:
        return self._load(FEEDBACK_FILE, decode_feedback)

    def save_feedback(self, feedback: List[Feedback]) -> None:
        self._save(FEEDBACK_FILE, [encode_feedback(f) for f in feedback])

    def load_complaints(self) -> List[str]:
        """Complaints, newest first"""
        return [line for line in self._read(REVIEWS_FILE) if line.strip()]

    def save_complaints(self, complaints: List[str]) -> None:
        self._save(REVIEWS_FILE, list(complaints))

    # Rates

    def load_rates(self) -> Optional[Tuple[Decimal, Decimal, Decimal]]:
        """Three factors in USD, EUR, SAR order, or None to keep defaults"""
        lines = [line for line in self._read(EXCHANGE_RATES_FILE) if line.strip()]
        if len(lines) < 3:
            return None
        try:
            return tuple(Decimal(line.strip()) for line in lines[:3])
        except InvalidOperation:
            self.logger.warning(f"Ignoring malformed {EXCHANGE_RATES_FILE}")
            return None

    def save_rates(self, rates: Tuple[Decimal, Decimal, Decimal]) -> None:
        self._save(EXCHANGE_RATES_FILE, [str(r) for r in rates])

    # Signup queues

    def load_signup_queue(self, kind: SignupKind) -> List[SignupRequest]:
        requests = self._load(SIGNUP_QUEUE_FILES[kind], decode_signup)
        return [r for r in requests if r.kind == kind]

    def save_signup_queue(self, kind: SignupKind, requests: List[SignupRequest]) -> None:
        self._save(SIGNUP_QUEUE_FILES[kind], [encode_signup(r) for r in requests])

    # Transaction logs

    def load_transaction_logs(self) -> Dict[int, List[TransactionEntry]]:
        logs = {}
        for name in self.storage.list_names(TRANSACTIONS_DIR):
            match = _TRANSACTION_FILE_RE.match(name.rsplit("/", 1)[-1])
            if not match:
                continue
            logs[int(match.group(1))] = self._load(name, decode_transaction)
        return logs

    def append_transaction(self, account_number: int, entry: TransactionEntry) -> None:
        name = transaction_file(account_number)
        try:
            self.storage.append_line(name, encode_transaction(entry))
        except OSError as e:
            log_action(
                self.logger, "error", f"Failed to append to {name}",
                action="append_failed", resource=name, extra={"error": str(e)}
            )
            raise PersistenceError(f"Failed to append to {name}: {e}", "append_failed")

    def save_transaction_log(self, account_number: int, entries: List[TransactionEntry]) -> None:
        self._save(transaction_file(account_number), [encode_transaction(e) for e in entries])

    # Maintenance

    def backup(self, stamp: str) -> str:
        """Copy every collection into backup_<stamp>/ and return the folder name"""
        folder = f"{BACKUP_PREFIX}{stamp}"
        for name in self.storage.list_names():
            if name.startswith(BACKUP_PREFIX):
                continue
            self._save(f"{folder}/{name}", self._read(name))
        log_action(self.logger, "info", f"Backup written to {folder}", action="backup", resource=folder)
        return folder

    def wipe(self) -> None:
        """Delete every collection file and all transaction logs"""
        try:
            for name in WIPE_FILES:
                self.storage.delete(name)
            for name in self.storage.list_names(TRANSACTIONS_DIR):
                self.storage.delete(name)
        except OSError as e:
            self.logger.error(f"Failed to wipe data: {e}")
            raise PersistenceError(f"Failed to wipe data: {e}", "wipe_failed")

    def export_accounts(self, accounts: List[Account]) -> str:
        lines = ["AccountNumber,Username,NationalID,Balance"]
        lines.extend(
            f"{a.account_number},{a.username},{a.national_id},{a.balance}" for a in accounts
        )
        self._save(ACCOUNTS_EXPORT_FILE, lines)
        return ACCOUNTS_EXPORT_FILE
