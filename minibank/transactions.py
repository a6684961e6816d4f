"""
Transaction Log Module

Append-only per-account history of balance movements. Each entry records the
timestamp, the type tag, the amount and the resulting balance. Entries are
never mutated or removed; queries return copies filtered by date range, type,
amount or statement month.
"""

from decimal import Decimal
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Union
import threading

from .currency import to_decimal
from .logging_config import get_logger, log_action
from .models import TransactionEntry, TransactionType
from .persistence import RecordStore


DateLike = Union[date, datetime]


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


class TransactionLog:
    """
    Per-account transaction streams backed by one append-only file each
    """

    def __init__(self, record_store: RecordStore,
                 clock: Optional[Callable[[], datetime]] = None,
                 lock: Optional[threading.RLock] = None):
        self.record_store = record_store
        self.clock = clock or datetime.now
        self._lock = lock or threading.RLock()
        self._streams: Dict[int, List[TransactionEntry]] = {}
        self.logger = get_logger("minibank.transactions")

    def load(self) -> None:
        with self._lock:
            self._streams = self.record_store.load_transaction_logs()

    def record(self, account_number: int, transaction_type: TransactionType,
               amount: Decimal, balance: Decimal) -> TransactionEntry:
        """Add a movement to the in-memory stream only; see persist()"""
        entry = TransactionEntry(
            timestamp=self.clock().replace(microsecond=0),
            transaction_type=transaction_type,
            amount=amount,
            balance=balance
        )
        with self._lock:
            self._streams.setdefault(account_number, []).append(entry)

        log_action(
            self.logger, "info", f"Transaction recorded: {transaction_type.value}",
            action="append_transaction", resource=f"account:{account_number}",
            extra={"amount": str(amount), "balance": str(balance)}
        )
        return entry

    def persist(self, account_number: int, entry: TransactionEntry) -> None:
        """
        Append a recorded entry to its account file. On failure the entry
        stays in memory and a later save_all() rewrites the whole stream.
        """
        self.record_store.append_transaction(account_number, entry)

    def append(self, account_number: int, transaction_type: TransactionType,
               amount: Decimal, balance: Decimal) -> TransactionEntry:
        """Record one movement and append it to the account file"""
        with self._lock:
            entry = self.record(account_number, transaction_type, amount, balance)
            self.persist(account_number, entry)
            return entry

    def history(self, account_number: int) -> List[TransactionEntry]:
        """Full history in append order"""
        with self._lock:
            return list(self._streams.get(account_number, []))

    def filter_by_date_range(self, account_number: int, start: DateLike,
                             end: DateLike) -> List[TransactionEntry]:
        """Entries dated from start through the whole end day, inclusive"""
        start_day, end_day = _as_date(start), _as_date(end)
        return [
            e for e in self.history(account_number)
            if start_day <= e.timestamp.date() <= end_day
        ]

    def filter_by_type(self, account_number: int, text: str) -> List[TransactionEntry]:
        """Entries whose type tag contains text, ignoring case"""
        needle = (text or "").strip().lower()
        return [
            e for e in self.history(account_number)
            if needle in e.transaction_type.value.lower()
        ]

    def filter_by_amount(self, account_number: int, amount) -> List[TransactionEntry]:
        target = to_decimal(amount)
        return [e for e in self.history(account_number) if e.amount == target]

    def statement(self, account_number: int, year: int, month: int) -> List[TransactionEntry]:
        """Entries for one calendar month"""
        return [
            e for e in self.history(account_number)
            if e.timestamp.year == year and e.timestamp.month == month
        ]

    def all_histories(self) -> Dict[int, List[TransactionEntry]]:
        with self._lock:
            return {number: list(entries) for number, entries in self._streams.items()}

    def clear(self) -> None:
        with self._lock:
            self._streams = {}
