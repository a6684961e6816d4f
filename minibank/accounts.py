"""
Account Ledger Module

Manages account records and every balance-mutating operation. Withdrawals
and transfer debits may never drive a balance below the configured minimum.
Account numbers come from a persisted high-water mark so they increase
strictly and are never reused, even after a delete and a restart.
"""

from decimal import Decimal
from typing import Callable, List, Optional, Tuple
import threading

from .currency import to_decimal
from .errors import (
    AccountNotFoundError, BelowMinimumBalanceError, ConflictError,
    DuplicateNationalIDError, InsufficientFundsError, PersistenceError, ValidationError
)
from .logging_config import get_logger, log_action
from .models import Account, TransactionEntry, TransactionType
from .persistence import RecordStore, ensure_storable
from .transactions import TransactionLog


def _positive_amount(amount) -> Decimal:
    value = to_decimal(amount)
    if value <= 0:
        raise ValidationError("Amount must be greater than zero")
    return value


class AccountLedger:
    """
    Owns the account collection and the account-number high-water mark
    """

    def __init__(self, record_store: RecordStore, transaction_log: TransactionLog,
                 minimum_balance: Decimal = Decimal("50"), account_number_floor: int = 1000,
                 lock: Optional[threading.RLock] = None):
        self.record_store = record_store
        self.transaction_log = transaction_log
        self.minimum_balance = Decimal(minimum_balance)
        self.account_number_floor = account_number_floor
        self._lock = lock or threading.RLock()
        self._accounts: List[Account] = []
        self._high_water_mark = account_number_floor
        self.logger = get_logger("minibank.accounts")

    def load(self) -> None:
        """Load accounts and recover the high-water mark"""
        with self._lock:
            self._accounts = self.record_store.load_accounts()
            self._high_water_mark = self.record_store.recover_high_water_mark(
                self._accounts, self.account_number_floor
            )

    def save(self) -> None:
        with self._lock:
            self.record_store.save_accounts(self._accounts)

    @property
    def high_water_mark(self) -> int:
        return self._high_water_mark

    def allocate_account_number(self) -> int:
        """Issue the next account number and persist the advanced mark"""
        with self._lock:
            self._high_water_mark += 1
            number = self._high_water_mark
            self.record_store.save_account_counter(number)
            return number

    def open_account(self, account_number: int, username: str, initial_balance,
                     national_id: str, phone: str, address: str) -> Account:
        """
        Insert a new account. National-ID uniqueness against the signup
        queue is the caller's concern; duplicates among accounts are refused.
        """
        balance = to_decimal(initial_balance, "Initial balance")
        if balance < 0:
            raise ValidationError("Initial balance cannot be negative")
        for field_name, value in (("Username", username), ("National ID", national_id),
                                  ("Phone", phone), ("Address", address)):
            ensure_storable(value, ",", field_name)

        with self._lock:
            if self.get(account_number):
                raise ConflictError(f"Account {account_number} already exists")
            if self.national_id_exists(national_id):
                raise DuplicateNationalIDError(f"National ID {national_id} is already registered")

            account = Account(
                account_number=account_number,
                username=username,
                balance=balance,
                national_id=national_id,
                phone=phone,
                address=address
            )
            self._accounts.append(account)
            self._high_water_mark = max(self._high_water_mark, account_number)
            self.save()

            log_action(
                self.logger, "info", f"Account opened: {account_number}",
                user_id=username, action="open_account", resource=f"account:{account_number}",
                extra={"initial_balance": str(balance)}
            )
            return account

    # Lookup

    def get(self, account_number: int) -> Optional[Account]:
        with self._lock:
            for account in self._accounts:
                if account.account_number == account_number:
                    return account
            return None

    def require(self, account_number: int) -> Account:
        account = self.get(account_number)
        if not account:
            raise AccountNotFoundError(f"Account {account_number} not found")
        return account

    def get_by_username(self, username: str) -> Optional[Account]:
        """First account owned by exactly username"""
        accounts = self.accounts_for(username)
        return accounts[0] if accounts else None

    def accounts_for(self, username: str) -> List[Account]:
        return self.find(lambda a: a.username == username)

    def search(self, query: str) -> List[Account]:
        """Accounts whose national ID equals query or whose owner matches it ignoring case"""
        text = (query or "").strip()
        return self.find(lambda a: a.national_id == text or a.username.lower() == text.lower())

    def find(self, predicate: Callable[[Account], bool]) -> List[Account]:
        with self._lock:
            return [a for a in self._accounts if predicate(a)]

    def all(self) -> List[Account]:
        with self._lock:
            return list(self._accounts)

    def national_id_exists(self, national_id: str) -> bool:
        return bool(self.find(lambda a: a.national_id == national_id))

    # Balance mutations

    def _commit(self, entries: List[Tuple[int, TransactionEntry]]) -> None:
        """
        Write recorded entries and the account file. Every write is
        attempted; the first failure is raised afterwards with memory left
        fully applied, so Bank.save_all() can rewrite what was missed.
        """
        failure = None
        for account_number, entry in entries:
            try:
                self.transaction_log.persist(account_number, entry)
            except PersistenceError as e:
                failure = failure or e
        try:
            self.save()
        except PersistenceError as e:
            failure = failure or e
        if failure:
            raise failure

    def deposit(self, account_number: int, amount) -> Decimal:
        value = _positive_amount(amount)
        with self._lock:
            account = self.require(account_number)
            account.balance += value
            entry = self.transaction_log.record(account_number, TransactionType.DEPOSIT, value, account.balance)
            self._commit([(account_number, entry)])

            log_action(
                self.logger, "info", "Deposit applied", user_id=account.username,
                action="deposit", resource=f"account:{account_number}",
                extra={"amount": str(value), "balance": str(account.balance)}
            )
            return account.balance

    def withdraw(self, account_number: int, amount) -> Decimal:
        value = _positive_amount(amount)
        with self._lock:
            account = self.require(account_number)
            if account.balance - value < self.minimum_balance:
                raise BelowMinimumBalanceError(
                    f"Withdrawal would leave {account.balance - value}, "
                    f"below the minimum balance of {self.minimum_balance}"
                )

            account.balance -= value
            entry = self.transaction_log.record(account_number, TransactionType.WITHDRAW, value, account.balance)
            self._commit([(account_number, entry)])

            log_action(
                self.logger, "info", "Withdrawal applied", user_id=account.username,
                action="withdraw", resource=f"account:{account_number}",
                extra={"amount": str(value), "balance": str(account.balance)}
            )
            return account.balance

    def transfer(self, from_account_number: int, to_account_number: int, amount) -> None:
        """
        Move funds between two accounts.

        Every check runs before either balance changes. On success the
        debit entry is logged first, then the credit entry.
        """
        value = _positive_amount(amount)
        if from_account_number == to_account_number:
            raise ValidationError("Cannot transfer to the same account")

        with self._lock:
            source = self.require(from_account_number)
            destination = self.require(to_account_number)
            if source.balance - value < self.minimum_balance:
                raise InsufficientFundsError(
                    f"Transfer would leave account {from_account_number} below "
                    f"the minimum balance of {self.minimum_balance}"
                )

            source.balance -= value
            destination.balance += value
            debit = self.transaction_log.record(
                from_account_number, TransactionType.TRANSFER_OUT, value, source.balance
            )
            credit = self.transaction_log.record(
                to_account_number, TransactionType.TRANSFER_IN, value, destination.balance
            )
            self._commit([(from_account_number, debit), (to_account_number, credit)])

            log_action(
                self.logger, "info", "Transfer completed", user_id=source.username,
                action="transfer", resource=f"account:{from_account_number}",
                extra={"to_account": to_account_number, "amount": str(value)}
            )

    def credit_loan(self, account_number: int, amount) -> Decimal:
        """Credit an approved loan amount"""
        value = _positive_amount(amount)
        with self._lock:
            account = self.require(account_number)
            account.balance += value
            entry = self.transaction_log.record(
                account_number, TransactionType.LOAN_APPROVED, value, account.balance
            )
            self._commit([(account_number, entry)])
            return account.balance

    # Administration

    def delete_account(self, account_number: int, confirm: Callable[[str], bool]) -> Optional[Account]:
        """Remove an account once confirmed; the owner's identity is kept"""
        with self._lock:
            account = self.require(account_number)
            if not confirm(f"Delete account number {account_number}?"):
                return None

            self._accounts.remove(account)
            self.save()
            log_action(
                self.logger, "warning", f"Account deleted: {account_number}",
                user_id=account.username, action="delete_account",
                resource=f"account:{account_number}"
            )
            return account

    def update_contact(self, account_number: int, phone: Optional[str] = None,
                       address: Optional[str] = None) -> Account:
        if phone is not None:
            ensure_storable(phone, ",", "Phone")
        if address is not None:
            ensure_storable(address, ",", "Address")

        with self._lock:
            account = self.require(account_number)
            if phone is not None:
                account.phone = phone
            if address is not None:
                account.address = address
            self.save()
            return account

    def change_national_id(self, account_number: int, national_id: str) -> Account:
        if not national_id or not national_id.strip():
            raise ValidationError("National ID is required")
        ensure_storable(national_id, ",", "National ID")

        with self._lock:
            account = self.require(account_number)
            if account.national_id == national_id:
                return account
            if self.national_id_exists(national_id):
                raise DuplicateNationalIDError(f"National ID {national_id} already in use")
            account.national_id = national_id
            self.save()
            return account

    def rename_owner(self, old_username: str, new_username: str, persist: bool = True) -> int:
        """Point every account of old_username at new_username; returns the count"""
        ensure_storable(new_username, ",", "Username")
        with self._lock:
            owned = self.find(lambda a: a.username == old_username)
            for account in owned:
                account.username = new_username
            if owned and persist:
                self.save()
            return len(owned)

    def clear(self) -> None:
        with self._lock:
            self._accounts = []
            self._high_water_mark = self.account_number_floor
