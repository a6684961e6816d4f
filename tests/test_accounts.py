"""
Tests for the account ledger: numbering, balance rules, transfer atomicity,
deletion and search
"""

import pytest
from decimal import Decimal
from datetime import datetime

from minibank.accounts import AccountLedger
from minibank.errors import (
    AccountNotFoundError, BelowMinimumBalanceError, DuplicateNationalIDError,
    InsufficientFundsError, PersistenceError, ValidationError
)
from minibank.models import TransactionType
from minibank.persistence import RecordStore
from minibank.storage import FileStorage, InMemoryStorage
from minibank.transactions import TransactionLog


def fixed_clock():
    return datetime(2024, 5, 1, 9, 30, 0)


def build_ledger(storage):
    record_store = RecordStore(storage)
    log = TransactionLog(record_store, clock=fixed_clock)
    ledger = AccountLedger(record_store, log, minimum_balance=Decimal("50"), account_number_floor=1000)
    log.load()
    ledger.load()
    return ledger


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def ledger(storage):
    return build_ledger(storage)


def open_account(ledger, username="alice", balance="100", national_id=None):
    number = ledger.allocate_account_number()
    return ledger.open_account(
        number, username, Decimal(balance), national_id or f"N{number}", "99887766", "Muscat"
    )


class TestAccountNumbers:
    """Numbers start at 1001, increase strictly and are never reused"""

    def test_first_number_is_1001(self, ledger):
        assert ledger.allocate_account_number() == 1001
        assert ledger.allocate_account_number() == 1002

    def test_numbers_survive_restart(self, tmp_path):
        storage = FileStorage(tmp_path)
        ledger = build_ledger(storage)
        issued = [open_account(ledger, f"user{i}").account_number for i in range(3)]

        restarted = build_ledger(FileStorage(tmp_path))
        assert restarted.allocate_account_number() == max(issued) + 1

    def test_deleted_number_is_not_reused_after_restart(self, tmp_path):
        ledger = build_ledger(FileStorage(tmp_path))
        open_account(ledger, "alice")
        last = open_account(ledger, "bob")
        ledger.delete_account(last.account_number, lambda prompt: True)

        restarted = build_ledger(FileStorage(tmp_path))
        assert restarted.allocate_account_number() == last.account_number + 1

    def test_missing_counter_recovered_from_accounts(self, storage):
        ledger = build_ledger(storage)
        for i in range(3):
            open_account(ledger, f"user{i}")
        storage.delete("account_counter.txt")

        assert build_ledger(storage).allocate_account_number() == 1004


class TestDepositWithdraw:

    def test_minimum_balance_scenario(self, ledger):
        """Balance 100, minimum 50: withdrawing 60 fails, withdrawing 40 succeeds"""
        account = open_account(ledger, balance="100")
        assert account.account_number == 1001

        with pytest.raises(BelowMinimumBalanceError):
            ledger.withdraw(1001, "60")
        assert ledger.get(1001).balance == Decimal("100")

        assert ledger.withdraw(1001, "40") == Decimal("60")

    def test_withdraw_down_to_exact_minimum(self, ledger):
        open_account(ledger, balance="100")
        assert ledger.withdraw(1001, "50") == Decimal("50")

    def test_deposit(self, ledger):
        open_account(ledger, balance="100")
        assert ledger.deposit(1001, "25.50") == Decimal("125.50")

    @pytest.mark.parametrize("amount", ["0", "-5", "abc"])
    def test_invalid_amounts_rejected(self, ledger, amount):
        open_account(ledger, balance="100")
        with pytest.raises(ValidationError):
            ledger.deposit(1001, amount)
        with pytest.raises(ValidationError):
            ledger.withdraw(1001, amount)
        assert ledger.get(1001).balance == Decimal("100")

    def test_unknown_account(self, ledger):
        with pytest.raises(AccountNotFoundError):
            ledger.deposit(4242, "10")

    def test_mutations_are_logged(self, ledger):
        open_account(ledger, balance="100")
        ledger.deposit(1001, "10")
        ledger.withdraw(1001, "20")

        history = ledger.transaction_log.history(1001)
        assert [(e.transaction_type, e.amount, e.balance) for e in history] == [
            (TransactionType.DEPOSIT, Decimal("10"), Decimal("110")),
            (TransactionType.WITHDRAW, Decimal("20"), Decimal("90")),
        ]

    def test_balances_are_persisted(self, storage, ledger):
        open_account(ledger, balance="100")
        ledger.deposit(1001, "10")
        assert storage.read_lines("accounts.txt") == ["1001,alice,110,N1001,99887766,Muscat"]


class TestTransfer:

    def test_transfer_moves_funds_and_logs_both_sides(self, ledger):
        open_account(ledger, "alice", "500")
        open_account(ledger, "bob", "100")

        ledger.transfer(1001, 1002, "200")

        assert ledger.get(1001).balance == Decimal("300")
        assert ledger.get(1002).balance == Decimal("300")
        assert ledger.transaction_log.history(1001)[-1].transaction_type == TransactionType.TRANSFER_OUT
        assert ledger.transaction_log.history(1002)[-1].transaction_type == TransactionType.TRANSFER_IN

    def test_transfer_below_minimum_changes_nothing(self, ledger):
        open_account(ledger, "alice", "100")
        open_account(ledger, "bob", "100")

        with pytest.raises(InsufficientFundsError):
            ledger.transfer(1001, 1002, "60")

        assert ledger.get(1001).balance == Decimal("100")
        assert ledger.get(1002).balance == Decimal("100")
        assert ledger.transaction_log.history(1001) == []
        assert ledger.transaction_log.history(1002) == []

    def test_transfer_to_missing_account_changes_nothing(self, ledger):
        open_account(ledger, "alice", "500")
        with pytest.raises(AccountNotFoundError):
            ledger.transfer(1001, 9999, "10")
        assert ledger.get(1001).balance == Decimal("500")

    def test_transfer_to_same_account_rejected(self, ledger):
        open_account(ledger, "alice", "500")
        with pytest.raises(ValidationError):
            ledger.transfer(1001, 1001, "10")

    def test_failed_credit_append_keeps_both_entries(self, storage, ledger, monkeypatch):
        open_account(ledger, "alice", "500")
        open_account(ledger, "bob", "100")
        original_append = storage.append_line
        calls = []

        def fail_second_append(name, line):
            calls.append(name)
            if len(calls) == 2:
                raise OSError("disk full")
            original_append(name, line)

        monkeypatch.setattr(storage, "append_line", fail_second_append)
        with pytest.raises(PersistenceError):
            ledger.transfer(1001, 1002, "200")

        assert ledger.get(1001).balance == Decimal("300")
        assert ledger.get(1002).balance == Decimal("300")
        assert [e.transaction_type for e in ledger.transaction_log.history(1001)] == [TransactionType.TRANSFER_OUT]
        assert [e.transaction_type for e in ledger.transaction_log.history(1002)] == [TransactionType.TRANSFER_IN]
        assert len(storage.read_lines("transactions/acc_1001.txt")) == 1
        assert storage.read_lines("transactions/acc_1002.txt") == []

    def test_balances_never_drop_below_minimum(self, ledger):
        open_account(ledger, "alice", "300")
        open_account(ledger, "bob", "300")
        attempts = [("w", 1001, "100"), ("t", 1001, "200"), ("w", 1002, "260"),
                    ("t", 1002, "400"), ("w", 1001, "150"), ("t", 1002, "1")]
        for kind, number, amount in attempts:
            try:
                if kind == "w":
                    ledger.withdraw(number, amount)
                else:
                    ledger.transfer(number, 1003 - number + 1000, amount)
            except (BelowMinimumBalanceError, InsufficientFundsError):
                pass
            for account in ledger.all():
                assert account.balance >= Decimal("50")


class TestAdministration:

    def test_delete_requires_confirmation(self, ledger):
        open_account(ledger)
        assert ledger.delete_account(1001, lambda prompt: False) is None
        assert ledger.get(1001) is not None

        deleted = ledger.delete_account(1001, lambda prompt: True)
        assert deleted.account_number == 1001
        assert ledger.get(1001) is None

    def test_search_by_national_id_or_username(self, ledger):
        open_account(ledger, "Alice", national_id="784")
        open_account(ledger, "bob", national_id="785")

        assert [a.username for a in ledger.search("784")] == ["Alice"]
        assert [a.username for a in ledger.search("ALICE")] == ["Alice"]
        assert ledger.search("nobody") == []

    def test_duplicate_national_id_refused(self, ledger):
        open_account(ledger, "alice", national_id="784")
        with pytest.raises(DuplicateNationalIDError):
            open_account(ledger, "bob", national_id="784")

    def test_update_contact_and_national_id(self, ledger):
        open_account(ledger, "alice", national_id="784")
        open_account(ledger, "bob", national_id="785")

        ledger.update_contact(1001, phone="123", address="Nizwa")
        assert (ledger.get(1001).phone, ledger.get(1001).address) == ("123", "Nizwa")

        with pytest.raises(DuplicateNationalIDError):
            ledger.change_national_id(1001, "785")
        ledger.change_national_id(1001, "900")
        assert ledger.get(1001).national_id == "900"
