"""
Reporting Module

Read-only admin reports over accounts, identities, loans, appointments and
feedback: totals, averages, rankings, holdings in foreign currencies and
overall system statistics.
"""

from decimal import Decimal
from dataclasses import dataclass, asdict
from typing import Any, Dict, List

from .accounts import AccountLedger
from .credentials import CredentialStore
from .currency import Currency, RateTable, to_decimal
from .feedback import ComplaintStack, FeedbackBox
from .models import Account, LoanStatus, Role
from .workflows import AppointmentBook, LoanBook


@dataclass
class SystemStats:
    """Snapshot of the system counters"""
    total_users: int
    total_accounts: int
    total_loans: int
    approved_loans: int
    total_appointments: int
    approved_appointments: int
    total_complaints: int
    total_feedback: int
    loan_interest_income: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ReportingEngine:
    """Aggregates across the engine's collections"""

    def __init__(self, ledger: AccountLedger, credentials: CredentialStore,
                 loans: LoanBook, appointments: AppointmentBook,
                 feedback: FeedbackBox, complaints: ComplaintStack, rates: RateTable):
        self.ledger = ledger
        self.credentials = credentials
        self.loans = loans
        self.appointments = appointments
        self.feedback = feedback
        self.complaints = complaints
        self.rates = rates

    def total_balance(self) -> Decimal:
        return sum((a.balance for a in self.ledger.all()), Decimal("0"))

    def average_balance(self) -> Decimal:
        """Mean balance; zero when there are no accounts"""
        accounts = self.ledger.all()
        if not accounts:
            return Decimal("0")
        return self.total_balance() / len(accounts)

    def top_accounts(self, n: int = 3) -> List[Account]:
        return sorted(self.ledger.all(), key=lambda a: a.balance, reverse=True)[:n]

    def richest_accounts(self) -> List[Account]:
        """Every account holding the highest balance"""
        accounts = self.ledger.all()
        if not accounts:
            return []
        highest = max(a.balance for a in accounts)
        return [a for a in accounts if a.balance == highest]

    def accounts_above(self, amount) -> List[Account]:
        """Accounts with a balance strictly greater than amount"""
        threshold = to_decimal(amount)
        return self.ledger.find(lambda a: a.balance > threshold)

    def total_customers(self) -> int:
        return self.credentials.count(Role.CUSTOMER)

    def holdings_in(self, currency: Currency) -> Decimal:
        return self.rates.convert_rounded(self.total_balance(), currency)

    def system_stats(self) -> SystemStats:
        loans = self.loans.all()
        approved_appointments = len(self.appointments.approved())
        return SystemStats(
            total_users=self.credentials.count(),
            total_accounts=len(self.ledger.all()),
            total_loans=len(loans),
            approved_loans=sum(1 for l in loans if l.status == LoanStatus.APPROVED),
            total_appointments=len(self.appointments.pending()) + approved_appointments,
            approved_appointments=approved_appointments,
            total_complaints=len(self.complaints),
            total_feedback=len(self.feedback.all()),
            loan_interest_income=self.loans.interest_income()
        )
