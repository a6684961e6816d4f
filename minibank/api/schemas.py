"""
Pydantic schemas for API requests, and serializers for responses
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from ..models import Account, Appointment, Feedback, LoanRequest, SignupRequest, TransactionEntry


# Session schemas
class LoginRequest(BaseModel):
    username: str
    password: str
    role: str = Field("Customer", description="Admin or Customer")


class SignupSubmission(BaseModel):
    kind: str = Field("account_opening", description="account_opening or admin_enrollment")
    username: str
    password: str
    full_name: str
    national_id: str
    phone: str = ""
    address: str = ""
    initial_deposit: str = "0"  # Decimal as string


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str


class ProfileUpdateRequest(BaseModel):
    current_password: str
    new_username: Optional[str] = None
    new_password: Optional[str] = None
    national_id: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


# Account schemas
class AmountRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")


class TransferRequest(BaseModel):
    from_account: int
    to_account: int
    amount: str


class AccountOpeningRequest(BaseModel):
    full_name: str
    national_id: str
    initial_deposit: str = "0"


# Workflow schemas
class DecisionRequest(BaseModel):
    response: str = Field(..., description="A to approve, R to reject; anything else skips")


class LoanSubmission(BaseModel):
    amount: str
    reason: str = ""


class AppointmentSubmission(BaseModel):
    service: str
    date: str
    time: str
    reason: str = ""


# Admin schemas
class ConfirmRequest(BaseModel):
    confirm: bool = False


class UnlockRequest(BaseModel):
    username: str
    confirm: bool = False


class RatesRequest(BaseModel):
    usd: str
    eur: str
    sar: str


# Feedback schemas
class FeedbackSubmission(BaseModel):
    service: str
    text: str


class ComplaintSubmission(BaseModel):
    text: str


def account_to_dict(account: Account) -> Dict[str, Any]:
    return {
        "account_number": account.account_number,
        "username": account.username,
        "balance": str(account.balance),
        "national_id": account.national_id,
        "phone": account.phone,
        "address": account.address
    }


def transaction_to_dict(entry: TransactionEntry) -> Dict[str, Any]:
    return {
        "timestamp": entry.timestamp.isoformat(),
        "type": entry.transaction_type.value,
        "amount": str(entry.amount),
        "balance": str(entry.balance)
    }


def signup_to_dict(request: SignupRequest) -> Dict[str, Any]:
    # The password digest never leaves the engine
    return {
        "kind": request.kind.value,
        "username": request.username,
        "full_name": request.full_name,
        "national_id": request.national_id,
        "phone": request.phone,
        "address": request.address,
        "initial_deposit": str(request.initial_deposit)
    }


def loan_to_dict(loan: LoanRequest) -> Dict[str, Any]:
    return {
        "username": loan.username,
        "amount": str(loan.amount),
        "reason": loan.reason,
        "status": loan.status.value,
        "interest_rate": str(loan.interest_rate)
    }


def appointment_to_dict(appointment: Appointment) -> Dict[str, Any]:
    return {
        "username": appointment.username,
        "service": appointment.service,
        "date": appointment.date,
        "time": appointment.time,
        "reason": appointment.reason,
        "status": appointment.status.value
    }


def feedback_to_dict(feedback: Feedback) -> Dict[str, Any]:
    return {
        "username": feedback.username,
        "service": feedback.service,
        "text": feedback.text,
        "timestamp": feedback.timestamp.isoformat()
    }
