"""
Approval workflow endpoints: signup queues, loans and appointments
"""

from fastapi import APIRouter, Depends, HTTPException, status

from .auth import get_bank, get_session, http_error, require_admin
from .schemas import (
    AppointmentSubmission, DecisionRequest, LoanSubmission, account_to_dict,
    appointment_to_dict, loan_to_dict, signup_to_dict
)
from ..bank import Bank
from ..errors import MinibankError
from ..models import Account, Identity, SignupKind
from ..session import Session


router = APIRouter()


def _signup_queue(bank: Bank, kind: str):
    try:
        return bank.signup_queues[SignupKind(kind)]
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown queue: {kind}")


def _created_to_dict(result):
    if isinstance(result, Account):
        return {"account": account_to_dict(result)}
    if isinstance(result, Identity):
        return {"identity": {"username": result.username, "role": result.role.value}}
    return None


# Signup queues

@router.get("/signups/{kind}")
async def list_signups(kind: str, session: Session = Depends(require_admin), bank: Bank = Depends(get_bank)):
    queue = _signup_queue(bank, kind)
    return {"requests": [signup_to_dict(r) for r in queue.pending()]}


@router.get("/signups/{kind}/next")
async def next_signup(kind: str, session: Session = Depends(require_admin), bank: Bank = Depends(get_bank)):
    head = _signup_queue(bank, kind).process_next()
    return {"request": signup_to_dict(head) if head else None}


@router.post("/signups/{kind}/decide")
async def decide_signup(
    kind: str,
    request: DecisionRequest,
    session: Session = Depends(require_admin),
    bank: Bank = Depends(get_bank)
):
    """Approve (A) or reject (R) the head of a signup queue"""
    queue = _signup_queue(bank, kind)
    try:
        outcome = queue.decide_next(request.response)
    except MinibankError as e:
        raise http_error(e)

    if outcome is None:
        raise HTTPException(status_code=404, detail="No pending requests")
    return {
        "decision": outcome.decision.value,
        "request": signup_to_dict(outcome.request),
        "created": _created_to_dict(outcome.result),
        "remaining": len(queue.pending())
    }


# Loans

@router.post("/loans", status_code=status.HTTP_201_CREATED)
async def submit_loan(
    request: LoanSubmission,
    session: Session = Depends(get_session),
    bank: Bank = Depends(get_bank)
):
    try:
        loan = bank.loans.submit_loan(session.username, request.amount, request.reason)
    except MinibankError as e:
        raise http_error(e)
    return {"loan": loan_to_dict(loan), "message": "Loan request submitted for review"}


@router.get("/loans")
async def list_loans(session: Session = Depends(get_session), bank: Bank = Depends(get_bank)):
    """All loans for admins, the caller's own loans otherwise"""
    loans = bank.loans.all() if session.is_admin else bank.loans.loans_for(session.username)
    return {"loans": [loan_to_dict(l) for l in loans]}


@router.post("/loans/decide")
async def decide_loan(
    request: DecisionRequest,
    session: Session = Depends(require_admin),
    bank: Bank = Depends(get_bank)
):
    """Approve or reject the oldest pending loan"""
    try:
        outcome = bank.loans.decide_next(request.response)
    except MinibankError as e:
        raise http_error(e)

    if outcome is None:
        raise HTTPException(status_code=404, detail="No pending loans")
    return {"decision": outcome.decision.value, "loan": loan_to_dict(outcome.request)}


# Appointments

@router.post("/appointments", status_code=status.HTTP_201_CREATED)
async def book_appointment(
    request: AppointmentSubmission,
    session: Session = Depends(get_session),
    bank: Bank = Depends(get_bank)
):
    try:
        appointment = bank.appointments.book(
            session.username, request.service, request.date, request.time, request.reason
        )
    except MinibankError as e:
        raise http_error(e)
    return {"appointment": appointment_to_dict(appointment)}


@router.get("/appointments")
async def list_appointments(session: Session = Depends(get_session), bank: Bank = Depends(get_bank)):
    if session.is_admin:
        return {
            "pending": [appointment_to_dict(a) for a in bank.appointments.pending()],
            "approved": [appointment_to_dict(a) for a in bank.appointments.approved()]
        }
    return {
        "appointments": [
            appointment_to_dict(a) for a in bank.appointments.appointments_for(session.username)
        ]
    }


@router.post("/appointments/decide")
async def decide_appointment(
    request: DecisionRequest,
    session: Session = Depends(require_admin),
    bank: Bank = Depends(get_bank)
):
    """Approve, reject, or skip (re-queue at the tail) the next appointment"""
    try:
        outcome = bank.appointments.decide_next(request.response)
    except MinibankError as e:
        raise http_error(e)

    if outcome is None:
        raise HTTPException(status_code=404, detail="No pending appointments")
    return {"decision": outcome.decision.value, "appointment": appointment_to_dict(outcome.request)}
