"""
Account and transaction endpoints
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status

from .auth import get_bank, get_session, http_error, owned_account, require_admin
from .schemas import (
    AccountOpeningRequest, AmountRequest, TransferRequest, account_to_dict,
    signup_to_dict, transaction_to_dict
)
from ..bank import Bank
from ..currency import Currency
from ..errors import MinibankError
from ..session import Session


router = APIRouter()


@router.get("")
async def list_accounts(
    q: Optional[str] = None,
    session: Session = Depends(require_admin),
    bank: Bank = Depends(get_bank)
):
    """All accounts, or those matching a national ID or username"""
    accounts = bank.ledger.search(q) if q else bank.ledger.all()
    return {"accounts": [account_to_dict(a) for a in accounts]}


@router.get("/mine")
async def my_accounts(session: Session = Depends(get_session), bank: Bank = Depends(get_bank)):
    accounts = bank.ledger.accounts_for(session.username)
    return {"accounts": [account_to_dict(a) for a in accounts]}


@router.post("/request", status_code=status.HTTP_201_CREATED)
async def request_account(
    request: AccountOpeningRequest,
    session: Session = Depends(get_session),
    bank: Bank = Depends(get_bank)
):
    """Ask for another account as an already registered customer"""
    try:
        queued = bank.request_account(
            session.username, request.full_name, request.national_id, request.initial_deposit
        )
    except MinibankError as e:
        raise http_error(e)
    return {"request": signup_to_dict(queued), "message": "Account request submitted"}


@router.post("/transfer")
async def transfer(
    request: TransferRequest,
    session: Session = Depends(get_session),
    bank: Bank = Depends(get_bank)
):
    """Transfer from one of the caller's accounts"""
    owned_account(bank, session, request.from_account)
    try:
        bank.ledger.transfer(request.from_account, request.to_account, request.amount)
    except MinibankError as e:
        raise http_error(e)
    return {
        "from_balance": str(bank.ledger.get(request.from_account).balance),
        "message": "Transfer completed"
    }


@router.get("/{account_number}")
async def get_account(
    account_number: int,
    session: Session = Depends(get_session),
    bank: Bank = Depends(get_bank)
):
    return account_to_dict(owned_account(bank, session, account_number))


@router.delete("/{account_number}")
async def delete_account(
    account_number: int,
    confirm: bool = False,
    session: Session = Depends(require_admin),
    bank: Bank = Depends(get_bank)
):
    """Delete an account; requires confirm=true"""
    try:
        deleted = bank.ledger.delete_account(account_number, lambda _: confirm)
    except MinibankError as e:
        raise http_error(e)
    if not deleted:
        raise HTTPException(status_code=400, detail="Deletion not confirmed")
    return {"message": f"Account {account_number} deleted"}


@router.post("/{account_number}/deposit")
async def deposit(
    account_number: int,
    request: AmountRequest,
    session: Session = Depends(get_session),
    bank: Bank = Depends(get_bank)
):
    owned_account(bank, session, account_number)
    try:
        balance = bank.ledger.deposit(account_number, request.amount)
    except MinibankError as e:
        raise http_error(e)
    return {"account_number": account_number, "balance": str(balance)}


@router.post("/{account_number}/withdraw")
async def withdraw(
    account_number: int,
    request: AmountRequest,
    session: Session = Depends(get_session),
    bank: Bank = Depends(get_bank)
):
    owned_account(bank, session, account_number)
    try:
        balance = bank.ledger.withdraw(account_number, request.amount)
    except MinibankError as e:
        raise http_error(e)
    return {"account_number": account_number, "balance": str(balance)}


@router.get("/{account_number}/transactions")
async def get_transactions(
    account_number: int,
    start: Optional[date] = None,
    end: Optional[date] = None,
    type: Optional[str] = None,
    amount: Optional[str] = None,
    session: Session = Depends(get_session),
    bank: Bank = Depends(get_bank)
):
    """History, optionally filtered by date range, type text or exact amount"""
    owned_account(bank, session, account_number)
    log = bank.transaction_log
    try:
        if start or end:
            entries = log.filter_by_date_range(account_number, start or date.min, end or date.max)
        else:
            entries = log.history(account_number)
        if type:
            matching = set(id(e) for e in log.filter_by_type(account_number, type))
            entries = [e for e in entries if id(e) in matching]
        if amount is not None:
            matching = set(id(e) for e in log.filter_by_amount(account_number, amount))
            entries = [e for e in entries if id(e) in matching]
    except MinibankError as e:
        raise http_error(e)

    return {"transactions": [transaction_to_dict(e) for e in entries]}


@router.get("/{account_number}/statement")
async def get_statement(
    account_number: int,
    year: int,
    month: int,
    session: Session = Depends(get_session),
    bank: Bank = Depends(get_bank)
):
    """Monthly statement"""
    account = owned_account(bank, session, account_number)
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail="Month must be 1-12")
    entries = bank.transaction_log.statement(account_number, year, month)
    return {
        "account_number": account_number,
        "username": account.username,
        "year": year,
        "month": month,
        "current_balance": str(account.balance),
        "transactions": [transaction_to_dict(e) for e in entries]
    }


@router.get("/{account_number}/convert")
async def convert_balance(
    account_number: int,
    currency: str,
    session: Session = Depends(get_session),
    bank: Bank = Depends(get_bank)
):
    """Balance expressed in USD, EUR or SAR"""
    account = owned_account(bank, session, account_number)
    try:
        target = Currency[currency.upper()]
    except KeyError:
        raise HTTPException(status_code=400, detail=f"Unsupported currency: {currency}")
    return {
        "account_number": account_number,
        "balance": str(account.balance),
        "currency": target.code,
        "converted": str(bank.rates.convert_rounded(account.balance, target))
    }
