"""
Reporting endpoints
"""

from fastapi import APIRouter, Depends

from .auth import get_bank, http_error, require_admin
from .schemas import account_to_dict
from ..bank import Bank
from ..currency import BASE_CURRENCY_CODE, Currency
from ..errors import MinibankError
from ..session import Session


router = APIRouter()


@router.get("/summary")
async def summary(session: Session = Depends(require_admin), bank: Bank = Depends(get_bank)):
    """Totals, average and holdings in every currency"""
    reporting = bank.reporting
    holdings = {BASE_CURRENCY_CODE: str(reporting.total_balance())}
    holdings.update({c.code: str(reporting.holdings_in(c)) for c in Currency})
    return {
        "total_balance": str(reporting.total_balance()),
        "average_balance": str(reporting.average_balance()),
        "total_customers": reporting.total_customers(),
        "holdings": holdings
    }


@router.get("/top")
async def top_accounts(n: int = 3, session: Session = Depends(require_admin), bank: Bank = Depends(get_bank)):
    return {"accounts": [account_to_dict(a) for a in bank.reporting.top_accounts(n)]}


@router.get("/richest")
async def richest(session: Session = Depends(require_admin), bank: Bank = Depends(get_bank)):
    return {"accounts": [account_to_dict(a) for a in bank.reporting.richest_accounts()]}


@router.get("/above")
async def accounts_above(amount: str, session: Session = Depends(require_admin), bank: Bank = Depends(get_bank)):
    try:
        accounts = bank.reporting.accounts_above(amount)
    except MinibankError as e:
        raise http_error(e)
    return {"accounts": [account_to_dict(a) for a in accounts]}


@router.get("/stats")
async def system_stats(session: Session = Depends(require_admin), bank: Bank = Depends(get_bank)):
    stats = bank.reporting.system_stats().to_dict()
    stats["loan_interest_income"] = str(stats["loan_interest_income"])
    return stats
