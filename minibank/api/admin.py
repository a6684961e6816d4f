"""
Admin endpoints (lockouts, exchange rates, maintenance)
"""

from fastapi import APIRouter, Depends, HTTPException

from .auth import get_bank, get_session, http_error, require_admin
from .schemas import ConfirmRequest, RatesRequest, UnlockRequest
from ..bank import Bank
from ..currency import BASE_CURRENCY_CODE
from ..errors import MinibankError
from ..session import Session


router = APIRouter()


@router.get("/locked")
async def locked_identities(session: Session = Depends(require_admin), bank: Bank = Depends(get_bank)):
    return {
        "locked": [
            {"username": i.username, "role": i.role.value, "failed_attempts": i.failed_attempts}
            for i in bank.credentials.locked_identities()
        ]
    }


@router.post("/unlock")
async def unlock(
    request: UnlockRequest,
    session: Session = Depends(require_admin),
    bank: Bank = Depends(get_bank)
):
    """Unlock an identity; requires confirm=true"""
    try:
        unlocked = bank.credentials.unlock(request.username, lambda _: request.confirm)
    except MinibankError as e:
        raise http_error(e)
    if not unlocked:
        raise HTTPException(status_code=400, detail="Identity not locked or unlock not confirmed")
    return {"message": f"'{request.username}' unlocked"}


@router.get("/rates")
async def get_rates(session: Session = Depends(get_session), bank: Bank = Depends(get_bank)):
    return {
        "base": BASE_CURRENCY_CODE,
        "rates": {c.code: str(r) for c, r in bank.rates.rates().items()}
    }


@router.put("/rates")
async def set_rates(
    request: RatesRequest,
    session: Session = Depends(require_admin),
    bank: Bank = Depends(get_bank)
):
    try:
        rates = bank.rates.set_rates(request.usd, request.eur, request.sar)
    except MinibankError as e:
        raise http_error(e)
    return {"base": BASE_CURRENCY_CODE, "rates": {c.code: str(r) for c, r in rates.items()}}


@router.post("/backup")
async def backup(session: Session = Depends(require_admin), bank: Bank = Depends(get_bank)):
    try:
        folder = bank.backup()
    except MinibankError as e:
        raise http_error(e)
    return {"folder": folder, "message": "Backup completed"}


@router.post("/export")
async def export_accounts(session: Session = Depends(require_admin), bank: Bank = Depends(get_bank)):
    try:
        name = bank.export_accounts()
    except MinibankError as e:
        raise http_error(e)
    return {"file": name}


@router.post("/save")
async def save_all(session: Session = Depends(require_admin), bank: Bank = Depends(get_bank)):
    """Retry writing every collection"""
    try:
        bank.save_all()
    except MinibankError as e:
        raise http_error(e)
    return {"message": "All collections saved"}


@router.post("/delete-all")
async def delete_all_data(
    request: ConfirmRequest,
    session: Session = Depends(require_admin),
    bank: Bank = Depends(get_bank)
):
    """Erase all data; requires confirm=true"""
    try:
        deleted = bank.delete_all_data(lambda _: request.confirm)
    except MinibankError as e:
        raise http_error(e)
    if not deleted:
        raise HTTPException(status_code=400, detail="Delete not confirmed; no data was deleted")
    return {"message": "All data deleted"}
