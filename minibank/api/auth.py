"""
Authentication and authorization dependencies
"""

from typing import Optional
from fastapi import Depends, Header, HTTPException, Request, status

from ..bank import Bank
from ..errors import (
    AuthorizationError, ConflictError, InvariantViolationError, MinibankError,
    NotFoundError, PersistenceError, SessionExpiredError, ValidationError
)
from ..models import Account
from ..session import Session


SESSION_HEADER = "X-Session-Token"

# Most specific classes first
_STATUS_BY_ERROR = (
    (SessionExpiredError, status.HTTP_401_UNAUTHORIZED),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (ConflictError, status.HTTP_409_CONFLICT),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (InvariantViolationError, status.HTTP_400_BAD_REQUEST),
    (PersistenceError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def http_error(error: MinibankError) -> HTTPException:
    """Translate an engine error into an HTTP error response"""
    for error_class, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_class):
            return HTTPException(status_code=status_code, detail=error.message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)


def get_bank(request: Request) -> Bank:
    return request.app.state.bank


def get_session(
    x_session_token: Optional[str] = Header(None, alias=SESSION_HEADER),
    bank: Bank = Depends(get_bank)
) -> Session:
    """Resolve the caller's session; each call counts as activity"""
    if not x_session_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        return bank.session(x_session_token)
    except SessionExpiredError as e:
        raise http_error(e)


def require_admin(session: Session = Depends(get_session)) -> Session:
    if not session.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return session


def owned_account(bank: Bank, session: Session, account_number: int) -> Account:
    """Fetch an account the caller may act on: their own, or any for admins"""
    account = bank.ledger.get(account_number)
    if not account:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    if not session.is_admin and account.username != session.username:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your account")
    return account
