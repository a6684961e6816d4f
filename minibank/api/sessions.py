"""
Signup, login and profile endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, status

from .auth import get_bank, get_session, http_error
from .schemas import (
    ChangePasswordRequest, LoginRequest, ProfileUpdateRequest, SignupSubmission, signup_to_dict
)
from ..bank import Bank
from ..errors import MinibankError
from ..models import AuthResult, Role, SignupKind
from ..session import Session


router = APIRouter()

_LOGIN_FAILURES = {
    AuthResult.NOT_FOUND: (status.HTTP_401_UNAUTHORIZED, "Unknown user"),
    AuthResult.WRONG_PASSWORD: (status.HTTP_401_UNAUTHORIZED, "Wrong password"),
    AuthResult.LOCKED: (status.HTTP_423_LOCKED, "Account locked; contact an admin"),
}


def _parse_role(value: str) -> Role:
    try:
        return Role(value.strip().capitalize())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown role: {value}")


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(request: SignupSubmission, bank: Bank = Depends(get_bank)):
    """Queue a signup for admin approval"""
    try:
        kind = SignupKind(request.kind)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown signup kind: {request.kind}")

    try:
        queued = bank.signup(
            kind, request.username, request.password, request.full_name,
            request.national_id, request.phone, request.address, request.initial_deposit
        )
    except MinibankError as e:
        raise http_error(e)

    return {
        "request": signup_to_dict(queued),
        "message": "Request submitted for approval"
    }


@router.post("/login")
async def login(request: LoginRequest, bank: Bank = Depends(get_bank)):
    """Authenticate and open a session"""
    role = _parse_role(request.role)
    try:
        result, session = bank.login(request.username, request.password, role)
    except MinibankError as e:
        raise http_error(e)

    if result != AuthResult.SUCCESS:
        status_code, detail = _LOGIN_FAILURES[result]
        raise HTTPException(status_code=status_code, detail=detail)

    return {
        "token": session.token,
        "username": session.username,
        "role": session.role.value,
        "idle_timeout_seconds": session.idle_timeout
    }


@router.post("/logout")
async def logout(session: Session = Depends(get_session), bank: Bank = Depends(get_bank)):
    bank.logout(session.token)
    return {"message": "Logged out"}


@router.post("/password")
async def change_password(
    request: ChangePasswordRequest,
    session: Session = Depends(get_session),
    bank: Bank = Depends(get_bank)
):
    try:
        changed = bank.credentials.change_password(
            session.username, session.role, request.old_password, request.new_password
        )
    except MinibankError as e:
        raise http_error(e)

    if not changed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Incorrect password")
    return {"message": "Password changed"}


@router.put("/profile")
async def update_profile(
    request: ProfileUpdateRequest,
    session: Session = Depends(get_session),
    bank: Bank = Depends(get_bank)
):
    """Update username, password, national ID or contact details"""
    try:
        identity = bank.update_profile(
            session.username, request.current_password,
            new_username=request.new_username, new_password=request.new_password,
            national_id=request.national_id, phone=request.phone, address=request.address
        )
    except MinibankError as e:
        raise http_error(e)

    session.username = identity.username
    return {"username": identity.username, "message": "Profile updated"}


@router.get("/requests")
async def my_requests(session: Session = Depends(get_session), bank: Bank = Depends(get_bank)):
    """Signup requests of the caller still waiting for a decision"""
    return {"requests": [signup_to_dict(r) for r in bank.request_status(session.username)]}
