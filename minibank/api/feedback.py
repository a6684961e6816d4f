"""
Service feedback and complaint endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status

from .auth import get_bank, get_session, http_error, require_admin
from .schemas import ComplaintSubmission, FeedbackSubmission, feedback_to_dict
from ..bank import Bank
from ..errors import MinibankError
from ..session import Session


router = APIRouter()


@router.post("/feedback", status_code=status.HTTP_201_CREATED)
async def submit_feedback(
    request: FeedbackSubmission,
    session: Session = Depends(get_session),
    bank: Bank = Depends(get_bank)
):
    try:
        entry = bank.feedback.submit(session.username, request.service, request.text)
    except MinibankError as e:
        raise http_error(e)
    return {"feedback": feedback_to_dict(entry)}


@router.get("/feedback")
async def list_feedback(
    service: Optional[str] = None,
    session: Session = Depends(require_admin),
    bank: Bank = Depends(get_bank)
):
    return {"feedback": [feedback_to_dict(f) for f in bank.feedback.all(service)]}


@router.post("/complaints", status_code=status.HTTP_201_CREATED)
async def push_complaint(
    request: ComplaintSubmission,
    session: Session = Depends(get_session),
    bank: Bank = Depends(get_bank)
):
    try:
        bank.complaints.push(request.text, session.username)
    except MinibankError as e:
        raise http_error(e)
    return {"message": "Complaint submitted"}


@router.post("/complaints/undo")
async def undo_complaint(session: Session = Depends(get_session), bank: Bank = Depends(get_bank)):
    """Remove the most recent complaint"""
    try:
        removed = bank.complaints.undo_last()
    except MinibankError as e:
        raise http_error(e)
    if removed is None:
        raise HTTPException(status_code=404, detail="No complaint to remove")
    return {"removed": removed}


@router.get("/complaints")
async def list_complaints(session: Session = Depends(require_admin), bank: Bank = Depends(get_bank)):
    """Complaints, newest first"""
    return {"complaints": bank.complaints.all()}
