from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional

from backend.app.models.models import InvitationStatus
from backend.app.schemas.couples import CoupleResponse
from backend.app.schemas.invitations import (
    InvitationCreate, InvitationRespond, InvitationResponse, InvitationActionResult, InvitationStats
)
from backend.app.services.invitation_service import (
    send_invitation, list_received_invitations, list_sent_invitations,
    get_invitation_for_account, respond_to_invitation, get_invitation_stats
)
from backend.app.database import get_db_session
from backend.app.dependencies import get_current_account_id, require_admin

router = APIRouter()

@router.post("/", response_model=InvitationResponse)
def send_invitation_route(
    invitation_data: InvitationCreate,
    account_id: str = Depends(get_current_account_id),
    db: Session = Depends(get_db_session)
):
    """
    Invite another account to become your partner.

    - Receiver is identified by receiver_email or receiver_id
    - Neither of you may already be in a couple
    - Only one pending invitation may exist between two accounts
    - The invitation expires after 7 days
    """
    return send_invitation(db, account_id, invitation_data)

@router.get("/received", response_model=List[InvitationResponse])
def list_received_route(
    status: Optional[InvitationStatus] = InvitationStatus.PENDING,
    account_id: str = Depends(get_current_account_id),
    db: Session = Depends(get_db_session)
):
    """
    Invitations sent to you, newest first (pending only unless status is given).
    """
    return list_received_invitations(db, account_id, status)

@router.get("/sent", response_model=List[InvitationResponse])
def list_sent_route(
    status: Optional[InvitationStatus] = InvitationStatus.PENDING,
    account_id: str = Depends(get_current_account_id),
    db: Session = Depends(get_db_session)
):
    """
    Invitations you sent, newest first (pending only unless status is given).
    """
    return list_sent_invitations(db, account_id, status)

@router.get("/stats", response_model=InvitationStats)
def invitation_stats_route(
    admin_id: str = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    Number of invitations in each status. Admin only.
    """
    return get_invitation_stats(db)

@router.get("/{invitation_id}", response_model=InvitationResponse)
def get_invitation_route(
    invitation_id: str,
    account_id: str = Depends(get_current_account_id),
    db: Session = Depends(get_db_session)
):
    """
    Get an invitation you sent or received.
    """
    return get_invitation_for_account(db, invitation_id, account_id)

@router.patch("/{invitation_id}", response_model=InvitationActionResult)
def respond_to_invitation_route(
    invitation_id: str,
    payload: InvitationRespond,
    account_id: str = Depends(get_current_account_id),
    db: Session = Depends(get_db_session)
):
    """
    Accept, reject or cancel an invitation.

    - accept / reject: receiver only; accept creates the couple
    - cancel: sender only
    - A lapsed invitation is marked expired and the request fails with 410
    """
    invitation, couple = respond_to_invitation(db, invitation_id, account_id, payload.action)
    return InvitationActionResult(
        action=payload.action,
        invitation=InvitationResponse.model_validate(invitation),
        couple=CoupleResponse.model_validate(couple) if couple is not None else None,
    )
