import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.config import get_settings
from backend.app.errors import (
    ConflictError, ExpiredError, ForbiddenError, InvalidInputError, NotFoundError
)
from backend.app.models.models import (
    Couple, CoupleInvitation, InvitationAction, InvitationStatus, User, make_pair_key
)
from backend.app.schemas.invitations import InvitationCreate

logger = logging.getLogger(__name__)

# Flip lapsed pending invitations to expired
def expire_stale_invitations(db: Session, now: Optional[datetime] = None) -> int:
    """Bulk-expire pending invitations whose expires_at has passed.

    Idempotent and cheap; run at the top of every invitation read path instead of
    on a timer.
    """
    now = now or datetime.utcnow()
    expired = db.query(CoupleInvitation).filter(
        CoupleInvitation.status == InvitationStatus.PENDING,
        CoupleInvitation.expires_at < now
    ).update(
        {CoupleInvitation.status: InvitationStatus.EXPIRED, CoupleInvitation.updated_at: now},
        synchronize_session="fetch",
    )
    db.commit()
    if expired:
        logger.info("Expired %d stale invitation(s)", expired)
    return expired

def expire_pending_for_accounts(
    db: Session,
    account_ids: List[str],
    exclude_invitation_id: Optional[str] = None
) -> int:
    """Expire every pending invitation sent or received by any of account_ids.

    Does not commit; used inside the pairing protocols once the accounts are no
    longer available as pairing targets.
    """
    query = db.query(CoupleInvitation).filter(
        CoupleInvitation.status == InvitationStatus.PENDING,
        or_(
            CoupleInvitation.sender_id.in_(account_ids),
            CoupleInvitation.receiver_id.in_(account_ids)
        )
    )
    if exclude_invitation_id:
        query = query.filter(CoupleInvitation.id != exclude_invitation_id)
    return query.update(
        {CoupleInvitation.status: InvitationStatus.EXPIRED, CoupleInvitation.updated_at: datetime.utcnow()},
        synchronize_session="fetch",
    )

# Send a new invitation
def send_invitation(db: Session, sender_id: str, invitation_data: InvitationCreate) -> CoupleInvitation:
    """Create a pending invitation from sender_id to the requested receiver"""
    settings = get_settings()
    now = datetime.utcnow()

    expire_stale_invitations(db, now)

    # Input checks
    if (invitation_data.receiver_email is None) == (invitation_data.receiver_id is None):
        raise InvalidInputError("Provide exactly one of receiver_email or receiver_id")

    if invitation_data.anniversary_date > now.date():
        raise InvalidInputError("Anniversary date cannot be in the future")

    message = invitation_data.message.strip() if invitation_data.message else None
    if message and len(message) > settings.invitation_message_max_length:
        raise InvalidInputError(
            f"Message cannot exceed {settings.invitation_message_max_length} characters"
        )

    sender = db.query(User).filter(User.id == sender_id).first()
    if not sender:
        raise NotFoundError("Sender not found")

    if invitation_data.receiver_email is not None:
        receiver = db.query(User).filter(User.email == invitation_data.receiver_email.lower()).first()
    else:
        receiver = db.query(User).filter(User.id == invitation_data.receiver_id).first()
    if not receiver:
        raise NotFoundError("Receiver not found")

    if sender.id == receiver.id:
        raise InvalidInputError("You cannot send an invitation to yourself")

    # Availability checks
    if sender.couple_id:
        raise ConflictError("You are already in a couple")

    if receiver.couple_id:
        raise ConflictError("This person is already in a couple")

    pair_key = make_pair_key(sender.id, receiver.id)
    existing = db.query(CoupleInvitation).filter(
        CoupleInvitation.pair_key == pair_key,
        CoupleInvitation.status == InvitationStatus.PENDING
    ).first()
    if existing:
        raise ConflictError("There is already a pending invitation between you two")

    invitation = CoupleInvitation(
        sender_id=sender.id,
        receiver_id=receiver.id,
        pair_key=pair_key,
        anniversary_date=invitation_data.anniversary_date,
        message=message or None,
        status=InvitationStatus.PENDING,
        expires_at=now + timedelta(days=settings.invitation_ttl_days),
    )
    db.add(invitation)

    try:
        db.commit()
    except IntegrityError as exc:
        # Lost the race against a concurrent send for the same pair
        db.rollback()
        logger.warning("Duplicate pending invitation for pair %s rejected by index", pair_key)
        raise ConflictError("There is already a pending invitation between you two") from exc

    db.refresh(invitation)
    logger.info("Invitation %s sent from %s to %s", invitation.id, sender.id, receiver.id)
    return invitation

def _list_invitations(db, column, account_id, status):
    expire_stale_invitations(db)

    query = db.query(CoupleInvitation).filter(column == account_id)
    if status is not None:
        query = query.filter(CoupleInvitation.status == status)
    return query.order_by(CoupleInvitation.created_at.desc()).all()

def list_received_invitations(
    db: Session,
    account_id: str,
    status: Optional[InvitationStatus] = InvitationStatus.PENDING
) -> List[CoupleInvitation]:
    """Invitations addressed to account_id, newest first"""
    return _list_invitations(db, CoupleInvitation.receiver_id, account_id, status)

def list_sent_invitations(
    db: Session,
    account_id: str,
    status: Optional[InvitationStatus] = InvitationStatus.PENDING
) -> List[CoupleInvitation]:
    """Invitations sent by account_id, newest first"""
    return _list_invitations(db, CoupleInvitation.sender_id, account_id, status)

def get_invitation_by_id(db: Session, invitation_id: str) -> CoupleInvitation:
    invitation = db.query(CoupleInvitation).filter(CoupleInvitation.id == invitation_id).first()
    if not invitation:
        raise NotFoundError("Invitation not found")
    return invitation

def get_invitation_for_account(db: Session, invitation_id: str, account_id: str) -> CoupleInvitation:
    """Get an invitation the account is the sender or receiver of"""
    expire_stale_invitations(db)

    invitation = get_invitation_by_id(db, invitation_id)
    if account_id not in (invitation.sender_id, invitation.receiver_id):
        raise ForbiddenError("You are not authorized to view this invitation")
    return invitation

# Accept, reject or cancel
def respond_to_invitation(
    db: Session,
    invitation_id: str,
    account_id: str,
    action: InvitationAction
) -> Tuple[CoupleInvitation, Optional[Couple]]:
    """Apply action to a pending invitation on behalf of account_id.

    Returns the invitation and, for an accepted invitation, the new couple.
    """
    now = datetime.utcnow()
    expire_stale_invitations(db, now)

    invitation = get_invitation_by_id(db, invitation_id)

    # Check the actor
    if action in (InvitationAction.ACCEPT, InvitationAction.REJECT):
        if account_id != invitation.receiver_id:
            raise ForbiddenError(f"You are not authorized to {action.value} this invitation")
    elif account_id != invitation.sender_id:
        raise ForbiddenError("You are not authorized to cancel this invitation")

    # A lapsed invitation reads as expired whether or not a sweep got to it first
    if invitation.status == InvitationStatus.EXPIRED and invitation.expires_at <= now:
        raise ExpiredError("This invitation has expired")

    # Check if already resolved
    if invitation.status != InvitationStatus.PENDING:
        raise ConflictError(f"This invitation has already been {invitation.status.value}")

    # Check if expired
    if invitation.is_expired(now):
        invitation.status = InvitationStatus.EXPIRED
        db.commit()
        db.refresh(invitation)
        raise ExpiredError("This invitation has expired")

    if action == InvitationAction.ACCEPT:
        from backend.app.services.pairing_service import accept_invitation
        couple = accept_invitation(db, invitation, account_id)
        return invitation, couple

    # Cancelled invitations are recorded as expired
    new_status = InvitationStatus.REJECTED if action == InvitationAction.REJECT else InvitationStatus.EXPIRED
    if not mark_invitation(db, invitation.id, new_status):
        db.rollback()
        raise ConflictError("This invitation is no longer pending")

    db.commit()
    db.refresh(invitation)
    logger.info("Invitation %s: %s by %s", invitation.id, action.value, account_id)
    return invitation, None

def mark_invitation(db: Session, invitation_id: str, status: InvitationStatus) -> bool:
    """Move a still-pending invitation to a terminal status. Does not commit."""
    updated = db.query(CoupleInvitation).filter(
        CoupleInvitation.id == invitation_id,
        CoupleInvitation.status == InvitationStatus.PENDING
    ).update(
        {CoupleInvitation.status: status, CoupleInvitation.updated_at: datetime.utcnow()},
        synchronize_session="fetch",
    )
    return updated == 1

def get_invitation_stats(db: Session) -> dict:
    """Count invitations per status"""
    expire_stale_invitations(db)

    rows = db.query(CoupleInvitation.status, func.count(CoupleInvitation.id)).group_by(
        CoupleInvitation.status
    ).all()
    counts = {status: count for status, count in rows}
    return {
        f"total_{status.value}": counts.get(status, 0)
        for status in InvitationStatus
    }
