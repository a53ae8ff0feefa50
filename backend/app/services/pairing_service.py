"""Pairing protocols.

Every protocol here runs as one database transaction: the couple row, the
members' ``couple_id`` pointers and the invitation statuses are written
together and committed once, or rolled back together. Races between concurrent
requests are settled with conditional updates (``... WHERE couple_id IS NULL``,
``... WHERE partner_2_id IS NULL``, ``... WHERE status = 'pending'``); the
request whose update matches no row loses with a ConflictError.

Invariant kept by all of them: ``user.couple_id == couple.id`` exactly when the
couple is live and lists the user as a member. Each protocol checks it for the
couple it wrote before committing. What another request commits afterwards is
that request's business.
"""
import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from backend.app.errors import ConflictError, NotFoundError, PairingFatalError
from backend.app.models.models import (
    Couple, CoupleInvitation, CoupleStatus, InvitationStatus, User
)
from backend.app.services import couple_service, user_service
from backend.app.services.invitation_service import expire_pending_for_accounts, mark_invitation

logger = logging.getLogger(__name__)


def _verify_pointers(db: Session, couple_id: str) -> None:
    """Check, before commit, that every member of the couple points back at it.

    Runs inside the protocol's transaction after its writes, so what it reads is
    exactly what the commit would publish. A mismatch rolls the whole protocol
    back.
    """
    db.flush()
    slots = db.query(Couple.partner_1_id, Couple.partner_2_id).filter(Couple.id == couple_id).first()
    if slots is None:
        raise PairingFatalError(f"Couple {couple_id} missing inside its own transaction")
    for member_id in (m for m in slots if m is not None):
        pointer = db.query(User.couple_id).filter(User.id == member_id).scalar()
        if pointer != couple_id:
            raise PairingFatalError(
                f"Member {member_id} of couple {couple_id} does not point back at it"
            )


def _detach_result(db: Session, *instances) -> None:
    """Load the protocol's result and take it out of the session before commit.

    The caller returns these objects after commit; a request that commits
    right after ours (the partner leaving, say) must not make reading them
    fail.
    """
    for instance in instances:
        db.refresh(instance)
        db.expunge(instance)


# --- Protocol A: invitation acceptance ---

def accept_invitation(db: Session, invitation: CoupleInvitation, account_id: str) -> Couple:
    """Create the couple for an accepted invitation.

    The caller (``invitation_service.respond_to_invitation``) has checked that
    account_id is the receiver and that the invitation is pending and not
    lapsed; availability of both accounts is checked again here because either
    may have paired elsewhere since the invitation was sent.
    """
    try:
        sender = db.query(User).filter(User.id == invitation.sender_id).first()
        receiver = db.query(User).filter(User.id == invitation.receiver_id).first()
        if sender is None or receiver is None:
            raise NotFoundError("The other account no longer exists")

        if receiver.couple_id:
            raise ConflictError("You are already in a couple")
        if sender.couple_id:
            raise ConflictError("The sender is already in a couple")

        couple = couple_service.create_couple(
            db, [sender.id, receiver.id], invitation.anniversary_date
        )

        for member_id in (sender.id, receiver.id):
            if not user_service.claim_couple_ref(db, member_id, couple.id):
                logger.warning(
                    "Lost pairing race accepting invitation %s: %s paired concurrently",
                    invitation.id, member_id
                )
                raise ConflictError("Already in a couple")

        if not mark_invitation(db, invitation.id, InvitationStatus.ACCEPTED):
            logger.warning("Invitation %s stopped being pending during acceptance", invitation.id)
            raise ConflictError("This invitation is no longer pending")

        # Neither account is available as a pairing target any more
        expire_pending_for_accounts(
            db, [sender.id, receiver.id], exclude_invitation_id=invitation.id
        )

        _verify_pointers(db, couple.id)
        _detach_result(db, couple, invitation)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Invitation %s accepted by %s; couple %s created", invitation.id, account_id, couple.id
    )
    return couple


# --- Protocol B: invite-code join, and the placeholder it joins ---

def open_couple(db: Session, account_id: str, anniversary_date: date) -> Couple:
    """Create a one-member couple whose pairing code a partner can join with"""
    user = user_service.get_user_by_id(db, account_id)
    if user.couple_id:
        raise ConflictError("You are already in a couple")

    try:
        couple = couple_service.create_couple(db, [user.id], anniversary_date)
        if not user_service.claim_couple_ref(db, user.id, couple.id):
            raise ConflictError("You are already in a couple")
        expire_pending_for_accounts(db, [user.id])
        _verify_pointers(db, couple.id)
        _detach_result(db, couple)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Couple %s opened by %s, waiting for a partner", couple.id, account_id)
    return couple


def join_couple_by_code(db: Session, account_id: str, code: str) -> Couple:
    """Join the one-member couple that owns the pairing code"""
    user = user_service.get_user_by_id(db, account_id)

    couple = couple_service.get_couple_by_pairing_code(db, code)
    if couple is None:
        raise NotFoundError("Invalid pairing code")

    if account_id in couple.members:
        raise ConflictError("You are already a member of this couple")
    if user.couple_id:
        raise ConflictError("You are already in a couple")
    if not couple.is_live:
        raise ConflictError("This couple is not accepting new members")
    if couple.is_complete:
        raise ConflictError("This couple is already complete")

    couple_id = couple.id
    try:
        # Claim the empty slot; a concurrent joiner that got there first makes
        # this match nothing.
        claimed = db.query(Couple).filter(
            Couple.id == couple_id,
            Couple.partner_1_id.isnot(None),
            Couple.partner_2_id.is_(None),
            Couple.status == CoupleStatus.PENDING
        ).update(
            {
                Couple.partner_2_id: account_id,
                Couple.status: CoupleStatus.ACTIVE,
                Couple.updated_at: datetime.utcnow(),
            },
            synchronize_session="fetch",
        )
        if claimed != 1:
            logger.warning("Lost join race for couple %s: %s", couple_id, account_id)
            raise ConflictError("This couple is already complete")

        if not user_service.claim_couple_ref(db, account_id, couple_id):
            logger.warning("Lost pairing race joining couple %s: %s paired concurrently", couple_id, account_id)
            raise ConflictError("You are already in a couple")

        db.refresh(couple)
        expire_pending_for_accounts(db, couple.members)
        _verify_pointers(db, couple_id)
        _detach_result(db, couple)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Account %s joined couple %s by code", account_id, couple_id)
    return couple


# --- Protocol C: leave / delete ---

def _detach(db: Session, account_id: str, couple: Couple) -> Optional[Couple]:
    """Clear the account's pointer and take it out of the couple. No commit."""
    if not user_service.release_couple_ref(db, account_id, couple.id):
        raise ConflictError("Your couple membership changed, please retry")
    # Re-read under lock: the partner may have left since the couple was loaded
    db.refresh(couple, with_for_update=True)
    return couple_service.remove_member(db, couple, account_id)


def leave_couple(db: Session, account_id: str) -> Optional[Couple]:
    """Leave the account's couple.

    The partner, if any, keeps pointing at the couple, which goes back to
    waiting for a partner. Returns that remaining couple, or None when the
    leaver was the last member and the couple was deleted.
    """
    user = user_service.get_user_by_id(db, account_id)
    if not user.couple_id:
        raise NotFoundError("You are not in a couple")

    couple_id = user.couple_id
    couple = db.query(Couple).filter(Couple.id == couple_id).first()
    if couple is None or account_id not in couple.members:
        # Dangling pointer: clear it so the account can pair again
        logger.warning("Account %s pointed at couple %s which does not list it", account_id, couple_id)
        try:
            user_service.release_couple_ref(db, account_id, couple_id)
            db.commit()
        except Exception:
            db.rollback()
            raise
        raise NotFoundError("Couple not found")

    try:
        remaining = _detach(db, account_id, couple)
        if remaining is not None:
            _verify_pointers(db, couple_id)
            _detach_result(db, remaining)
        db.commit()
    except Exception:
        db.rollback()
        raise

    if remaining is None:
        logger.info("Account %s left couple %s, which is now deleted", account_id, couple_id)
        return None

    logger.info("Account %s left couple %s", account_id, couple_id)
    return remaining


def delete_couple(db: Session, couple_id: str, account_id: str) -> None:
    """Dissolve a couple completely: clear both pointers, delete the record"""
    couple = couple_service.get_couple_for_member(db, couple_id, account_id)
    partner_1_id, partner_2_id = couple.partner_1_id, couple.partner_2_id

    try:
        for member_id in couple.members:
            user_service.release_couple_ref(db, member_id, couple.id)
        # Only delete the membership that was read; a concurrent join or leave
        # makes this match nothing.
        deleted = db.query(Couple).filter(
            Couple.id == couple_id,
            Couple.partner_1_id == partner_1_id,
            Couple.partner_2_id == partner_2_id
        ).delete(synchronize_session="fetch")
        if deleted != 1:
            logger.warning("Couple %s changed while being deleted by %s", couple_id, account_id)
            raise ConflictError("Your couple membership changed, please retry")
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Couple %s deleted by %s", couple_id, account_id)


def dissolve_for_account(db: Session, user: User) -> None:
    """Run the leave protocol for an account that is about to be deleted.

    Also detaches it from any couple that still lists it without a matching
    pointer, and expires its pending invitations. Does not commit.
    """
    if user.couple_id:
        couple = db.query(Couple).filter(Couple.id == user.couple_id).first()
        if couple is not None and user.id in couple.members:
            _detach(db, user.id, couple)
        else:
            user_service.set_couple_ref(db, user.id, None)

    stray = couple_service.get_couple_by_member(db, user.id)
    if stray is not None:
        logger.warning("Account %s still listed in couple %s without a pointer", user.id, stray.id)
        couple_service.remove_member(db, stray, user.id)

    expire_pending_for_accounts(db, [user.id])
