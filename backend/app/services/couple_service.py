import logging
import secrets
import string
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.config import get_settings
from backend.app.errors import (
    ConflictError, ForbiddenError, InvalidInputError, NotFoundError, PairingFatalError
)
from backend.app.models.models import Couple, CoupleStatus, User, DEFAULT_COUPLE_SETTINGS

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_pairing_code() -> str:
    length = get_settings().pairing_code_length
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_pairing_code(code: str) -> str:
    return code.strip().upper()


def generate_unique_pairing_code(db: Session) -> str:
    """Generate a pairing code that no couple is using yet.

    Collisions are retried up to ``pairing_code_max_attempts`` times; running out
    means the code space or the generator is broken, which is not something the
    caller can fix.
    """
    max_attempts = get_settings().pairing_code_max_attempts
    for attempt in range(1, max_attempts + 1):
        code = generate_pairing_code()
        if get_couple_by_pairing_code(db, code) is None:
            return code
        logger.warning("Pairing code collision on attempt %d/%d", attempt, max_attempts)
    raise PairingFatalError(f"Could not generate a unique pairing code after {max_attempts} attempts")


def validate_anniversary_date(anniversary_date: date) -> None:
    if anniversary_date > datetime.utcnow().date():
        raise InvalidInputError("Anniversary date cannot be in the future")


def create_couple(db: Session, member_ids: List[str], anniversary_date: date) -> Couple:
    """Create a couple with one (placeholder) or two members.

    Flushes so the id is available but does not commit: the pairing protocols
    write the members' pointers in the same transaction.
    """
    if not 1 <= len(member_ids) <= 2 or len(set(member_ids)) != len(member_ids):
        raise InvalidInputError("A couple needs one or two distinct members")
    validate_anniversary_date(anniversary_date)

    couple = Couple(
        partner_1_id=member_ids[0],
        partner_2_id=member_ids[1] if len(member_ids) == 2 else None,
        pairing_code=generate_unique_pairing_code(db),
        anniversary_date=anniversary_date,
        status=CoupleStatus.ACTIVE if len(member_ids) == 2 else CoupleStatus.PENDING,
        settings=dict(DEFAULT_COUPLE_SETTINGS),
    )
    db.add(couple)
    try:
        db.flush()
    except IntegrityError as exc:
        # Another couple took the same code between the check and the insert
        logger.warning("Pairing code %s taken concurrently", couple.pairing_code)
        raise ConflictError("Could not reserve a pairing code, please retry") from exc
    return couple


def list_couples(db: Session, status: Optional[CoupleStatus] = None) -> List[Couple]:
    """All couples, oldest first, optionally only those in one status"""
    query = db.query(Couple)
    if status is not None:
        query = query.filter(Couple.status == status)
    return query.order_by(Couple.created_at).all()


def get_couple_by_id(db: Session, couple_id: str) -> Couple:
    """Service function to get a couple by ID"""
    couple = db.query(Couple).filter(Couple.id == couple_id).first()
    if not couple:
        raise NotFoundError(f"Couple with id {couple_id} not found")
    return couple


def get_couple_by_member(db: Session, account_id: str) -> Optional[Couple]:
    return db.query(Couple).filter(
        or_(Couple.partner_1_id == account_id, Couple.partner_2_id == account_id)
    ).first()


def get_couple_by_pairing_code(db: Session, code: str) -> Optional[Couple]:
    return db.query(Couple).filter(Couple.pairing_code == normalize_pairing_code(code)).first()


def is_member(db: Session, couple_id: str, account_id: str) -> bool:
    """Membership check used by couple-scoped resources (notes, photos, ...)"""
    return db.query(Couple.id).filter(
        Couple.id == couple_id,
        or_(Couple.partner_1_id == account_id, Couple.partner_2_id == account_id)
    ).first() is not None


def get_couple_for_member(db: Session, couple_id: str, account_id: str) -> Couple:
    couple = get_couple_by_id(db, couple_id)
    if account_id not in couple.members:
        raise ForbiddenError("You are not a member of this couple")
    return couple


def get_couple_for_account(db: Session, account_id: str) -> Couple:
    """The couple the account's pointer refers to"""
    user = db.query(User).filter(User.id == account_id).first()
    if not user:
        raise NotFoundError(f"User with id {account_id} not found")
    if not user.couple_id:
        raise NotFoundError("You are not in a couple")
    return get_couple_by_id(db, user.couple_id)


def update_settings(db: Session, couple_id: str, account_id: str, settings: Dict[str, Any]) -> Couple:
    couple = get_couple_for_member(db, couple_id, account_id)

    # Reassign rather than mutate so the JSON column is marked dirty
    merged = dict(couple.settings or {})
    merged.update(settings)
    couple.settings = merged

    db.commit()
    db.refresh(couple)
    return couple


def update_anniversary_date(db: Session, couple_id: str, account_id: str, anniversary_date: date) -> Couple:
    couple = get_couple_for_member(db, couple_id, account_id)
    validate_anniversary_date(anniversary_date)

    couple.anniversary_date = anniversary_date

    db.commit()
    db.refresh(couple)
    return couple


def regenerate_pairing_code(db: Session, couple_id: str, account_id: str) -> Couple:
    couple = get_couple_for_member(db, couple_id, account_id)

    couple.pairing_code = generate_unique_pairing_code(db)

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Pairing code taken concurrently while regenerating for couple %s", couple_id)
        raise ConflictError("Could not reserve a pairing code, please retry") from exc
    db.refresh(couple)
    logger.info("Regenerated pairing code for couple %s", couple.id)
    return couple


def remove_member(db: Session, couple: Couple, account_id: str) -> Optional[Couple]:
    """Take a member out of the couple's member slots.

    The remaining member, if any, moves to slot 1 and the couple goes back to
    waiting for a partner. An emptied couple is deleted and None is returned.
    Pointers are left to the caller, and nothing is committed.
    """
    remaining = [m for m in couple.members if m != account_id]
    if len(remaining) == len(couple.members):
        raise NotFoundError("Account is not a member of this couple")

    if not remaining:
        db.delete(couple)
        db.flush()
        return None

    couple.partner_1_id = remaining[0]
    couple.partner_2_id = None
    couple.status = CoupleStatus.PENDING
    db.flush()
    return couple


def get_partner(db: Session, account_id: str) -> User:
    couple = get_couple_for_account(db, account_id)
    partner_ids = [m for m in couple.members if m != account_id]
    if not partner_ids:
        raise NotFoundError("Your couple is still waiting for a partner")
    partner = db.query(User).filter(User.id == partner_ids[0]).first()
    if not partner:
        raise NotFoundError("Partner not found")
    return partner


def get_couple_stats(db: Session, account_id: str) -> Dict[str, Any]:
    couple = get_couple_for_account(db, account_id)
    today = datetime.utcnow().date()
    return {
        "couple_id": couple.id,
        "relationship_days": (today - couple.anniversary_date).days,
        "anniversary_date": couple.anniversary_date,
        "member_count": len(couple.members),
        "status": couple.status,
        "last_activity": couple.updated_at,
    }
