import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from backend.app.errors import ConflictError, NotFoundError
from backend.app.models.models import User, CoupleInvitation
from backend.app.schemas.users import UserCreate, UserUpdate

logger = logging.getLogger(__name__)

def create_user(db: Session, user_data: UserCreate):
    """Service function to create a new user"""
    email = user_data.email.lower()

    # Check if user with this email already exists
    existing_user = get_user_by_email(db, email)
    if existing_user:
        raise ConflictError("Email already registered")

    new_user = User(
        email=email,
        display_name=user_data.display_name
    )

    db.add(new_user)
    db.commit()
    db.refresh(new_user)

    return new_user

def get_all_users(db: Session):
    """Service function to get all users"""
    return db.query(User).order_by(User.created_at).all()

def get_user_by_id(db: Session, user_id: str):
    """Service function to get a user by ID"""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError(f"User with id {user_id} not found")
    return user

def get_user_by_email(db: Session, email: str):
    """Service function to get a user by email"""
    return db.query(User).filter(User.email == email.strip().lower()).first()

def update_user(db: Session, user_id: str, user_data: UserUpdate):
    """Service function to update a user's information"""
    user = get_user_by_id(db, user_id)

    # couple_id is deliberately not updatable here, see pairing_service
    if user_data.display_name is not None:
        user.display_name = user_data.display_name

    db.commit()
    db.refresh(user)
    return user

# --- Membership pointer operations (used by the pairing orchestrator) ---
# None of these commit; the caller owns the transaction.

def set_couple_ref(db: Session, user_id: str, couple_id: Optional[str]) -> None:
    """Unconditionally point a user at a couple (or at nothing)"""
    db.query(User).filter(User.id == user_id).update(
        {User.couple_id: couple_id, User.updated_at: datetime.utcnow()},
        synchronize_session="fetch",
    )

def claim_couple_ref(db: Session, user_id: str, couple_id: str) -> bool:
    """Point an unpaired user at a couple.

    Returns False when the user already has a couple_id, which is how a
    concurrent pairing that committed first shows up.
    """
    updated = db.query(User).filter(
        User.id == user_id,
        User.couple_id.is_(None)
    ).update(
        {User.couple_id: couple_id, User.updated_at: datetime.utcnow()},
        synchronize_session="fetch",
    )
    return updated == 1

def release_couple_ref(db: Session, user_id: str, couple_id: str) -> bool:
    """Clear a user's couple_id only if it still points at couple_id"""
    updated = db.query(User).filter(
        User.id == user_id,
        User.couple_id == couple_id
    ).update(
        {User.couple_id: None, User.updated_at: datetime.utcnow()},
        synchronize_session="fetch",
    )
    return updated == 1

def delete_user(db: Session, user_id: str) -> None:
    """Delete an account after dissolving its couple and dropping its invitations"""
    from backend.app.services.pairing_service import dissolve_for_account

    user = get_user_by_id(db, user_id)

    try:
        dissolve_for_account(db, user)

        db.query(CoupleInvitation).filter(
            or_(CoupleInvitation.sender_id == user_id, CoupleInvitation.receiver_id == user_id)
        ).delete(synchronize_session=False)

        db.delete(user)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Deleted user %s", user_id)
