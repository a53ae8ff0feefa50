from typing import List
from uuid import uuid4
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Column, String, DateTime, Date, ForeignKey, Enum as PgEnum, JSON, Index, Text, text
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# --- ENUMS ---

class CoupleStatus(str, Enum):
    PENDING = "pending"  # one member, waiting for a partner
    ACTIVE = "active"
    INACTIVE = "inactive"
    BLOCKED = "blocked"

LIVE_COUPLE_STATUSES = (CoupleStatus.ACTIVE, CoupleStatus.PENDING)

class InvitationStatus(str, Enum):
    """Status of a couple invitation. Everything except PENDING is terminal."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"

class InvitationAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    CANCEL = "cancel"


def _status_enum(enum_cls, name):
    # Stored as the lower-case value so raw SQL predicates can match on it
    return PgEnum(
        enum_cls,
        name=name,
        native_enum=False,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )


def make_pair_key(account_a: str, account_b: str) -> str:
    """Order-independent key for a pair of accounts."""
    return ":".join(sorted([account_a, account_b]))


DEFAULT_COUPLE_SETTINGS = {
    "allow_location_share": False,
    "theme": "light",
}

# --- SQLALCHEMY MODELS ---

class User(Base):
    __tablename__ = "users"
    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    email = Column(String, unique=True, nullable=False)
    display_name = Column(String, nullable=True)
    # Plain id, not an ORM relationship: consistency with Couple members is
    # maintained by the pairing protocols.
    couple_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

class Couple(Base):
    __tablename__ = "couples"
    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    partner_1_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    partner_2_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    pairing_code = Column(String(8), unique=True, nullable=False)
    anniversary_date = Column(Date, nullable=False)
    status = Column(_status_enum(CoupleStatus, "couple_status"), nullable=False, default=CoupleStatus.ACTIVE)
    settings = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_COUPLE_SETTINGS))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def members(self) -> List[str]:
        return [m for m in (self.partner_1_id, self.partner_2_id) if m is not None]

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_COUPLE_STATUSES

    @property
    def is_complete(self) -> bool:
        return len(self.members) == 2

class CoupleInvitation(Base):
    """Request from one account to pair with another"""
    __tablename__ = "couple_invitations"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    sender_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    receiver_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    pair_key = Column(String, nullable=False)
    anniversary_date = Column(Date, nullable=False)
    message = Column(Text, nullable=True)
    status = Column(
        _status_enum(InvitationStatus, "invitation_status"),
        nullable=False,
        default=InvitationStatus.PENDING,
    )
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        # One pending invitation per unordered pair of accounts
        Index(
            "uq_couple_invitations_pending_pair",
            "pair_key",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
        Index("ix_couple_invitations_expires_at", "expires_at"),
    )

    def is_expired(self, now: datetime = None) -> bool:
        now = now or datetime.utcnow()
        return self.status == InvitationStatus.EXPIRED or self.expires_at <= now
