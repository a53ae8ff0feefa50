from typing import Optional
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, EmailStr

from backend.app.models.models import InvitationStatus, InvitationAction
from backend.app.schemas.couples import CoupleResponse

# Schema for sending an invitation; the receiver is given by email or by id
class InvitationCreate(BaseModel):
    receiver_email: Optional[EmailStr] = None
    receiver_id: Optional[str] = None
    anniversary_date: date
    message: Optional[str] = None

# Schema for accepting, rejecting or cancelling
class InvitationRespond(BaseModel):
    action: InvitationAction

# Schema for returning invitation details
class InvitationResponse(BaseModel):
    id: str
    sender_id: str
    receiver_id: str
    anniversary_date: date
    message: Optional[str] = None
    status: InvitationStatus
    expires_at: datetime
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class InvitationActionResult(BaseModel):
    action: InvitationAction
    invitation: InvitationResponse
    couple: Optional[CoupleResponse] = None

class InvitationStats(BaseModel):
    total_pending: int = 0
    total_accepted: int = 0
    total_rejected: int = 0
    total_expired: int = 0
