from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from datetime import date, datetime

from backend.app.models.models import CoupleStatus

class CoupleOpen(BaseModel):
    """Start a one-member couple and wait for a partner to join by code"""
    anniversary_date: date

class CoupleResponse(BaseModel):
    id: str
    members: List[str]
    pairing_code: str
    anniversary_date: date
    status: CoupleStatus
    settings: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class JoinRequest(BaseModel):
    code: str = Field(..., min_length=1)

class SettingsUpdate(BaseModel):
    settings: Dict[str, Any]

class AnniversaryUpdate(BaseModel):
    anniversary_date: date

class CoupleStats(BaseModel):
    couple_id: str
    relationship_days: int
    anniversary_date: date
    member_count: int
    status: CoupleStatus
    last_activity: Optional[datetime] = None

class MembershipCheck(BaseModel):
    couple_id: str
    account_id: str
    is_member: bool
