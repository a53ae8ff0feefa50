from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session
from typing import List, Optional

from backend.app.models.models import CoupleStatus
from backend.app.schemas.couples import (
    AnniversaryUpdate, CoupleOpen, CoupleResponse, CoupleStats, JoinRequest, MembershipCheck, SettingsUpdate
)
from backend.app.schemas.users import UserResponse
from backend.app.services import couple_service, pairing_service
from backend.app.database import get_db_session
from backend.app.dependencies import get_current_account_id, require_admin

router = APIRouter()

@router.post("/", response_model=CoupleResponse)
def open_couple_route(
    payload: CoupleOpen,
    account_id: str = Depends(get_current_account_id),
    db: Session = Depends(get_db_session)
):
    """
    Start a couple on your own and share its pairing code.

    - The couple waits (status "pending") until a partner joins with the code
    """
    return pairing_service.open_couple(db, account_id, payload.anniversary_date)

@router.get("/", response_model=List[CoupleResponse])
def list_couples_route(
    couple_status: Optional[CoupleStatus] = Query(default=None, alias="status"),
    admin_id: str = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    List all couples, oldest first. Admin only.

    - ?status= limits the list to one status
    """
    return couple_service.list_couples(db, couple_status)

@router.get("/me", response_model=CoupleResponse)
def get_my_couple_route(
    account_id: str = Depends(get_current_account_id),
    db: Session = Depends(get_db_session)
):
    """
    Get the couple you belong to.

    - Returns 404 if you are not in a couple
    """
    return couple_service.get_couple_for_account(db, account_id)

@router.get("/partner", response_model=UserResponse)
def get_partner_route(
    account_id: str = Depends(get_current_account_id),
    db: Session = Depends(get_db_session)
):
    """
    Get your partner's profile.
    """
    return couple_service.get_partner(db, account_id)

@router.get("/stats", response_model=CoupleStats)
def get_couple_stats_route(
    account_id: str = Depends(get_current_account_id),
    db: Session = Depends(get_db_session)
):
    """
    Relationship statistics for your couple.
    """
    return couple_service.get_couple_stats(db, account_id)

@router.post("/join", response_model=CoupleResponse)
def join_couple_route(
    payload: JoinRequest,
    account_id: str = Depends(get_current_account_id),
    db: Session = Depends(get_db_session)
):
    """
    Join a waiting couple with its pairing code.

    - 404 if the code is unknown
    - 409 if you are already in a couple or the couple is complete
    """
    return pairing_service.join_couple_by_code(db, account_id, payload.code)

@router.delete("/leave", status_code=status.HTTP_204_NO_CONTENT)
def leave_couple_route(
    account_id: str = Depends(get_current_account_id),
    db: Session = Depends(get_db_session)
):
    """
    Leave your couple.

    - Your partner keeps the couple, which waits for a new partner
    - The couple is deleted if you were its last member
    """
    pairing_service.leave_couple(db, account_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.get("/{couple_id}", response_model=CoupleResponse)
def get_couple_route(
    couple_id: str,
    account_id: str = Depends(get_current_account_id),
    db: Session = Depends(get_db_session)
):
    """
    Get a couple you are a member of.
    """
    return couple_service.get_couple_for_member(db, couple_id, account_id)

@router.get("/{couple_id}/members/{member_id}", response_model=MembershipCheck)
def check_membership_route(couple_id: str, member_id: str, db: Session = Depends(get_db_session)):
    """
    Whether member_id belongs to the couple. Used by couple-scoped resources.
    """
    return MembershipCheck(
        couple_id=couple_id,
        account_id=member_id,
        is_member=couple_service.is_member(db, couple_id, member_id),
    )

@router.put("/{couple_id}/settings", response_model=CoupleResponse)
def update_settings_route(
    couple_id: str,
    payload: SettingsUpdate,
    account_id: str = Depends(get_current_account_id),
    db: Session = Depends(get_db_session)
):
    """
    Merge new values into the couple's settings.
    """
    return couple_service.update_settings(db, couple_id, account_id, payload.settings)

@router.put("/{couple_id}/anniversary", response_model=CoupleResponse)
def update_anniversary_route(
    couple_id: str,
    payload: AnniversaryUpdate,
    account_id: str = Depends(get_current_account_id),
    db: Session = Depends(get_db_session)
):
    """
    Change the anniversary date. It cannot be in the future.
    """
    return couple_service.update_anniversary_date(db, couple_id, account_id, payload.anniversary_date)

@router.post("/{couple_id}/pairing-code", response_model=CoupleResponse)
def regenerate_pairing_code_route(
    couple_id: str,
    account_id: str = Depends(get_current_account_id),
    db: Session = Depends(get_db_session)
):
    """
    Replace the couple's pairing code; the old code stops working.
    """
    return couple_service.regenerate_pairing_code(db, couple_id, account_id)

@router.delete("/{couple_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_couple_route(
    couple_id: str,
    account_id: str = Depends(get_current_account_id),
    db: Session = Depends(get_db_session)
):
    """
    Dissolve the couple for both members.
    """
    pairing_service.delete_couple(db, couple_id, account_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
