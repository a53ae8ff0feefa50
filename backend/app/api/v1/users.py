from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from typing import List

from backend.app.schemas.users import UserCreate, UserResponse, UserUpdate
from backend.app.services.user_service import create_user, get_user_by_id, get_all_users, update_user, delete_user
from backend.app.database import get_db_session
from backend.app.dependencies import get_current_account_id
from backend.app.errors import ForbiddenError

router = APIRouter()

@router.post("/", response_model=UserResponse)
def create_user_route(user_data: UserCreate, db: Session = Depends(get_db_session)):
    """
    Create a new user account.

    - Checks if user with email already exists
    - Creates new user in database, not in any couple
    """
    return create_user(db, user_data)

@router.get("/", response_model=List[UserResponse])
def get_users_route(db: Session = Depends(get_db_session)):
    """
    Get all users.
    """
    return get_all_users(db)

@router.get("/{user_id}", response_model=UserResponse)
def get_user_route(user_id: str, db: Session = Depends(get_db_session)):
    """
    Get a specific user by ID.

    - Returns 404 if user not found
    """
    return get_user_by_id(db, user_id)

@router.patch("/{user_id}", response_model=UserResponse)
def update_user_route(
    user_id: str,
    user_data: UserUpdate,
    account_id: str = Depends(get_current_account_id),
    db: Session = Depends(get_db_session)
):
    """
    Update your own profile fields.

    - couple_id cannot be changed here; use the couple and invitation endpoints
    """
    if user_id != account_id:
        raise ForbiddenError("You can only update your own account")
    return update_user(db, user_id, user_data)

@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user_route(
    user_id: str,
    account_id: str = Depends(get_current_account_id),
    db: Session = Depends(get_db_session)
):
    """
    Delete your own account.

    - Leaves your couple first; your partner keeps the couple and its code
    - Pending invitations you sent or received are removed
    """
    if user_id != account_id:
        raise ForbiddenError("You can only delete your own account")
    delete_user(db, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
