from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.app.schemas.maintenance import ReconciliationReport
from backend.app.services.reconciliation_service import reconcile_memberships
from backend.app.database import get_db_session
from backend.app.dependencies import require_admin

router = APIRouter()

@router.post("/reconcile", response_model=ReconciliationReport)
def reconcile_route(
    repair: bool = True,
    admin_id: str = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    Find users and couples whose membership links disagree.

    - With repair=true (default) the drift is fixed in one transaction
    - Run after a fatal pairing error has been reported
    - Admin only
    """
    return reconcile_memberships(db, repair=repair)
