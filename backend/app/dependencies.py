import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from backend.app.errors import ForbiddenError

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


async def get_current_account_id(x_account_id: Optional[str] = Header(default=None)) -> str:
    """Authenticated account id.

    Token verification happens upstream; by the time a request reaches this app
    the gateway has resolved the session to an account id in ``X-Account-Id``.
    """
    if not x_account_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return x_account_id


async def require_admin(
    account_id: str = Depends(get_current_account_id),
    x_account_role: Optional[str] = Header(default=None)
) -> str:
    """Account id of an operator; the gateway sets ``X-Account-Role`` for them."""
    if (x_account_role or "").lower() != ADMIN_ROLE:
        logger.warning("Admin route denied to account %s", account_id)
        raise ForbiddenError("Admin access required")
    return account_id
