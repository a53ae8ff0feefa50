from typing import List, Optional
from pydantic import BaseModel

class MembershipIssue(BaseModel):
    kind: str
    user_id: Optional[str] = None
    couple_id: Optional[str] = None

class ReconciliationReport(BaseModel):
    issues: List[MembershipIssue]
    repaired: bool
    remaining: int
