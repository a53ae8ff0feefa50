import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from backend.app.models.models import Couple, CoupleStatus, User

logger = logging.getLogger(__name__)

# Issue kinds
DANGLING_POINTER = "dangling_pointer"      # user points at a missing, dead or foreign couple
MISSING_POINTER = "missing_pointer"        # couple lists a user whose couple_id is null
FOREIGN_MEMBER = "foreign_member"          # couple lists a user who points at another couple
EMPTY_COUPLE = "empty_couple"
WRONG_STATUS = "wrong_status"              # status does not match member count


def find_membership_drift(db: Session) -> List[Dict[str, Any]]:
    """List every place where users' pointers and couples' members disagree"""
    issues = []
    couples = {c.id: c for c in db.query(Couple).all()}
    users = {u.id: u for u in db.query(User).all()}

    for user in users.values():
        if not user.couple_id:
            continue
        couple = couples.get(user.couple_id)
        if couple is None or not couple.is_live or user.id not in couple.members:
            issues.append({"kind": DANGLING_POINTER, "user_id": user.id, "couple_id": user.couple_id})

    for couple in couples.values():
        members = couple.members
        if not members:
            issues.append({"kind": EMPTY_COUPLE, "user_id": None, "couple_id": couple.id})
            continue
        for member_id in members:
            member = users.get(member_id)
            if member is None or (member.couple_id and member.couple_id != couple.id):
                issues.append({"kind": FOREIGN_MEMBER, "user_id": member_id, "couple_id": couple.id})
            elif member.couple_id is None and couple.is_live:
                issues.append({"kind": MISSING_POINTER, "user_id": member_id, "couple_id": couple.id})
        expected = CoupleStatus.ACTIVE if len(members) == 2 else CoupleStatus.PENDING
        if couple.is_live and couple.status != expected:
            issues.append({"kind": WRONG_STATUS, "user_id": None, "couple_id": couple.id})

    for issue in issues:
        logger.warning(
            "Membership drift: %s (user=%s, couple=%s)",
            issue["kind"], issue["user_id"], issue["couple_id"]
        )
    return issues


def _repair(db: Session, issue: Dict[str, Any]) -> None:
    kind = issue["kind"]
    couple = db.query(Couple).filter(Couple.id == issue["couple_id"]).first()
    user = db.query(User).filter(User.id == issue["user_id"]).first() if issue["user_id"] else None

    if kind == DANGLING_POINTER and user is not None:
        user.couple_id = None

    elif kind == MISSING_POINTER and couple is not None:
        # Complete the half-written pairing
        user.couple_id = couple.id

    elif kind == FOREIGN_MEMBER and couple is not None:
        # Roll this couple back; the member's own pointer wins
        remaining = [m for m in couple.members if m != issue["user_id"]]
        couple.partner_1_id = remaining[0] if remaining else None
        couple.partner_2_id = None

    elif kind == WRONG_STATUS and couple is not None:
        couple.status = CoupleStatus.ACTIVE if couple.is_complete else CoupleStatus.PENDING

    db.flush()


def reconcile_memberships(db: Session, repair: bool = True) -> Dict[str, Any]:
    """Detect membership drift and, if repair is set, fix it in one transaction.

    Repairs run until a pass finds nothing, since fixing one issue (e.g. removing
    a foreign member) can leave another behind (an empty couple).
    """
    found = find_membership_drift(db)
    if not repair or not found:
        return {"issues": found, "repaired": False, "remaining": len(found)}

    try:
        issues = found
        for _ in range(3):
            for issue in issues:
                if issue["kind"] == EMPTY_COUPLE:
                    couple = db.query(Couple).filter(Couple.id == issue["couple_id"]).first()
                    if couple is not None:
                        db.delete(couple)
                        db.flush()
                else:
                    _repair(db, issue)
            issues = find_membership_drift(db)
            if not issues:
                break
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Reconciliation repaired %d issue(s), %d remaining", len(found), len(issues))
    return {"issues": found, "repaired": True, "remaining": len(issues)}
