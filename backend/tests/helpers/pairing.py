"""Shared assertions and helpers for pairing tests."""

from backend.app.models.models import Couple, User, LIVE_COUPLE_STATUSES


def auth(user_or_id):
    """Headers identifying the acting account"""
    account_id = user_or_id if isinstance(user_or_id, str) else user_or_id.id
    return {"X-Account-Id": account_id}


def admin_auth(user_or_id):
    """Headers for an operator account"""
    return {**auth(user_or_id), "X-Account-Role": "admin"}


def assert_membership_invariant(session):
    """user.couple_id == C  <=>  C is live and lists the user; couples have 1-2 members."""
    session.expire_all()
    couples = {c.id: c for c in session.query(Couple).all()}
    users = session.query(User).all()

    for couple in couples.values():
        assert 1 <= len(couple.members) <= 2, f"couple {couple.id} has {len(couple.members)} members"

    for user in users:
        listed_in = [c for c in couples.values() if user.id in c.members and c.status in LIVE_COUPLE_STATUSES]
        if user.couple_id is None:
            assert listed_in == [], f"user {user.id} is listed in {[c.id for c in listed_in]} without a pointer"
        else:
            assert [c.id for c in listed_in] == [user.couple_id], (
                f"user {user.id} points at {user.couple_id} but is listed in {[c.id for c in listed_in]}"
            )
