from datetime import datetime, timedelta
from unittest.mock import patch

from fastapi import status

from backend.app.errors import PairingFatalError
from backend.tests.helpers.pairing import admin_auth, assert_membership_invariant, auth


def send(client, sender, receiver, **extra):
    payload = {"receiver_id": receiver.id, "anniversary_date": "2020-02-29"}
    payload.update(extra)
    return client.post("/api/v1/invitations/", json=payload, headers=auth(sender))


def test_send_invitation(client, test_user, partner_user):
    response = send(client, test_user, partner_user, message="Hi")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["sender_id"] == test_user.id
    assert data["receiver_id"] == partner_user.id
    assert data["status"] == "pending"
    assert data["message"] == "Hi"
    assert data["anniversary_date"] == "2020-02-29"

def test_send_invitation_by_email(client, test_user, partner_user):
    response = client.post(
        "/api/v1/invitations/",
        json={"receiver_email": partner_user.email, "anniversary_date": "2020-02-29"},
        headers=auth(test_user)
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["receiver_id"] == partner_user.id

def test_send_invitation_requires_account(client, partner_user):
    response = client.post(
        "/api/v1/invitations/",
        json={"receiver_id": partner_user.id, "anniversary_date": "2020-02-29"}
    )

    assert response.status_code == status.HTTP_401_UNAUTHORIZED

def test_send_invitation_errors(client, test_user, partner_user, test_couple, make_user):
    loner = make_user()
    tomorrow = (datetime.utcnow().date() + timedelta(days=1)).isoformat()

    assert send(client, loner, loner).status_code == status.HTTP_400_BAD_REQUEST
    assert send(client, loner, make_user(), anniversary_date=tomorrow).status_code == status.HTTP_400_BAD_REQUEST
    assert send(client, loner, partner_user).status_code == status.HTTP_409_CONFLICT

    response = client.post(
        "/api/v1/invitations/",
        json={"receiver_id": "missing", "anniversary_date": "2020-02-29"},
        headers=auth(loner)
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND

def test_send_duplicate_invitation(client, test_user, partner_user):
    send(client, test_user, partner_user)

    response = send(client, partner_user, test_user)

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["detail"] == "There is already a pending invitation between you two"

def test_list_received_and_sent(client, test_user, partner_user, make_user):
    send(client, test_user, partner_user)
    send(client, make_user(), partner_user)

    received = client.get("/api/v1/invitations/received", headers=auth(partner_user))
    sent = client.get("/api/v1/invitations/sent", headers=auth(test_user))

    assert received.status_code == status.HTTP_200_OK
    assert len(received.json()) == 2
    assert [i["receiver_id"] for i in sent.json()] == [partner_user.id]

def test_list_with_status_query(client, test_user, partner_user):
    invitation = send(client, test_user, partner_user).json()
    client.patch(
        f"/api/v1/invitations/{invitation['id']}",
        json={"action": "reject"},
        headers=auth(partner_user)
    )

    assert client.get("/api/v1/invitations/received", headers=auth(partner_user)).json() == []
    rejected = client.get(
        "/api/v1/invitations/received?status=rejected", headers=auth(partner_user)
    ).json()
    assert [i["id"] for i in rejected] == [invitation["id"]]

def test_get_invitation(client, test_user, partner_user, make_user):
    invitation = send(client, test_user, partner_user).json()

    response = client.get(f"/api/v1/invitations/{invitation['id']}", headers=auth(partner_user))
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["id"] == invitation["id"]

    response = client.get(f"/api/v1/invitations/{invitation['id']}", headers=auth(make_user()))
    assert response.status_code == status.HTTP_403_FORBIDDEN

def test_accept_invitation(client, db_session, test_user, partner_user):
    invitation = send(client, test_user, partner_user).json()

    response = client.patch(
        f"/api/v1/invitations/{invitation['id']}",
        json={"action": "accept"},
        headers=auth(partner_user)
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["action"] == "accept"
    assert data["invitation"]["status"] == "accepted"
    assert data["couple"]["status"] == "active"
    assert data["couple"]["anniversary_date"] == "2020-02-29"
    assert sorted(data["couple"]["members"]) == sorted([test_user.id, partner_user.id])

    me = client.get("/api/v1/couples/me", headers=auth(test_user))
    assert me.json()["id"] == data["couple"]["id"]
    assert_membership_invariant(db_session)

def test_sender_cannot_accept(client, test_user, partner_user):
    invitation = send(client, test_user, partner_user).json()

    response = client.patch(
        f"/api/v1/invitations/{invitation['id']}",
        json={"action": "accept"},
        headers=auth(test_user)
    )

    assert response.status_code == status.HTTP_403_FORBIDDEN

def test_cancel_invitation(client, test_user, partner_user):
    invitation = send(client, test_user, partner_user).json()

    response = client.patch(
        f"/api/v1/invitations/{invitation['id']}",
        json={"action": "cancel"},
        headers=auth(test_user)
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["invitation"]["status"] == "expired"
    assert response.json()["couple"] is None

def test_respond_twice(client, test_user, partner_user):
    invitation = send(client, test_user, partner_user).json()
    url = f"/api/v1/invitations/{invitation['id']}"
    client.patch(url, json={"action": "reject"}, headers=auth(partner_user))

    response = client.patch(url, json={"action": "accept"}, headers=auth(partner_user))

    assert response.status_code == status.HTTP_409_CONFLICT

def test_respond_with_unknown_action(client, test_user, partner_user):
    invitation = send(client, test_user, partner_user).json()

    response = client.patch(
        f"/api/v1/invitations/{invitation['id']}",
        json={"action": "maybe"},
        headers=auth(partner_user)
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

def test_accept_lapsed_invitation(client, db_session, test_user, partner_user):
    from backend.app.models.models import CoupleInvitation

    invitation = send(client, test_user, partner_user).json()
    row = db_session.query(CoupleInvitation).filter(CoupleInvitation.id == invitation["id"]).one()
    row.expires_at = datetime.utcnow() - timedelta(seconds=1)
    db_session.commit()

    response = client.patch(
        f"/api/v1/invitations/{invitation['id']}",
        json={"action": "accept"},
        headers=auth(partner_user)
    )

    assert response.status_code == status.HTTP_410_GONE
    assert response.json()["detail"] == "This invitation has expired"

def test_accept_lapsed_invitation_after_unrelated_listing(client, db_session, test_user, partner_user, make_user):
    from backend.app.models.models import CoupleInvitation

    invitation = send(client, test_user, partner_user).json()
    row = db_session.query(CoupleInvitation).filter(CoupleInvitation.id == invitation["id"]).one()
    row.expires_at = datetime.utcnow() - timedelta(seconds=1)
    db_session.commit()

    # Someone else's listing sweeps the lapsed invitation to expired first
    assert client.get("/api/v1/invitations/received", headers=auth(make_user())).status_code == 200

    response = client.patch(
        f"/api/v1/invitations/{invitation['id']}",
        json={"action": "accept"},
        headers=auth(partner_user)
    )

    assert response.status_code == status.HTTP_410_GONE
    assert response.json()["detail"] == "This invitation has expired"

def test_invitation_stats(client, test_user, partner_user):
    send(client, test_user, partner_user)

    response = client.get("/api/v1/invitations/stats", headers=admin_auth("operator"))

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "total_pending": 1,
        "total_accepted": 0,
        "total_rejected": 0,
        "total_expired": 0,
    }

def test_invitation_stats_requires_admin(client, test_user):
    assert client.get("/api/v1/invitations/stats").status_code == status.HTTP_401_UNAUTHORIZED

    response = client.get("/api/v1/invitations/stats", headers=auth(test_user))
    assert response.status_code == status.HTTP_403_FORBIDDEN

    wrong_role = client.get(
        "/api/v1/invitations/stats", headers={**auth(test_user), "X-Account-Role": "member"}
    )
    assert wrong_role.status_code == status.HTTP_403_FORBIDDEN

def test_fatal_error_is_opaque(client, test_user, partner_user):
    invitation = send(client, test_user, partner_user).json()

    with patch(
        "backend.app.services.pairing_service._verify_pointers",
        side_effect=PairingFatalError("pointer mismatch")
    ):
        response = client.patch(
            f"/api/v1/invitations/{invitation['id']}",
            json={"action": "accept"},
            headers=auth(partner_user)
        )

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["detail"] == "Internal server error"
