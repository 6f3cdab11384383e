"""Check-in routes through the FastAPI app."""

import asyncio
from datetime import timedelta

import pytest

from daypass.db.models import Invitation, InvitationStatus, UserRole, Visit
from daypass.services import email_service, qr_service

from conftest import NOW, OVERRIDE_PASSWORD

API = "/api/v1"


def test_health_reports_email_configuration(client):
    r = client.get(f"{API}/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "emailConfigured": False, "environment": "test"}
    assert r.headers.get("X-Request-ID")


def test_checkin_requires_a_bearer_token(client):
    r = client.post(f"{API}/checkin", json={"payload": "{}"})
    assert r.status_code == 401


def test_decode_preview_lists_batch_guests(client, kiosk, auth_headers):
    raw = qr_service.encode_batch([{"e": "a@x.com", "n": "Ann"}, {"e": "b@x.com", "n": "Bo"}])
    r = client.post(f"{API}/checkin/decode", json={"payload": raw}, headers=auth_headers(kiosk))
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["kind"] == "batch"
    assert [guest["email"] for guest in data["guests"]] == ["a@x.com", "b@x.com"]


def test_batch_scan_admits_selected_guest(client, host, kiosk, auth_headers):
    raw = qr_service.encode_batch([{"e": "a@x.com", "n": "Ann"}, {"e": "b@x.com", "n": "Bo"}], host_id=host.id)
    r = client.post(
        f"{API}/checkin",
        json={"payload": raw, "guestEmail": "a@x.com"},
        headers=auth_headers(kiosk),
    )
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["status"] == "admitted"
    assert data["hostId"] == host.id
    assert data["visit"]["guestEmail"] == "a@x.com"
    assert data["visit"]["admittedBy"] == kiosk.id
    assert data["discountTriggered"] is False


def test_ambiguous_batch_scan_asks_for_a_guest(client, host, kiosk, auth_headers):
    raw = qr_service.encode_batch([{"e": "a@x.com", "n": "Ann"}, {"e": "b@x.com", "n": "Bo"}], host_id=host.id)
    r = client.post(f"{API}/checkin", json={"payload": raw}, headers=auth_headers(kiosk))
    assert r.status_code == 400
    assert r.json()["message"] == "Select a guest from this QR code"


def test_malformed_batch_is_rejected_with_reason_code(client, host, kiosk, auth_headers):
    r = client.post(
        f"{API}/checkin",
        json={"payload": '{"guests":[{"e":"a@x.com","n":"A"},{"e":"b@x.com"}]}', "hostId": host.id},
        headers=auth_headers(kiosk),
    )
    assert r.status_code == 400
    assert r.json()["data"]["reasonCode"] == "qr_unreadable"


def test_capacity_override_flow(client, db, host, kiosk, auth_headers, make_guest, make_visit):
    for index in range(3):
        make_visit(make_guest(f"busy{index}@example.com"), host, NOW - timedelta(hours=1))
    body = {"guest": {"e": "late@example.com", "n": "Lou"}, "hostId": host.id}

    r = client.post(f"{API}/checkin/guest", json=body, headers=auth_headers(kiosk))
    assert r.status_code == 409, r.text
    data = r.json()["data"]
    assert data["status"] == "override-required"
    assert (data["currentCount"], data["maxCount"]) == (3, 3)

    r = client.post(
        f"{API}/checkin/guest",
        json={**body, "overrideReason": "Client workshop", "overridePassword": "wrong-one"},
        headers=auth_headers(kiosk),
    )
    assert r.status_code == 401
    assert r.json()["data"]["cause"] == "password"

    r = client.post(
        f"{API}/checkin/guest",
        json={**body, "overrideReason": "Client workshop", "overridePassword": OVERRIDE_PASSWORD},
        headers=auth_headers(kiosk),
    )
    assert r.status_code == 200, r.text
    visit = r.json()["data"]["visit"]
    assert visit["overrideReason"] == "Client workshop"
    assert visit["overrideBy"] == kiosk.id
    assert db.query(Visit).filter(Visit.host_id == host.id).count() == 4


def test_host_scanning_without_host_id_uses_itself(client, host, auth_headers):
    r = client.post(
        f"{API}/checkin/guest",
        json={"guest": {"email": "friend@example.com", "name": "Fay"}},
        headers=auth_headers(host),
    )
    assert r.status_code == 200, r.text
    assert r.json()["data"]["hostId"] == host.id


def test_unknown_host_is_404(client, kiosk, auth_headers):
    r = client.post(
        f"{API}/checkin/guest",
        json={"guest": {"e": "x@example.com", "n": "X"}, "hostId": "nobody"},
        headers=auth_headers(kiosk),
    )
    assert r.status_code == 404
    assert r.json() == {"message": "Host not found"}


def test_kiosk_cannot_reach_admin_routes(client, make_user, auth_headers):
    kiosk = make_user(UserRole.kiosk)
    r = client.put(
        f"{API}/admin/policies",
        json={"guestMonthlyLimit": 5, "hostConcurrentLimit": 5},
        headers=auth_headers(kiosk),
    )
    assert r.status_code == 403


@pytest.fixture
def discount_email_calls(monkeypatch):
    """Records whether each discount email was sent from the event loop thread."""
    calls = []

    def fake_send(guest_email, guest_name):
        try:
            asyncio.get_running_loop()
            on_event_loop = True
        except RuntimeError:
            on_event_loop = False
        calls.append((guest_email, on_event_loop))
        return email_service.EmailResult(success=True, messageId="msg-1")

    monkeypatch.setattr(email_service, "send_discount_email", fake_send)
    return calls


def _two_prior_visits(make_guest, make_visit, host, email):
    guest = make_guest(email)
    make_visit(guest, host, NOW - timedelta(days=60), hours=1)
    make_visit(guest, host, NOW - timedelta(days=40), hours=1)
    return guest


def test_guest_checkin_sends_email_off_the_event_loop(client, host, kiosk, auth_headers, make_guest, make_visit, discount_email_calls):
    guest = _two_prior_visits(make_guest, make_visit, host, "third@example.com")
    r = client.post(
        f"{API}/checkin/guest",
        json={"hostId": host.id, "guest": {"email": guest.email, "name": "Third"}},
        headers=auth_headers(kiosk),
    )
    assert r.status_code == 200, r.text
    assert r.json()["data"]["discountTriggered"] is True
    assert discount_email_calls == [("third@example.com", False)]


def test_scan_checkin_sends_email_off_the_event_loop(client, host, kiosk, auth_headers, make_guest, make_visit, discount_email_calls):
    guest = _two_prior_visits(make_guest, make_visit, host, "scanned@example.com")
    raw = qr_service.encode_batch([{"e": guest.email, "n": "Scan"}], host_id=host.id)
    r = client.post(f"{API}/checkin", json={"payload": raw}, headers=auth_headers(kiosk))
    assert r.status_code == 200, r.text
    assert discount_email_calls == [("scanned@example.com", False)]


def test_invitation_admit_sends_email_off_the_event_loop(client, db, host, auth_headers, make_guest, make_visit, discount_email_calls):
    guest = _two_prior_visits(make_guest, make_visit, host, "invited@example.com")
    invitation = Invitation(guest_id=guest.id, host_id=host.id, invite_date=NOW.date(), status=InvitationStatus.PENDING)
    db.add(invitation)
    db.commit()

    r = client.post(f"{API}/invitations/{invitation.id}/admit", json={}, headers=auth_headers(host))
    assert r.status_code == 200, r.text
    assert r.json()["data"]["discountEmailSent"] is True
    assert discount_email_calls == [("invited@example.com", False)]
