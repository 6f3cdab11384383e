from datetime import timedelta

import pytest

from daypass.core.exceptions import AppException
from daypass.db.models import AuditLog, Discount, Guest, UserRole, Visit
from daypass.schemas.qr import GuestDescriptor
from daypass.services import email_service
from daypass.services.admission_service import AdmissionStatus, OverrideRequest, admit, admit_scanned

from conftest import NOW, OVERRIDE_PASSWORD


@pytest.fixture(autouse=True)
def quiet_email(monkeypatch):
    monkeypatch.setattr(
        email_service,
        "send_discount_email",
        lambda guest_email, guest_name: email_service.EmailResult(success=True, messageId="msg-1"),
    )


def _fill_host(host, make_guest, make_visit, count=3):
    for index in range(count):
        make_visit(make_guest(f"busy{index}@example.com"), host, NOW - timedelta(hours=1))


def test_scenario_a_admits_without_discount(db, host, kiosk, make_guest, make_visit):
    guest = make_guest("regular@example.com", name="Rita")
    # Two visits in the window, three lifetime: this admission is the fourth.
    make_visit(guest, host, NOW - timedelta(days=60), hours=1)
    make_visit(guest, host, NOW - timedelta(days=5), hours=1)
    make_visit(guest, host, NOW - timedelta(days=3), hours=1)
    make_visit(make_guest("someone@example.com"), host, NOW - timedelta(hours=2))

    result = admit(db, host.id, GuestDescriptor(email=guest.email, name="Rita"), actor_id=kiosk.id, now=NOW)

    assert result.status == AdmissionStatus.admitted, result.message
    assert result.discount_triggered is False
    assert result.visit["admittedBy"] == kiosk.id
    assert result.visit["expiresAt"] == (NOW + timedelta(hours=12)).isoformat()
    assert db.query(Discount).count() == 0


def test_scenario_b_third_lifetime_visit_earns_one_discount(db, host, kiosk, make_guest, make_visit):
    guest = make_guest("loyal@example.com")
    make_visit(guest, host, NOW - timedelta(days=90), hours=1)
    make_visit(guest, host, NOW - timedelta(days=60), hours=1)

    result = admit(db, host.id, GuestDescriptor(email=guest.email), actor_id=kiosk.id, now=NOW)

    assert result.status == AdmissionStatus.admitted
    assert result.discount_triggered is True
    assert result.discount_email_sent is True
    discount = db.query(Discount).filter(Discount.guest_id == guest.id).one()
    db.refresh(discount)
    assert discount.email_sent is True


def test_scenario_c_capacity_needs_override(db, host, kiosk, make_guest, make_visit):
    _fill_host(host, make_guest, make_visit)
    guest = make_guest("extra@example.com")
    descriptor = GuestDescriptor(email=guest.email)

    pending = admit(db, host.id, descriptor, actor_id=kiosk.id, now=NOW)
    assert pending.status == AdmissionStatus.override_required
    assert (pending.current_count, pending.max_count) == (3, 3)
    assert pending.payload()["currentCount"] == 3

    reason = "Board meeting"
    result = admit(
        db,
        host.id,
        descriptor,
        actor_id=kiosk.id,
        override=OverrideRequest(reason=reason, password=OVERRIDE_PASSWORD),
        now=NOW,
    )
    assert result.status == AdmissionStatus.admitted
    assert result.visit["overrideReason"] == reason
    assert result.visit["overrideBy"] == kiosk.id

    audit = db.query(AuditLog).filter(AuditLog.action == "visit.override").one()
    assert audit.entity_id == result.visit["id"]
    assert OVERRIDE_PASSWORD not in audit.detail_json


def test_override_denial_names_its_cause(db, host, kiosk, make_guest, make_visit):
    _fill_host(host, make_guest, make_visit)
    descriptor = GuestDescriptor(email=make_guest("extra@example.com").email)

    short = admit(db, host.id, descriptor, kiosk.id, override=OverrideRequest(reason="meeting", password=OVERRIDE_PASSWORD), now=NOW)
    assert short.status == AdmissionStatus.override_denied
    assert short.payload()["cause"] == "reason"

    wrong = admit(db, host.id, descriptor, kiosk.id, override=OverrideRequest(reason="Board meeting", password="nope"), now=NOW)
    assert wrong.status == AdmissionStatus.override_denied
    assert wrong.payload()["cause"] == "password"
    assert db.query(Visit).filter(Visit.override_reason.is_not(None)).count() == 0


def test_scenario_d_rescan_is_reentry(db, host, kiosk, make_guest):
    guest = make_guest("back@example.com")
    descriptor = GuestDescriptor(email=guest.email)

    first = admit(db, host.id, descriptor, kiosk.id, now=NOW)
    again = admit(db, host.id, descriptor, kiosk.id, now=NOW + timedelta(hours=2))

    assert first.status == AdmissionStatus.admitted
    assert again.status == AdmissionStatus.re_entry
    assert again.visit["id"] == first.visit["id"]
    assert db.query(Visit).filter(Visit.guest_id == guest.id).count() == 1


def test_override_cannot_admit_blacklisted_guest(db, host, kiosk, make_guest, make_visit):
    _fill_host(host, make_guest, make_visit)
    guest = make_guest("banned@example.com", blacklisted=True)

    result = admit(
        db,
        host.id,
        GuestDescriptor(email=guest.email),
        kiosk.id,
        override=OverrideRequest(reason="Board meeting", password=OVERRIDE_PASSWORD),
        now=NOW,
    )
    assert result.status == AdmissionStatus.rejected
    assert result.reason_code == "blacklisted"


def test_blacklist_reason_wins_over_every_other_refusal(db, host, kiosk, make_guest, make_visit):
    guest = make_guest("banned-regular@example.com", accepted=False, blacklisted=True)
    for visited_at in (NOW - timedelta(days=20), NOW - timedelta(days=10), NOW - timedelta(days=2)):
        make_visit(guest, host, visited_at, hours=1)
    descriptor = GuestDescriptor(email=guest.email)

    at_limit = admit(db, host.id, descriptor, kiosk.id, now=NOW)
    assert at_limit.status == AdmissionStatus.rejected
    assert at_limit.reason_code == "blacklisted"
    assert at_limit.next_eligible_at is None
    assert "nextEligibleAt" not in at_limit.payload()

    after_cutoff = admit(db, host.id, descriptor, kiosk.id, now=NOW.replace(day=16, hour=6, minute=59, second=30))
    assert after_cutoff.reason_code == "blacklisted"

    expired_credential = admit(
        db, host.id, descriptor, kiosk.id, credential_expires_at=NOW - timedelta(minutes=1), now=NOW
    )
    assert expired_credential.reason_code == "blacklisted"


def test_blacklisted_guest_loses_reentry(db, host, kiosk, make_guest):
    guest = make_guest("ejected@example.com")
    descriptor = GuestDescriptor(email=guest.email)
    first = admit(db, host.id, descriptor, kiosk.id, now=NOW)
    assert first.status == AdmissionStatus.admitted

    db.refresh(guest)
    guest.blacklisted_at = NOW + timedelta(minutes=30)
    db.commit()

    again = admit(db, host.id, descriptor, kiosk.id, now=NOW + timedelta(hours=1))
    assert again.status == AdmissionStatus.rejected
    assert again.reason_code == "blacklisted"


def test_rolling_limit_rejects_with_next_eligible_date(db, host, kiosk, make_guest, make_visit):
    guest = make_guest("frequent@example.com")
    oldest = NOW - timedelta(days=25)
    for visited_at in (oldest, NOW - timedelta(days=15), NOW - timedelta(days=5)):
        make_visit(guest, host, visited_at, hours=1)

    result = admit(db, host.id, GuestDescriptor(email=guest.email), kiosk.id, now=NOW)
    assert result.status == AdmissionStatus.rejected
    assert result.reason_code == "guest_rolling_limit"
    assert result.payload()["nextEligibleAt"] == (oldest + timedelta(days=30)).isoformat()


def test_guest_without_acceptance_is_rejected(db, host, kiosk, make_guest):
    guest = make_guest("unsigned@example.com", accepted=False)
    result = admit(db, host.id, GuestDescriptor(email=guest.email), kiosk.id, now=NOW)
    assert result.status == AdmissionStatus.rejected
    assert result.reason_code == "terms_required"


def test_after_cutoff_is_rejected(db, host, kiosk, make_guest):
    guest = make_guest("night@example.com")
    late = NOW.replace(day=16, hour=6, minute=59, second=30)
    result = admit(db, host.id, GuestDescriptor(email=guest.email), kiosk.id, now=late)
    assert result.status == AdmissionStatus.rejected
    assert result.reason_code == "after_cutoff"


def test_first_scan_creates_guest_with_default_acceptance(db, host, kiosk):
    result = admit(db, host.id, GuestDescriptor(email="  New@Example.com ", name="Nia"), kiosk.id, now=NOW)
    assert result.status == AdmissionStatus.admitted
    guest = db.query(Guest).filter(Guest.email == "new@example.com").one()
    assert guest.name == "Nia"
    assert len(guest.acceptances) == 1


def test_unknown_host_is_not_found(db, kiosk):
    with pytest.raises(AppException) as exc:
        admit(db, "missing-host", GuestDescriptor(email="a@example.com"), kiosk.id, now=NOW)
    assert exc.value.status_code == 404


def test_batch_scan_needs_a_host_when_actor_is_not_one(db, kiosk):
    raw = '{"guests":[{"e":"a@x.com","n":"A"}]}'
    with pytest.raises(AppException) as exc:
        admit_scanned(db, raw, actor=kiosk, now=NOW)
    assert exc.value.status_code == 400
    assert exc.value.message == "Host is required"


def test_batch_scan_by_host_attributes_visit_to_that_host(db, make_user):
    host = make_user(UserRole.host)
    raw = '{"guests":[{"e":"a@x.com","n":"A"},{"e":"b@x.com","n":"B"}]}'
    result = admit_scanned(db, raw, actor=host, guest_email="B@x.com", now=NOW)
    assert result.status == AdmissionStatus.admitted
    assert result.host_id == host.id
    assert result.visit["guestEmail"] == "b@x.com"


def test_undecodable_scan_is_a_rejection(db, kiosk):
    result = admit_scanned(db, '{"guests":[{"e":"a@x.com"}]}', actor=kiosk, now=NOW)
    assert result.status == AdmissionStatus.rejected
    assert result.reason_code == "qr_unreadable"
