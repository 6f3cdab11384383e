from datetime import datetime
from typing import Any

from pydantic import BaseModel
from sqlalchemy.orm import Session

from daypass.core.exceptions import AppException
from daypass.core.timeutils import rolling_window_start, utcnow
from daypass.db.models import Acceptance, Discount, Guest, Visit
from daypass.services.acceptance_service import acceptance_status, record_acceptance
from daypass.services.audit_service import write_audit_log


class GuestProfile(BaseModel):
    email: str
    name: str
    country: str = "Unknown"
    contact_method: str | None = None
    contact_value: str | None = None


class IncomingGuest(BaseModel):
    email: str
    name: str | None = None
    country: str | None = None
    contact_method: str | None = None
    contact_value: str | None = None


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def merge_guest(existing: GuestProfile, incoming: IncomingGuest) -> GuestProfile:
    """Incoming non-empty values win; email is the key and never changes."""
    updates: dict[str, Any] = {}
    for field in ("name", "country", "contact_method", "contact_value"):
        value = getattr(incoming, field)
        if isinstance(value, str):
            value = value.strip()
        if value:
            updates[field] = value
    return existing.model_copy(update=updates)


def profile_of(guest: Guest) -> GuestProfile:
    return GuestProfile(
        email=guest.email,
        name=guest.name,
        country=guest.country or "Unknown",
        contact_method=guest.contact_method,
        contact_value=guest.contact_value,
    )


def _apply_profile(guest: Guest, profile: GuestProfile) -> None:
    guest.name = profile.name
    guest.country = profile.country
    guest.contact_method = profile.contact_method
    guest.contact_value = profile.contact_value


def get_guest_by_email(db: Session, email: str) -> Guest | None:
    return db.query(Guest).filter(Guest.email == normalize_email(email)).first()


def upsert_guest(db: Session, incoming: IncomingGuest) -> tuple[Guest, bool]:
    """Returns the guest row (flushed, not committed) and whether it was created."""
    email = normalize_email(incoming.email)
    guest = db.query(Guest).filter(Guest.email == email).first()
    if guest is None:
        name = (incoming.name or "").strip() or email.split("@")[0]
        profile = merge_guest(GuestProfile(email=email, name=name), incoming)
        guest = Guest(email=email)
        _apply_profile(guest, profile)
        db.add(guest)
        db.flush()
        return guest, True

    merged = merge_guest(profile_of(guest), incoming)
    if merged != profile_of(guest):
        _apply_profile(guest, merged)
        db.flush()
    return guest, False


def resolve_scanned_guest(db: Session, email: str, name: str | None, now: datetime | None = None) -> Guest:
    """First-time scanned guests get a minimal record plus a default acceptance."""
    guest, created = upsert_guest(db, IncomingGuest(email=email, name=name))
    if created:
        record_acceptance(db, guest, now=now)
        db.flush()
    return guest


def set_blacklist(db: Session, guest_id: str, action: str, actor_user_id: str | None = None) -> dict:
    if action not in {"blacklist", "unblacklist"}:
        raise AppException('Invalid action. Must be "blacklist" or "unblacklist"', status_code=400)

    guest = db.query(Guest).filter(Guest.id == guest_id).first()
    if not guest:
        raise AppException("Guest not found", status_code=404)

    if action == "blacklist":
        if guest.blacklisted_at:
            raise AppException("Guest is already blacklisted", status_code=400)
        guest.blacklisted_at = utcnow()
        message = f"{guest.name} has been blacklisted"
    else:
        if not guest.blacklisted_at:
            raise AppException("Guest is not blacklisted", status_code=400)
        guest.blacklisted_at = None
        message = f"{guest.name} has been removed from blacklist"

    write_audit_log(
        db,
        actor_user_id=actor_user_id,
        action=f"guest.{action}",
        entity_type="guest",
        entity_id=guest.id,
        detail={"email": guest.email},
    )
    db.refresh(guest)
    return {
        "message": message,
        "guest": {
            "id": guest.id,
            "name": guest.name,
            "email": guest.email,
            "isBlacklisted": guest.blacklisted_at is not None,
        },
    }


def get_guest_stats(db: Session, email: str, now: datetime | None = None) -> dict:
    now = now or utcnow()
    guest = get_guest_by_email(db, email)
    if not guest:
        raise AppException("Guest not found", status_code=404)

    admitted = db.query(Visit).filter(Visit.guest_id == guest.id, Visit.checked_in_at.is_not(None))
    recent = admitted.filter(Visit.checked_in_at >= rolling_window_start(now)).count()
    last_visit = admitted.order_by(Visit.checked_in_at.desc()).first()
    discount = db.query(Discount).filter(Discount.guest_id == guest.id).first()
    acceptances = db.query(Acceptance).filter(Acceptance.guest_id == guest.id).all()

    return {
        "guestId": guest.id,
        "email": guest.email,
        "name": guest.name,
        "recentVisits": recent,
        "lifetimeVisits": admitted.count(),
        "lastVisitDate": last_visit.checked_in_at.isoformat() if last_visit else None,
        "hasDiscount": discount is not None,
        "isBlacklisted": guest.blacklisted_at is not None,
        "acceptance": acceptance_status(acceptances, now),
    }
