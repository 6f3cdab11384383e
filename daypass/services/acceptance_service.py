from datetime import datetime, timedelta
from typing import Any, Iterable

from sqlalchemy.orm import Session

from daypass.core.config import get_settings
from daypass.core.timeutils import utcnow
from daypass.db.models import Acceptance, Guest

settings = get_settings()

TERMS_VERSION = "1.0"
VISITOR_AGREEMENT_VERSION = "1.0"


def is_acceptance_valid(acceptance: Acceptance, now: datetime | None = None) -> bool:
    """An acceptance with its own expiry lasts until then; one without expires
    ``ACCEPTANCE_LEGACY_DAYS`` after it was given."""
    now = now or utcnow()
    if acceptance.expires_at is None:
        return acceptance.accepted_at > now - timedelta(days=settings.ACCEPTANCE_LEGACY_DAYS)
    return acceptance.expires_at > now


def acceptance_type(acceptance: Acceptance) -> str:
    if acceptance.visit_id:
        return "visit-scoped"
    if acceptance.invitation_id:
        return "invitation-scoped"
    return "general"


def acceptance_status(acceptances: Iterable[Acceptance], now: datetime | None = None) -> dict[str, Any]:
    now = now or utcnow()
    ordered = sorted(acceptances, key=lambda row: row.accepted_at, reverse=True)
    if not ordered:
        return {"hasValidAcceptance": False, "status": "none"}

    for row in ordered:
        if is_acceptance_valid(row, now):
            days_left = None
            if row.expires_at is not None:
                days_left = max(0, -(-int((row.expires_at - now).total_seconds()) // 86400))
            return {
                "hasValidAcceptance": True,
                "status": "valid",
                "type": acceptance_type(row),
                "acceptedAt": row.accepted_at.isoformat(),
                "expiresAt": row.expires_at.isoformat() if row.expires_at else None,
                "termsVersion": row.terms_version,
                "daysUntilExpiry": days_left,
            }

    latest = ordered[0]
    return {
        "hasValidAcceptance": False,
        "status": "expired",
        "type": acceptance_type(latest),
        "acceptedAt": latest.accepted_at.isoformat(),
        "expiresAt": latest.expires_at.isoformat() if latest.expires_at else None,
        "termsVersion": latest.terms_version,
        "daysUntilExpiry": 0,
    }


def has_valid_acceptance(db: Session, guest_id: str, now: datetime | None = None) -> bool:
    rows = db.query(Acceptance).filter(Acceptance.guest_id == guest_id).all()
    return any(is_acceptance_valid(row, now) for row in rows)


def record_acceptance(
    db: Session,
    guest: Guest,
    invitation_id: str | None = None,
    visit_id: str | None = None,
    expires_at: datetime | None = None,
    now: datetime | None = None,
) -> Acceptance:
    """Adds an acceptance to the session and stamps the guest; the caller commits."""
    now = now or utcnow()
    row = Acceptance(
        guest_id=guest.id,
        invitation_id=invitation_id,
        visit_id=visit_id,
        terms_version=TERMS_VERSION,
        visitor_agreement_version=VISITOR_AGREEMENT_VERSION,
        accepted_at=now,
        expires_at=expires_at,
    )
    db.add(row)
    guest.terms_accepted_at = now
    return row
