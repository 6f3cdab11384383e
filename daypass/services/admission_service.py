"""Visit admission engine.

``admit`` decides whether a guest may enter right now for a given host and
performs the side effects of a successful admission exactly once: the Visit
row, the invitation's CHECKED_IN transition, the override audit row and the
third-visit discount are committed together; the discount email goes out after
the commit. Every expected outcome, including rejections and a pending
override, is returned as an ``AdmissionResult`` rather than raised.

``admit_scanned`` and ``admit_invitation`` resolve who is being admitted (from
a scanned QR payload or an invitation) and then hand over to ``admit``.
"""

import logging
from datetime import datetime
from enum import Enum

from pydantic import BaseModel
from sqlalchemy.orm import Session

from daypass.core.exceptions import AppException
from daypass.core.timeutils import utcnow, visit_expiration
from daypass.db.models import Guest, Invitation, InvitationStatus, User, UserRole, Visit
from daypass.schemas.qr import BatchDescriptor, DecodeFailure, DecodeFailureReason, GuestDescriptor
from daypass.services import qr_service
from daypass.services.audit_service import write_audit_log
from daypass.services.discount_service import deliver_discount, stage_discount
from daypass.services.eligibility_service import RuleContext, evaluate_rules
from daypass.services.guest_service import normalize_email, resolve_scanned_guest
from daypass.services.override_service import authorize_override
from daypass.services.policy_service import get_or_create_policy

logger = logging.getLogger(__name__)

DECODE_REASON_CODES = {
    DecodeFailureReason.unreadable: "qr_unreadable",
    DecodeFailureReason.unrecognized: "qr_unrecognized",
    DecodeFailureReason.expired: "qr_expired",
}


class AdmissionStatus(str, Enum):
    admitted = "admitted"
    re_entry = "re-entry"
    override_required = "override-required"
    rejected = "rejected"
    override_denied = "override-denied"


class OverrideRequest(BaseModel):
    reason: str | None = None
    password: str | None = None

    @property
    def supplied(self) -> bool:
        return bool((self.reason or "").strip() or self.password)


class AdmissionResult(BaseModel):
    status: AdmissionStatus
    message: str
    visit: dict | None = None
    guest_id: str | None = None
    host_id: str | None = None
    reason_code: str | None = None
    next_eligible_at: datetime | None = None
    current_count: int | None = None
    max_count: int | None = None
    denial_cause: str | None = None
    discount_triggered: bool = False
    discount_email_sent: bool = False

    def payload(self) -> dict:
        data = {"status": self.status.value, "message": self.message}
        if self.visit is not None:
            data["visit"] = self.visit
        if self.guest_id:
            data["guestId"] = self.guest_id
        if self.host_id:
            data["hostId"] = self.host_id
        if self.reason_code:
            data["reasonCode"] = self.reason_code
        if self.next_eligible_at:
            data["nextEligibleAt"] = self.next_eligible_at.isoformat()
        if self.current_count is not None:
            data["currentCount"] = self.current_count
        if self.max_count is not None:
            data["maxCount"] = self.max_count
        if self.denial_cause:
            data["cause"] = self.denial_cause
        if self.status == AdmissionStatus.admitted:
            data["discountTriggered"] = self.discount_triggered
            data["discountEmailSent"] = self.discount_email_sent
        return data


def visit_payload(visit: Visit, guest: Guest | None = None) -> dict:
    guest = guest or visit.guest
    return {
        "id": visit.id,
        "guestId": visit.guest_id,
        "guestName": guest.name if guest else None,
        "guestEmail": guest.email if guest else None,
        "hostId": visit.host_id,
        "invitationId": visit.invitation_id,
        "admittedBy": visit.admitted_by,
        "checkedInAt": visit.checked_in_at.isoformat() if visit.checked_in_at else None,
        "expiresAt": visit.expires_at.isoformat() if visit.expires_at else None,
        "overrideReason": visit.override_reason,
        "overrideBy": visit.override_by,
    }


def find_active_visit(db: Session, host_id: str, guest_id: str, now: datetime) -> Visit | None:
    return (
        db.query(Visit)
        .filter(
            Visit.host_id == host_id,
            Visit.guest_id == guest_id,
            Visit.checked_in_at.is_not(None),
            Visit.expires_at > now,
        )
        .order_by(Visit.checked_in_at.desc())
        .first()
    )


def get_host_or_raise(db: Session, host_id: str) -> User:
    host = db.query(User).filter(User.id == host_id).first()
    if not host or host.role != UserRole.host or not host.is_active:
        raise AppException("Host not found", status_code=404)
    return host


def _log_outcome(result: AdmissionResult) -> AdmissionResult:
    logger.info(
        "admission status=%s guest_id=%s host_id=%s reason=%s",
        result.status.value,
        result.guest_id,
        result.host_id,
        result.reason_code or result.denial_cause or "-",
    )
    return result


def admit(
    db: Session,
    host_id: str,
    guest: GuestDescriptor,
    actor_id: str,
    credential_expires_at: datetime | None = None,
    invitation: Invitation | None = None,
    override: OverrideRequest | None = None,
    now: datetime | None = None,
) -> AdmissionResult:
    now = now or utcnow()
    get_host_or_raise(db, host_id)
    policy = get_or_create_policy(db)
    guest_row = resolve_scanned_guest(db, guest.email, guest.name, now=now)

    # Blacklisting mid-visit also ends re-entry.
    active = None if guest_row.blacklisted_at else find_active_visit(db, host_id, guest_row.id, now)
    if active is not None:
        db.commit()
        return _log_outcome(
            AdmissionResult(
                status=AdmissionStatus.re_entry,
                message="Welcome back! Your existing visit is still active.",
                visit=visit_payload(active, guest_row),
                guest_id=guest_row.id,
                host_id=host_id,
            )
        )

    ctx = RuleContext(
        host_id=host_id,
        guest_id=guest_row.id,
        guest_email=guest_row.email,
        credential_expires_at=credential_expires_at,
        now=now,
    )
    failures = [result for result in evaluate_rules(db, ctx, policy) if not result.passed]
    blocking = [result for result in failures if not result.overridable]
    # Keep a first-time guest's record even when admission is refused.
    db.commit()

    if blocking:
        failure = blocking[0]
        return _log_outcome(
            AdmissionResult(
                status=AdmissionStatus.rejected,
                message=failure.message or "Admission rejected",
                guest_id=guest_row.id,
                host_id=host_id,
                reason_code=failure.reason_code.value if failure.reason_code else None,
                next_eligible_at=failure.next_eligible_at,
            )
        )

    override_reason = None
    if failures:
        capacity = failures[0]
        if override is None or not override.supplied:
            return _log_outcome(
                AdmissionResult(
                    status=AdmissionStatus.override_required,
                    message=capacity.message or "Override required",
                    guest_id=guest_row.id,
                    host_id=host_id,
                    reason_code=capacity.reason_code.value if capacity.reason_code else None,
                    current_count=capacity.current_count,
                    max_count=capacity.max_count,
                )
            )
        decision = authorize_override(override.reason, override.password)
        if not decision.authorized:
            return _log_outcome(
                AdmissionResult(
                    status=AdmissionStatus.override_denied,
                    message=decision.message or "Override denied",
                    guest_id=guest_row.id,
                    host_id=host_id,
                    denial_cause=decision.cause.value if decision.cause else None,
                )
            )
        override_reason = override.reason.strip()

    visit = Visit(
        guest_id=guest_row.id,
        host_id=host_id,
        invitation_id=invitation.id if invitation else None,
        admitted_by=actor_id,
        checked_in_at=now,
        expires_at=visit_expiration(now),
        override_reason=override_reason,
        override_by=actor_id if override_reason else None,
    )
    db.add(visit)
    db.flush()

    if invitation is not None:
        invitation.status = InvitationStatus.CHECKED_IN
    if override_reason:
        write_audit_log(
            db,
            actor_user_id=actor_id,
            action="visit.override",
            entity_type="visit",
            entity_id=visit.id,
            detail={
                "reason": override_reason,
                "hostId": host_id,
                "guestId": guest_row.id,
                "activeCount": failures[0].current_count,
                "limit": failures[0].max_count,
            },
            commit=False,
        )
    discount = stage_discount(db, guest_row.id)
    db.commit()
    db.refresh(visit)

    email_sent = deliver_discount(db, discount, guest_row) if discount is not None else False

    if discount is not None:
        message = "Check-in successful! Discount earned (3rd lifetime visit)."
        if email_sent:
            message += " Check your email!"
    elif override_reason:
        message = "Check-in successful with override!"
    else:
        message = "Check-in successful!"

    return _log_outcome(
        AdmissionResult(
            status=AdmissionStatus.admitted,
            message=message,
            visit=visit_payload(visit, guest_row),
            guest_id=guest_row.id,
            host_id=host_id,
            discount_triggered=discount is not None,
            discount_email_sent=email_sent,
        )
    )


def _decode_rejection(failure: DecodeFailure) -> AdmissionResult:
    return _log_outcome(
        AdmissionResult(
            status=AdmissionStatus.rejected,
            message=failure.message,
            reason_code=DECODE_REASON_CODES[failure.reason],
        )
    )


def _select_batch_guest(batch: BatchDescriptor, guest_email: str | None) -> GuestDescriptor:
    if guest_email:
        wanted = normalize_email(guest_email)
        for guest in batch.guests:
            if normalize_email(guest.email) == wanted:
                return guest
        raise AppException("Guest is not part of this QR code", status_code=400)
    if len(batch.guests) == 1:
        return batch.guests[0]
    raise AppException("Select a guest from this QR code", status_code=400)


def resolve_host_id(actor: User, *candidates: str | None) -> str:
    for candidate in candidates:
        if candidate:
            return candidate
    if actor.role == UserRole.host:
        return actor.id
    raise AppException("Host is required", status_code=400)


def admit_scanned(
    db: Session,
    raw_payload: str,
    actor: User,
    host_id: str | None = None,
    guest_email: str | None = None,
    override: OverrideRequest | None = None,
    now: datetime | None = None,
) -> AdmissionResult:
    now = now or utcnow()
    decoded = qr_service.decode(raw_payload, now=now)
    if isinstance(decoded, DecodeFailure):
        return _decode_rejection(decoded)

    if isinstance(decoded, BatchDescriptor):
        guest = _select_batch_guest(decoded, guest_email)
        return admit(
            db,
            host_id=resolve_host_id(actor, decoded.host_id, host_id),
            guest=guest,
            actor_id=actor.id,
            override=override,
            now=now,
        )

    invitation = db.query(Invitation).filter(Invitation.id == decoded.invitation_id).first()
    if not invitation:
        raise AppException("Invitation not found", status_code=404)
    if normalize_email(invitation.guest.email) != normalize_email(decoded.email):
        raise AppException("Token does not match guest email", status_code=400)
    if invitation.host_id != decoded.host_id:
        raise AppException("Token does not match invitation host", status_code=400)
    if invitation.status == InvitationStatus.EXPIRED:
        raise AppException("This invitation is no longer valid", status_code=400)

    return admit(
        db,
        host_id=invitation.host_id,
        guest=GuestDescriptor(email=invitation.guest.email, name=invitation.guest.name),
        actor_id=actor.id,
        credential_expires_at=invitation.qr_expires_at or decoded.expires_at,
        invitation=invitation,
        override=override,
        now=now,
    )


def admit_invitation(
    db: Session,
    invitation_id: str,
    actor: User,
    override: OverrideRequest | None = None,
    now: datetime | None = None,
) -> AdmissionResult:
    invitation = db.query(Invitation).filter(Invitation.id == invitation_id).first()
    if not invitation:
        raise AppException("Invitation not found", status_code=404)
    if actor.role == UserRole.host and invitation.host_id != actor.id:
        raise AppException("Unauthorized", status_code=403)
    if invitation.status == InvitationStatus.EXPIRED:
        raise AppException("This invitation is no longer valid", status_code=400)

    return admit(
        db,
        host_id=invitation.host_id,
        guest=GuestDescriptor(email=invitation.guest.email, name=invitation.guest.name),
        actor_id=actor.id,
        credential_expires_at=invitation.qr_expires_at,
        invitation=invitation,
        override=override,
        now=now,
    )
