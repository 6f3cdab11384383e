import logging
from datetime import date, datetime

from sqlalchemy.orm import Session

from daypass.core.exceptions import AppException
from daypass.core.security import create_acceptance_token, decode_acceptance_token
from daypass.core.timeutils import local_today, utcnow
from daypass.db.models import Guest, Invitation, InvitationStatus, User
from daypass.services import email_service, qr_service
from daypass.services.acceptance_service import record_acceptance
from daypass.services.eligibility_service import (
    ACTIVATION_RULES,
    RuleContext,
    blacklist_rule,
    evaluate_rules,
    first_failure,
    guest_rolling_limit_rule,
)
from daypass.services.guest_service import IncomingGuest, normalize_email, upsert_guest
from daypass.services.policy_service import get_or_create_policy

logger = logging.getLogger(__name__)

CLOSED_STATUSES = {InvitationStatus.EXPIRED, InvitationStatus.CHECKED_IN}


def invitation_payload(invitation: Invitation, guest: Guest | None = None) -> dict:
    guest = guest or invitation.guest
    return {
        "id": invitation.id,
        "hostId": invitation.host_id,
        "guestId": invitation.guest_id,
        "guestName": guest.name if guest else None,
        "guestEmail": guest.email if guest else None,
        "inviteDate": invitation.invite_date.isoformat(),
        "status": invitation.status.value,
        "qrIssuedAt": invitation.qr_issued_at.isoformat() if invitation.qr_issued_at else None,
        "qrExpiresAt": invitation.qr_expires_at.isoformat() if invitation.qr_expires_at else None,
        "createdAt": invitation.created_at.isoformat() if invitation.created_at else None,
    }


def _ineligible(failure) -> AppException:
    extra = {"reasonCode": failure.reason_code.value if failure.reason_code else None}
    if failure.next_eligible_at:
        extra["nextEligibleAt"] = failure.next_eligible_at.isoformat()
    return AppException(failure.message or "Guest is not eligible", status_code=400, extra=extra)


def create_invitation(
    db: Session,
    host: User,
    email: str,
    name: str,
    country: str | None = None,
    contact_method: str | None = None,
    contact_value: str | None = None,
    invite_date: date | None = None,
    now: datetime | None = None,
) -> dict:
    now = now or utcnow()
    policy = get_or_create_policy(db)
    guest, _ = upsert_guest(
        db,
        IncomingGuest(
            email=email,
            name=name,
            country=country,
            contact_method=contact_method,
            contact_value=contact_value,
        ),
    )

    ctx = RuleContext(host_id=host.id, guest_id=guest.id, guest_email=guest.email, now=now)
    failure = first_failure(evaluate_rules(db, ctx, policy, rules=(blacklist_rule, guest_rolling_limit_rule)))
    if failure:
        db.rollback()
        raise _ineligible(failure)

    invitation = Invitation(
        guest_id=guest.id,
        host_id=host.id,
        invite_date=invite_date or local_today(now),
        status=InvitationStatus.PENDING,
    )
    db.add(invitation)
    db.commit()
    db.refresh(invitation)

    acceptance_token = create_acceptance_token(invitation.id, guest.email, host.id)
    result = email_service.send_invitation_email(
        guest.email, guest.name, host.full_name, invitation.id, acceptance_token=acceptance_token
    )
    if not result.success:
        logger.error("invitation email failed invitation_id=%s error=%s", invitation.id, result.error)

    payload = invitation_payload(invitation, guest)
    payload["emailSent"] = result.success
    return payload


def list_host_invitations(db: Session, host_id: str, invite_date: date | None = None) -> list[dict]:
    query = db.query(Invitation).filter(Invitation.host_id == host_id)
    if invite_date is not None:
        query = query.filter(Invitation.invite_date == invite_date)
    rows = query.order_by(Invitation.created_at.desc()).all()
    return [invitation_payload(row) for row in rows]


def _get_invitation_or_raise(db: Session, invitation_id: str) -> Invitation:
    invitation = db.query(Invitation).filter(Invitation.id == invitation_id).first()
    if not invitation:
        raise AppException("Invitation not found", status_code=404)
    return invitation


def accept_terms(db: Session, invitation_id: str, token: str, now: datetime | None = None) -> dict:
    try:
        claims = decode_acceptance_token(token)
    except ValueError as exc:
        logger.warning("acceptance token refused invitation_id=%s: %s", invitation_id, exc)
        raise AppException(str(exc), status_code=401) from exc

    invitation = _get_invitation_or_raise(db, invitation_id)
    if (
        claims["invitationId"] != invitation.id
        or normalize_email(claims["guestEmail"]) != normalize_email(invitation.guest.email)
        or claims["hostId"] != invitation.host_id
    ):
        raise AppException("Token does not match invitation details", status_code=403)
    if invitation.status in CLOSED_STATUSES:
        raise AppException("This invitation is no longer valid", status_code=400)

    acceptance = record_acceptance(db, invitation.guest, invitation_id=invitation.id, now=now)
    db.commit()
    db.refresh(acceptance)
    return {
        "acceptanceId": acceptance.id,
        "guestId": invitation.guest_id,
        "invitationId": invitation.id,
        "acceptedAt": acceptance.accepted_at.isoformat(),
    }


def activate_invitation(db: Session, invitation_id: str, host: User, now: datetime | None = None) -> dict:
    now = now or utcnow()
    invitation = _get_invitation_or_raise(db, invitation_id)
    if invitation.host_id != host.id:
        raise AppException("Unauthorized", status_code=403)
    if invitation.status in CLOSED_STATUSES:
        raise AppException("This invitation is no longer valid", status_code=400)

    policy = get_or_create_policy(db)
    ctx = RuleContext(host_id=host.id, guest_id=invitation.guest_id, guest_email=invitation.guest.email, now=now)
    failure = first_failure(evaluate_rules(db, ctx, policy, rules=ACTIVATION_RULES))
    if failure:
        raise _ineligible(failure)

    token, expires_at = qr_service.generate_qr_token(invitation.id, invitation.guest.email, host.id, now=now)
    invitation.status = InvitationStatus.ACTIVATED
    invitation.qr_token = token
    invitation.qr_issued_at = now
    invitation.qr_expires_at = expires_at
    db.commit()
    db.refresh(invitation)

    payload = invitation_payload(invitation)
    payload["qrToken"] = token
    payload["qrUri"] = qr_service.qr_display_uri(token)
    return payload


def expire_stale_invitations(db: Session, now: datetime | None = None) -> int:
    today = local_today(now)
    count = (
        db.query(Invitation)
        .filter(
            Invitation.status.in_([InvitationStatus.PENDING, InvitationStatus.ACTIVATED]),
            Invitation.invite_date < today,
        )
        .update({Invitation.status: InvitationStatus.EXPIRED}, synchronize_session=False)
    )
    db.commit()
    if count:
        logger.info("expired %s stale invitations before %s", count, today.isoformat())
    return count
