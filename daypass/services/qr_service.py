"""Scanned QR payloads: decoding and the encoders the invite flows use.

Two wire formats are in circulation and both must keep working while older
invitations are still being scanned:

* batch: plain JSON ``{"guests": [{"e": email, "n": name}, ...], "hostId"?}``
* legacy single-guest token: base64 of
  ``{"inviteId", "guestEmail", "hostId", "iat", "exp"}`` (also accepted as
  plain JSON)

``decode`` never raises. Scanner input is untrusted and misreads are routine,
so every failure comes back as a ``DecodeFailure``.
"""

import base64
import binascii
import json
from datetime import datetime, timezone
from typing import Any, Iterable
from urllib.parse import parse_qs, urlparse

from pydantic import ValidationError

from daypass.core.timeutils import qr_token_expiration, utcnow
from daypass.schemas.qr import (
    BatchDescriptor,
    BatchPayload,
    DecodeFailure,
    DecodeFailureReason,
    DecodeResult,
    GuestDescriptor,
    LegacyTokenPayload,
    QRGuest,
    SingleGuestDescriptor,
)

QR_URI_PREFIX = "daypass://checkin"

_UNREADABLE = "QR code could not be read. Please try scanning again."


def _failure(reason: DecodeFailureReason, message: str) -> DecodeFailure:
    return DecodeFailure(reason=reason, message=message)


def _from_epoch(value: int | None) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
    except (OverflowError, OSError, ValueError):
        return None


def _strip_uri(raw: str) -> str:
    if not raw.startswith(QR_URI_PREFIX):
        return raw
    token = parse_qs(urlparse(raw).query).get("token")
    # parse_qs turns the "+" of standard base64 into spaces.
    return token[0].replace(" ", "+") if token else ""


def _parse_json_object(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (ValueError, TypeError):
        return False, None


def _batch_from(obj: dict) -> DecodeResult:
    try:
        payload = BatchPayload.model_validate(obj)
    except ValidationError:
        # One bad entry rejects the whole code.
        return _failure(DecodeFailureReason.unreadable, "Batch QR contains an incomplete guest entry.")
    return BatchDescriptor(
        guests=[GuestDescriptor(email=guest.email, name=guest.name) for guest in payload.guests],
        host_id=payload.hostId or None,
    )


def _looks_like_legacy(obj: dict) -> bool:
    return all(key in obj for key in ("inviteId", "guestEmail", "hostId"))


def _legacy_from(obj: dict, now: datetime) -> DecodeResult:
    try:
        payload = LegacyTokenPayload.model_validate(obj)
    except ValidationError:
        return _failure(DecodeFailureReason.unreadable, "Invalid token format")

    expires_at = _from_epoch(payload.exp)
    if payload.exp is not None and expires_at is None:
        return _failure(DecodeFailureReason.unreadable, "Invalid token format")
    if expires_at is not None and expires_at < now:
        return _failure(DecodeFailureReason.expired, "Token has expired")

    return SingleGuestDescriptor(
        email=payload.guestEmail,
        invitation_id=payload.inviteId,
        host_id=payload.hostId,
        issued_at=_from_epoch(payload.iat),
        expires_at=expires_at,
    )


def _b64decode(text: str) -> str | None:
    normalized = text.strip().replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    try:
        return base64.b64decode(normalized, validate=True).decode("utf-8")
    except (binascii.Error, ValueError):
        return None


def decode(raw: str | None, now: datetime | None = None) -> DecodeResult:
    now = now or utcnow()
    text = _strip_uri((raw or "").strip())
    if not text:
        return _failure(DecodeFailureReason.unreadable, _UNREADABLE)

    parsed, obj = _parse_json_object(text)
    if parsed:
        if not isinstance(obj, dict):
            return _failure(DecodeFailureReason.unrecognized, "QR code format is not recognized.")
        if "guests" in obj:
            return _batch_from(obj)
        if _looks_like_legacy(obj):
            return _legacy_from(obj, now)
        return _failure(DecodeFailureReason.unrecognized, "QR code format is not recognized.")

    decoded = _b64decode(text)
    if decoded is None:
        return _failure(DecodeFailureReason.unreadable, _UNREADABLE)
    parsed, obj = _parse_json_object(decoded)
    if not parsed or not isinstance(obj, dict) or not _looks_like_legacy(obj):
        return _failure(DecodeFailureReason.unreadable, "Invalid token format")
    return _legacy_from(obj, now)


def encode_batch(guests: Iterable[GuestDescriptor | QRGuest | dict], host_id: str | None = None) -> str:
    entries = []
    for guest in guests:
        if isinstance(guest, dict):
            guest = QRGuest.model_validate(guest)
        elif isinstance(guest, GuestDescriptor):
            guest = QRGuest(email=guest.email, name=guest.name or "")
        entries.append(guest.model_dump(by_alias=True))
    payload: dict[str, Any] = {"guests": entries}
    if host_id:
        payload["hostId"] = host_id
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def generate_qr_token(invite_id: str, guest_email: str, host_id: str, now: datetime | None = None) -> tuple[str, datetime]:
    issued_at = now or utcnow()
    expires_at = qr_token_expiration(issued_at)
    body = {
        "inviteId": invite_id,
        "guestEmail": guest_email,
        "hostId": host_id,
        "iat": int(issued_at.replace(tzinfo=timezone.utc).timestamp()),
        "exp": int(expires_at.replace(tzinfo=timezone.utc).timestamp()),
    }
    token = base64.b64encode(json.dumps(body, separators=(",", ":")).encode("utf-8")).decode("ascii")
    return token, expires_at


def qr_display_uri(token: str) -> str:
    return f"{QR_URI_PREFIX}?token={token}"


def describe(result: DecodeResult) -> dict:
    if isinstance(result, DecodeFailure):
        return {"kind": result.kind, "reason": result.reason.value, "message": result.message}
    if isinstance(result, BatchDescriptor):
        return {
            "kind": result.kind,
            "hostId": result.host_id,
            "guests": [{"email": guest.email, "name": guest.name} for guest in result.guests],
        }
    return {
        "kind": result.kind,
        "invitationId": result.invitation_id,
        "hostId": result.host_id,
        "guests": [{"email": result.email, "name": result.name}],
        "expiresAt": result.expires_at.isoformat() if result.expires_at else None,
    }
