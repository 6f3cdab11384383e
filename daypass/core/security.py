from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from daypass.core.config import get_settings

settings = get_settings()

ACCEPTANCE_ISSUER = "daypass"
ACCEPTANCE_SUBJECT = "guest-acceptance"


def _create_token(
    subject: str,
    expires_delta: timedelta,
    token_type: str,
    extra: Optional[Dict[str, Any]] = None,
) -> str:
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": subject,
        "type": token_type,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_access_token(subject: str, role: str) -> str:
    return _create_token(
        subject=subject,
        expires_delta=timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES),
        token_type="access",
        extra={"role": role},
    )


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError as exc:
        raise ValueError("Invalid or expired token") from exc


def create_acceptance_token(
    invitation_id: str,
    guest_email: str,
    host_id: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Signed link credential that lets an invited guest accept the visitor agreement."""
    now = datetime.now(timezone.utc)
    expires_delta = expires_delta if expires_delta is not None else timedelta(days=settings.ACCEPTANCE_TOKEN_TTL_DAYS)
    payload: Dict[str, Any] = {
        "invitationId": invitation_id,
        "guestEmail": guest_email,
        "hostId": host_id,
        "iss": ACCEPTANCE_ISSUER,
        "sub": ACCEPTANCE_SUBJECT,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_acceptance_token(token: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            issuer=ACCEPTANCE_ISSUER,
            subject=ACCEPTANCE_SUBJECT,
            options={"require_exp": True, "require_iss": True, "require_sub": True},
        )
    except ExpiredSignatureError as exc:
        raise ValueError("Acceptance link has expired. Please request a new invitation.") from exc
    except JWTError as exc:
        raise ValueError("Invalid acceptance link.") from exc
    if not all(isinstance(payload.get(key), str) for key in ("invitationId", "guestEmail", "hostId")):
        raise ValueError("Invalid acceptance link.")
    return payload
