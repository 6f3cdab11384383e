import hmac
from enum import Enum

from pydantic import BaseModel

from daypass.core.config import get_settings

settings = get_settings()


class OverrideDenial(str, Enum):
    reason = "reason"
    password = "password"


class OverrideDecision(BaseModel):
    authorized: bool
    cause: OverrideDenial | None = None
    message: str | None = None


def _denied(cause: OverrideDenial, message: str) -> OverrideDecision:
    return OverrideDecision(authorized=False, cause=cause, message=message)


def _secret_matches(supplied: str) -> bool:
    expected = settings.OVERRIDE_PASSWORD
    if not expected or not supplied:
        return False
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


def authorize_override(reason: str | None, supplied_password: str | None) -> OverrideDecision:
    """Stateless gate for a capacity override.

    Persisting the reason and the authorizing identity is the caller's job.
    The supplied password is never logged or echoed.
    """
    text = (reason or "").strip()
    if not text:
        return _denied(OverrideDenial.reason, "Override reason is required")
    if len(text) < settings.OVERRIDE_REASON_MIN:
        return _denied(
            OverrideDenial.reason,
            f"Override reason must be at least {settings.OVERRIDE_REASON_MIN} characters",
        )
    if len(text) > settings.OVERRIDE_REASON_MAX:
        return _denied(
            OverrideDenial.reason,
            f"Override reason cannot exceed {settings.OVERRIDE_REASON_MAX} characters",
        )
    if not supplied_password:
        return _denied(OverrideDenial.password, "Override password is required")
    if not _secret_matches(supplied_password):
        return _denied(OverrideDenial.password, "Incorrect password")
    return OverrideDecision(authorized=True)
