from pydantic import BaseModel, Field

from daypass.schemas.qr import QRGuest


class CheckinRequest(BaseModel):
    payload: str
    guestEmail: str | None = None
    hostId: str | None = None
    overrideReason: str | None = None
    overridePassword: str | None = None


class GuestCheckinRequest(BaseModel):
    guest: QRGuest
    hostId: str | None = None
    overrideReason: str | None = None
    overridePassword: str | None = None


class InvitationAdmitRequest(BaseModel):
    overrideReason: str | None = None
    overridePassword: str | None = None


class PolicyUpdate(BaseModel):
    guestMonthlyLimit: int = Field(strict=True)
    hostConcurrentLimit: int = Field(strict=True)


class BlacklistAction(BaseModel):
    action: str
