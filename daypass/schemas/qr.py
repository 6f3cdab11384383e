from datetime import datetime
from enum import Enum
from typing import Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class QRGuest(BaseModel):
    """One guest entry of a batch QR, written compactly as ``{"e": ..., "n": ...}``."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    email: str = Field(min_length=1, validation_alias=AliasChoices("e", "email"), serialization_alias="e")
    name: str = Field(min_length=1, validation_alias=AliasChoices("n", "name"), serialization_alias="n")


class BatchPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    guests: list[QRGuest] = Field(min_length=1)
    hostId: str | None = None


class LegacyTokenPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    inviteId: str = Field(min_length=1)
    guestEmail: str = Field(min_length=1)
    hostId: str = Field(min_length=1)
    iat: int | None = None
    exp: int | None = None


class GuestDescriptor(BaseModel):
    email: str
    name: str | None = None


class SingleGuestDescriptor(BaseModel):
    kind: Literal["single"] = "single"
    email: str
    name: str | None = None
    invitation_id: str
    host_id: str
    issued_at: datetime | None = None
    expires_at: datetime | None = None


class BatchDescriptor(BaseModel):
    kind: Literal["batch"] = "batch"
    guests: list[GuestDescriptor]
    host_id: str | None = None


class DecodeFailureReason(str, Enum):
    unreadable = "unreadable"
    unrecognized = "unrecognized"
    expired = "expired"


class DecodeFailure(BaseModel):
    kind: Literal["failure"] = "failure"
    reason: DecodeFailureReason
    message: str


DecodeResult = Union[SingleGuestDescriptor, BatchDescriptor, DecodeFailure]


class QRDecodeRequest(BaseModel):
    payload: str
