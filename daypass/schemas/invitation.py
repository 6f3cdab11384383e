from datetime import date

from pydantic import BaseModel, EmailStr, Field


class InvitationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    email: EmailStr
    country: str | None = None
    contactMethod: str | None = None
    contactValue: str | None = None
    inviteDate: date | None = None


class TermsAcceptance(BaseModel):
    termsAccepted: bool
    visitorAgreementAccepted: bool
    token: str | None = None
