import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from daypass.db.base import Base


class Guest(Base):
    __tablename__ = "guests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    country: Mapped[str] = mapped_column(String(80), default="Unknown")
    contact_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    contact_value: Mapped[str | None] = mapped_column(String(255), nullable=True)
    blacklisted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    terms_accepted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    acceptances = relationship("Acceptance", back_populates="guest", cascade="all, delete-orphan")


class Acceptance(Base):
    __tablename__ = "acceptances"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    guest_id: Mapped[str] = mapped_column(String(36), ForeignKey("guests.id"), nullable=False, index=True)
    invitation_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("invitations.id"), nullable=True, index=True)
    visit_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("visits.id"), nullable=True, index=True)
    terms_version: Mapped[str] = mapped_column(String(20), default="1.0")
    visitor_agreement_version: Mapped[str] = mapped_column(String(20), default="1.0")
    accepted_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    guest = relationship("Guest", back_populates="acceptances")
