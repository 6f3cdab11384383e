import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SqlEnum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from daypass.db.base import Base


class InvitationStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVATED = "ACTIVATED"
    CHECKED_IN = "CHECKED_IN"
    EXPIRED = "EXPIRED"


class Invitation(Base):
    __tablename__ = "invitations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    guest_id: Mapped[str] = mapped_column(String(36), ForeignKey("guests.id"), nullable=False, index=True)
    host_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    invite_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[InvitationStatus] = mapped_column(
        SqlEnum(InvitationStatus), nullable=False, default=InvitationStatus.PENDING, index=True
    )
    qr_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    qr_issued_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    qr_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    guest = relationship("Guest")
