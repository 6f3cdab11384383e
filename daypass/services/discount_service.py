"""Third-visit reward.

A guest earns one discount when their lifetime admitted visits reach exactly
``DISCOUNT_VISIT_THRESHOLD`` and no discount row exists yet. The row is staged
inside the admission transaction; the email goes out after commit and its
failure only leaves ``email_sent`` false for a later retry.
"""

import logging

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from daypass.core.config import get_settings
from daypass.core.timeutils import utcnow
from daypass.db.models import Discount, Guest, Visit
from daypass.services import email_service

settings = get_settings()
logger = logging.getLogger(__name__)


class DiscountOutcome(BaseModel):
    triggered: bool
    emailSent: bool


def count_lifetime_visits(db: Session, guest_id: str) -> int:
    return db.query(Visit).filter(Visit.guest_id == guest_id, Visit.checked_in_at.is_not(None)).count()


def stage_discount(db: Session, guest_id: str) -> Discount | None:
    """Adds the discount row to the open transaction when the guest qualifies."""
    if count_lifetime_visits(db, guest_id) != settings.DISCOUNT_VISIT_THRESHOLD:
        return None
    if db.query(Discount).filter(Discount.guest_id == guest_id).first():
        return None

    discount = Discount(guest_id=guest_id, email_sent=False)
    try:
        with db.begin_nested():
            db.add(discount)
    except IntegrityError:
        # A concurrent admission already inserted it.
        logger.info("discount already exists guest_id=%s", guest_id)
        return None
    return discount


def deliver_discount(db: Session, discount: Discount, guest: Guest) -> bool:
    try:
        result = email_service.send_discount_email(guest.email, guest.name)
    except Exception:
        logger.exception("discount email raised guest_id=%s discount_id=%s", guest.id, discount.id)
        return False

    if not result.success:
        logger.error("discount email failed guest_id=%s error=%s", guest.id, result.error)
        return False

    discount.email_sent = True
    discount.sent_at = utcnow()
    db.commit()
    logger.info("discount email sent guest_id=%s message_id=%s", guest.id, result.messageId)
    return True


def maybe_trigger_discount(db: Session, guest_id: str) -> DiscountOutcome:
    """Standalone trigger for a guest whose visit is already committed."""
    discount = stage_discount(db, guest_id)
    if discount is None:
        return DiscountOutcome(triggered=False, emailSent=False)
    db.commit()

    guest = db.query(Guest).filter(Guest.id == guest_id).one()
    email_sent = deliver_discount(db, discount, guest)
    return DiscountOutcome(triggered=True, emailSent=email_sent)
