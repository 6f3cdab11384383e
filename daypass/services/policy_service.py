from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from daypass.core.config import get_settings
from daypass.core.exceptions import AppException
from daypass.db.models import Policy
from daypass.services.audit_service import write_audit_log

settings = get_settings()

POLICY_ID = 1
GUEST_LIMIT_BOUNDS = (1, 100)
HOST_LIMIT_BOUNDS = (1, 50)


def get_or_create_policy(db: Session) -> Policy:
    row = db.query(Policy).filter(Policy.id == POLICY_ID).first()
    if row:
        return row

    row = Policy(
        id=POLICY_ID,
        guest_monthly_limit=settings.DEFAULT_GUEST_MONTHLY_LIMIT,
        host_concurrent_limit=settings.DEFAULT_HOST_CONCURRENT_LIMIT,
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        # Created by a concurrent request.
        db.rollback()
        return db.query(Policy).filter(Policy.id == POLICY_ID).one()
    db.refresh(row)
    return row


def policy_payload(row: Policy) -> dict:
    return {
        "guestMonthlyLimit": row.guest_monthly_limit,
        "hostConcurrentLimit": row.host_concurrent_limit,
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


def update_policy(
    db: Session,
    guest_monthly_limit: int,
    host_concurrent_limit: int,
    actor_user_id: str | None = None,
) -> dict:
    low, high = GUEST_LIMIT_BOUNDS
    if not low <= guest_monthly_limit <= high:
        raise AppException(f"Guest monthly limit must be between {low} and {high}", status_code=400)
    low, high = HOST_LIMIT_BOUNDS
    if not low <= host_concurrent_limit <= high:
        raise AppException(f"Host concurrent limit must be between {low} and {high}", status_code=400)

    row = get_or_create_policy(db)
    previous = {"guestMonthlyLimit": row.guest_monthly_limit, "hostConcurrentLimit": row.host_concurrent_limit}
    row.guest_monthly_limit = guest_monthly_limit
    row.host_concurrent_limit = host_concurrent_limit
    db.commit()
    db.refresh(row)

    write_audit_log(
        db,
        actor_user_id=actor_user_id,
        action="policy.update",
        entity_type="policy",
        entity_id=str(row.id),
        detail={"before": previous, "after": policy_payload(row)},
    )
    return policy_payload(row)
