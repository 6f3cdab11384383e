from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from daypass.api.deps import get_now, require_roles
from daypass.db.models import User
from daypass.db.session import get_db
from daypass.schemas.checkin import BlacklistAction, PolicyUpdate
from daypass.services.audit_service import list_audit_logs
from daypass.services.guest_service import set_blacklist
from daypass.services.invitation_service import expire_stale_invitations
from daypass.services.policy_service import get_or_create_policy, policy_payload, update_policy

router = APIRouter()


@router.get("/policies")
def admin_get_policies(
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("admin", "security")),
):
    return {"data": policy_payload(get_or_create_policy(db))}


@router.put("/policies")
def admin_update_policies(
    payload: PolicyUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles("admin")),
):
    data = update_policy(
        db,
        guest_monthly_limit=payload.guestMonthlyLimit,
        host_concurrent_limit=payload.hostConcurrentLimit,
        actor_user_id=admin.id,
    )
    return {"data": data}


@router.post("/guests/{guest_id}/blacklist")
def admin_blacklist_guest(
    guest_id: str,
    payload: BlacklistAction,
    db: Session = Depends(get_db),
    actor: User = Depends(require_roles("admin", "security")),
):
    return {"data": set_blacklist(db, guest_id, payload.action, actor_user_id=actor.id)}


@router.get("/audit-logs")
def admin_audit_logs(
    limit: int = Query(default=200, ge=1, le=1000),
    action: str | None = Query(default=None),
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("admin")),
):
    return {"data": list_audit_logs(db, limit=limit, action=action)}


@router.post("/invitations/expire")
def admin_expire_invitations(
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    _: User = Depends(require_roles("admin")),
):
    return {"data": {"expired": expire_stale_invitations(db, now=now)}}
