import json
from typing import Any

from sqlalchemy.orm import Session

from daypass.db.models import AuditLog


def write_audit_log(
    db: Session,
    actor_user_id: str | None,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    detail: dict[str, Any] | None = None,
    commit: bool = True,
) -> AuditLog:
    row = AuditLog(
        actor_user_id=actor_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        detail_json=json.dumps(detail or {}, ensure_ascii=True, default=str),
    )
    db.add(row)
    if not commit:
        # Caller owns the transaction.
        db.flush()
        return row
    db.commit()
    db.refresh(row)
    return row


def list_audit_logs(db: Session, limit: int = 200, action: str | None = None) -> list[dict]:
    query = db.query(AuditLog)
    if action:
        query = query.filter(AuditLog.action == action)
    rows = query.order_by(AuditLog.created_at.desc()).limit(limit).all()
    return [
        {
            "id": row.id,
            "actorUserId": row.actor_user_id,
            "action": row.action,
            "entityType": row.entity_type,
            "entityId": row.entity_id,
            "detail": json.loads(row.detail_json or "{}"),
            "createdAt": row.created_at.isoformat(),
        }
        for row in rows
    ]
