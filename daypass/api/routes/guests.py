from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from daypass.api.deps import get_now, require_roles
from daypass.db.models import User
from daypass.db.session import get_db
from daypass.services.guest_service import get_guest_stats

router = APIRouter()


@router.get("/stats")
def guest_stats(
    email: str = Query(min_length=3),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    _: User = Depends(require_roles("host", "security", "kiosk", "admin")),
):
    return {"data": get_guest_stats(db, email, now=now)}
