import logging
from datetime import date, datetime
from time import perf_counter

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from daypass.api.deps import get_now, require_roles
from daypass.api.routes.checkin import admission_response
from daypass.core.exceptions import AppException
from daypass.db.models import User
from daypass.db.session import get_db
from daypass.schemas.checkin import InvitationAdmitRequest
from daypass.schemas.invitation import InvitationCreate, TermsAcceptance
from daypass.services.admission_service import OverrideRequest, admit_invitation
from daypass.services.invitation_service import (
    accept_terms,
    activate_invitation,
    create_invitation,
    list_host_invitations,
)
from daypass.services.realtime_service import publish_admission

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("")
def invitation_create(
    payload: InvitationCreate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    host: User = Depends(require_roles("host")),
):
    data = create_invitation(
        db,
        host=host,
        email=payload.email,
        name=payload.name,
        country=payload.country,
        contact_method=payload.contactMethod,
        contact_value=payload.contactValue,
        invite_date=payload.inviteDate,
        now=now,
    )
    return {"data": data}


@router.get("")
def invitation_list(
    invite_date: date | None = Query(default=None, alias="date"),
    db: Session = Depends(get_db),
    host: User = Depends(require_roles("host")),
):
    return {"data": list_host_invitations(db, host.id, invite_date)}


@router.post("/{invitation_id}/accept")
def invitation_accept_terms(
    invitation_id: str,
    payload: TermsAcceptance,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    if not payload.token:
        raise AppException("Acceptance token is required", status_code=400)
    if not (payload.termsAccepted and payload.visitorAgreementAccepted):
        raise AppException("Both terms and visitor agreement must be accepted", status_code=400)
    return {"data": accept_terms(db, invitation_id, payload.token, now=now)}


@router.post("/{invitation_id}/activate")
def invitation_activate(
    invitation_id: str,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    host: User = Depends(require_roles("host")),
):
    return {"data": activate_invitation(db, invitation_id, host, now=now)}


@router.post("/{invitation_id}/admit")
async def invitation_admit(
    invitation_id: str,
    payload: InvitationAdmitRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: User = Depends(require_roles("host", "security", "admin")),
):
    started = perf_counter()
    result = await run_in_threadpool(
        admit_invitation,
        db,
        invitation_id,
        actor=actor,
        override=OverrideRequest(reason=payload.overrideReason, password=payload.overridePassword),
        now=now,
    )
    await publish_admission(result)
    logger.info(
        "invitation.admit completed in %.1fms status=%s invitation_id=%s actor_id=%s",
        (perf_counter() - started) * 1000,
        result.status.value,
        invitation_id,
        actor.id,
    )
    return admission_response(result)
