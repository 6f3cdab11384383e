import logging
from datetime import datetime
from time import perf_counter

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from daypass.api.deps import get_now, require_roles
from daypass.db.models import User
from daypass.db.session import get_db
from daypass.schemas.checkin import CheckinRequest, GuestCheckinRequest
from daypass.schemas.qr import GuestDescriptor, QRDecodeRequest
from daypass.services import qr_service
from daypass.services.admission_service import (
    AdmissionResult,
    AdmissionStatus,
    OverrideRequest,
    admit,
    admit_scanned,
    resolve_host_id,
)
from daypass.services.realtime_service import publish_admission

router = APIRouter()
logger = logging.getLogger(__name__)

STAFF_ROLES = ("host", "security", "kiosk", "admin")

STATUS_CODES = {
    AdmissionStatus.admitted: 200,
    AdmissionStatus.re_entry: 200,
    AdmissionStatus.override_required: 409,
    AdmissionStatus.override_denied: 401,
    AdmissionStatus.rejected: 400,
}


def admission_response(result: AdmissionResult) -> JSONResponse:
    return JSONResponse(status_code=STATUS_CODES[result.status], content={"data": result.payload()})


@router.post("/decode")
def decode_payload(
    payload: QRDecodeRequest,
    now: datetime = Depends(get_now),
    _: User = Depends(require_roles(*STAFF_ROLES)),
):
    return {"data": qr_service.describe(qr_service.decode(payload.payload, now=now))}


@router.post("")
async def checkin(
    payload: CheckinRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: User = Depends(require_roles(*STAFF_ROLES)),
):
    started = perf_counter()
    phase = "admit"
    try:
        result = await run_in_threadpool(
            admit_scanned,
            db,
            raw_payload=payload.payload,
            actor=actor,
            host_id=payload.hostId,
            guest_email=payload.guestEmail,
            override=OverrideRequest(reason=payload.overrideReason, password=payload.overridePassword),
            now=now,
        )
        phase = "publish"
        await publish_admission(result)
        logger.info(
            "checkin completed in %.1fms phase=%s status=%s actor_id=%s",
            (perf_counter() - started) * 1000,
            phase,
            result.status.value,
            actor.id,
        )
        return admission_response(result)
    except Exception:
        logger.exception(
            "checkin failed in %.1fms phase=%s actor_id=%s",
            (perf_counter() - started) * 1000,
            phase,
            actor.id,
        )
        raise


@router.post("/guest")
async def checkin_guest(
    payload: GuestCheckinRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    actor: User = Depends(require_roles(*STAFF_ROLES)),
):
    started = perf_counter()
    result = await run_in_threadpool(
        admit,
        db,
        host_id=resolve_host_id(actor, payload.hostId),
        guest=GuestDescriptor(email=payload.guest.email, name=payload.guest.name),
        actor_id=actor.id,
        override=OverrideRequest(reason=payload.overrideReason, password=payload.overridePassword),
        now=now,
    )
    await publish_admission(result)
    logger.info(
        "checkin.guest completed in %.1fms status=%s actor_id=%s",
        (perf_counter() - started) * 1000,
        result.status.value,
        actor.id,
    )
    return admission_response(result)
