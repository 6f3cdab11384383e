import logging

from daypass.core.config import get_settings
from daypass.services.admission_service import AdmissionResult
from daypass.socket.server import sio

settings = get_settings()
logger = logging.getLogger(__name__)


async def publish_admission(result: AdmissionResult) -> None:
    """Pushes the outcome to connected dashboards; delivery problems never fail the request."""
    visit = result.visit or {}
    event = {
        "status": result.status.value,
        "hostId": result.host_id,
        "guestId": result.guest_id,
        "visitId": visit.get("id"),
        "guestName": visit.get("guestName"),
        "reasonCode": result.reason_code,
        "override": bool(visit.get("overrideReason")),
        "time": visit.get("checkedInAt"),
    }
    try:
        await sio.emit("checkin.patch", {"data": event}, namespace=settings.DASHBOARD_NAMESPACE)
    except Exception:
        logger.exception("checkin.patch emit failed status=%s host_id=%s", result.status.value, result.host_id)
