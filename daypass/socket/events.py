import logging

from daypass.core.config import get_settings
from daypass.core.security import decode_token
from daypass.db.models import User, UserRole
from daypass.db.session import SessionLocal
from daypass.socket.manager import socket_state

settings = get_settings()
logger = logging.getLogger(__name__)

DASHBOARD_ROLES = {UserRole.security, UserRole.kiosk, UserRole.admin}


def resolve_dashboard_user(auth: dict | None) -> str | None:
    token = (auth or {}).get("token")
    if not token:
        return None
    try:
        payload = decode_token(token)
    except ValueError:
        return None
    if payload.get("type") != "access":
        return None

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.id == payload.get("sub")).first()
        if not user or not user.is_active or user.role not in DASHBOARD_ROLES:
            return None
        return user.id
    finally:
        db.close()


async def dashboard_connect(sid: str, environ: dict, auth: dict | None = None) -> bool:
    user_id = resolve_dashboard_user(auth)
    if not user_id:
        logger.info("dashboard connection refused sid=%s", sid)
        return False
    socket_state.bind(user_id, sid)
    logger.info("dashboard connected user_id=%s watching_users=%s", user_id, socket_state.connected_users())
    return True


async def dashboard_disconnect(sid: str, *args) -> None:
    socket_state.unbind_sid(sid)


def register_socket_events(sio):
    sio.on("connect", dashboard_connect, namespace=settings.DASHBOARD_NAMESPACE)
    sio.on("disconnect", dashboard_disconnect, namespace=settings.DASHBOARD_NAMESPACE)
