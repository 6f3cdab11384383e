import logging

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from daypass.api.routes import api_router
from daypass.core.config import get_settings
from daypass.core.exceptions import register_exception_handlers
from daypass.core.logging import setup_logging
from daypass.db.base import Base
from daypass.db.models import User, UserRole
from daypass.db.session import SessionLocal, engine
from daypass.middleware.request_context import RequestContextMiddleware
from daypass.services.policy_service import get_or_create_policy
from daypass.socket.server import sio

settings = get_settings()
setup_logging(logging.DEBUG if settings.DEBUG else logging.INFO)
logger = logging.getLogger(__name__)

fastapi_app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG)
fastapi_app.include_router(api_router, prefix=settings.API_V1_PREFIX)
fastapi_app.add_middleware(RequestContextMiddleware)
fastapi_app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(fastapi_app)

DEMO_USERS = (
    ("Demo Host", "host@daypass.local", UserRole.host),
    ("Front Desk", "security@daypass.local", UserRole.security),
    ("Lobby Kiosk", "kiosk@daypass.local", UserRole.kiosk),
    ("Demo Admin", "admin@daypass.local", UserRole.admin),
)


def _seed_dev_data(db: Session):
    if db.query(User).count() > 0:
        return

    try:
        db.add_all([User(full_name=name, email=email, role=role) for name, email, role in DEMO_USERS])
        db.commit()
        logger.info("seeded %s demo users", len(DEMO_USERS))
    except IntegrityError:
        # Another worker already inserted seed rows.
        db.rollback()


@fastapi_app.on_event("startup")
async def on_startup():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        get_or_create_policy(db)
        if settings.ENVIRONMENT.lower() == "development":
            _seed_dev_data(db)
    finally:
        db.close()


app = socketio.ASGIApp(
    sio,
    other_asgi_app=fastapi_app,
    socketio_path=settings.SOCKET_PATH.lstrip("/"),
)
