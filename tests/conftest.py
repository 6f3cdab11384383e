import os
import tempfile
from datetime import datetime, timedelta

# Settings are read once at import time, so the environment goes first.
TEST_DIR = tempfile.mkdtemp(prefix="daypass-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(TEST_DIR, 'test.db')}"
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["OVERRIDE_PASSWORD"] = "front-desk-42"
os.environ["RESEND_API_KEY"] = ""
os.environ["EMAIL_FROM"] = ""

import pytest
from fastapi.testclient import TestClient

from daypass.api.deps import get_now
from daypass.core.security import create_access_token
from daypass.db.base import Base
from daypass.db.models import Acceptance, Guest, User, UserRole, Visit
from daypass.db.session import SessionLocal, engine
from daypass.main import fastapi_app

OVERRIDE_PASSWORD = os.environ["OVERRIDE_PASSWORD"]

# 12:00 in America/Los_Angeles (PDT), well before the 23:59 cutoff.
NOW = datetime(2026, 6, 15, 19, 0, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def factory(role: UserRole = UserRole.host, name: str | None = None, is_active: bool = True) -> User:
        counter["n"] += 1
        user = User(
            full_name=name or f"{role.value.title()} {counter['n']}",
            email=f"{role.value}{counter['n']}@daypass.test",
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return factory


@pytest.fixture
def host(make_user):
    return make_user(UserRole.host, name="Hana Host")


@pytest.fixture
def kiosk(make_user):
    return make_user(UserRole.kiosk, name="Lobby Kiosk")


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.admin, name="Ada Admin")


@pytest.fixture
def make_guest(db):
    def factory(
        email: str,
        name: str = "Guest",
        accepted: bool = True,
        blacklisted: bool = False,
    ) -> Guest:
        guest = Guest(email=email, name=name, blacklisted_at=NOW if blacklisted else None)
        db.add(guest)
        db.flush()
        if accepted:
            db.add(Acceptance(guest_id=guest.id, accepted_at=NOW - timedelta(days=1)))
            guest.terms_accepted_at = NOW - timedelta(days=1)
        db.commit()
        db.refresh(guest)
        return guest

    return factory


@pytest.fixture
def make_visit(db):
    def factory(guest: Guest, host: User, checked_in_at: datetime, hours: int = 12) -> Visit:
        visit = Visit(
            guest_id=guest.id,
            host_id=host.id,
            admitted_by=host.id,
            checked_in_at=checked_in_at,
            expires_at=checked_in_at + timedelta(hours=hours),
        )
        db.add(visit)
        db.commit()
        db.refresh(visit)
        return visit

    return factory


@pytest.fixture
def auth_headers():
    def factory(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role.value)}"}

    return factory


@pytest.fixture
def client(db):
    fastapi_app.dependency_overrides[get_now] = lambda: NOW
    try:
        yield TestClient(fastapi_app)
    finally:
        fastapi_app.dependency_overrides.clear()
