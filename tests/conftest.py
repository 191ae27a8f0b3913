"""
Shared fixtures. The app reads its settings at import time, so the
environment is prepared before anything from ``app`` is imported.
"""
import os
import tempfile

_tmp = tempfile.mkdtemp(prefix="civic-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmp, 'test.db')}"
os.environ["JWT_SECRET"] = "test-secret-not-for-production"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["MEDIA_ROOT"] = os.path.join(_tmp, "media")
for key in ("SUPABASE_URL", "SUPABASE_SERVICE_ROLE", "VAPID_PRIVATE_KEY", "VAPID_PUBLIC_KEY",
            "SMTP_HOST", "RESEND_API_KEY"):
    os.environ[key] = ""

import pytest
from fastapi.testclient import TestClient

from app.core.security import hash_password, make_tokens
from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.main import app
from app.models.user import User, UserRole

PASSWORD = "correct-horse-battery"


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role=UserRole.citizen, zones=(), department=None, is_active=True, name=None):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            email=f"{role.value}{n}@newcivic.org",
            name=name or f"{role.value.replace('_', ' ').title()} {n}",
            hashed_password=hash_password(PASSWORD),
            role=role,
            department=department,
            is_active=is_active,
        )
        user.set_zones(list(zones))
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


def auth(user) -> dict:
    token = make_tokens(user.email, user.role.value)["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def citizen(make_user):
    return make_user(UserRole.citizen)


@pytest.fixture
def low_admin(make_user):
    return make_user(UserRole.low_admin, zones=["Zone A"], department="roads")


@pytest.fixture
def high_admin(make_user):
    return make_user(UserRole.high_admin)


def issue_form(**overrides) -> dict:
    form = {
        "title": "Deep pothole on Main St",
        "description": "A pothole about half a metre wide near the crossing.",
        "category": "pothole",
        "priority": "medium",
        "lat": "12.97",
        "lng": "77.59",
        "address": "12 Main St",
        "zone": "Zone A",
    }
    form.update(overrides)
    return form


@pytest.fixture
def report_issue(client):
    def _report(user, **overrides):
        r = client.post("/issues", data=issue_form(**overrides), headers=auth(user))
        assert r.status_code == 201, r.text
        return r.json()

    return _report
