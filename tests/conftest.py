from pathlib import Path
import os
import sys

os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-bonhomie-backend-0123456789"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("APP_TIMEZONE", "Asia/Kolkata")

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth import get_password_hash, issue_tokens
from database import Base, get_db
from models import (
    Event,
    EventAssignment,
    EventCategory,
    EventSubcategory,
    Gender,
    PaymentMode,
    Profile,
    ProfileRole,
)


@pytest.fixture()
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    from server import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def make_profile(db):
    counter = {"n": 0}

    def _make(
        full_name=None,
        gender=Gender.MALE,
        role=ProfileRole.STUDENT,
        password=None,
        department="CSE",
        roll_number=None,
    ):
        counter["n"] += 1
        n = counter["n"]
        profile = Profile(
            full_name=full_name or f"Student {n}",
            college_email=f"student{n}@college.edu",
            roll_number=roll_number or f"21CS{n:04d}",
            department=department,
            year_of_study="3",
            school="Engineering",
            gender=gender,
            phone=f"98765{n:05d}",
            role=role,
            hashed_password=get_password_hash(password) if password else None,
        )
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile

    return _make


@pytest.fixture()
def make_event(db):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        values = {
            "name": f"Event {counter['n']}",
            "category": EventCategory.TECHNICAL,
            "subcategory": EventSubcategory.INDIVIDUAL,
            "day_order": 1,
            "venue": "Main Hall",
            "fee": 100,
            "min_team_size": 1,
            "max_team_size": 1,
            "allowed_genders": [],
            "payment_mode": PaymentMode.HYBRID,
            "upi_id": "fest@upi",
            "qr_code_path": "event_qr_codes/qr.png",
        }
        values.update(overrides)
        event = Event(**values)
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    return _make


@pytest.fixture()
def make_group_event(make_event):
    def _make(**overrides):
        values = {"subcategory": EventSubcategory.GROUP, "min_team_size": 2, "max_team_size": 4}
        values.update(overrides)
        return make_event(**values)

    return _make


@pytest.fixture()
def assign(db):
    def _assign(event, coordinator):
        db.add(EventAssignment(event_id=event.id, coordinator_id=coordinator.id))
        db.commit()

    return _assign


def auth_headers(profile):
    return {"Authorization": f"Bearer {issue_tokens(profile)['access_token']}"}


@pytest.fixture()
def headers_for():
    return auth_headers
