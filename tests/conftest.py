import os
from datetime import datetime, timedelta

# Settings are read at import time
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("JWT_ISSUER", "healthcare-api-tests")
os.environ.setdefault("JWT_AUDIENCE", "healthcare-api-clients")
os.environ["CACHE_BACKEND"] = "memory"
os.environ["AUTH_RATE_LIMIT_PER_MINUTE"] = "1000"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from healthcare_api.main import app
from healthcare_api.core.cache import cache_service
from healthcare_api.core.database import Base, build_engine, get_db, init_db
from healthcare_api.core.security import UserRole, get_password_hash
from healthcare_api.models.user import User

PASSWORD = "TestPassword123!"

engine = build_engine("sqlite://")
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db

@pytest.fixture(scope="function")
def test_db():
    # Create tables
    init_db(bind=engine)
    cache_service.clear()
    yield
    Base.metadata.drop_all(bind=engine)
    cache_service.clear()

@pytest.fixture
def db_session(test_db):
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture
def client(test_db):
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client

def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}

def register(client, email: str, role: str = "patient", first_name: str = "Test",
             last_name: str = "User", **extra) -> dict:
    """Register through the API and return the auth response body."""
    payload = {
        "email": email,
        "password": PASSWORD,
        "first_name": first_name,
        "last_name": last_name,
        "role": role,
    }
    payload.update(extra)
    response = client.post("/api/v1/auth/register", json=payload)
    assert response.status_code == 200, response.text
    return response.json()

def insert_user(email: str, role: UserRole = UserRole.PATIENT, first_name: str = "Test") -> None:
    """Commit a user from a separate session, bypassing the API."""
    db = TestingSessionLocal()
    try:
        db.add(User(
            email=email,
            first_name=first_name,
            last_name="User",
            role=role,
            password_hash=get_password_hash(PASSWORD),
        ))
        db.commit()
    finally:
        db.close()

def create_admin(client, email: str = "admin@example.com") -> dict:
    """Admins cannot self-register; insert one and log in."""
    insert_user(email, role=UserRole.ADMIN, first_name="Admin")

    response = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.text
    return response.json()

@pytest.fixture
def patient(client):
    return register(client, "patient@example.com", first_name="Jane", last_name="Smith")

@pytest.fixture
def doctor(client):
    return register(client, "doctor@example.com", role="doctor", first_name="John",
                    last_name="Doe", specialization="Cardiology")

@pytest.fixture
def admin(client):
    return create_admin(client)

def book(client, token: str, doctor_id: str, patient_id: str, start=None, hours: int = 1, **extra) -> dict:
    """Book an appointment through the API and return it."""
    start = start or datetime.utcnow().replace(microsecond=0) + timedelta(days=2)
    payload = {
        "title": "Checkup",
        "doctor_id": doctor_id,
        "patient_id": patient_id,
        "start_time": start.isoformat(),
        "end_time": (start + timedelta(hours=hours)).isoformat(),
    }
    payload.update(extra)
    response = client.post("/api/v1/appointments", json=payload, headers=auth_headers(token))
    assert response.status_code == 201, response.text
    return response.json()
