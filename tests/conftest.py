import os
from datetime import date, time, timedelta

# Set testing environment before the application is imported
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite:///./test.db"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from smartqueue.main import app
from smartqueue.core.database import get_db, get_redis, Base
from smartqueue.models import (
    Appointment, AppointmentStatus, Hospital, Department, Doctor, DoctorStatus, QueueStatus, User
)

# Create test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db

# Test data
test_user_data = {
    "email": "patient@example.com",
    "password": "TestPassword123",
    "full_name": "John Patient",
    "phone": "+1-555-0100",
}

test_login_data = {
    "email": "patient@example.com",
    "password": "TestPassword123"
}

def future_day(days: int = 7) -> date:
    return date.today() + timedelta(days=days)

@pytest.fixture(scope="function")
def test_db():
    # Create tables
    Base.metadata.create_all(bind=engine)
    get_redis().flushall()
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def client():
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client

@pytest.fixture
def db_session(test_db):
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture
def catalog(db_session):
    """Two hospitals with departments and doctors; returns their ids."""
    city = Hospital(name="City General Hospital", location="Downtown", address="12 Main Street",
                    latitude=40.71, longitude=-74.0)
    mary = Hospital(name="St. Mary's Medical Center", location="Westside", address="8 Oak Avenue")
    db_session.add_all([city, mary])
    db_session.flush()

    cardiology = Department(hospital_id=city.id, name="Cardiology")
    neurology = Department(hospital_id=city.id, name="Neurology")
    pediatrics = Department(hospital_id=mary.id, name="Pediatrics")
    db_session.add_all([cardiology, neurology, pediatrics])
    db_session.flush()

    johnson = Doctor(hospital_id=city.id, department_id=cardiology.id, name="Dr. Sarah Johnson",
                     specialization="Senior Cardiologist")
    chen = Doctor(hospital_id=city.id, department_id=cardiology.id, name="Dr. Michael Chen",
                  specialization="Cardiac Surgeon", status=DoctorStatus.INACTIVE.value)
    patel = Doctor(hospital_id=city.id, department_id=neurology.id, name="Dr. Anita Patel",
                   specialization="Neurologist", availability_start=time(14, 0),
                   availability_end=time(16, 0), working_days=[1, 2, 3, 4, 5])
    rodriguez = Doctor(hospital_id=mary.id, department_id=pediatrics.id, name="Dr. Emily Rodriguez",
                       specialization="Pediatrician")
    db_session.add_all([johnson, chen, patel, rodriguez])
    db_session.commit()

    return {
        "city": city.id,
        "mary": mary.id,
        "cardiology": cardiology.id,
        "neurology": neurology.id,
        "pediatrics": pediatrics.id,
        "johnson": johnson.id,
        "chen": chen.id,
        "patel": patel.id,
        "rodriguez": rodriguez.id,
    }

def sign_in(client, user_data=None) -> dict:
    """Register and log in; returns the login response body."""
    user_data = user_data or test_user_data
    client.post("/api/v1/auth/register", json=user_data)
    response = client.post(
        "/api/v1/auth/login",
        json={"email": user_data["email"], "password": user_data["password"]}
    )
    assert response.status_code == 200, response.text
    return response.json()

@pytest.fixture
def patient_session(client, test_db):
    return sign_in(client)

@pytest.fixture
def patient_headers(patient_session):
    return {"Authorization": f"Bearer {patient_session['access_token']}"}

@pytest.fixture
def patient(db_session, patient_session):
    return db_session.query(User).filter(User.id == patient_session["user"]["id"]).first()

def open_queue(db, doctor_id: int, current_token: int) -> QueueStatus:
    queue_status = QueueStatus(doctor_id=doctor_id, current_token=current_token, is_active=True)
    db.add(queue_status)
    db.commit()
    return queue_status

def booking_payload(catalog, doctor="johnson", department="cardiology", hospital="city",
                    day=None, at="09:00:00"):
    return {
        "hospital_id": catalog[hospital],
        "department_id": catalog[department],
        "doctor_id": catalog[doctor],
        "appointment_date": (day or future_day()).isoformat(),
        "appointment_time": at,
    }

def add_appointments(db, patient_id, doctor_id, hospital_id, day, tokens,
                     status=AppointmentStatus.SCHEDULED, at=time(9, 0)):
    """Insert appointments directly, bypassing booking validation."""
    for token in tokens:
        db.add(Appointment(
            patient_id=patient_id,
            doctor_id=doctor_id,
            hospital_id=hospital_id,
            appointment_date=day,
            appointment_time=at,
            token_number=token,
            status=status,
        ))
    db.commit()
