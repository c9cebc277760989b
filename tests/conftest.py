import os
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

# Set testing environment variable
os.environ["TESTING"] = "1"

from healthcare_app.core.config import Settings  # noqa: E402
from healthcare_app.core.database import Database  # noqa: E402
from healthcare_app.main import create_app  # noqa: E402
from healthcare_app.models.user import User  # noqa: E402
from healthcare_app.schemas.auth import UserRegister  # noqa: E402
from healthcare_app.services.auth_service import AuthService  # noqa: E402

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "AdminPassword123"

# Test data
test_user_data = {
    "email": "test@example.com",
    "password": "TestPassword123",
    "role": "patient",
    "first_name": "Test",
    "last_name": "User"
}

test_login_data = {
    "email": "test@example.com",
    "password": "TestPassword123"
}

test_doctor_data = {
    "email": "doctor@example.com",
    "password": "DoctorPassword123",
    "role": "doctor",
    "first_name": "Gregory",
    "last_name": "House",
    "specialization": "Diagnostics",
    "license_number": "LIC-1001",
    "years_of_experience": 12,
    "consultation_fee": 150.0
}

monday_hours = {
    "availability": [
        {"day_of_week": "Monday", "start_time": "09:00", "end_time": "17:00"}
    ]
}


class FakeRedis:
    """In-memory replacement for the redis commands the rate limiter uses."""

    def __init__(self):
        self.counters = {}
        self.ttls = {}

    def incr(self, key):
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True

    def close(self):
        pass


def next_monday() -> date:
    """The first Monday strictly after today."""
    today = date.today()
    return today + timedelta(days=(7 - today.weekday()) or 7)


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def settings():
    return Settings(
        TESTING=True,
        BCRYPT_ROUNDS=4,
        SECRET_KEY="test-access-secret",
        REFRESH_SECRET_KEY="test-refresh-secret",
        RATE_LIMIT_MAX_REQUESTS=1000,
        FIRST_ADMIN_EMAIL=ADMIN_EMAIL,
        FIRST_ADMIN_PASSWORD=ADMIN_PASSWORD,
    )


@pytest.fixture
def database(settings):
    db = Database(settings, url="sqlite://")
    db.init_db()
    yield db
    db.drop_all()
    db.dispose()


@pytest.fixture
def db_session(database):
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def client(settings, database, fake_redis):
    app = create_app(settings, database=database, redis_client=fake_redis)
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client


@pytest.fixture
def register(client):
    """Register an account through the API and return the token response."""
    def _register(**overrides):
        response = client.post("/api/v1/auth/register", json={**test_user_data, **overrides})
        assert response.status_code == 201, response.text
        return response.json()
    return _register


@pytest.fixture
def patient(register):
    return register()


@pytest.fixture
def patient_headers(patient):
    return auth_headers(patient["access_token"])


@pytest.fixture
def doctor(register):
    return register(**test_doctor_data)


@pytest.fixture
def doctor_headers(doctor):
    return auth_headers(doctor["access_token"])


@pytest.fixture
def doctor_id(doctor):
    return doctor["user"]["doctor"]["id"]


@pytest.fixture
def admin_headers(client):
    response = client.post(
        "/api/v1/auth/login",
        json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD}
    )
    assert response.status_code == 200, response.text
    return auth_headers(response.json()["access_token"])


@pytest.fixture
def doctor_with_hours(client, doctor_headers, doctor_id):
    """A doctor who works Mondays 09:00-17:00."""
    response = client.put("/api/v1/doctors/availability", json=monday_hours, headers=doctor_headers)
    assert response.status_code == 200, response.text
    return doctor_id


@pytest.fixture
def book(client, patient_headers, doctor_with_hours):
    """Book an appointment with the Monday doctor through the API."""
    def _book(appointment_time="10:00", headers=None, **overrides):
        payload = {
            "doctor_id": doctor_with_hours,
            "appointment_date": next_monday().isoformat(),
            "appointment_time": appointment_time,
            "type": "in-person",
            "reason_for_visit": "Persistent headaches for two weeks",
            **overrides
        }
        return client.post("/api/v1/appointments", json=payload, headers=headers or patient_headers)
    return _book


def create_account(session, settings, **overrides) -> User:
    """Register an account directly through the service layer."""
    data = UserRegister(**{**test_user_data, **overrides})
    AuthService(session, settings).register(data)
    return session.query(User).filter(User.email == data.email).one()
