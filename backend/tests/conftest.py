"""
Shared test fixtures for the credit journey backend.

Settings are read once at import time, so the environment is prepared before
any `app` module is imported. Each test gets its own SQLite file.
"""
import os
import tempfile
import uuid
from datetime import timedelta

_TMP_DIR = tempfile.mkdtemp(prefix="credit_journey_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'bootstrap.db')}"
os.environ["LOG_DIR"] = os.path.join(_TMP_DIR, "logs")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ADMIN_API_KEY"] = ""
os.environ["CALLBELL_API_KEY"] = ""
os.environ["FIFTY_ONE_DEGREES_KEY"] = ""
os.environ["ENVIRONMENT"] = "test"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from app.database import get_db, init_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models import EligibleDevice, Journey, JourneyStatus, JourneyStep, Lead  # noqa: E402
from app.services.lead_service import clear_lead_cache  # noqa: E402
from app.services.notification_service import NotificationService  # noqa: E402
from app.utils import hashing  # noqa: E402
from app.utils.clock import utcnow  # noqa: E402

VALID_CPF = "52998224725"
OTHER_CPF = "11144477735"
VALID_IMEI = "490154203237518"
TEST_CODE = "123456"


# ─── Database ───

@pytest.fixture()
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    init_db(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    """Session for arranging and inspecting data; call db.expire_all() after API calls."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def _fresh_lead_cache():
    clear_lead_cache()
    yield
    clear_lead_cache()


# ─── Outbound integrations ───

@pytest.fixture(autouse=True)
def sent_otps(monkeypatch):
    """Capture OTP deliveries instead of calling a provider."""
    deliveries = []

    def _fake_send(phone, code):
        deliveries.append({"phone": phone, "code": code})
        return {"success": True, "provider": "test", "channel": "whatsapp", "message_id": "msg-1"}

    monkeypatch.setattr(NotificationService, "send_otp", staticmethod(_fake_send))
    return deliveries


@pytest.fixture()
def fixed_otp(monkeypatch):
    monkeypatch.setattr(hashing, "generate_otp_code", lambda length=None: TEST_CODE)
    return TEST_CODE


# ─── Factories ───

@pytest.fixture()
def make_lead(db):
    def _make(cpf=VALID_CPF, full_name="Maria Souza", phone="5511987654321", blacklisted=False):
        lead = Lead(
            cpf=cpf,
            full_name=full_name,
            phone=phone,
            email="maria@example.com",
            birth_date="10/05/1990",
            cep="01310100",
            street="Avenida Paulista",
            number="1000",
            neighborhood="Bela Vista",
            city="São Paulo",
            uf="SP",
            blacklisted=blacklisted,
        )
        db.add(lead)
        db.commit()
        db.refresh(lead)
        return lead
    return _make


@pytest.fixture()
def make_journey(db, make_lead):
    def _make(
        lead=None,
        step=JourneyStep.OTP,
        status=JourneyStatus.IN_PROGRESS,
        otp_verified=True,
        expires_in=timedelta(hours=24),
        **fields,
    ):
        lead = lead or make_lead()
        journey = Journey(
            id=str(uuid.uuid4()),
            token=hashing.generate_journey_token(),
            lead_id=lead.id,
            status=status.value,
            current_step=step.value,
            otp_verified_at=utcnow() if otp_verified else None,
            expires_at=utcnow() + expires_in,
            **fields,
        )
        db.add(journey)
        db.commit()
        db.refresh(journey)
        return journey
    return _make


@pytest.fixture()
def allow_device(db):
    def _allow(pattern, description="Test Device", brand="Test", approved_amount=None, active=True):
        row = EligibleDevice(
            brand=brand,
            model_pattern=pattern,
            description=description,
            approved_amount=approved_amount,
            active=active,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    return _allow


def auth(journey):
    return {"journey-token": journey.token}
