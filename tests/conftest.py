import os

# Settings are read at import time; pin them before the app is imported.
os.environ["PAYFAST_MERCHANT_ID"] = "10000100"
os.environ["PAYFAST_MERCHANT_KEY"] = "46f0cd694581a"
os.environ["PAYFAST_PASSPHRASE"] = "jt7NOE43FZPn"
os.environ["PAYFAST_BASE_URL"] = "https://sandbox.payfast.co.za/eng/process"
os.environ["APP_BASE_URL"] = "https://savings.example.com"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-jwt-secret"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from savings_gateway.auth import verify_token
from savings_gateway.config import settings as app_settings
from savings_gateway.database import Base, make_engine, make_session_factory
from savings_gateway.ledger import LedgerStore
from savings_gateway.main import app as fastapi_app
from savings_gateway.models import User
from savings_gateway.signature import build_signature, encode_value


@pytest.fixture
def settings():
    return app_settings


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test_savings.db'}")
    Base.metadata.create_all(bind=engine)
    yield make_session_factory(engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return LedgerStore(session_factory)


@pytest.fixture
def user_id(session_factory):
    db = session_factory()
    db.add(User(id="user-1", username="thandi", balance=Decimal("0.00")))
    db.commit()
    db.close()
    return "user-1"


@pytest.fixture
def client(monkeypatch, session_factory):
    monkeypatch.setattr("savings_gateway.routes.SessionLocal", session_factory)
    monkeypatch.setattr("savings_gateway.main.SessionLocal", session_factory)

    # Bypass auth verification for tests
    fastapi_app.dependency_overrides[verify_token] = lambda: {"sub": "user-1"}

    with TestClient(fastapi_app) as c:
        yield c

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def itn_fields():
    """Build the field list of a PayFast ITN, in the order the gateway posts it."""

    def build(user="user-1", amount="100.00", status="COMPLETE", payment_id="pay_1700000000000_abcd1234"):
        return [
            ("m_payment_id", payment_id),
            ("pf_payment_id", "1089250"),
            ("payment_status", status),
            ("item_name", "Savings Deposit"),
            ("item_description", ""),
            ("amount_gross", amount),
            ("amount_fee", "-2.30"),
            ("amount_net", str(Decimal(amount) - Decimal("2.30"))),
            ("custom_str1", user),
            ("name_first", "Test"),
            ("name_last", "User"),
            ("email_address", "test@example.com"),
            ("merchant_id", "10000100"),
        ]

    return build


@pytest.fixture
def sign_body():
    """Encode fields as a form body with a trailing signature."""

    def sign(fields, passphrase=app_settings.passphrase, signature=None):
        if signature is None:
            signature = build_signature(fields, passphrase).signature
        body = "&".join(f"{key}={encode_value(value)}" for key, value in fields)
        return f"{body}&signature={signature}".encode("utf-8")

    return sign
