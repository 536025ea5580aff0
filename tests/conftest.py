import os

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("APP_DEBUG", "false")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import sys
from pathlib import Path

project_root = Path(__file__).resolve().parents[1]
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from datetime import timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import retail_api.models  # noqa: F401
from retail_api.database import Base
from retail_api.models.otp_verification import OTPVerification, OTPPurpose
from retail_api.models.user import User
from retail_api.services.auth_service import AuthService
from retail_api.utils.email import DeliveryResult
from retail_api.utils.security import hash_password, is_expired


class RecordingNotifier:
    """Stands in for the mailer; keeps every code it was asked to send."""

    def __init__(self, delivered: bool = True):
        self.delivered = delivered
        self.sent = []

    def send(self, email, code, purpose):
        self.sent.append((email, code, OTPPurpose(purpose)))
        if self.delivered:
            return DeliveryResult(delivered=True)
        return DeliveryResult(delivered=False, error="SMTP unavailable")

    def last_code(self, email: str, purpose: OTPPurpose) -> str:
        for sent_email, code, sent_purpose in reversed(self.sent):
            if sent_email == email and sent_purpose == purpose:
                return code
        raise AssertionError(f"no {purpose.value} code sent to {email}")


def active_otps(session: Session, email: str, purpose: OTPPurpose) -> list[OTPVerification]:
    session.expire_all()
    rows = session.query(OTPVerification).filter(
        OTPVerification.email == email,
        OTPVerification.purpose == purpose.value,
    ).all()
    return [r for r in rows if not r.isUsed and not is_expired(r.expiresAt)]


def aware(dt):
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def create_user(session: Session, *, email: str, password: str, verified: bool = True) -> User:
    user = User(
        email=email,
        firstName="Test",
        lastName="User",
        password=hash_password(password),
        isEmailVerified=verified,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def auth_service(notifier):
    return AuthService(notifier)


@pytest.fixture()
def client(session_factory, notifier):
    from retail_api.main import app
    from retail_api.database import get_db
    from retail_api.utils.email import get_notifier

    def get_db_override():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = get_db_override
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
