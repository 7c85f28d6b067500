"""Shared test fixtures: in-memory database, settings, fake clock and API client."""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from hbank import models  # noqa: F401
from hbank.config import Settings
from hbank.database import Base, get_db
from hbank.dependencies.services import get_captcha_verifier, get_email_service, get_settings
from hbank.main import app
from hbank.models import User
from hbank.rate_limiter import limiter
from hbank.services.auth_service import AuthService
from hbank.services.captcha_service import CaptchaVerifier
from hbank.services.email_service import EmailService
from hbank.services.session_service import new_token_key


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 15, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def settings():
    """Settings with a throwaway Fernet key and the cheapest bcrypt cost."""
    return Settings(
        database_url="sqlite://",
        jwt_secret_key="test-secret-key-with-enough-length-for-hs256",
        mfa_encryption_key=Fernet.generate_key().decode(),
        bcrypt_rounds=4,
        email_enabled=False,
        captcha_enabled=False,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_maker(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


@pytest.fixture
def db(session_maker):
    session = session_maker()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def email_service():
    """EmailService stand-in recording what would have been mailed."""
    return MagicMock(spec=EmailService)


@pytest.fixture
def captcha():
    verifier = MagicMock(spec=CaptchaVerifier)
    verifier.verify.return_value = True
    return verifier


@pytest.fixture
def make_user(db, settings):
    """Factory creating a user directly in the database."""
    auth = AuthService(settings)

    def _make_user(
        email: str = "test@example.com",
        password: str = "Password123",
        name: str = "Test User",
        confirmed: bool = True,
    ) -> User:
        user = User(
            email=email,
            name=name,
            password_hash=auth.hash_password(password),
            email_confirmed=confirmed,
            two_factor_enabled=False,
            token_key=new_token_key(),
        )
        db.add(user)
        db.commit()
        return user

    return _make_user


@pytest.fixture
def client(session_maker, settings, email_service, captcha):
    """Test client against the in-memory database with mail and captcha stubbed out."""
    limiter.reset()

    def override_get_db():
        session = session_maker()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_email_service] = lambda: email_service
    app.dependency_overrides[get_captcha_verifier] = lambda: captcha

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
