"""Tests for registration and the email confirmation flow."""

import pytest

from hbank.models import CodeKind, User
from hbank.repositories import CodeRepository, UserRepository
from hbank.services.email_confirmation_service import EmailConfirmationService
from hbank.services.exceptions import (
    ConflictError,
    InvalidCredentialsError,
    NotFoundError,
    RateLimitedError,
    TransientError,
)
from hbank.services.http_client import HTTPClientError
from hbank.services.registration_service import RegistrationService


@pytest.fixture
def registration(db, settings, captcha):
    return RegistrationService(db, settings, captcha)


@pytest.fixture
def confirmation(db, settings, email_service, clock):
    return EmailConfirmationService(db, settings, email_service, clock)


def _sent_code(email_service) -> str:
    return email_service.send_confirmation_code.call_args.args[2]


def _other(code: str) -> str:
    return "AAAAAA" if code != "AAAAAA" else "BBBBBB"


class TestRegistration:
    """Tests for account creation."""

    def test_register_creates_unconfirmed_user(self, registration, db, email_service):
        user_id = registration.register("New@Example.com", " Ann ", "Password123")

        user = db.query(User).filter(User.id == user_id).one()
        assert user.email == "new@example.com"
        assert user.name == "Ann"
        assert user.email_confirmed is False
        assert user.two_factor_enabled is False
        assert user.password_hash != "Password123"
        assert len(user.token_key) == 32
        assert user.profile_picture_id
        email_service.send_confirmation_code.assert_not_called()

    def test_duplicate_email_conflicts(self, registration, make_user):
        make_user(email="taken@example.com")

        with pytest.raises(ConflictError):
            registration.register("TAKEN@example.com", "Ann", "Password123")

    def test_rejected_captcha(self, registration, captcha, db):
        captcha.verify.return_value = False

        with pytest.raises(InvalidCredentialsError):
            registration.register("new@example.com", "Ann", "Password123", "bad-token")

        assert db.query(User).count() == 0

    def test_captcha_outage_is_transient(self, registration, captcha, db):
        captcha.verify.side_effect = HTTPClientError("connection refused")

        with pytest.raises(TransientError):
            registration.register("new@example.com", "Ann", "Password123", "token")

        assert db.query(User).count() == 0


class TestConfirmationScenario:
    """Register, request a code, fail once, succeed once."""

    def test_full_flow(self, registration, confirmation, email_service, db):
        registration.register("a@x.com", "Ann", "pw1")
        confirmation.request_code("a@x.com")
        code = _sent_code(email_service)
        assert len(code) == 6

        assert confirmation.verify_code("a@x.com", _other(code)) is False
        user = UserRepository(db).find_by_email("a@x.com")
        assert CodeRepository(db).find(user.id, CodeKind.CONFIRM_EMAIL) is not None

        assert confirmation.verify_code("a@x.com", code) is True
        assert user.email_confirmed is True
        assert CodeRepository(db).find(user.id, CodeKind.CONFIRM_EMAIL) is None

        assert confirmation.verify_code("a@x.com", code) is False


class TestRequestCode:
    """Tests for requesting confirmation codes."""

    def test_second_request_within_timeout_is_rate_limited(
        self, confirmation, make_user, email_service, clock
    ):
        make_user(confirmed=False)
        confirmation.request_code("test@example.com")

        clock.advance(minutes=1, seconds=59)
        with pytest.raises(RateLimitedError):
            confirmation.request_code("test@example.com")
        assert email_service.send_confirmation_code.call_count == 1

        clock.advance(seconds=1)
        confirmation.request_code("test@example.com")
        assert email_service.send_confirmation_code.call_count == 2

    def test_new_code_replaces_old_one(self, confirmation, make_user, email_service, clock):
        make_user(confirmed=False)
        confirmation.request_code("test@example.com")
        first = _sent_code(email_service)

        clock.advance(minutes=2)
        confirmation.request_code("test@example.com")
        second = _sent_code(email_service)

        if first != second:
            assert confirmation.verify_code("test@example.com", first) is False
        assert confirmation.verify_code("test@example.com", second) is True

    def test_unknown_email_is_not_found_and_still_rate_limited(self, confirmation):
        with pytest.raises(NotFoundError):
            confirmation.request_code("nobody@example.com")
        with pytest.raises(RateLimitedError):
            confirmation.request_code("nobody@example.com")

    def test_confirmed_account_conflicts(self, confirmation, make_user, email_service):
        make_user(confirmed=True)

        with pytest.raises(ConflictError):
            confirmation.request_code("test@example.com")
        email_service.send_confirmation_code.assert_not_called()

    def test_rate_limit_is_per_email(self, confirmation, make_user):
        make_user(email="one@example.com", confirmed=False)
        make_user(email="two@example.com", confirmed=False)

        confirmation.request_code("one@example.com")
        confirmation.request_code("two@example.com")


class TestVerifyCode:
    """Tests for code verification edge cases."""

    def test_expired_code_fails_and_is_removed(self, confirmation, make_user, email_service, db, clock):
        user = make_user(confirmed=False)
        confirmation.request_code("test@example.com")
        code = _sent_code(email_service)

        clock.advance(minutes=5)

        assert confirmation.verify_code("test@example.com", code) is False
        assert CodeRepository(db).find(user.id, CodeKind.CONFIRM_EMAIL) is None
        assert user.email_confirmed is False

    def test_unknown_email_fails(self, confirmation):
        assert confirmation.verify_code("nobody@example.com", "ABCDEF") is False

    def test_no_outstanding_code_fails(self, confirmation, make_user):
        make_user(confirmed=False)

        assert confirmation.verify_code("test@example.com", "ABCDEF") is False


class TestDeleteUnconfirmedAccount:
    """Tests for removing an account registered with someone else's address."""

    def test_code_holder_can_delete_unconfirmed_account(
        self, confirmation, make_user, email_service, db
    ):
        user = make_user(confirmed=False)
        user_id = user.id
        confirmation.request_code("test@example.com")

        assert confirmation.delete_unconfirmed_account(user_id, _sent_code(email_service)) is True

        assert db.query(User).filter(User.id == user_id).first() is None

    def test_wrong_code_keeps_account(self, confirmation, make_user, email_service, db):
        user = make_user(confirmed=False)
        confirmation.request_code("test@example.com")
        code = _sent_code(email_service)

        assert confirmation.delete_unconfirmed_account(user.id, _other(code)) is False
        assert db.query(User).filter(User.id == user.id).first() is not None

    def test_confirmed_account_is_kept_and_code_consumed(
        self, confirmation, make_user, email_service, db
    ):
        user = make_user(confirmed=False)
        confirmation.request_code("test@example.com")
        code = _sent_code(email_service)
        user.email_confirmed = True
        db.commit()

        assert confirmation.delete_unconfirmed_account(user.id, code) is False
        assert db.query(User).filter(User.id == user.id).first() is not None
        assert CodeRepository(db).find(user.id, CodeKind.CONFIRM_EMAIL) is None

    def test_unknown_user(self, confirmation):
        assert confirmation.delete_unconfirmed_account("missing-id", "ABCDEF") is False
