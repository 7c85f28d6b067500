"""End-to-end tests for the authentication router."""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from hbank.repositories import UserRepository


def _confirmation_code(email_service) -> str:
    return email_service.send_confirmation_code.call_args.args[2]


@pytest.fixture
def register(client):
    def _register(email="test@example.com", password="Password123", name="Test User"):
        return client.post(
            "/api/auth/register",
            json={"email": email, "name": name, "password": password},
        )

    return _register


@pytest.fixture
def confirmed_user(client, register, email_service):
    """Register and confirm test@example.com through the API."""
    user_id = register().json()["user_id"]
    client.get("/api/auth/confirm-email/test@example.com")
    client.post(
        "/api/auth/confirm-email",
        json={"email": "test@example.com", "code": _confirmation_code(email_service)},
    )
    return user_id


@pytest.fixture
def tokens(client, confirmed_user):
    response = client.post(
        "/api/auth/login",
        json={"email": "test@example.com", "password": "Password123"},
    )
    return response.json()


def _bearer(access_token: str) -> dict:
    return {"Authorization": f"Bearer {access_token}"}


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestRegister:
    """Tests for the register endpoint."""

    def test_register_success(self, register):
        response = register()

        assert response.status_code == 201
        assert response.json()["user_id"]

    def test_register_duplicate_email(self, register):
        register()

        response = register()

        assert response.status_code == 409
        assert response.json()["detail"] == "Email already registered"

    def test_register_weak_password(self, register):
        response = register(password="password")

        assert response.status_code == 422

    def test_register_invalid_email(self, register):
        response = register(email="not-an-email")

        assert response.status_code == 422

    def test_register_rejected_captcha(self, register, captcha):
        captcha.verify.return_value = False

        response = register()

        assert response.status_code == 401


class TestConfirmEmail:
    """Tests for the confirmation code endpoints."""

    def test_request_and_confirm(self, client, register, email_service):
        register()

        response = client.get("/api/auth/confirm-email/test@example.com")
        assert response.status_code == 200

        response = client.post(
            "/api/auth/confirm-email",
            json={"email": "test@example.com", "code": _confirmation_code(email_service)},
        )
        assert response.status_code == 200

    def test_wrong_code(self, client, register, email_service):
        register()
        client.get("/api/auth/confirm-email/test@example.com")
        code = _confirmation_code(email_service)

        response = client.post(
            "/api/auth/confirm-email",
            json={"email": "test@example.com", "code": "AAAAAA" if code != "AAAAAA" else "BBBBBB"},
        )

        assert response.status_code == 400

    def test_second_request_is_rate_limited(self, client, register):
        register()
        client.get("/api/auth/confirm-email/test@example.com")

        response = client.get("/api/auth/confirm-email/test@example.com")

        assert response.status_code == 429

    def test_unknown_email(self, client):
        response = client.get("/api/auth/confirm-email/nobody@example.com")

        assert response.status_code == 404

    def test_delete_unconfirmed(self, client, register, email_service):
        user_id = register().json()["user_id"]
        client.get("/api/auth/confirm-email/test@example.com")

        response = client.post(
            f"/api/auth/delete-unconfirmed/{user_id}",
            json={"code": _confirmation_code(email_service)},
        )
        assert response.status_code == 200

        response = client.post(
            "/api/auth/login",
            json={"email": "test@example.com", "password": "Password123"},
        )
        assert response.status_code == 401


class TestLogin:
    """Tests for login, refresh and logout."""

    def test_login_success(self, tokens):
        assert tokens["token_type"] == "bearer"
        assert tokens["access_token"]
        assert tokens["refresh_token"]
        assert tokens["user"]["email"] == "test@example.com"
        assert tokens["user"]["email_confirmed"] is True

    def test_login_unconfirmed(self, client, register):
        register()

        response = client.post(
            "/api/auth/login",
            json={"email": "test@example.com", "password": "Password123"},
        )

        assert response.status_code == 403
        assert response.json()["detail"] == "email_not_confirmed"

    def test_login_wrong_password(self, client, confirmed_user):
        response = client.post(
            "/api/auth/login",
            json={"email": "test@example.com", "password": "WrongPassword1"},
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"

    def test_me(self, client, tokens):
        response = client.get("/api/auth/me", headers=_bearer(tokens["access_token"]))

        assert response.status_code == 200
        assert response.json()["email"] == "test@example.com"

    def test_me_invalid_token(self, client):
        response = client.get("/api/auth/me", headers=_bearer("garbage"))

        assert response.status_code == 401

    def test_refresh_rotates_once(self, client, tokens):
        response = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 200
        rotated = response.json()
        assert rotated["refresh_token"] != tokens["refresh_token"]

        response = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 401

        # Reuse revoked the whole family and the outstanding access tokens
        response = client.post("/api/auth/refresh", json={"refresh_token": rotated["refresh_token"]})
        assert response.status_code == 401
        response = client.get("/api/auth/me", headers=_bearer(rotated["access_token"]))
        assert response.status_code == 401

    def test_logout(self, client, tokens):
        response = client.post("/api/auth/logout", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 200

        response = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 401

    def test_logout_all_devices(self, client, tokens):
        response = client.post(
            "/api/auth/logout",
            json={"refresh_token": tokens["refresh_token"], "all_devices": True},
        )
        assert response.status_code == 200

        response = client.get("/api/auth/me", headers=_bearer(tokens["access_token"]))
        assert response.status_code == 401


class TestPasswordFlows:
    """Tests for password change and reset."""

    def test_change_password(self, client, tokens):
        response = client.post(
            "/api/auth/change-password",
            json={"current_password": "Password123", "new_password": "NewPassword456"},
            headers=_bearer(tokens["access_token"]),
        )
        assert response.status_code == 200

        response = client.get("/api/auth/me", headers=_bearer(tokens["access_token"]))
        assert response.status_code == 401

        response = client.post(
            "/api/auth/login",
            json={"email": "test@example.com", "password": "NewPassword456"},
        )
        assert response.status_code == 200

    def test_change_password_wrong_current(self, client, tokens):
        response = client.post(
            "/api/auth/change-password",
            json={"current_password": "WrongPassword1", "new_password": "NewPassword456"},
            headers=_bearer(tokens["access_token"]),
        )

        assert response.status_code == 401

    def test_forgot_password_unknown_email_still_succeeds(self, client, email_service):
        response = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})

        assert response.status_code == 200
        email_service.send_password_reset_code.assert_not_called()

    def test_reset_password(self, client, tokens, email_service):
        client.post("/api/auth/forgot-password", json={"email": "test@example.com"})
        code = email_service.send_password_reset_code.call_args.args[2]

        response = client.post(
            "/api/auth/reset-password",
            json={"email": "test@example.com", "code": code, "new_password": "NewPassword456"},
        )
        assert response.status_code == 200

        response = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 401

        response = client.post(
            "/api/auth/reset-password",
            json={"email": "test@example.com", "code": code, "new_password": "OtherPassword789"},
        )
        assert response.status_code == 401


class TestChangeEmail:
    """Tests for the email change endpoints."""

    def test_change_email(self, client, tokens, email_service):
        response = client.post(
            "/api/auth/request-change-email",
            json={"password": "Password123", "new_email": "new@example.com"},
            headers=_bearer(tokens["access_token"]),
        )
        assert response.status_code == 200
        code = email_service.send_change_email_code.call_args.args[2]

        response = client.post(
            "/api/auth/change-email",
            json={"code": code},
            headers=_bearer(tokens["access_token"]),
        )
        assert response.status_code == 200

        response = client.post(
            "/api/auth/login",
            json={"email": "new@example.com", "password": "Password123"},
        )
        assert response.status_code == 200

    def test_request_change_to_taken_email(self, client, tokens, register):
        register(email="other@example.com")

        response = client.post(
            "/api/auth/request-change-email",
            json={"password": "Password123", "new_email": "other@example.com"},
            headers=_bearer(tokens["access_token"]),
        )

        assert response.status_code == 409


class TestDeleteAccount:
    """Tests for the account deletion endpoint."""

    def test_delete_account(self, client, tokens):
        response = client.post(
            "/api/auth/delete-account",
            json={"password": "Password123"},
            headers=_bearer(tokens["access_token"]),
        )
        assert response.status_code == 200

        response = client.get("/api/auth/me", headers=_bearer(tokens["access_token"]))
        assert response.status_code == 401
        response = client.post(
            "/api/auth/login",
            json={"email": "test@example.com", "password": "Password123"},
        )
        assert response.status_code == 401

    def test_delete_account_wrong_password(self, client, tokens):
        response = client.post(
            "/api/auth/delete-account",
            json={"password": "WrongPassword1"},
            headers=_bearer(tokens["access_token"]),
        )

        assert response.status_code == 401


class TestStoreFailures:
    def test_database_error_maps_to_service_unavailable(self, client, confirmed_user):
        with patch.object(
            UserRepository,
            "find_by_email",
            side_effect=OperationalError("SELECT", {}, Exception("database is locked")),
        ):
            response = client.post(
                "/api/auth/login",
                json={"email": "test@example.com", "password": "Password123"},
            )

        assert response.status_code == 503
        assert response.json()["detail"] == "Service temporarily unavailable"
