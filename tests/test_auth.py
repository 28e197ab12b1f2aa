"""Tests for authentication endpoints and flows."""

from dataclasses import replace
from datetime import datetime, timedelta
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from accounts.config import get_settings
from accounts.models.otp import OneTimePassword
from accounts.models.user import User, UserStatus
from accounts.services.auth import AuthService
from accounts.services.jwt import get_jwt_service
from accounts.services.mailer import get_mailer
from accounts.services.password import PasswordHasher


def _login(client: TestClient, email: str, password: str, origin: str | None = None):
    headers = {"Origin": origin} if origin else {}
    return client.post("/auth/login", json={"email": email, "password": password}, headers=headers)


def _stored_otp(db_session: Session, user_id: int) -> OneTimePassword:
    return db_session.query(OneTimePassword).filter(OneTimePassword.user_id == user_id).one()


class TestRegistration:
    """Tests for user registration."""

    def test_register_success(self, client: TestClient, db_session: Session):
        """Register a new user with the default role and status."""
        response = client.post(
            "/auth/register",
            json={"firstName": "New", "lastName": "User", "email": "New@Example.com", "password": "Abc123!"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Registration successful"
        assert data["user"]["email"] == "new@example.com"
        assert data["user"]["firstName"] == "New"
        assert data["user"]["roleIds"] == [2]

        user = db_session.query(User).filter(User.email == "new@example.com").one()
        assert user.status == int(UserStatus.ACTIVE)
        assert user.password_hash != "Abc123!"

    def test_register_duplicate_email(self, client: TestClient, test_user: dict):
        """Reject an email that is already registered, regardless of case."""
        response = client.post(
            "/auth/register",
            json={"firstName": "Other", "email": "TEST@example.com", "password": "Abc123!"},
        )
        assert response.status_code == 422
        assert response.json()["code"] == "duplicate_email"

    def test_register_weak_password(self, client: TestClient):
        response = client.post(
            "/auth/register",
            json={"firstName": "Weak", "email": "weak@example.com", "password": "password"},
        )
        assert response.status_code == 422

    def test_register_password_over_72_bytes(self, client: TestClient):
        response = client.post(
            "/auth/register",
            json={"firstName": "Long", "email": "long@example.com", "password": "Abc123!" + "a" * 66},
        )
        assert response.status_code == 422
        assert "72 bytes" in response.text

    def test_register_invalid_first_name(self, client: TestClient):
        response = client.post(
            "/auth/register",
            json={"firstName": "R2-D2", "email": "droid@example.com", "password": "Abc123!"},
        )
        assert response.status_code == 422

    def test_register_invalid_email(self, client: TestClient):
        response = client.post(
            "/auth/register",
            json={"firstName": "Bad", "email": "not-an-email", "password": "Abc123!"},
        )
        assert response.status_code == 422


class TestLogin:
    """Tests for user login."""

    def test_login_success(self, client: TestClient, test_user: dict):
        """Login returns the session user and a token that decodes to the same user."""
        response = _login(client, "test@example.com", test_user["password"])
        assert response.status_code == 200
        data = response.json()
        assert data["user"]["id"] == test_user["user_id"]
        assert data["user"]["roleIds"] == [2]
        assert data["user"]["roleNames"] == ["User"]

        payload = get_jwt_service().decode_token(data["token"])
        assert payload is not None
        assert payload["id"] == test_user["user_id"]
        assert payload["email"] == "test@example.com"

    def test_login_sets_auth_cookie(self, client: TestClient, test_user: dict):
        response = _login(client, "test@example.com", test_user["password"])
        cookie = response.headers["set-cookie"].lower()
        assert cookie.startswith("token=")
        assert "httponly" in cookie
        assert "secure" in cookie
        assert "samesite=none" in cookie

    def test_login_email_case_insensitive(self, client: TestClient, test_user: dict):
        response = _login(client, "Test@Example.COM", test_user["password"])
        assert response.status_code == 200

    def test_login_records_last_login(self, client: TestClient, db_session: Session, test_user: dict):
        _login(client, "test@example.com", test_user["password"])
        user = db_session.get(User, test_user["user_id"])
        assert user.last_login_at is not None

    def test_login_wrong_password(self, client: TestClient, test_user: dict):
        response = _login(client, "test@example.com", "Wrong123!")
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_credentials"

    def test_login_unknown_email(self, client: TestClient):
        """Unknown emails get the same answer as wrong passwords."""
        response = _login(client, "nobody@example.com", "Abc123!")
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_credentials"

    def test_login_inactive_user(self, client: TestClient, db_session: Session, test_user: dict):
        user = db_session.get(User, test_user["user_id"])
        user.status = int(UserStatus.INACTIVE)
        db_session.commit()

        response = _login(client, "test@example.com", test_user["password"])
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_credentials"


class TestRestrictedOrigins:
    """Default-role users may not sign in from restricted origins."""

    def test_restricted_origin_denied(self, client: TestClient, test_user: dict):
        response = _login(client, "test@example.com", test_user["password"], origin="https://restricted.example.com")
        assert response.status_code == 401
        assert response.json()["code"] == "restricted_origin"
        assert "set-cookie" not in response.headers

    def test_restricted_subdomain_denied(self, client: TestClient, test_user: dict):
        response = _login(
            client, "test@example.com", test_user["password"], origin="https://app.restricted.example.com"
        )
        assert response.status_code == 401
        assert response.json()["code"] == "restricted_origin"

    def test_lookalike_host_allowed(self, client: TestClient, test_user: dict):
        """Hosts that merely contain a restricted name are not restricted."""
        response = _login(client, "test@example.com", test_user["password"], origin="https://myrestricted.example.com")
        assert response.status_code == 200

    def test_other_origin_allowed(self, client: TestClient, test_user: dict):
        response = _login(client, "test@example.com", test_user["password"], origin="https://other.com")
        assert response.status_code == 200

    def test_admin_allowed_from_restricted_origin(self, client: TestClient, admin_user: dict):
        response = _login(client, "admin@example.com", admin_user["password"], origin="https://restricted.example.com")
        assert response.status_code == 200
        assert sorted(response.json()["user"]["roleIds"]) == [1, 2]


class TestSession:
    """Tests for token verification and logout."""

    def test_verify_token(self, client: TestClient, test_user: dict):
        response = client.get("/auth/verify", params={"token": test_user["token"]})
        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["userId"] == test_user["user_id"]
        assert data["email"] == "test@example.com"

    def test_verify_invalid_token(self, client: TestClient):
        response = client.get("/auth/verify", params={"token": "invalid.token.here"})
        assert response.status_code == 401

    def test_logout_clears_cookie(self, client: TestClient):
        response = client.post("/auth/logout")
        assert response.status_code == 200
        cookie = response.headers["set-cookie"].lower()
        assert cookie.startswith("token=")
        assert "max-age=0" in cookie

    def test_cookie_authenticates(self, client: TestClient, test_user: dict):
        client.cookies.set("token", test_user["token"])
        response = client.get("/auth/user-list")
        assert response.status_code == 200

    def test_health(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.headers["x-content-type-options"] == "nosniff"


class TestPasswordReset:
    """Tests for the forgot-password, verify-otp and reset-password flow."""

    def test_forgot_password_issues_and_emails_otp(self, client: TestClient, db_session: Session, test_user: dict):
        with patch("accounts.routers.auth.get_mailer") as get_mailer:
            response = client.post("/auth/forgot-password", json={"email": "test@example.com"})

        assert response.status_code == 200
        assert response.json()["message"] == "OTP sent successfully"
        record = _stored_otp(db_session, test_user["user_id"])
        assert len(record.otp) == 6
        get_mailer.return_value.send_otp.assert_called_once_with("test@example.com", record.otp, 10)

    def test_forgot_password_unknown_email(self, client: TestClient):
        with patch("accounts.routers.auth.get_mailer") as get_mailer:
            response = client.post("/auth/forgot-password", json={"email": "nobody@example.com"})

        assert response.status_code == 401
        assert response.json()["code"] == "not_found"
        get_mailer.return_value.send_otp.assert_not_called()

    def test_forgot_password_survives_mail_failure(self, client: TestClient, test_user: dict):
        """SMTP errors are logged by the mailer and never fail the request."""
        mailer = get_mailer()
        with patch.object(mailer, "send", side_effect=OSError("connection refused")):
            response = client.post("/auth/forgot-password", json={"email": "test@example.com"})
        assert response.status_code == 200

    def test_verify_otp(self, client: TestClient, db_session: Session, test_user: dict):
        with patch("accounts.routers.auth.get_mailer"):
            client.post("/auth/forgot-password", json={"email": "test@example.com"})
        code = _stored_otp(db_session, test_user["user_id"]).otp

        response = client.post("/auth/verify-otp", json={"email": "test@example.com", "otp": code})
        assert response.status_code == 200
        assert response.json()["message"] == "Success"

    def test_verify_wrong_otp(self, client: TestClient, db_session: Session, test_user: dict):
        with patch("accounts.routers.auth.get_mailer"):
            client.post("/auth/forgot-password", json={"email": "test@example.com"})
        code = _stored_otp(db_session, test_user["user_id"]).otp
        wrong = "000000" if code != "000000" else "111111"

        response = client.post("/auth/verify-otp", json={"email": "test@example.com", "otp": wrong})
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_otp"

    def test_verify_expired_otp(self, client: TestClient, db_session: Session, test_user: dict):
        with patch("accounts.routers.auth.get_mailer"):
            client.post("/auth/forgot-password", json={"email": "test@example.com"})
        record = _stored_otp(db_session, test_user["user_id"])
        record.expires_at = datetime.utcnow() - timedelta(minutes=1)
        db_session.commit()

        response = client.post("/auth/verify-otp", json={"email": "test@example.com", "otp": record.otp})
        assert response.status_code == 401
        assert response.json()["code"] == "otp_expired"

    def test_reset_password(self, client: TestClient, db_session: Session, test_user: dict):
        """A valid OTP sets the new password and is consumed."""
        with patch("accounts.routers.auth.get_mailer"):
            client.post("/auth/forgot-password", json={"email": "test@example.com"})
        code = _stored_otp(db_session, test_user["user_id"]).otp

        response = client.post(
            "/auth/reset-password",
            json={"email": "test@example.com", "otp": code, "newPassword": "N3wPass!", "confirmPassword": "N3wPass!"},
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Password updated successfully"

        assert _login(client, "test@example.com", "N3wPass!").status_code == 200
        assert _login(client, "test@example.com", test_user["password"]).status_code == 401

        response = client.post("/auth/verify-otp", json={"email": "test@example.com", "otp": code})
        assert response.status_code == 401

    def test_reset_password_reuse_rejected(self, client: TestClient, db_session: Session, test_user: dict):
        with patch("accounts.routers.auth.get_mailer"):
            client.post("/auth/forgot-password", json={"email": "test@example.com"})
        code = _stored_otp(db_session, test_user["user_id"]).otp

        response = client.post(
            "/auth/reset-password",
            json={
                "email": "test@example.com",
                "otp": code,
                "newPassword": test_user["password"],
                "confirmPassword": test_user["password"],
            },
        )
        assert response.status_code == 422
        assert response.json()["code"] == "password_reused"

    def test_reset_password_wrong_otp_keeps_password(self, client: TestClient, db_session: Session, test_user: dict):
        with patch("accounts.routers.auth.get_mailer"):
            client.post("/auth/forgot-password", json={"email": "test@example.com"})
        code = _stored_otp(db_session, test_user["user_id"]).otp
        wrong = "000000" if code != "000000" else "111111"

        response = client.post(
            "/auth/reset-password",
            json={"email": "test@example.com", "otp": wrong, "newPassword": "N3wPass!", "confirmPassword": "N3wPass!"},
        )
        assert response.status_code == 401
        assert _login(client, "test@example.com", test_user["password"]).status_code == 200

    def test_non_numeric_otp_rejected(self, client: TestClient, test_user: dict):
        response = client.post("/auth/verify-otp", json={"email": "test@example.com", "otp": "12ab56"})
        assert response.status_code == 422

    def test_reset_with_shorter_configured_code(self, client: TestClient, db_session: Session, test_user: dict):
        """Codes shorter than six digits still pass request validation."""
        service = AuthService(
            replace(get_settings().auth_policy(), otp_length=4), hasher=PasswordHasher(rounds=4)
        )
        with patch("accounts.routers.auth.get_auth_service", return_value=service), patch(
            "accounts.routers.auth.get_mailer"
        ):
            client.post("/auth/forgot-password", json={"email": "test@example.com"})
            code = _stored_otp(db_session, test_user["user_id"]).otp
            assert len(code) == 4

            verify = client.post("/auth/verify-otp", json={"email": "test@example.com", "otp": code})
            assert verify.status_code == 200

            reset = client.post(
                "/auth/reset-password",
                json={"email": "test@example.com", "otp": code, "newPassword": "N3wPass!", "confirmPassword": "N3wPass!"},
            )
            assert reset.status_code == 200

    def test_reset_password_confirmation_mismatch(self, client: TestClient):
        response = client.post(
            "/auth/reset-password",
            json={"email": "test@example.com", "otp": "123456", "newPassword": "N3wPass!", "confirmPassword": "Other1!"},
        )
        assert response.status_code == 422


class TestChangePassword:
    """Tests for changing the password of a signed-in user."""

    def _change(self, client: TestClient, token: str | None, current: str, new: str, confirm: str | None = None):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        return client.put(
            "/auth/change-password",
            json={"currentPassword": current, "newPassword": new, "confirmPassword": confirm or new},
            headers=headers,
        )

    def test_change_password(self, client: TestClient, test_user: dict):
        response = self._change(client, test_user["token"], test_user["password"], "N3wPass!")
        assert response.status_code == 200
        assert _login(client, "test@example.com", "N3wPass!").status_code == 200

    def test_wrong_current_password(self, client: TestClient, test_user: dict):
        response = self._change(client, test_user["token"], "Wrong123!", "N3wPass!")
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_credentials"

    def test_same_password_rejected(self, client: TestClient, test_user: dict):
        response = self._change(client, test_user["token"], test_user["password"], test_user["password"])
        assert response.status_code == 422
        assert response.json()["code"] == "password_reused"

    def test_confirmation_mismatch(self, client: TestClient, test_user: dict):
        response = self._change(client, test_user["token"], test_user["password"], "N3wPass!", "N3wPass?")
        assert response.status_code == 422

    def test_new_password_over_72_bytes(self, client: TestClient, test_user: dict):
        response = self._change(client, test_user["token"], test_user["password"], "N3wPass!" + "a" * 65)
        assert response.status_code == 422
        assert _login(client, "test@example.com", test_user["password"]).status_code == 200

    def test_requires_authentication(self, client: TestClient):
        response = self._change(client, None, "Passw0rd!", "N3wPass!")
        assert response.status_code == 401
