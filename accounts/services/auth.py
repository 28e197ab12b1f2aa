"""Authentication service.

Sequences the credential store, password hasher, OTP service and token
issuer into the register, login, forgot-password, verify-otp,
reset-password and change-password flows. Every flow returns an
``AuthResult``; callers map ``failure`` onto a response.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from urllib.parse import urlsplit

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from accounts.config import AuthPolicy, get_settings
from accounts.errors import AuthFailure
from accounts.models.user import User, UserRole, UserStatus
from accounts.services.jwt import JWTService, SessionClaims, get_jwt_service
from accounts.services.otp import OtpCheck, OtpIssue, OtpService
from accounts.services.password import PasswordHasher, get_password_hasher

logger = logging.getLogger("tenant_accounts")


@dataclass
class AuthResult:
    """Result of an authentication flow."""

    success: bool
    failure: AuthFailure | None = None
    error: str | None = None
    user_id: int | None = None
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    role_ids: list[int] = field(default_factory=list)
    role_names: list[str] = field(default_factory=list)
    profile: dict[str, Any] = field(default_factory=dict)
    token: str | None = None
    otp: OtpIssue | None = None

    @classmethod
    def fail(cls, failure: AuthFailure, error: str) -> "AuthResult":
        return cls(success=False, failure=failure, error=error)

    @classmethod
    def for_user(cls, user: User, **kwargs: Any) -> "AuthResult":
        return cls(
            success=True,
            user_id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name or "",
            role_ids=user.role_ids,
            role_names=user.role_names,
            profile=profile_fields(user),
            **kwargs,
        )


def profile_fields(user: User) -> dict[str, Any]:
    """Optional profile attributes exposed alongside identity."""
    profile = user.profile
    return {
        "countryCode": profile.country_code if profile else None,
        "phone": profile.phone if profile else None,
        "address": profile.address if profile else None,
        "avatar": profile.avatar if profile else None,
    }


def normalize_origin(origin: str | None) -> str | None:
    """Reduce an Origin header (or bare host) to a lowercase hostname."""
    if not origin:
        return None
    value = origin.strip()
    if "//" not in value:
        value = f"//{value}"
    try:
        host = urlsplit(value).hostname
    except ValueError:
        return None
    return host.rstrip(".").lower() if host else None


def origin_is_restricted(origin: str | None, restricted: tuple[str, ...]) -> bool:
    """True when the origin's host equals, or is a subdomain of, a restricted host."""
    host = normalize_origin(origin)
    if host is None:
        return False
    for entry in restricted:
        denied = normalize_origin(entry)
        if denied and (host == denied or host.endswith(f".{denied}")):
            return True
    return False


def normalize_email(email: str) -> str:
    return email.strip().lower()


EMAIL_CONFLICT_MARKERS = ("uq_users_email_live", "users.email")


def is_email_conflict(exc: IntegrityError) -> bool:
    """True when the violated constraint is the live-email unique index."""
    message = str(exc.orig)
    return any(marker in message for marker in EMAIL_CONFLICT_MARKERS)


class AuthService:
    """Handles registration, login and password flows."""

    def __init__(
        self,
        policy: AuthPolicy,
        hasher: PasswordHasher | None = None,
        otp_service: OtpService | None = None,
        jwt_service: JWTService | None = None,
    ) -> None:
        self.policy = policy
        self.hasher = hasher or get_password_hasher()
        self.otp = otp_service or OtpService(
            length=policy.otp_length,
            ttl_minutes=policy.otp_ttl_minutes,
            enforce_expiry=policy.otp_enforce_expiry,
        )
        self.jwt = jwt_service or get_jwt_service()

    # --- credential store ---

    def find_by_email(
        self, db: Session, email: str, active_only: bool = False, include_deleted: bool = True
    ) -> User | None:
        """Look up a user by email (case-insensitive). Newest row wins."""
        query = db.query(User).filter(func.lower(User.email) == normalize_email(email))
        if active_only:
            query = query.filter(User.status == int(UserStatus.ACTIVE))
        elif not include_deleted:
            query = query.filter(User.status != self.policy.deleted_user_status)
        return query.order_by(User.id.desc()).first()

    def find_by_id(self, db: Session, user_id: int) -> User | None:
        return db.get(User, user_id)

    def create(self, db: Session, user: User) -> User:
        """Add a user and flush so it has an id. The caller commits."""
        db.add(user)
        db.flush()
        return user

    def update_password_hash(self, db: Session, user_id: int, password_hash: str) -> User | None:
        """Replace a stored hash. The caller commits."""
        user = self.find_by_id(db, user_id)
        if user is None:
            return None
        user.password_hash = password_hash
        user.updated_at = datetime.utcnow()
        user.updated_by = user_id
        return user

    def _persistence_failure(self, db: Session, flow: str, **context: Any) -> AuthResult:
        db.rollback()
        logger.exception("%s failed: %s", flow, context)
        return AuthResult.fail(AuthFailure.PERSISTENCE, "Internal server error")

    # --- flows ---

    def register(
        self,
        db: Session,
        email: str,
        password: str,
        first_name: str,
        last_name: str = "",
        created_by: int | None = None,
    ) -> AuthResult:
        """Register a new user with the default status and role."""
        email = normalize_email(email)
        try:
            if self.find_by_email(db, email, include_deleted=False) is not None:
                return AuthResult.fail(AuthFailure.DUPLICATE_EMAIL, "Email already registered")

            user = User(
                email=email,
                first_name=first_name.strip(),
                last_name=(last_name or "").strip(),
                password_hash=self.hasher.hash(password),
                status=self.policy.default_user_status,
                created_by=created_by,
            )
            self.create(db, user)
            db.add(UserRole(user_id=user.id, role_id=self.policy.default_role_id, created_by=created_by or user.id))
            db.commit()
            db.refresh(user)
        except IntegrityError as e:
            if not is_email_conflict(e):
                return self._persistence_failure(db, "register", email=email)
            db.rollback()
            return AuthResult.fail(AuthFailure.DUPLICATE_EMAIL, "Email already registered")
        except SQLAlchemyError:
            return self._persistence_failure(db, "register", email=email)

        logger.info("Registered user %s", user.id)
        return AuthResult.for_user(user)

    def authenticate(self, db: Session, email: str, password: str, origin: str | None = None) -> AuthResult:
        """Check credentials and the origin policy, then issue a session token."""
        try:
            user = self.find_by_email(db, email, active_only=True)
            if user is None or not self.hasher.verify(password, user.password_hash):
                return AuthResult.fail(AuthFailure.INVALID_CREDENTIALS, "Invalid email or password")

            if set(user.role_ids) == {self.policy.default_role_id} and origin_is_restricted(
                origin, self.policy.restricted_origins
            ):
                logger.info("Login for user %s denied from restricted origin %s", user.id, origin)
                return AuthResult.fail(
                    AuthFailure.RESTRICTED_ORIGIN, "Your account does not have access to this application"
                )

            user.last_login_at = datetime.utcnow()
            db.commit()
        except SQLAlchemyError:
            return self._persistence_failure(db, "login", email=email)

        result = AuthResult.for_user(user)
        result.token = self.jwt.create_token(
            SessionClaims(
                user_id=user.id,
                email=user.email,
                first_name=user.first_name,
                last_name=user.last_name or "",
                role_ids=result.role_ids,
                role_names=result.role_names,
                profile=result.profile,
            )
        )
        return result

    def request_password_reset(self, db: Session, email: str) -> AuthResult:
        """Issue an OTP for an active user. The caller is responsible for emailing it."""
        try:
            user = self.find_by_email(db, email, active_only=True)
            if user is None:
                return AuthResult.fail(AuthFailure.NOT_FOUND, "No active account found for this email")
            issued = self.otp.issue(db, user.id)
        except SQLAlchemyError:
            return self._persistence_failure(db, "forgot_password", email=email)

        logger.info("Issued password reset OTP for user %s", user.id)
        return AuthResult(success=True, user_id=user.id, email=user.email, first_name=user.first_name, otp=issued)

    def _check_otp(self, db: Session, user: User, code: str) -> AuthResult | None:
        check = self.otp.verify(db, user.id, code)
        if check is OtpCheck.VALID:
            return None
        if check is OtpCheck.EXPIRED:
            return AuthResult.fail(AuthFailure.OTP_EXPIRED, "OTP has expired. Please request a new one.")
        return AuthResult.fail(AuthFailure.INVALID_OTP, "Invalid OTP")

    def verify_otp(self, db: Session, email: str, code: str) -> AuthResult:
        """Check a reset code without consuming it."""
        try:
            user = self.find_by_email(db, email, active_only=True)
            if user is None:
                return AuthResult.fail(AuthFailure.NOT_FOUND, "No active account found for this email")
            failed = self._check_otp(db, user, code)
        except SQLAlchemyError:
            return self._persistence_failure(db, "verify_otp", email=email)

        return failed or AuthResult(success=True, user_id=user.id, email=user.email)

    def reset_password(self, db: Session, email: str, code: str, new_password: str) -> AuthResult:
        """Set a new password using a valid OTP, then consume the OTP."""
        try:
            user = self.find_by_email(db, email, include_deleted=False)
            if user is None:
                return AuthResult.fail(AuthFailure.NOT_FOUND, "No active account found for this email")

            failed = self._check_otp(db, user, code)
            if failed:
                return failed

            if user.status == int(UserStatus.INACTIVE):
                return AuthResult.fail(AuthFailure.ACCOUNT_INACTIVE, "Account is deactivated")

            if self.hasher.verify(new_password, user.password_hash):
                return AuthResult.fail(
                    AuthFailure.PASSWORD_REUSED, "New password must be different from the current password"
                )

            self.update_password_hash(db, user.id, self.hasher.hash(new_password))
            self.otp.consume(db, user.id, commit=False)
            db.commit()
        except SQLAlchemyError:
            return self._persistence_failure(db, "reset_password", email=email)

        logger.info("Password reset for user %s", user.id)
        return AuthResult(success=True, user_id=user.id, email=user.email)

    def change_password(self, db: Session, user_id: int, current_password: str, new_password: str) -> AuthResult:
        """Change the password of an authenticated user."""
        try:
            user = self.find_by_id(db, user_id)
            if user is None or user.status == self.policy.deleted_user_status:
                return AuthResult.fail(AuthFailure.NOT_FOUND, "User not found")

            if user.status == int(UserStatus.INACTIVE):
                return AuthResult.fail(AuthFailure.ACCOUNT_INACTIVE, "Account is deactivated")

            if not self.hasher.verify(current_password, user.password_hash):
                return AuthResult.fail(AuthFailure.INVALID_CREDENTIALS, "Current password is incorrect")

            if new_password == current_password:
                return AuthResult.fail(
                    AuthFailure.PASSWORD_REUSED, "New password must be different from the current password"
                )

            self.update_password_hash(db, user.id, self.hasher.hash(new_password))
            db.commit()
        except SQLAlchemyError:
            return self._persistence_failure(db, "change_password", user_id=user_id)

        logger.info("Password changed for user %s", user.id)
        return AuthResult(success=True, user_id=user.id, email=user.email)


_auth_service: AuthService | None = None


def get_auth_service() -> AuthService:
    """Get singleton auth service instance."""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService(get_settings().auth_policy())
    return _auth_service
