"""Configuration settings for Tenant Accounts."""

import os
import secrets
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


def _int_list(raw: str) -> tuple[int, ...]:
    return tuple(int(part) for part in raw.split(",") if part.strip())


def _str_list(raw: str) -> tuple[str, ...]:
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class AuthPolicy:
    """Immutable policy values consumed by the auth flows."""

    default_role_id: int
    admin_role_ids: tuple[int, ...]
    default_user_status: int
    deleted_user_status: int
    otp_length: int
    otp_ttl_minutes: int
    otp_enforce_expiry: bool
    restricted_origins: tuple[str, ...]


class Settings:
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./tenant_accounts.db")

    # JWT
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", secrets.token_urlsafe(32))
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_EXPIRE_MINUTES: int = int(os.getenv("JWT_EXPIRE_MINUTES", "480"))  # 0 = no exp claim
    JWT_LEEWAY_SECONDS: int = int(os.getenv("JWT_LEEWAY_SECONDS", "30"))
    AUTH_COOKIE_NAME: str = os.getenv("AUTH_COOKIE_NAME", "token")

    # Roles and statuses
    DEFAULT_ROLE_ID: int = int(os.getenv("DEFAULT_ROLE_ID", "2"))
    ADMIN_ROLE_IDS: tuple[int, ...] = _int_list(os.getenv("ADMIN_ROLE_IDS", "1"))
    DEFAULT_USER_STATUS_ID: int = int(os.getenv("DEFAULT_USER_STATUS_ID", "1"))
    DELETED_USER_STATUS_ID: int = int(os.getenv("DELETED_USER_STATUS_ID", "2"))

    # Password reset
    OTP_LENGTH: int = int(os.getenv("OTP_LENGTH", "6"))
    OTP_TTL_MINUTES: int = int(os.getenv("OTP_TTL_MINUTES", "10"))
    OTP_ENFORCE_EXPIRY: bool = os.getenv("OTP_ENFORCE_EXPIRY", "true").lower() == "true"

    # Hosts from which default-role-only accounts may not log in
    RESTRICTED_ORIGINS: tuple[str, ...] = _str_list(os.getenv("RESTRICTED_ORIGINS", ""))

    BCRYPT_ROUNDS: int = int(os.getenv("BCRYPT_ROUNDS", "12"))
    DEFAULT_RECORDS_LIMIT: int = int(os.getenv("DEFAULT_RECORDS_LIMIT", "10"))

    # Upload
    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "uploads")
    MAX_AVATAR_SIZE_MB: int = int(os.getenv("MAX_AVATAR_SIZE_MB", "5"))

    # Mail
    SMTP_HOST: str = os.getenv("SMTP_HOST", "")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME: str = os.getenv("SMTP_USERNAME", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    SMTP_USE_TLS: bool = os.getenv("SMTP_USE_TLS", "true").lower() == "true"
    SMTP_USE_SSL: bool = os.getenv("SMTP_USE_SSL", "false").lower() == "true"
    EMAIL_ADDRESS: str = os.getenv("EMAIL_ADDRESS", "no-reply@localhost")
    LOGIN_APP_URL: str = os.getenv("LOGIN_APP_URL", "http://localhost:3000/login")

    # Application
    APP_ENV: str = os.getenv("APP_ENV", "development")
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    def auth_policy(self) -> AuthPolicy:
        """Snapshot the auth-related settings as an immutable policy."""
        return AuthPolicy(
            default_role_id=self.DEFAULT_ROLE_ID,
            admin_role_ids=self.ADMIN_ROLE_IDS,
            default_user_status=self.DEFAULT_USER_STATUS_ID,
            deleted_user_status=self.DELETED_USER_STATUS_ID,
            otp_length=self.OTP_LENGTH,
            otp_ttl_minutes=self.OTP_TTL_MINUTES,
            otp_enforce_expiry=self.OTP_ENFORCE_EXPIRY,
            restricted_origins=self.RESTRICTED_ORIGINS,
        )

    def validate(self) -> list[str]:
        """Validate settings and return list of warnings."""
        errors = []
        if not os.getenv("JWT_SECRET_KEY"):
            errors.append("JWT_SECRET_KEY is not set - using auto-generated key (not persistent across restarts)")
        if self.JWT_EXPIRE_MINUTES <= 0:
            errors.append("JWT_EXPIRE_MINUTES is 0 - session tokens will not expire")
        if not self.SMTP_HOST:
            errors.append("SMTP_HOST is not set - emails will be written to the log instead of sent")
        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
