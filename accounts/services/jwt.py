"""JWT Token Service."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from accounts.config import get_settings


@dataclass
class SessionClaims:
    """Identity and role claims carried by a session token."""

    user_id: int
    email: str
    first_name: str
    last_name: str = ""
    role_ids: list[int] = field(default_factory=list)
    role_names: list[str] = field(default_factory=list)
    profile: dict[str, Any] = field(default_factory=dict)


class JWTService:
    """Handles JWT token creation and validation."""

    def __init__(self) -> None:
        settings = get_settings()
        self.secret_key = settings.JWT_SECRET_KEY
        self.algorithm = settings.JWT_ALGORITHM
        self.expire_minutes = settings.JWT_EXPIRE_MINUTES
        self.leeway_seconds = settings.JWT_LEEWAY_SECONDS

    def create_token(self, claims: SessionClaims) -> str:
        """Create a signed token for the given claims. Omits ``exp`` when expiry is disabled."""
        payload: dict[str, Any] = {
            **{key: value for key, value in claims.profile.items() if value is not None},
            "sub": str(claims.user_id),
            "id": claims.user_id,
            "email": claims.email,
            "firstName": claims.first_name,
            "lastName": claims.last_name,
            "roleIds": list(claims.role_ids),
            "roleNames": list(claims.role_names),
            "iat": datetime.utcnow(),
        }
        if self.expire_minutes > 0:
            payload["exp"] = datetime.utcnow() + timedelta(minutes=self.expire_minutes)
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode_token(self, token: str) -> dict[str, Any] | None:
        """Decode and validate a JWT token. Returns None if invalid."""
        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"leeway": self.leeway_seconds},
            )
        except JWTError:
            return None

    def is_token_valid(self, token: str) -> bool:
        """Check if a token is valid."""
        return self.decode_token(token) is not None


_jwt_service: JWTService | None = None


def get_jwt_service() -> JWTService:
    """Get singleton JWT service instance."""
    global _jwt_service
    if _jwt_service is None:
        _jwt_service = JWTService()
    return _jwt_service
