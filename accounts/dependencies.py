"""Authentication dependencies for FastAPI routes."""

from dataclasses import dataclass, field

from fastapi import Depends, HTTPException, Request, Response

from accounts.config import get_settings
from accounts.services.jwt import get_jwt_service


@dataclass
class CurrentUser:
    """Authenticated user context."""

    user_id: int
    email: str
    first_name: str
    last_name: str = ""
    role_ids: list[int] = field(default_factory=list)
    role_names: list[str] = field(default_factory=list)


def _token_from_request(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return request.cookies.get(get_settings().AUTH_COOKIE_NAME)


def get_current_user(request: Request) -> CurrentUser:
    """Extract and validate user from Bearer token or cookie. Raises 401 if invalid."""
    token = _token_from_request(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    payload = get_jwt_service().decode_token(token)
    if not payload or "sub" not in payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return CurrentUser(
        user_id=int(payload["sub"]),
        email=payload.get("email", ""),
        first_name=payload.get("firstName", ""),
        last_name=payload.get("lastName", ""),
        role_ids=[int(r) for r in payload.get("roleIds", [])],
        role_names=list(payload.get("roleNames", [])),
    )


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Require one of the configured administrator roles. Raises 403 otherwise."""
    if not set(user.role_ids) & set(get_settings().ADMIN_ROLE_IDS):
        raise HTTPException(status_code=403, detail="Not enough permissions")
    return user


def set_auth_cookie(response: Response, token: str) -> None:
    """Set the authentication cookie. Cross-site capable, so it must be Secure."""
    response.set_cookie(
        key=get_settings().AUTH_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="none",
        secure=True,
    )


def clear_auth_cookie(response: Response) -> None:
    """Clear the authentication cookie."""
    response.delete_cookie(key=get_settings().AUTH_COOKIE_NAME, httponly=True, samesite="none", secure=True)
