"""Failure codes shared by services and the HTTP layer."""

import enum
from typing import NoReturn

from fastapi import HTTPException


class AuthFailure(str, enum.Enum):
    """Why a flow did not succeed."""

    VALIDATION = "validation_error"
    NOT_FOUND = "not_found"
    UNKNOWN_USER = "user_not_found"
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_OTP = "invalid_otp"
    OTP_EXPIRED = "otp_expired"
    RESTRICTED_ORIGIN = "restricted_origin"
    ACCOUNT_INACTIVE = "account_inactive"
    PASSWORD_REUSED = "password_reused"
    DUPLICATE_EMAIL = "duplicate_email"
    FORBIDDEN = "forbidden"
    PERSISTENCE = "persistence_error"


FAILURE_STATUS = {
    AuthFailure.VALIDATION: 422,
    AuthFailure.DUPLICATE_EMAIL: 422,
    AuthFailure.PASSWORD_REUSED: 422,
    AuthFailure.NOT_FOUND: 401,
    AuthFailure.UNKNOWN_USER: 404,
    AuthFailure.INVALID_CREDENTIALS: 401,
    AuthFailure.INVALID_OTP: 401,
    AuthFailure.OTP_EXPIRED: 401,
    AuthFailure.RESTRICTED_ORIGIN: 401,
    AuthFailure.ACCOUNT_INACTIVE: 401,
    AuthFailure.FORBIDDEN: 403,
    AuthFailure.PERSISTENCE: 500,
}

INTERNAL_ERROR_MESSAGE = "Internal server error"


class APIError(HTTPException):
    """HTTPException that also carries a machine-readable failure code."""

    def __init__(self, failure: AuthFailure, detail: str | None = None, status_code: int | None = None) -> None:
        if failure is AuthFailure.PERSISTENCE:
            detail = INTERNAL_ERROR_MESSAGE
        super().__init__(status_code=status_code or FAILURE_STATUS[failure], detail=detail or failure.value)
        self.code = failure.value


def raise_for_failure(failure: AuthFailure | None, error: str | None) -> NoReturn:
    """Raise the APIError matching a failed service result."""
    raise APIError(failure or AuthFailure.PERSISTENCE, error)
