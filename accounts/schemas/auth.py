"""Pydantic schemas for authentication endpoints."""

import re

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from accounts.services.password import check_password_policy

NAME_PATTERN = re.compile(r"^[a-zA-Z ]{1,20}$")


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys while keeping snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _policy_checked(value: str) -> str:
    value = value.strip()
    error = check_password_policy(value)
    if error:
        raise ValueError(error)
    return value


def _otp_checked(value: str) -> str:
    value = value.strip()
    if not value.isdigit():
        raise ValueError("OTP must contain digits only.")
    return value


def check_first_name(value: str) -> str:
    value = value.strip()
    if not NAME_PATTERN.match(value):
        raise ValueError("First name has not empty and non-alphanumeric characters.")
    return value


class RegisterRequest(CamelModel):
    first_name: str
    last_name: str | None = None
    email: EmailStr
    password: str

    @field_validator("first_name")
    @classmethod
    def check_name(cls, v: str) -> str:
        return check_first_name(v)

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return _policy_checked(v)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class VerifyOtpRequest(CamelModel):
    email: EmailStr
    otp: str = Field(min_length=1, max_length=16)

    @field_validator("otp")
    @classmethod
    def check_otp(cls, v: str) -> str:
        return _otp_checked(v)


class ResetPasswordRequest(CamelModel):
    email: EmailStr
    otp: str = Field(min_length=1, max_length=16)
    new_password: str
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return _policy_checked(v)

    @field_validator("otp")
    @classmethod
    def check_otp(cls, v: str) -> str:
        return _otp_checked(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "ResetPasswordRequest":
        if self.confirm_password.strip() != self.new_password:
            raise ValueError("Password confirmation does not match password.")
        return self


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return _policy_checked(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "ChangePasswordRequest":
        if self.confirm_password.strip() != self.new_password:
            raise ValueError("Password confirmation does not match password.")
        return self


class SessionUser(CamelModel):
    id: int
    email: str
    first_name: str
    last_name: str = ""
    country_code: int | None = None
    phone: str | None = None
    address: str | None = None
    avatar: str | None = None
    role_ids: list[int] = []
    role_names: list[str] = []


class LoginResponse(CamelModel):
    user: SessionUser
    token: str


class RegisterResponse(CamelModel):
    message: str
    user: SessionUser


class MessageResponse(CamelModel):
    message: str


class TokenPayload(CamelModel):
    valid: bool
    user_id: int
    email: str
    first_name: str
    last_name: str = ""
    role_ids: list[int] = []
    role_names: list[str] = []
