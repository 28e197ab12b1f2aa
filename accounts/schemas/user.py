"""Pydantic schemas for profile and user management endpoints."""

from datetime import datetime

from pydantic import EmailStr, Field, field_validator

from accounts.schemas.auth import CamelModel, check_first_name


class UserResponse(CamelModel):
    id: int
    email: str
    first_name: str
    last_name: str = ""
    status: int
    status_label: str | None = None
    company_id: int | None = None
    product_categories: list[str] = []
    country_code: int | None = None
    phone: str | None = None
    address: str | None = None
    avatar: str | None = None
    role_ids: list[int] = []
    role_names: list[str] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None
    updated_by: int | None = None


class UserListResponse(CamelModel):
    items: list[UserResponse]
    total: int


class UserPageResponse(CamelModel):
    items: list[UserResponse]
    total: int
    page: int
    limit: int


class EditProfileRequest(CamelModel):
    """Partial update. Omitted or null fields are left unchanged."""

    first_name: str | None = None
    last_name: str | None = None
    email: EmailStr | None = None
    country_code: int | None = None
    phone: str | None = Field(default=None, max_length=32)
    address: str | None = Field(default=None, max_length=250)
    avatar: str | None = None
    company_id: int | None = None
    product_categories: list[str] | None = None

    @field_validator("first_name")
    @classmethod
    def check_name(cls, v: str | None) -> str | None:
        return None if v is None else check_first_name(v)


class AdminEditProfileRequest(EditProfileRequest):
    status: int | None = None
    role_ids: list[int] | None = None


class CreateUserRequest(CamelModel):
    first_name: str
    last_name: str | None = None
    email: EmailStr
    phone: str | None = Field(default=None, max_length=32)
    address: str | None = Field(default=None, max_length=250)
    avatar: str | None = None
    company_id: int | None = None
    product_categories: list[str] | None = None
    role_ids: list[int] = []

    @field_validator("first_name")
    @classmethod
    def check_name(cls, v: str) -> str:
        return check_first_name(v)


class UpdateStatusRequest(CamelModel):
    user_id: int
    status_id: int


class StatusUpdateItem(CamelModel):
    user_id: int
    status: int


class UserSearchRequest(CamelModel):
    current_status: int | None = None
    role: int | None = None
    last_updated_by: int | None = None
    search: str | None = None
    sort_by: str = "createdAt"
    sort_order: str = Field(default="DESC", pattern="^(ASC|DESC|asc|desc)$")
    page: int = Field(default=1, ge=1)
    limit: int | None = Field(default=None, ge=1, le=100)


class EmailRequest(CamelModel):
    email: EmailStr


class EmailExistsResponse(CamelModel):
    email: str
    exists: bool


class RoleResponse(CamelModel):
    id: int
    name: str


class RoleCountResponse(CamelModel):
    role_id: int
    role_name: str
    count: int


class FilterOption(CamelModel):
    value: int
    label: str


class FilterListResponse(CamelModel):
    statuses: list[FilterOption]
    roles: list[FilterOption]
    updated_by: list[FilterOption]


class CreatedUserResponse(CamelModel):
    message: str
    user: UserResponse
