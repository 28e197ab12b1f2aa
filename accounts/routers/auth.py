"""Authentication and self-service profile endpoints."""

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Request, Response, UploadFile
from sqlalchemy.orm import Session

from accounts.database import get_db
from accounts.dependencies import CurrentUser, clear_auth_cookie, get_current_user, require_admin, set_auth_cookie
from accounts.errors import raise_for_failure
from accounts.rate_limit import limiter
from accounts.schemas.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    SessionUser,
    TokenPayload,
    VerifyOtpRequest,
    check_first_name,
)
from accounts.schemas.user import EditProfileRequest, UpdateStatusRequest, UserListResponse, UserResponse
from accounts.services.auth import AuthResult, get_auth_service
from accounts.services.avatar import get_avatar_storage
from accounts.services.jwt import get_jwt_service
from accounts.services.mailer import get_mailer
from accounts.services.users import get_user_service, serialize_user

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _session_user(result: AuthResult) -> SessionUser:
    return SessionUser(
        id=result.user_id,  # type: ignore[arg-type]
        email=result.email,  # type: ignore[arg-type]
        first_name=result.first_name or "",
        last_name=result.last_name or "",
        role_ids=result.role_ids,
        role_names=result.role_names,
        country_code=result.profile.get("countryCode"),
        phone=result.profile.get("phone"),
        address=result.profile.get("address"),
        avatar=result.profile.get("avatar"),
    )


@router.post("/register", response_model=RegisterResponse)
@limiter.limit("5/minute")
def register(request: Request, body: RegisterRequest, db: Session = Depends(get_db)) -> RegisterResponse:
    """Register a new user account."""
    result = get_auth_service().register(db, body.email, body.password, body.first_name, body.last_name or "")
    if not result.success:
        raise_for_failure(result.failure, result.error)
    return RegisterResponse(message="Registration successful", user=_session_user(result))


@router.post("/login", response_model=LoginResponse)
@limiter.limit("10/minute")
def login(request: Request, response: Response, body: LoginRequest, db: Session = Depends(get_db)) -> LoginResponse:
    """Authenticate and receive a JWT, both in the body and as a cookie."""
    result = get_auth_service().authenticate(db, body.email, body.password, origin=request.headers.get("origin"))
    if not result.success:
        raise_for_failure(result.failure, result.error)

    set_auth_cookie(response, result.token)  # type: ignore[arg-type]
    return LoginResponse(user=_session_user(result), token=result.token)  # type: ignore[arg-type]


@router.post("/logout", response_model=MessageResponse)
def logout(response: Response) -> MessageResponse:
    """Clear the auth cookie."""
    clear_auth_cookie(response)
    return MessageResponse(message="Logged out")


@router.get("/verify", response_model=TokenPayload)
def verify_token(token: str) -> TokenPayload:
    """Verify a JWT token and return its payload."""
    payload = get_jwt_service().decode_token(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return TokenPayload(
        valid=True,
        user_id=int(payload["sub"]),
        email=payload["email"],
        first_name=payload.get("firstName", ""),
        last_name=payload.get("lastName", ""),
        role_ids=payload.get("roleIds", []),
        role_names=payload.get("roleNames", []),
    )


@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit("3/minute")
def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Issue a reset OTP and email it after the response is sent."""
    result = get_auth_service().request_password_reset(db, body.email)
    if not result.success:
        raise_for_failure(result.failure, result.error)

    issued = result.otp
    background_tasks.add_task(get_mailer().send_otp, result.email, issued.code, issued.ttl_minutes)  # type: ignore[union-attr]
    return MessageResponse(message="OTP sent successfully")


@router.post("/verify-otp", response_model=MessageResponse)
@limiter.limit("10/minute")
def verify_otp(request: Request, body: VerifyOtpRequest, db: Session = Depends(get_db)) -> MessageResponse:
    """Check a reset OTP without consuming it."""
    result = get_auth_service().verify_otp(db, body.email, body.otp)
    if not result.success:
        raise_for_failure(result.failure, result.error)
    return MessageResponse(message="Success")


@router.post("/reset-password", response_model=MessageResponse)
@limiter.limit("5/minute")
def reset_password(request: Request, body: ResetPasswordRequest, db: Session = Depends(get_db)) -> MessageResponse:
    """Set a new password using a valid OTP."""
    result = get_auth_service().reset_password(db, body.email, body.otp, body.new_password)
    if not result.success:
        raise_for_failure(result.failure, result.error)
    return MessageResponse(message="Password updated successfully")


@router.put("/change-password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Change the password of the signed-in user."""
    result = get_auth_service().change_password(db, user.user_id, body.current_password, body.new_password)
    if not result.success:
        raise_for_failure(result.failure, result.error)
    return MessageResponse(message="Password updated successfully")


# --- profile and user endpoints ---


@router.get("/user-details/{user_id}", response_model=UserResponse)
def user_detail(
    user_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserResponse:
    """Get a single user by ID."""
    found = get_user_service().get_user(db, user_id)
    if not found:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse(**serialize_user(found))


@router.get("/user-list", response_model=UserListResponse)
def user_list(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserListResponse:
    """List all non-deleted users."""
    users = get_user_service().list_users(db)
    return UserListResponse(items=[UserResponse(**serialize_user(u)) for u in users], total=len(users))


@router.put("/edit-profile", response_model=UserResponse)
def edit_profile(
    body: EditProfileRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserResponse:
    """Update the signed-in user's own profile."""
    result = get_user_service().edit_profile(db, user.user_id, body.model_dump(exclude_none=True), user.user_id)
    if not result.success:
        raise_for_failure(result.failure, result.error)
    return UserResponse(**serialize_user(result.user))  # type: ignore[arg-type]


@router.put("/update-profile", response_model=UserResponse)
async def update_profile(
    first_name: str | None = Form(default=None, alias="firstName"),
    last_name: str | None = Form(default=None, alias="lastName"),
    country_code: int | None = Form(default=None, alias="countryCode"),
    phone: str | None = Form(default=None),
    address: str | None = Form(default=None),
    avatar: UploadFile | None = File(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserResponse:
    """Update the signed-in user's profile, optionally uploading a new avatar."""
    changes: dict = {
        "first_name": first_name,
        "last_name": last_name,
        "country_code": country_code,
        "phone": phone,
        "address": address,
    }
    if first_name is not None:
        try:
            changes["first_name"] = check_first_name(first_name)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e)) from None

    storage = get_avatar_storage()
    if avatar is not None and avatar.filename:
        error = storage.validate_upload_metadata(avatar.filename, avatar.content_type)
        if error:
            raise HTTPException(status_code=422, detail=error)
        try:
            changes["avatar"], _ = await storage.store_file(user.user_id, avatar)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e)) from None

    service = get_user_service()
    existing = service.get_user(db, user.user_id)
    previous_avatar = existing.profile.avatar if existing and existing.profile else None

    result = service.edit_profile(db, user.user_id, changes, user.user_id)
    if not result.success:
        storage.delete_file(changes.get("avatar"))
        raise_for_failure(result.failure, result.error)

    if changes.get("avatar") and previous_avatar != changes["avatar"]:
        storage.delete_file(previous_avatar)
    return UserResponse(**serialize_user(result.user))  # type: ignore[arg-type]


@router.put("/update-user-status", response_model=MessageResponse)
def update_user_status(
    body: UpdateStatusRequest,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Set a user's status."""
    result = get_user_service().update_status(db, body.user_id, body.status_id, admin.user_id)
    if not result.success:
        raise_for_failure(result.failure, result.error)
    return MessageResponse(message="Status updated successfully")


@router.delete("/delete-user/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: int,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Soft-delete a user."""
    result = get_user_service().delete_user(db, user_id, admin.user_id)
    if not result.success:
        raise_for_failure(result.failure, result.error)
    return MessageResponse(message="User deleted successfully")
