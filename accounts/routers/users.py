"""User management endpoints. All require an administrator role."""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from accounts.config import get_settings
from accounts.database import get_db
from accounts.dependencies import CurrentUser, require_admin
from accounts.errors import raise_for_failure
from accounts.schemas.auth import MessageResponse
from accounts.schemas.user import (
    AdminEditProfileRequest,
    CreatedUserResponse,
    CreateUserRequest,
    EmailExistsResponse,
    EmailRequest,
    FilterListResponse,
    RoleCountResponse,
    RoleResponse,
    StatusUpdateItem,
    UserPageResponse,
    UserResponse,
    UserSearchRequest,
)
from accounts.services.mailer import get_mailer
from accounts.services.users import NewUser, StatusChange, UserSearch, get_user_service, serialize_user

router = APIRouter(prefix="/user-management", tags=["User Management"])


@router.get("/get-roles-count", response_model=list[RoleCountResponse])
def get_roles_count(
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[RoleCountResponse]:
    """Number of users in each role."""
    return [RoleCountResponse(**row) for row in get_user_service().role_counts(db)]


@router.get("/filters-list", response_model=FilterListResponse)
def get_filters_list(
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> FilterListResponse:
    """Options for the user list filters."""
    return FilterListResponse(**get_user_service().filter_options(db))


@router.get("/get-roles-list", response_model=list[RoleResponse])
def get_roles_list(
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[RoleResponse]:
    """Active roles."""
    return [RoleResponse(id=role.id, name=role.name) for role in get_user_service().list_roles(db)]


@router.get("/user-details/{user_id}", response_model=UserResponse)
def get_user_detail(
    user_id: int,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> UserResponse:
    """Get a single user by ID."""
    user = get_user_service().get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse(**serialize_user(user))


@router.post("/create-user", response_model=CreatedUserResponse)
def create_user(
    body: CreateUserRequest,
    background_tasks: BackgroundTasks,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> CreatedUserResponse:
    """Create an account and email its temporary password."""
    payload = NewUser(
        first_name=body.first_name,
        last_name=body.last_name or "",
        email=body.email,
        phone=body.phone,
        address=body.address,
        avatar=body.avatar,
        company_id=body.company_id,
        product_categories=body.product_categories,
        role_ids=body.role_ids,
    )
    result = get_user_service().create_user(db, payload, admin.user_id)
    if not result.success:
        raise_for_failure(result.failure, result.error)

    user = result.user
    background_tasks.add_task(get_mailer().send_welcome, user.email, user.first_name, result.password)  # type: ignore[union-attr]
    return CreatedUserResponse(message="User created successfully", user=UserResponse(**serialize_user(user)))  # type: ignore[arg-type]


@router.put("/edit-profile/{user_id}", response_model=UserResponse)
def edit_profile(
    user_id: int,
    body: AdminEditProfileRequest,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> UserResponse:
    """Update any user's profile, status and roles."""
    result = get_user_service().edit_profile(db, user_id, body.model_dump(exclude_none=True), admin.user_id)
    if not result.success:
        raise_for_failure(result.failure, result.error)
    return UserResponse(**serialize_user(result.user))  # type: ignore[arg-type]


@router.post("/get-users-list", response_model=UserPageResponse)
def get_users_list(
    body: UserSearchRequest,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> UserPageResponse:
    """Filtered, paginated user list."""
    filters = UserSearch(**body.model_dump())
    items, total = get_user_service().search_users(db, filters)
    return UserPageResponse(
        items=[UserResponse(**serialize_user(u)) for u in items],
        total=total,
        page=filters.page,
        limit=filters.limit or get_settings().DEFAULT_RECORDS_LIMIT,
    )


@router.put("/update-status", response_model=MessageResponse)
def update_status(
    body: list[StatusUpdateItem],
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Set the status of several users at once."""
    if not body:
        raise HTTPException(status_code=422, detail="No users to update")
    changes = [StatusChange(user_id=item.user_id, status=item.status) for item in body]
    result = get_user_service().update_statuses(db, changes, admin.user_id)
    if not result.success:
        raise_for_failure(result.failure, result.error)
    return MessageResponse(message=f"Updated {result.affected} user(s)")


@router.post("/is-user-exist", response_model=EmailExistsResponse)
def is_user_exist(
    body: EmailRequest,
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> EmailExistsResponse:
    """Check whether an email is already taken."""
    return EmailExistsResponse(email=body.email, exists=get_user_service().email_exists(db, body.email))
