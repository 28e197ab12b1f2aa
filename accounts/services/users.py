"""User management service: profiles, statuses, roles and listings."""

import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from accounts.config import AuthPolicy, get_settings
from accounts.errors import AuthFailure
from accounts.models.user import STATUS_LABELS, Role, User, UserProfile, UserRole, UserStatus
from accounts.services.auth import is_email_conflict, normalize_email
from accounts.services.password import PasswordHasher, get_password_hasher

logger = logging.getLogger("tenant_accounts")

PROFILE_FIELDS = ("country_code", "phone", "address", "avatar")
SORT_COLUMNS = {
    "name": User.first_name,
    "email": User.email,
    "status": User.status,
    "createdAt": User.created_at,
    "updatedAt": User.updated_at,
}


@dataclass
class UserResult:
    """Result of a user management operation."""

    success: bool
    failure: AuthFailure | None = None
    error: str | None = None
    user: User | None = None
    password: str | None = None
    affected: int = 0

    @classmethod
    def fail(cls, failure: AuthFailure, error: str) -> "UserResult":
        return cls(success=False, failure=failure, error=error)


@dataclass
class UserSearch:
    """Filters and paging for the user list."""

    current_status: int | None = None
    role: int | None = None
    last_updated_by: int | None = None
    search: str | None = None
    sort_by: str = "createdAt"
    sort_order: str = "DESC"
    page: int = 1
    limit: int | None = None


@dataclass
class StatusChange:
    user_id: int
    status: int


@dataclass
class NewUser:
    """Administrator-supplied details for a new account."""

    first_name: str
    email: str
    last_name: str = ""
    phone: str | None = None
    address: str | None = None
    avatar: str | None = None
    company_id: int | None = None
    product_categories: list[str] | None = None
    role_ids: list[int] = field(default_factory=list)


def generate_password(length: int = 12) -> str:
    """Random password that satisfies the password policy."""
    alphabet = string.ascii_letters + string.digits
    body = [secrets.choice(alphabet) for _ in range(length - 3)]
    body += [secrets.choice(string.ascii_letters), secrets.choice(string.digits), secrets.choice("@$.!%*#?&")]
    secrets.SystemRandom().shuffle(body)
    return "".join(body)


def escape_like(value: str) -> str:
    """Make ``%`` and ``_`` match literally in a LIKE pattern using ``\\`` as the escape."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def split_categories(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [part for part in raw.split(",") if part]


def serialize_user(user: User) -> dict[str, Any]:
    """Flatten a user and its profile into a response dict."""
    profile = user.profile
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name or "",
        "status": user.status,
        "status_label": STATUS_LABELS.get(user.status),
        "company_id": user.company_id,
        "product_categories": split_categories(user.product_categories),
        "country_code": profile.country_code if profile else None,
        "phone": profile.phone if profile else None,
        "address": profile.address if profile else None,
        "avatar": profile.avatar if profile else None,
        "role_ids": user.role_ids,
        "role_names": user.role_names,
        "created_at": user.created_at,
        "updated_at": user.updated_at,
        "updated_by": user.updated_by,
    }


class UserService:
    """Handles user administration and self-service profile updates."""

    def __init__(self, policy: AuthPolicy, hasher: PasswordHasher | None = None) -> None:
        self.policy = policy
        self.hasher = hasher or get_password_hasher()

    @property
    def known_statuses(self) -> set[int]:
        return {int(s) for s in UserStatus} | {self.policy.default_user_status, self.policy.deleted_user_status}

    def _visible(self, db: Session):
        return (
            db.query(User)
            .options(selectinload(User.profile), selectinload(User.role_links))
            .filter(User.status != self.policy.deleted_user_status)
        )

    def get_user(self, db: Session, user_id: int) -> User | None:
        """Get a non-deleted user by ID."""
        return self._visible(db).filter(User.id == user_id).first()

    def list_users(self, db: Session) -> list[User]:
        """All non-deleted users, newest first."""
        return self._visible(db).order_by(User.id.desc()).all()

    def search_users(self, db: Session, filters: UserSearch) -> tuple[list[User], int]:
        """Paginated, filtered user list. Returns (items, total)."""
        query = self._visible(db)
        if filters.current_status is not None:
            query = query.filter(User.status == filters.current_status)
        if filters.role is not None:
            query = query.filter(User.role_links.any(UserRole.role_id == filters.role))
        if filters.last_updated_by is not None:
            query = query.filter(User.updated_by == filters.last_updated_by)
        if filters.search:
            pattern = f"%{escape_like(filters.search.strip().lower())}%"
            query = query.filter(
                or_(
                    func.lower(User.email).like(pattern, escape="\\"),
                    func.lower(User.first_name).like(pattern, escape="\\"),
                    func.lower(User.last_name).like(pattern, escape="\\"),
                )
            )

        total = query.count()
        column = SORT_COLUMNS.get(filters.sort_by, User.created_at)
        ordering = column.asc() if filters.sort_order.upper() == "ASC" else column.desc()
        limit = filters.limit or get_settings().DEFAULT_RECORDS_LIMIT
        page = max(filters.page, 1)
        items = query.order_by(ordering, User.id.desc()).offset((page - 1) * limit).limit(limit).all()
        return items, total

    def email_exists(self, db: Session, email: str) -> bool:
        """True if a non-deleted account uses the email."""
        return (
            db.query(User.id)
            .filter(func.lower(User.email) == normalize_email(email), User.status != self.policy.deleted_user_status)
            .first()
            is not None
        )

    # --- mutations ---

    def _set_roles(self, db: Session, user: User, role_ids: list[int], actor_id: int | None) -> str | None:
        wanted = set(role_ids)
        found = {role_id for (role_id,) in db.query(Role.id).filter(Role.id.in_(wanted)).all()}
        missing = wanted - found
        if missing:
            return f"Unknown role ids: {', '.join(str(r) for r in sorted(missing))}"

        for link in list(user.role_links):
            if link.role_id not in wanted:
                user.role_links.remove(link)
        current = {link.role_id for link in user.role_links}
        for role_id in sorted(wanted - current):
            user.role_links.append(UserRole(role_id=role_id, created_by=actor_id))
        return None

    def _apply_changes(self, db: Session, user: User, changes: dict[str, Any], actor_id: int | None) -> UserResult | None:
        if "email" in changes and changes["email"]:
            email = normalize_email(changes["email"])
            if email != user.email:
                if self.email_exists(db, email):
                    return UserResult.fail(AuthFailure.DUPLICATE_EMAIL, "Email already registered")
                user.email = email

        if changes.get("first_name"):
            user.first_name = changes["first_name"].strip()
        if changes.get("last_name") is not None:
            user.last_name = changes["last_name"].strip()
        if "company_id" in changes and changes["company_id"] is not None:
            user.company_id = changes["company_id"]
        if changes.get("product_categories") is not None:
            user.product_categories = ",".join(changes["product_categories"])
        if changes.get("status") is not None:
            if changes["status"] not in self.known_statuses:
                return UserResult.fail(AuthFailure.VALIDATION, "Invalid status")
            user.status = changes["status"]
        if changes.get("role_ids") is not None:
            error = self._set_roles(db, user, changes["role_ids"], actor_id)
            if error:
                return UserResult.fail(AuthFailure.VALIDATION, error)

        profile_changes = {key: changes[key] for key in PROFILE_FIELDS if changes.get(key) is not None}
        if profile_changes:
            if user.profile is None:
                user.profile = UserProfile()
            for key, value in profile_changes.items():
                setattr(user.profile, key, value)

        user.updated_at = datetime.utcnow()
        user.updated_by = actor_id
        return None

    def edit_profile(self, db: Session, user_id: int, changes: dict[str, Any], actor_id: int | None) -> UserResult:
        """Apply a partial update; ``None`` values leave fields untouched."""
        try:
            user = self.get_user(db, user_id)
            if user is None:
                return UserResult.fail(AuthFailure.UNKNOWN_USER, "User not found")
            failed = self._apply_changes(db, user, changes, actor_id)
            if failed:
                db.rollback()
                return failed
            db.commit()
            db.refresh(user)
        except SQLAlchemyError as e:
            db.rollback()
            if isinstance(e, IntegrityError) and is_email_conflict(e):
                return UserResult.fail(AuthFailure.DUPLICATE_EMAIL, "Email already registered")
            logger.exception("edit_profile failed: user_id=%s fields=%s", user_id, sorted(changes))
            return UserResult.fail(AuthFailure.PERSISTENCE, "Internal server error")
        return UserResult(success=True, user=user)

    def update_status(self, db: Session, user_id: int, status: int, actor_id: int | None) -> UserResult:
        return self.update_statuses(db, [StatusChange(user_id=user_id, status=status)], actor_id)

    def update_statuses(self, db: Session, changes: list[StatusChange], actor_id: int | None) -> UserResult:
        """Set the status of one or more users in a single transaction."""
        for change in changes:
            if change.status not in self.known_statuses:
                return UserResult.fail(AuthFailure.VALIDATION, f"Invalid status {change.status}")
        try:
            now = datetime.utcnow()
            for change in changes:
                user = db.get(User, change.user_id)
                if user is None:
                    db.rollback()
                    return UserResult.fail(AuthFailure.UNKNOWN_USER, f"User {change.user_id} not found")
                user.status = change.status
                user.updated_at = now
                user.updated_by = actor_id
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            if isinstance(e, IntegrityError) and is_email_conflict(e):
                return UserResult.fail(AuthFailure.DUPLICATE_EMAIL, "Another active account uses this email")
            logger.exception("update_status failed: %s", [(c.user_id, c.status) for c in changes])
            return UserResult.fail(AuthFailure.PERSISTENCE, "Internal server error")
        return UserResult(success=True, affected=len(changes))

    def delete_user(self, db: Session, user_id: int, actor_id: int | None) -> UserResult:
        """Soft delete: flip the status to the deleted code."""
        if self.get_user(db, user_id) is None:
            return UserResult.fail(AuthFailure.UNKNOWN_USER, "User not found")
        return self.update_status(db, user_id, self.policy.deleted_user_status, actor_id)

    def create_user(self, db: Session, payload: NewUser, actor_id: int | None) -> UserResult:
        """Create an account on behalf of someone else with a generated password."""
        email = normalize_email(payload.email)
        password = generate_password()
        try:
            if self.email_exists(db, email):
                return UserResult.fail(AuthFailure.DUPLICATE_EMAIL, "Email already registered")

            user = User(
                email=email,
                first_name=payload.first_name.strip(),
                last_name=(payload.last_name or "").strip(),
                password_hash=self.hasher.hash(password),
                status=self.policy.default_user_status,
                company_id=payload.company_id,
                product_categories=",".join(payload.product_categories) if payload.product_categories else None,
                created_by=actor_id,
            )
            db.add(user)
            if payload.phone or payload.address or payload.avatar:
                user.profile = UserProfile(phone=payload.phone, address=payload.address, avatar=payload.avatar)
            error = self._set_roles(db, user, payload.role_ids or [self.policy.default_role_id], actor_id)
            if error:
                db.rollback()
                return UserResult.fail(AuthFailure.VALIDATION, error)
            db.commit()
            db.refresh(user)
        except SQLAlchemyError as e:
            db.rollback()
            if isinstance(e, IntegrityError) and is_email_conflict(e):
                return UserResult.fail(AuthFailure.DUPLICATE_EMAIL, "Email already registered")
            logger.exception("create_user failed: email=%s actor=%s", email, actor_id)
            return UserResult.fail(AuthFailure.PERSISTENCE, "Internal server error")

        logger.info("User %s created by %s", user.id, actor_id)
        return UserResult(success=True, user=user, password=password)

    # --- roles and lookups ---

    def list_roles(self, db: Session) -> list[Role]:
        return db.query(Role).filter(Role.status == 1).order_by(Role.id).all()

    def role_counts(self, db: Session) -> list[dict[str, Any]]:
        """Number of non-deleted users holding each role."""
        rows = (
            db.query(Role.id, Role.name, func.count(User.id))
            .outerjoin(UserRole, UserRole.role_id == Role.id)
            .outerjoin(User, (User.id == UserRole.user_id) & (User.status != self.policy.deleted_user_status))
            .group_by(Role.id, Role.name)
            .order_by(Role.id)
            .all()
        )
        return [{"role_id": role_id, "role_name": name, "count": count} for role_id, name, count in rows]

    def filter_options(self, db: Session) -> dict[str, list[dict[str, Any]]]:
        """Values the user list can be filtered by."""
        updater_ids = {
            updater
            for (updater,) in db.query(User.updated_by).filter(User.updated_by.isnot(None)).distinct().all()
        }
        updaters = db.query(User).filter(User.id.in_(updater_ids)).order_by(User.first_name).all() if updater_ids else []
        return {
            "statuses": [{"value": int(s), "label": label} for s, label in STATUS_LABELS.items()],
            "roles": [{"value": role.id, "label": role.name} for role in self.list_roles(db)],
            "updated_by": [
                {"value": u.id, "label": f"{u.first_name} {u.last_name or ''}".strip()} for u in updaters
            ],
        }


_user_service: UserService | None = None


def get_user_service() -> UserService:
    """Get singleton user service instance."""
    global _user_service
    if _user_service is None:
        _user_service = UserService(get_settings().auth_policy())
    return _user_service
