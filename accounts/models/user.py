"""User, profile and role models."""

from datetime import datetime
from enum import IntEnum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import relationship

from accounts.database import Base


class UserStatus(IntEnum):
    """Built-in lifecycle states. Deployments may add their own codes."""

    INACTIVE = 0
    ACTIVE = 1
    DELETED = 2


STATUS_LABELS = {
    UserStatus.INACTIVE: "Inactive",
    UserStatus.ACTIVE: "Active",
    UserStatus.DELETED: "Deleted",
}


class User(Base):
    """Application user."""

    __tablename__ = "users"
    __table_args__ = (
        # Soft-deleted rows may share an email with a live account
        Index(
            "uq_users_email_live",
            "email",
            unique=True,
            sqlite_where=text("status != 2"),
            postgresql_where=text("status != 2"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(256), nullable=False, index=True)
    first_name = Column(String(128), nullable=False)
    last_name = Column(String(128), nullable=False, default="")
    password_hash = Column(String(256), nullable=False)
    status = Column(Integer, nullable=False, default=int(UserStatus.INACTIVE))
    company_id = Column(Integer, nullable=True)
    product_categories = Column(String(512), nullable=True)  # comma-separated tags
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_by = Column(Integer, nullable=True)
    updated_at = Column(DateTime, nullable=True)
    updated_by = Column(Integer, nullable=True)
    last_login_at = Column(DateTime, nullable=True)

    profile = relationship("UserProfile", back_populates="user", uselist=False, cascade="all, delete-orphan")
    role_links = relationship("UserRole", back_populates="user", cascade="all, delete-orphan")

    @property
    def role_ids(self) -> list[int]:
        return sorted(link.role_id for link in self.role_links)

    @property
    def role_names(self) -> list[str]:
        return [link.role.name for link in sorted(self.role_links, key=lambda link: link.role_id) if link.role]


class UserProfile(Base):
    """Optional contact details and avatar for a user."""

    __tablename__ = "users_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    country_code = Column(Integer, nullable=True)
    phone = Column(String(32), nullable=True)
    address = Column(String(256), nullable=True)
    avatar = Column(String(512), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="profile")


class Role(Base):
    """Named role a user can hold."""

    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(128), nullable=False, unique=True)
    status = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class UserRole(Base):
    """Role membership, recording who assigned it and when."""

    __tablename__ = "users_roles"
    __table_args__ = (UniqueConstraint("user_id", "role_id", name="uq_users_roles_user_role"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False, index=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    user = relationship("User", back_populates="role_links")
    role = relationship("Role", lazy="joined")
