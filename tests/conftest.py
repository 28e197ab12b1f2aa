"""Pytest configuration and fixtures."""

import os

# Must be set before any accounts import so Settings picks them up.
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("RESTRICTED_ORIGINS", "restricted.example.com")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DEFAULT_ROLE_ID", "2")
os.environ.setdefault("ADMIN_ROLE_IDS", "1")
os.environ.setdefault("SMTP_HOST", "")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from accounts.config import get_settings
from accounts.database import Base, get_db
from accounts.models.otp import OneTimePassword  # noqa: F401
from accounts.models.user import Role, UserRole
from accounts.services.auth import AuthService
from accounts.services.jwt import SessionClaims, get_jwt_service
from accounts.services.password import PasswordHasher

TEST_PASSWORD = "Passw0rd!"


@pytest.fixture(name="db_session")
def db_session_fixture():
    """Create an in-memory SQLite database with the standard roles."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    testing_session_local = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = testing_session_local()
    session.add_all([Role(id=1, name="Admin"), Role(id=2, name="User"), Role(id=3, name="Editor")])
    session.commit()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="client")
def client_fixture(db_session: Session):
    """Create a test client with overridden DB dependency and disabled rate limiting."""
    from accounts.rate_limit import limiter
    from main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False
    with TestClient(app) as c:
        yield c
    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture(name="auth_service")
def auth_service_fixture() -> AuthService:
    return AuthService(get_settings().auth_policy(), hasher=PasswordHasher(rounds=4))


def _token_for(result) -> str:
    return get_jwt_service().create_token(
        SessionClaims(
            user_id=result.user_id,
            email=result.email,
            first_name=result.first_name,
            last_name=result.last_name,
            role_ids=result.role_ids,
            role_names=result.role_names,
        )
    )


@pytest.fixture(name="test_user")
def test_user_fixture(db_session: Session, auth_service: AuthService):
    """Create a default-role user and return its details and a token."""
    result = auth_service.register(db_session, "test@example.com", TEST_PASSWORD, "Test", "User")
    assert result.success

    return {
        "user_id": result.user_id,
        "email": result.email,
        "password": TEST_PASSWORD,
        "token": _token_for(result),
    }


@pytest.fixture(name="admin_user")
def admin_user_fixture(db_session: Session, auth_service: AuthService):
    """Create a user holding the admin role in addition to the default role."""
    result = auth_service.register(db_session, "admin@example.com", TEST_PASSWORD, "Ada", "Admin")
    db_session.add(UserRole(user_id=result.user_id, role_id=1, created_by=result.user_id))
    db_session.commit()
    result.role_ids = [1, 2]
    result.role_names = ["Admin", "User"]

    return {
        "user_id": result.user_id,
        "email": result.email,
        "password": TEST_PASSWORD,
        "token": _token_for(result),
        "headers": {"Authorization": f"Bearer {_token_for(result)}"},
    }
