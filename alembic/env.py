"""Alembic environment for the account tables.

The database URL comes from ``DATABASE_URL`` (via .env) unless overridden on
the command line with ``alembic -x db_url=... upgrade head``.
"""

import sys
from logging.config import fileConfig
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import create_engine, pool

from alembic import context

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

load_dotenv()

from accounts.config import get_settings
from accounts.database import Base

# Registers every table on Base.metadata
from accounts.models.otp import OneTimePassword  # noqa: F401
from accounts.models.user import Role, User, UserProfile, UserRole  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    return context.get_x_argument(as_dictionary=True).get("db_url") or get_settings().DATABASE_URL


def _configure_kwargs(url: str) -> dict:
    # SQLite cannot ALTER most things in place; batch mode recreates tables instead
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of connecting."""
    url = _database_url()
    context.configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"}, **_configure_kwargs(url))
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = _database_url()
    connectable = create_engine(
        url,
        poolclass=pool.NullPool,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {},
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs(url))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
