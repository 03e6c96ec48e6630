import sys
import os
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Import settings FIRST
from app.core.config import get_settings
settings = get_settings()

# Import Base BEFORE importing models
from app.db.base import Base
import app.models  # noqa: F401
# Import custom types
from app.models.db_types import UUID, JSONB


# Alembic Config
config = context.config
target_metadata = Base.metadata

# Logging setup
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def sync_url(url: str) -> str:
    """Alembic runs synchronously; set ALEMBIC_DB_URL to a sync driver for PostgreSQL"""
    return url.replace("+aiosqlite", "")


def render_item(type_, object_, autogen_context):
    """Custom renderer for SQLAlchemy types in migrations"""
    if isinstance(type_, UUID):
        return "sa.String(length=36)"
    elif isinstance(type_, JSONB):
        return "sa.Text()"
    return False


def run_migrations_offline() -> None:
    '''Run migrations in 'offline' mode'''
    url = sync_url(settings.ALEMBIC_DB_URL)
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=False,
        compare_server_default=False,
        render_item=render_item,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    '''Run migrations in 'online' mode'''
    url = sync_url(settings.ALEMBIC_DB_URL)

    configuration = {
        "sqlalchemy.url": url,
        "sqlalchemy.echo": False,
    }

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=False,
            compare_server_default=False,
            render_as_batch=True,
            render_item=render_item,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
