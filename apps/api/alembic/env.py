import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from greenhouse_desk.core.config import settings
from greenhouse_desk.models.user import Base
import greenhouse_desk.models.department  # noqa: F401
import greenhouse_desk.models.ticket  # noqa: F401
import greenhouse_desk.models.comment  # noqa: F401
import greenhouse_desk.models.history  # noqa: F401
import greenhouse_desk.models.outbound_email  # noqa: F401
import greenhouse_desk.models.sync_state  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def get_database_url() -> str:
    url = os.getenv("DATABASE_URL") or settings.database_url
    if not url:
        raise RuntimeError("DATABASE_URL is not set")
    return url


def run_migrations_offline() -> None:
    url = get_database_url()
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = get_database_url()

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
        future=True,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
