from __future__ import annotations

from logging.config import fileConfig

from alembic import context

from casenotes.config import settings
from casenotes.infrastructure.db.engine import get_engine
from casenotes.infrastructure.db.models_sqlalchemy import Base

config = context.config
PLACEHOLDER_URL = "sqlite:///./data/dev.db"

# startup passes the real URL; the ini placeholder only applies to a bare `alembic` call
database_url = config.get_main_option("sqlalchemy.url") or PLACEHOLDER_URL
if database_url == PLACEHOLDER_URL:
    database_url = settings.database_url

if config.config_file_name:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def _configure_options(url: str) -> dict:
    # SQLite cannot ALTER most constraints in place.
    return {
        "target_metadata": target_metadata,
        "render_as_batch": url.startswith("sqlite"),
        "compare_type": True,
    }


def run_migrations_offline() -> None:
    context.configure(
        url=database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(database_url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = get_engine(database_url, echo=False)
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, **_configure_options(database_url))
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
