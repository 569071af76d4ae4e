import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from common.core.config_service import get_env_file_path, load_database_settings
from common.logging.setup_logging import setup_logging

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# The todolist CLI configures logging itself and sets configure_logger=False.
if config.attributes.get("configure_logger", True):
    use_alembic_logging = os.getenv("ALEMBIC_USE_DEFAULT_LOGGING", "false").lower() in {"true", "1", "t", "yes"}
    if use_alembic_logging and config.config_file_name is not None:
        fileConfig(config.config_file_name)
    else:
        setup_logging()

# Plain SQL migrations, there is no model metadata to autogenerate from
target_metadata = None

if not config.get_main_option("sqlalchemy.url"):
    settings = load_database_settings(get_env_file_path())
    config.set_main_option("sqlalchemy.url", settings.postgres.sync_url.replace("%", "%%"))


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    Not supported: non-transactional migrations need a live connection to
    switch to autocommit.
    """
    raise RuntimeError("Offline mode is not supported")


def run_migrations_online() -> None:
    """Run migrations in 'online' mode.

    In this scenario we need to create an Engine
    and associate a connection with the context.

    """
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            transaction_per_migration=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
