import typer

from common.core.app_error import AppException
from common.core.config_service import DatabaseSettings, get_env_file_path, load_database_settings
from common.utils.utils import get_logger
from todo_db.db.create_database import create_database
from todo_db.db.run_migrations import (
    create_sql_migration,
    ensure_version_table,
    migration_status,
    rollback_migration,
    run_migrations,
)

# Get logger for this module
logger = get_logger(__name__)

# Create a Typer app
app = typer.Typer(help="Database management commands", no_args_is_help=True)


def _settings() -> DatabaseSettings:
    return load_database_settings(get_env_file_path())


def _fail(message: str, error: AppException) -> typer.Exit:
    logger.error(message, error=error.details)
    return typer.Exit(code=1)


@app.command()
def init() -> None:
    """Create the database if missing and the migrations table."""
    logger.info("Initializing database...")
    try:
        postgres = _settings().postgres
        _ = create_database(postgres)
        ensure_version_table(postgres)
    except AppException as e:
        raise _fail("Database initialization failed!", e) from e
    logger.info("Database initialized successfully!")


@app.command()
def migrate() -> None:
    """Apply all pending migrations."""
    logger.info("Running database migrations...")
    try:
        applied = run_migrations(_settings().postgres)
    except AppException as e:
        raise _fail("Database migrations failed!", e) from e

    if applied:
        logger.info("Migrated", migrations=applied)
    else:
        logger.info("No new migrations to run (database is up to date)")


@app.command()
def rollback() -> None:
    """Roll back the most recently applied migration."""
    logger.info("Rolling back the last migration...")
    try:
        rolled_back = rollback_migration(_settings().postgres)
    except AppException as e:
        raise _fail("Rollback failed!", e) from e

    if rolled_back:
        logger.info("Rolled back", migration=rolled_back)
    else:
        logger.info("Nothing to roll back")


@app.command()
def status() -> None:
    """Print every migration and whether it is applied."""
    try:
        statuses = migration_status(_settings().postgres)
    except AppException as e:
        raise _fail("Cannot read migration status!", e) from e

    for entry in statuses:
        typer.echo(f"{'applied' if entry.applied else 'pending':<8} {entry.name}")
    pending = sum(1 for entry in statuses if not entry.applied)
    logger.info("Migration status", total=len(statuses), pending=pending)


@app.command("create-sql")
def create_sql(name: str = typer.Argument(..., help="Short description, e.g. add_due_dates")) -> None:
    """Create up and down SQL migration files."""
    try:
        created = create_sql_migration(name)
    except AppException as e:
        raise _fail("Cannot create migration!", e) from e

    for path in created:
        typer.echo(f"created {path}")


if __name__ == "__main__":
    app()
