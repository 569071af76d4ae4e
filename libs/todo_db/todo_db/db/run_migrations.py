"""Alembic-backed runner for the bundled SQL migrations.

Every migration of :data:`todo_db.migrations.MIGRATIONS` has exactly one Alembic
revision whose id is derived from the migration name. The revision scripts only
delegate to :func:`apply_migration`, so the SQL files stay the single source of
truth while Alembic tracks what has been applied in ``alembic_version``.
"""

from datetime import datetime
from pathlib import Path

from alembic import command, op
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from alembic.util import CommandError
from pydantic import BaseModel
from sqlalchemy import create_engine, pool
from sqlalchemy.exc import SQLAlchemyError

from common.core.app_error import Errors
from common.core.config_service import PostgresConfig
from common.utils.utils import get_logger, get_now
from todo_db.migrations import (
    MIGRATIONS,
    MIGRATIONS_DIR,
    Direction,
    Migrations,
    revision_id,
    validate_migration_name,
)

logger = get_logger(__name__)

# libs/todo_db/todo_db/db/run_migrations.py -> libs/todo_db
TODO_DB_ROOT = Path(__file__).resolve().parent.parent.parent
ALEMBIC_INI = TODO_DB_ROOT / "alembic.ini"


class MigrationStatus(BaseModel):
    name: str
    applied: bool


def build_alembic_config(postgres: PostgresConfig | None = None) -> Config:
    alembic_cfg = Config(str(ALEMBIC_INI))
    script_location = alembic_cfg.get_main_option("script_location")
    if script_location and not Path(script_location).is_absolute():
        alembic_cfg.set_main_option("script_location", str(TODO_DB_ROOT / script_location))

    # Disable Alembic's internal logging config so it doesn't override our structured logging.
    alembic_cfg.attributes["configure_logger"] = False
    if postgres is not None and postgres.url:
        # ConfigParser interpolation, percent-encoded credentials must be escaped
        alembic_cfg.set_main_option("sqlalchemy.url", postgres.sync_url.replace("%", "%%"))
    return alembic_cfg


def apply_migration(name: str, direction: Direction, migrations: Migrations | None = None) -> None:
    """Run one direction of a registry migration on the current Alembic connection.

    Must be called from an Alembic revision's ``upgrade``/``downgrade``.
    Non-transactional migrations run in an autocommit block.
    """
    registry = migrations if migrations is not None else MIGRATIONS
    migration = registry.get(name)
    statement = migration.sql(direction)
    if not statement.strip():
        logger.info("Migration has no SQL to run", migration=name, direction=direction)
        return

    logger.info("Applying migration", migration=name, direction=direction, transactional=migration.transactional)
    if migration.transactional:
        _execute(statement)
    else:
        with op.get_context().autocommit_block():
            _execute(statement)


def _execute(statement: str) -> None:
    # Raw driver execution: no bind parameter parsing of ':' or '%' in the SQL text
    _ = op.get_bind().exec_driver_sql(statement, execution_options={"no_parameters": True})


def verify_revisions(alembic_cfg: Config, migrations: Migrations | None = None) -> list[str]:
    """Check that the Alembic revision chain mirrors the registry, base first.

    Raises:
        AppException: ``migration/revision_mismatch`` when they differ.
    """
    registry = migrations if migrations is not None else MIGRATIONS
    script = ScriptDirectory.from_config(alembic_cfg)
    chain = [revision.revision for revision in script.walk_revisions()]
    chain.reverse()
    expected = [revision_id(migration.name) for migration in registry.sorted()]

    if chain != expected:
        raise Errors.Migration.REVISION_MISMATCH.create(
            details={
                "missing_revisions": sorted(set(expected) - set(chain)),
                "unknown_revisions": sorted(set(chain) - set(expected)),
                "revisions": chain,
                "migrations": expected,
            }
        )
    return chain


def _applied_revisions(alembic_cfg: Config, postgres: PostgresConfig) -> set[str]:
    script = ScriptDirectory.from_config(alembic_cfg)
    engine = create_engine(postgres.sync_url, poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            heads = MigrationContext.configure(connection).get_current_heads()
    finally:
        engine.dispose()

    if not heads:
        return set()
    return {revision.revision for revision in script.iterate_revisions(heads, "base")}


def migration_status(postgres: PostgresConfig, migrations: Migrations | None = None) -> list[MigrationStatus]:
    """List every migration in order together with whether it is applied."""
    registry = migrations if migrations is not None else MIGRATIONS
    alembic_cfg = build_alembic_config(postgres)
    try:
        verify_revisions(alembic_cfg, registry)
        applied = _applied_revisions(alembic_cfg, postgres)
    except (SQLAlchemyError, CommandError) as e:
        raise Errors.Migration.FAILED.create(message="Cannot read migration status", cause=e) from e

    return [
        MigrationStatus(name=migration.name, applied=revision_id(migration.name) in applied)
        for migration in registry.sorted()
    ]


def run_migrations(postgres: PostgresConfig, migrations: Migrations | None = None) -> list[str]:
    """Apply all pending migrations in order.

    Returns:
        Names of the migrations that were applied, oldest first.
    """
    logger.info("Starting database migrations", operation="run_migrations")
    pending = [status.name for status in migration_status(postgres, migrations) if not status.applied]
    if not pending:
        logger.info("No new migrations to run", operation="run_migrations")
        return []

    try:
        command.upgrade(build_alembic_config(postgres), "head")
    except (SQLAlchemyError, CommandError) as e:
        raise Errors.Migration.FAILED.create(details={"pending": pending}, cause=e) from e

    logger.info(
        "Database migrations completed successfully",
        operation="run_migrations",
        status="success",
        migrations=pending,
    )
    return pending


def rollback_migration(postgres: PostgresConfig, migrations: Migrations | None = None) -> str | None:
    """Roll back the most recently applied migration.

    Returns:
        The rolled back migration name, or None when nothing is applied.
    """
    applied = [status.name for status in migration_status(postgres, migrations) if status.applied]
    if not applied:
        logger.info("No migrations to roll back", operation="rollback")
        return None

    last = applied[-1]
    try:
        command.downgrade(build_alembic_config(postgres), "-1")
    except (SQLAlchemyError, CommandError) as e:
        raise Errors.Migration.FAILED.create(details={"migration": last}, cause=e) from e

    logger.info("Rolled back migration", operation="rollback", migration=last)
    return last


def ensure_version_table(postgres: PostgresConfig) -> None:
    """Create Alembic's ``alembic_version`` table if it doesn't exist yet."""
    try:
        command.ensure_version(build_alembic_config(postgres))
    except (SQLAlchemyError, CommandError) as e:
        raise Errors.Migration.FAILED.create(message="Cannot create the migrations table", cause=e) from e


def normalize_migration_comment(comment: str) -> str:
    return "_".join(comment.strip().lower().split())


def create_sql_migration(
    comment: str,
    directory: Path | None = None,
    now: datetime | None = None,
    alembic_cfg: Config | None = None,
) -> list[Path]:
    """Create empty ``.up.sql``/``.down.sql`` files and their Alembic revision.

    The file names are ``<UTC yyyymmddHHMMSS>_<comment>``.

    Returns:
        The created files: up script, down script, Alembic revision.
    """
    target_dir = directory or MIGRATIONS_DIR
    timestamp = (now or get_now()).strftime("%Y%m%d%H%M%S")
    name = validate_migration_name(f"{timestamp}_{normalize_migration_comment(comment)}")

    up_path = target_dir / f"{name}.up.sql"
    down_path = target_dir / f"{name}.down.sql"
    for path in (up_path, down_path):
        if path.exists():
            raise Errors.Migration.DUPLICATE.create(
                message=f"Migration file {path.name} already exists", details={"file": str(path)}
            )

    cfg = alembic_cfg or build_alembic_config()
    try:
        script = command.revision(cfg, message=name, rev_id=revision_id(name))
    except CommandError as e:
        raise Errors.Migration.FAILED.create(message="Cannot create the Alembic revision", cause=e) from e

    up_path.write_text("", encoding="utf-8")
    down_path.write_text("", encoding="utf-8")
    created = [up_path, down_path]

    revision_scripts = script if isinstance(script, list) else [script]
    created.extend(Path(revision_script.path) for revision_script in revision_scripts if revision_script is not None)

    logger.info("Created migration", migration=name, files=[str(path) for path in created])
    return created

