import re
from collections.abc import Iterator
from importlib.resources import files
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Literal

from pydantic import Field

from common.core.app_error import AppException, Errors
from common.utils.json_model import ImmutableJsonModel
from common.utils.utils import get_logger

logger = get_logger()

Direction = Literal["up", "down"]

MIGRATION_NAME_RE = re.compile(r"^(\d{1,14})_([0-9a-z_\-]+)$")
_MIGRATION_FILE_RE = re.compile(r"^(\d{1,14})_([0-9a-z_\-]+)\.(tx\.)?(up|down)\.sql$")


class Migration(ImmutableJsonModel):
    """A named pair of SQL scripts evolving the schema one step."""

    name: str = Field(..., description="<timestamp>_<comment>, sorts chronologically")
    up: str = Field(default="", description="SQL applied when migrating forward")
    down: str = Field(default="", description="SQL applied when rolling back")
    transactional: bool = Field(default=False, description="Run inside the migration transaction")

    @property
    def timestamp(self) -> str:
        return self.name.split("_", 1)[0]

    @property
    def comment(self) -> str:
        return self.name.split("_", 1)[1]

    def sql(self, direction: Direction) -> str:
        return self.up if direction == "up" else self.down


def validate_migration_name(name: str) -> str:
    if not MIGRATION_NAME_RE.match(name):
        raise Errors.Migration.INVALID_NAME.create(
            message=f"Invalid migration name {name!r}, expected <timestamp>_<comment>",
            details={"name": name},
        )
    return name


def revision_id(name: str) -> str:
    """Alembic revision id for a migration name (Alembic rejects ``-`` in ids)."""
    return name.replace("-", "_")


def is_migration_file(file_name: str) -> bool:
    return file_name.endswith((".up.sql", ".down.sql"))


class Migrations:
    """Ordered, read-mostly collection of migrations.

    Lookup is by name; iteration and :meth:`sorted` always yield migrations in
    name order, which is chronological given the timestamp prefix.
    """

    def __init__(self, migrations: list[Migration] | None = None) -> None:
        self._by_name: dict[str, Migration] = {}
        for migration in migrations or []:
            self.add(migration)

    @classmethod
    def discover(cls, directory: Path | Traversable) -> "Migrations":
        """Read every ``*.up.sql``/``*.down.sql`` file of ``directory`` into migrations.

        Raises:
            AppException: ``migration/discovery_failed`` on a malformed file name,
                a duplicated half, mismatched ``.tx.`` markers, an unreadable file
                or two names mapping to one revision id.
        """
        halves: dict[str, dict[str, tuple[str, bool]]] = {}
        try:
            entries = sorted(directory.iterdir(), key=lambda entry: entry.name)
        except OSError as e:
            raise Errors.Migration.DISCOVERY_FAILED.create(
                message=f"Cannot list migrations directory {directory}", cause=e
            ) from e

        for entry in entries:
            if not entry.is_file() or not entry.name.endswith(".sql"):
                continue
            if not is_migration_file(entry.name):
                logger.debug("Skipping SQL file without direction suffix", file=entry.name)
                continue

            match = _MIGRATION_FILE_RE.match(entry.name)
            if match is None:
                raise Errors.Migration.DISCOVERY_FAILED.create(
                    message=f"Unsupported migration file name {entry.name!r}",
                    details={"file": entry.name},
                )
            timestamp, comment, tx_marker, direction = match.groups()
            name = f"{timestamp}_{comment}"

            migration_halves = halves.setdefault(name, {})
            if direction in migration_halves:
                raise Errors.Migration.DISCOVERY_FAILED.create(
                    message=f"Migration {name} has more than one {direction} script",
                    details={"migration": name, "file": entry.name},
                )

            try:
                sql = entry.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise Errors.Migration.DISCOVERY_FAILED.create(
                    message=f"Cannot read migration file {entry.name}",
                    details={"file": entry.name},
                    cause=e,
                ) from e
            migration_halves[direction] = (sql, tx_marker is not None)

        migrations = cls()
        for name, migration_halves in halves.items():
            markers = {transactional for _, transactional in migration_halves.values()}
            if len(markers) > 1:
                raise Errors.Migration.DISCOVERY_FAILED.create(
                    message=f"Migration {name} mixes transactional and non-transactional scripts",
                    details={"migration": name},
                )
            migration = Migration(
                name=name,
                up=migration_halves.get("up", ("", False))[0],
                down=migration_halves.get("down", ("", False))[0],
                transactional=markers.pop(),
            )
            try:
                migrations.add(migration)
            except AppException as e:
                raise Errors.Migration.DISCOVERY_FAILED.create(
                    message=f"Cannot register migration {name}: {e.details.message}",
                    details=e.details.details,
                ) from e

        logger.debug("Discovered SQL migrations", count=len(migrations), directory=str(directory))
        return migrations

    def add(self, migration: Migration) -> None:
        validate_migration_name(migration.name)
        if migration.name in self._by_name:
            raise Errors.Migration.DUPLICATE.create(
                message=f"Migration {migration.name} is already registered",
                details={"migration": migration.name},
            )
        clash = next((name for name in self._by_name if revision_id(name) == revision_id(migration.name)), None)
        if clash is not None:
            raise Errors.Migration.DUPLICATE.create(
                message=f"Migrations {clash} and {migration.name} map to the same revision id",
                details={"migration": migration.name, "conflicts_with": clash},
            )
        self._by_name[migration.name] = migration

    def get(self, name: str) -> Migration:
        try:
            return self._by_name[name]
        except KeyError as e:
            raise Errors.Migration.NOT_FOUND.create(
                message=f"Migration {name} not found", details={"migration": name}
            ) from e

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def sorted(self) -> list[Migration]:
        """Return a new list of all migrations in name order."""
        return [self._by_name[name] for name in sorted(self._by_name)]

    def __iter__(self) -> Iterator[Migration]:
        return iter(self.sorted())

    def __len__(self) -> int:
        return len(self._by_name)


def discover_bundled() -> Migrations:
    """Discover the SQL files shipped inside this package."""
    logger.debug("Discovering SQL migrations...")
    try:
        return Migrations.discover(files("todo_db.migrations"))
    except AppException:
        logger.exception("Failed to discover SQL migrations")
        raise
