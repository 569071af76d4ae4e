"""SQL migrations bundled with the package.

Importing this package discovers every ``*.up.sql``/``*.down.sql`` file next to
it into :data:`MIGRATIONS`. A malformed migration set makes the import fail, so
nothing that depends on the registry can start with a broken set.
"""

from pathlib import Path

from .registry import (
    MIGRATION_NAME_RE,
    Direction,
    Migration,
    Migrations,
    discover_bundled,
    is_migration_file,
    revision_id,
    validate_migration_name,
)

MIGRATIONS_DIR = Path(__path__[0])

MIGRATIONS: Migrations = discover_bundled()

__all__ = [
    "MIGRATIONS",
    "MIGRATIONS_DIR",
    "MIGRATION_NAME_RE",
    "Direction",
    "Migration",
    "Migrations",
    "discover_bundled",
    "is_migration_file",
    "revision_id",
    "validate_migration_name",
]
