"""Tests for the SQL migration registry."""

from __future__ import annotations

import importlib
import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

from common.core.app_error import AppException, Errors
from todo_db.migrations import MIGRATIONS, Migration, Migrations, registry


def _write(directory: Path, files: dict[str, str]) -> Path:
    for name, content in files.items():
        (directory / name).write_text(content, encoding="utf-8")
    return directory


class TestBundledMigrations:
    def test_initial_schema_is_registered(self) -> None:
        migration = MIGRATIONS.get("20251105065350_init")

        assert "CREATE TYPE task_priority" in migration.up
        assert "CREATE TABLE IF NOT EXISTS task_labels" in migration.up
        assert "DROP TABLE IF EXISTS tasks" in migration.down
        assert migration.transactional is False

    def test_sorted_is_stable(self) -> None:
        first = MIGRATIONS.sorted()
        second = MIGRATIONS.sorted()

        assert len(first) == len(second) == len(MIGRATIONS)
        assert [m.name for m in first] == [m.name for m in second]
        assert first == second

    def test_sorted_returns_a_new_list(self) -> None:
        migrations = MIGRATIONS.sorted()
        migrations.clear()

        assert len(MIGRATIONS.sorted()) == len(MIGRATIONS)

    def test_names_are_in_chronological_order(self) -> None:
        names = [m.name for m in MIGRATIONS]

        assert names == sorted(names)


class TestDiscover:
    def test_groups_and_sorts(self, tmp_path: Path) -> None:
        _write(
            tmp_path,
            {
                "20240102000000_second.up.sql": "CREATE TABLE b ();",
                "20240101000000_first.up.sql": "CREATE TABLE a ();",
                "20240101000000_first.down.sql": "DROP TABLE a;",
                "README.md": "not a migration",
                "seed.sql": "SELECT 1;",
            },
        )

        migrations = Migrations.discover(tmp_path)

        assert [m.name for m in migrations.sorted()] == ["20240101000000_first", "20240102000000_second"]
        assert migrations.get("20240101000000_first").down == "DROP TABLE a;"
        assert migrations.get("20240102000000_second").down == ""

    def test_transaction_marker(self, tmp_path: Path) -> None:
        _write(
            tmp_path,
            {
                "20240101000000_in_tx.tx.up.sql": "CREATE TABLE a ();",
                "20240101000000_in_tx.tx.down.sql": "DROP TABLE a;",
            },
        )

        migration = Migrations.discover(tmp_path).get("20240101000000_in_tx")

        assert migration.transactional is True

    def test_skips_directories(self, tmp_path: Path) -> None:
        (tmp_path / "20240101000000_dir.up.sql").mkdir()

        assert len(Migrations.discover(tmp_path)) == 0

    @pytest.mark.parametrize(
        "file_name",
        ["init.up.sql", "20240101000000_Init.up.sql", "20240101000000-init.up.sql", "123456789012345_init.up.sql", "20240101000000_a b.up.sql"],
    )
    def test_malformed_name_fails(self, tmp_path: Path, file_name: str) -> None:
        _write(tmp_path, {file_name: "SELECT 1;"})

        with pytest.raises(AppException) as exc_info:
            Migrations.discover(tmp_path)

        assert Errors.Migration.DISCOVERY_FAILED.is_(exc_info.value)

    def test_duplicate_half_fails(self, tmp_path: Path) -> None:
        _write(tmp_path, {"20240101000000_a.up.sql": "SELECT 1;", "20240101000000_a.tx.up.sql": "SELECT 2;"})

        with pytest.raises(AppException) as exc_info:
            Migrations.discover(tmp_path)

        assert Errors.Migration.DISCOVERY_FAILED.is_(exc_info.value)

    def test_mixed_transaction_markers_fail(self, tmp_path: Path) -> None:
        _write(tmp_path, {"20240101000000_a.tx.up.sql": "SELECT 1;", "20240101000000_a.down.sql": "SELECT 2;"})

        with pytest.raises(AppException) as exc_info:
            Migrations.discover(tmp_path)

        assert Errors.Migration.DISCOVERY_FAILED.is_(exc_info.value)

    def test_revision_id_collision_fails(self, tmp_path: Path) -> None:
        _write(tmp_path, {"20240101000000_add-x.up.sql": "SELECT 1;", "20240101000000_add_x.up.sql": "SELECT 2;"})

        with pytest.raises(AppException) as exc_info:
            Migrations.discover(tmp_path)

        assert Errors.Migration.DISCOVERY_FAILED.is_(exc_info.value)

    def test_unreadable_file_fails(self, tmp_path: Path) -> None:
        (tmp_path / "20240101000000_a.up.sql").write_bytes(b"\xff\xfe\x00invalid utf-8 \xc3\x28")

        with pytest.raises(AppException) as exc_info:
            Migrations.discover(tmp_path)

        assert Errors.Migration.DISCOVERY_FAILED.is_(exc_info.value)

    def test_missing_directory_fails(self, tmp_path: Path) -> None:
        with pytest.raises(AppException) as exc_info:
            Migrations.discover(tmp_path / "missing")

        assert Errors.Migration.DISCOVERY_FAILED.is_(exc_info.value)

    def test_bundled_discovery_fails_fast(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _write(tmp_path, {"broken.up.sql": "SELECT 1;"})
        monkeypatch.setattr(registry, "files", lambda _package: tmp_path)

        with pytest.raises(AppException) as exc_info:
            registry.discover_bundled()

        assert Errors.Migration.DISCOVERY_FAILED.is_(exc_info.value)

    def test_import_fails_on_broken_set(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _write(tmp_path, {"20240101000000_Broken.up.sql": "SELECT 1;"})
        monkeypatch.setattr(registry, "files", lambda _package: tmp_path)
        monkeypatch.delitem(sys.modules, "todo_db.migrations")

        with pytest.raises(AppException) as exc_info:
            importlib.import_module("todo_db.migrations")

        assert Errors.Migration.DISCOVERY_FAILED.is_(exc_info.value)
        assert "todo_db.migrations" not in sys.modules


class TestMigrations:
    def test_add_rejects_duplicates(self) -> None:
        migrations = Migrations([Migration(name="20240101000000_a")])

        with pytest.raises(AppException) as exc_info:
            migrations.add(Migration(name="20240101000000_a", up="SELECT 1;"))

        assert Errors.Migration.DUPLICATE.is_(exc_info.value)

    def test_add_rejects_invalid_names(self) -> None:
        with pytest.raises(AppException) as exc_info:
            Migrations().add(Migration(name="latest"))

        assert Errors.Migration.INVALID_NAME.is_(exc_info.value)

    def test_add_rejects_revision_id_collisions(self) -> None:
        migrations = Migrations([Migration(name="20240101000000_add_x")])

        with pytest.raises(AppException) as exc_info:
            migrations.add(Migration(name="20240101000000_add-x"))

        assert Errors.Migration.DUPLICATE.is_(exc_info.value)
        assert exc_info.value.details.details == {"migration": "20240101000000_add-x", "conflicts_with": "20240101000000_add_x"}
        assert len(migrations) == 1

    def test_get_unknown(self) -> None:
        with pytest.raises(AppException) as exc_info:
            Migrations().get("20240101000000_a")

        assert Errors.Migration.NOT_FOUND.is_(exc_info.value)

    def test_iterates_in_name_order(self) -> None:
        migrations = Migrations(
            [Migration(name="20240301000000_c"), Migration(name="20240101000000_a"), Migration(name="20240201000000_b")]
        )

        assert [m.name for m in migrations] == ["20240101000000_a", "20240201000000_b", "20240301000000_c"]
        assert "20240201000000_b" in migrations
        assert len(migrations) == 3

    def test_migration_is_read_only(self) -> None:
        migration = Migration(name="20240101000000_a", up="SELECT 1;")

        with pytest.raises(ValidationError):
            migration.up = "DROP TABLE x;"  # type: ignore[misc]

    def test_direction_sql(self) -> None:
        migration = Migration(name="20240101000000_a", up="UP", down="DOWN")

        assert migration.sql("up") == "UP"
        assert migration.sql("down") == "DOWN"
        assert migration.timestamp == "20240101000000"
        assert migration.comment == "a"
