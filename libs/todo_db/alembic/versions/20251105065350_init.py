"""20251105065350_init

Revision ID: 20251105065350_init
Revises:
Create Date: 2025-11-05 06:53:50.000000

"""

from __future__ import annotations

from todo_db.db.run_migrations import apply_migration

# revision identifiers, used by Alembic.
revision = "20251105065350_init"
down_revision = None
branch_labels = None
depends_on = None

# SQL migration run by this revision
migration = "20251105065350_init"


def upgrade() -> None:
    apply_migration(migration, "up")


def downgrade() -> None:
    apply_migration(migration, "down")
