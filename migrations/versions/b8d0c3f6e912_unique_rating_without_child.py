"""unique_rating_without_child

UNIQUE(lesson_id, user_id, child_id) never fires while child_id is NULL,
so a rating given without a child could be inserted any number of times.
This expression index folds NULL into one key; existing duplicates are
collapsed to the most recent row first.

Revision ID: b8d0c3f6e912
Revises: 6a2f8d1e5b47
Create Date: 2026-02-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "b8d0c3f6e912"
down_revision: Union[str, Sequence[str], None] = "6a2f8d1e5b47"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute(sa.text("""
        DELETE FROM lesson_ratings
        WHERE child_id IS NULL
          AND rowid NOT IN (
            SELECT MAX(rowid) FROM lesson_ratings
            WHERE child_id IS NULL
            GROUP BY lesson_id, user_id
          )
    """))
    op.execute(sa.text(
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_lesson_ratings_natural_key "
        "ON lesson_ratings(lesson_id, user_id, IFNULL(child_id, ''))"
    ))


def downgrade() -> None:
    op.execute(sa.text("DROP INDEX IF EXISTS idx_lesson_ratings_natural_key"))
