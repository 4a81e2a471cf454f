"""add_lesson_activities

Activity-level lesson structure and per-child activity progress, plus the
lesson prerequisites/thumbnail columns and resumable progress
(current_activity_index, overall_score).

Revision ID: 6a2f8d1e5b47
Revises: 1c9e4a7b2d30
Create Date: 2026-02-03

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "6a2f8d1e5b47"
down_revision: Union[str, Sequence[str], None] = "1c9e4a7b2d30"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute(sa.text("""
        CREATE TABLE IF NOT EXISTS lesson_activities (
            id TEXT PRIMARY KEY,
            lesson_id TEXT NOT NULL REFERENCES lessons(id) ON DELETE CASCADE,
            type TEXT NOT NULL CHECK(type IN (
                'reading', 'spelling', 'phonics', 'sight-words', 'quiz',
                'matching', 'fill-in-blank', 'listen-repeat', 'word-building'
            )),
            instructions TEXT NOT NULL,
            spoken_instructions TEXT,
            activity_order INTEGER NOT NULL,
            points INTEGER DEFAULT 10,
            content TEXT NOT NULL,
            created_at TEXT DEFAULT (datetime('now')),
            updated_at TEXT DEFAULT (datetime('now'))
        )
    """))
    op.execute(sa.text("""
        CREATE TABLE IF NOT EXISTS activity_progress (
            id TEXT PRIMARY KEY,
            child_id TEXT NOT NULL REFERENCES children(id) ON DELETE CASCADE,
            lesson_id TEXT NOT NULL REFERENCES lessons(id) ON DELETE CASCADE,
            activity_id TEXT NOT NULL REFERENCES lesson_activities(id) ON DELETE CASCADE,
            completed INTEGER DEFAULT 0,
            score INTEGER,
            attempts INTEGER DEFAULT 0,
            time_spent_seconds INTEGER DEFAULT 0,
            completed_at TEXT,
            created_at TEXT DEFAULT (datetime('now')),
            updated_at TEXT DEFAULT (datetime('now')),
            UNIQUE(child_id, activity_id)
        )
    """))

    # lessons: JSON array of lesson ids, cover image
    op.execute(sa.text("ALTER TABLE lessons ADD COLUMN prerequisites TEXT"))
    op.execute(sa.text("ALTER TABLE lessons ADD COLUMN thumbnail_url TEXT"))

    # progress: resume point and points-weighted activity score
    op.execute(sa.text("ALTER TABLE progress ADD COLUMN current_activity_index INTEGER DEFAULT 0"))
    op.execute(sa.text("ALTER TABLE progress ADD COLUMN overall_score REAL"))

    op.execute(sa.text(
        "CREATE INDEX IF NOT EXISTS idx_lesson_activities_lesson "
        "ON lesson_activities(lesson_id)"
    ))
    op.execute(sa.text(
        "CREATE INDEX IF NOT EXISTS idx_lesson_activities_type "
        "ON lesson_activities(type)"
    ))
    op.execute(sa.text(
        "CREATE INDEX IF NOT EXISTS idx_lesson_activities_order "
        "ON lesson_activities(lesson_id, activity_order)"
    ))
    op.execute(sa.text(
        "CREATE INDEX IF NOT EXISTS idx_activity_progress_child_lesson "
        "ON activity_progress(child_id, lesson_id)"
    ))
    op.execute(sa.text(
        "CREATE INDEX IF NOT EXISTS idx_activity_progress_activity "
        "ON activity_progress(activity_id)"
    ))


def downgrade() -> None:
    op.execute(sa.text("DROP TABLE IF EXISTS activity_progress"))
    op.execute(sa.text("DROP TABLE IF EXISTS lesson_activities"))
    op.execute(sa.text("ALTER TABLE progress DROP COLUMN overall_score"))
    op.execute(sa.text("ALTER TABLE progress DROP COLUMN current_activity_index"))
    op.execute(sa.text("ALTER TABLE lessons DROP COLUMN thumbnail_url"))
    op.execute(sa.text("ALTER TABLE lessons DROP COLUMN prerequisites"))
