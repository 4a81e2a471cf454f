"""initial_schema

Users, children, onboarding, lessons, progress, ratings, engagement and
voice settings. Executes l2r/db/schema.sql, which only uses
CREATE ... IF NOT EXISTS, so it is safe against an existing database.

Revision ID: 1c9e4a7b2d30
Revises:
Create Date: 2026-01-12 09:14:03.220418

"""
from typing import Sequence, Union
from pathlib import Path

from alembic import op
import sqlalchemy as sa


revision: str = "1c9e4a7b2d30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    schema_path = Path(__file__).resolve().parents[2] / "l2r" / "db" / "schema.sql"
    schema_sql = schema_path.read_text()
    # op.execute runs one statement at a time
    for statement in schema_sql.split(";"):
        lines = [
            line for line in statement.splitlines()
            if line.strip() and not line.strip().startswith("--")
        ]
        cleaned = "\n".join(lines).strip()
        if cleaned:
            op.execute(sa.text(cleaned))


def downgrade() -> None:
    """Drop all tables, children before parents."""
    tables = [
        "voice_settings",
        "lesson_engagement",
        "lesson_ratings",
        "progress",
        "onboarding",
        "lessons",
        "children",
        "users",
    ]
    for table in tables:
        op.drop_table(table)
