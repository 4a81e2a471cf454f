"""SQLite access layer (aiosqlite).

One connection per request, handed out by the ``get_db`` FastAPI dependency
and closed when the request finishes. Every write is committed on its own;
nothing here opens a multi-statement transaction.

JSON-in-text columns (interests, objectives, tags, onboarding data, ...) are
encoded and decoded here and in the per-table modules next to this one, so
route handlers only ever see Python lists and dicts.
"""

import json
import logging
import uuid
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import aiosqlite
from alembic import command
from alembic.config import Config

from l2r.config import settings

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]


async def _connect_sqlite() -> aiosqlite.Connection:
    db = await aiosqlite.connect(settings.database_path)
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA foreign_keys = ON")
    return db


def new_id() -> str:
    return str(uuid.uuid4())


def encode_json(value: Any) -> str | None:
    """Serialize a list/dict for a TEXT column; None stays NULL."""
    if value is None:
        return None
    return json.dumps(value)


def decode_json(text: str | None, default: Any = None) -> Any:
    """Parse a JSON TEXT column, falling back to ``default`` for NULL or junk."""
    if not text:
        return default
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Discarding malformed JSON column value: %.60r", text)
        return default


# ── Public API ────────────────────────────────────────────────────────

async def get_db() -> AsyncGenerator:
    """FastAPI dependency that yields a database connection and closes it after the request."""
    db = await _connect_sqlite()
    try:
        yield db
    finally:
        await db.close()


def _run_alembic_upgrade():
    """Run Alembic migrations to head (synchronous, called once at startup)."""
    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))
    alembic_cfg.set_main_option("sqlalchemy.url", f"sqlite:///{settings.database_path}")
    alembic_cfg.attributes["configure_logger"] = False
    command.upgrade(alembic_cfg, "head")


async def init_db():
    # Ensure parent directory exists (for Docker volume mounts)
    db_path = Path(settings.database_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Using SQLite backend: %s", settings.database_path)

    # Alembic handles all schema creation and migrations
    _run_alembic_upgrade()
