"""
accounts.py - Queries for users and their onboarding state
"""

from typing import Any, Dict, Optional

import aiosqlite

from l2r.db.database import decode_json, encode_json, new_id
from l2r.db.query import UpdateBuilder
from l2r.models.account import OnboardingState, User


# ══════════════════════════════════════════════════════════════════════════════
# USERS
# ══════════════════════════════════════════════════════════════════════════════

async def get_user_credentials(db: aiosqlite.Connection, email: str) -> Optional[aiosqlite.Row]:
    """Row including password_hash; only the auth routes may call this."""
    cursor = await db.execute("SELECT * FROM users WHERE email = ?", (email,))
    return await cursor.fetchone()


async def email_exists(db: aiosqlite.Connection, email: str) -> bool:
    cursor = await db.execute("SELECT id FROM users WHERE email = ?", (email,))
    return await cursor.fetchone() is not None


async def create_user(db: aiosqlite.Connection, email: str, password_hash: str, name: str) -> str:
    user_id = new_id()
    await db.execute(
        "INSERT INTO users (id, email, password_hash, name) VALUES (?, ?, ?, ?)",
        (user_id, email, password_hash, name),
    )
    await db.commit()
    return user_id


async def get_user(db: aiosqlite.Connection, user_id: str) -> Optional[User]:
    cursor = await db.execute(
        "SELECT id, email, name, created_at FROM users WHERE id = ?",
        (user_id,),
    )
    row = await cursor.fetchone()
    if not row:
        return None
    return User(**dict(row))


# ══════════════════════════════════════════════════════════════════════════════
# ONBOARDING
# ══════════════════════════════════════════════════════════════════════════════

def _row_to_onboarding(row: aiosqlite.Row) -> OnboardingState:
    return OnboardingState(
        id=row["id"],
        completed=bool(row["completed"]),
        step=row["step"] or 0,
        data=decode_json(row["data"], {}),
    )


async def get_onboarding(db: aiosqlite.Connection, user_id: str) -> Optional[OnboardingState]:
    cursor = await db.execute("SELECT * FROM onboarding WHERE user_id = ?", (user_id,))
    row = await cursor.fetchone()
    return _row_to_onboarding(row) if row else None


async def save_onboarding(
    db: aiosqlite.Connection,
    user_id: str,
    step: Optional[int] = None,
    data: Optional[Dict[str, Any]] = None,
    completed: Optional[bool] = None,
) -> OnboardingState:
    """Create the onboarding row, or update the given fields of the existing one.

    ``data`` is shallow-merged into whatever object is already stored.
    """
    existing = await get_onboarding(db, user_id)

    if existing is None:
        await db.execute(
            "INSERT INTO onboarding (id, user_id, step, data, completed) VALUES (?, ?, ?, ?, ?)",
            (new_id(), user_id, step if step is not None else 0, encode_json(data), 1 if completed else 0),
        )
        await db.commit()
    else:
        update = UpdateBuilder("onboarding")
        if step is not None:
            update.set("step", step)
        if data is not None:
            update.set("data", encode_json({**existing.data, **data}))
        if completed is not None:
            update.set("completed", 1 if completed else 0)
        if update:
            sql, params = update.render("user_id = ?", (user_id,))
            await db.execute(sql, params)
            await db.commit()

    return await get_onboarding(db, user_id)


async def complete_onboarding(db: aiosqlite.Connection, user_id: str) -> None:
    # step -1 marks a wizard that was finished without ever being saved
    await db.execute(
        """INSERT INTO onboarding (id, user_id, completed, step)
           VALUES (?, ?, 1, -1)
           ON CONFLICT(user_id) DO UPDATE SET
             completed = 1,
             updated_at = datetime('now')""",
        (new_id(), user_id),
    )
    await db.commit()
