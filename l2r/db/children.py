"""
children.py - Child profile queries

Every query is scoped by the owning user id; a child that belongs to
somebody else is indistinguishable from one that does not exist.
"""

from typing import List, Optional

import aiosqlite

from l2r.db.database import decode_json, encode_json, new_id
from l2r.db.query import UpdateBuilder
from l2r.models.child import Child, ChildPayload

# payload attribute -> column; interests is the only JSON column
_COLUMNS = {
    "name": "name",
    "age": "age",
    "sex": "sex",
    "avatar": "avatar",
    "grade_level": "grade_level",
    "learning_style": "learning_style",
    "interests": "interests",
}


def _row_to_child(row: aiosqlite.Row) -> Child:
    data = dict(row)
    data["interests"] = decode_json(data.get("interests"), [])
    return Child(**data)


async def list_children(db: aiosqlite.Connection, user_id: str) -> List[Child]:
    cursor = await db.execute(
        "SELECT * FROM children WHERE user_id = ? ORDER BY created_at",
        (user_id,),
    )
    return [_row_to_child(r) for r in await cursor.fetchall()]


async def get_child(db: aiosqlite.Connection, user_id: str, child_id: str) -> Optional[Child]:
    cursor = await db.execute(
        "SELECT * FROM children WHERE id = ? AND user_id = ?",
        (child_id, user_id),
    )
    row = await cursor.fetchone()
    return _row_to_child(row) if row else None


async def child_belongs_to(db: aiosqlite.Connection, user_id: str, child_id: str) -> bool:
    cursor = await db.execute(
        "SELECT id FROM children WHERE id = ? AND user_id = ?",
        (child_id, user_id),
    )
    return await cursor.fetchone() is not None


async def create_child(db: aiosqlite.Connection, user_id: str, payload: ChildPayload) -> Child:
    child_id = new_id()
    await db.execute(
        """INSERT INTO children (id, user_id, name, age, sex, avatar, grade_level, learning_style, interests)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            child_id,
            user_id,
            payload.name,
            payload.age,
            payload.sex or None,
            payload.avatar or None,
            payload.grade_level or None,
            payload.learning_style or None,
            encode_json(payload.interests),
        ),
    )
    await db.commit()
    return await get_child(db, user_id, child_id)


async def update_child(
    db: aiosqlite.Connection, user_id: str, child_id: str, payload: ChildPayload
) -> Optional[Child]:
    """Apply only the fields present in ``payload``. Returns None if not owned."""
    if not await child_belongs_to(db, user_id, child_id):
        return None

    update = UpdateBuilder("children")
    for field, value in payload.model_dump(exclude_unset=True).items():
        if field == "interests":
            value = encode_json(value)
        update.set(_COLUMNS[field], value)

    if update:
        sql, params = update.render("id = ? AND user_id = ?", (child_id, user_id))
        await db.execute(sql, params)
        await db.commit()

    return await get_child(db, user_id, child_id)


async def delete_child(db: aiosqlite.Connection, user_id: str, child_id: str) -> bool:
    if not await child_belongs_to(db, user_id, child_id):
        return False

    # Ratings fall back to child_id NULL on delete; drop the ones that would
    # collide with a child-less rating the same user already gave
    await db.execute(
        """DELETE FROM lesson_ratings
           WHERE child_id = ?
             AND EXISTS (
               SELECT 1 FROM lesson_ratings r
               WHERE r.lesson_id = lesson_ratings.lesson_id
                 AND r.user_id = lesson_ratings.user_id
                 AND r.child_id IS NULL
             )""",
        (child_id,),
    )
    cursor = await db.execute(
        "DELETE FROM children WHERE id = ? AND user_id = ?",
        (child_id, user_id),
    )
    await db.commit()
    return cursor.rowcount > 0
