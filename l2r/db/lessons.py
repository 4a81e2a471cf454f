"""
lessons.py - Lesson catalogue queries

Provides:
- listing / search with pagination and a matching COUNT(*)
- fetch with rating and engagement aggregates
- create / partial update / delete
- rating and engagement upserts
- recommendations
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import aiosqlite

from l2r.db.database import decode_json, encode_json, new_id
from l2r.db.query import UpdateBuilder, WhereBuilder
from l2r.models.child import Child
from l2r.models.lesson import ACTIVITY_TYPES, Lesson, LessonPayload, LessonWithStats

logger = logging.getLogger(__name__)

# Columns holding JSON text
JSON_COLUMNS = (
    "learning_styles",
    "interests",
    "objectives",
    "activities",
    "materials",
    "assessment_criteria",
    "tags",
    "prerequisites",
)

# Payload attributes map 1:1 onto columns
_COLUMNS = {
    "title", "subject", "description", "grade_level", "difficulty",
    "duration_minutes", "age_min", "age_max", "source", "thumbnail_url",
    "is_published", *JSON_COLUMNS,
}

ENGAGEMENT_COUNTERS = {
    "view": "view_count",
    "start": "start_count",
    "complete": "completion_count",
}

_SELECT_WITH_STATS = """
    SELECT l.*,
      r.avg_rating AS avg_rating,
      COALESCE(r.rating_count, 0) AS rating_count,
      COALESCE(e.total_completions, 0) AS total_completions
    FROM lessons l
    LEFT JOIN (
      SELECT lesson_id, AVG(rating) AS avg_rating, COUNT(*) AS rating_count
      FROM lesson_ratings GROUP BY lesson_id
    ) r ON r.lesson_id = l.id
    LEFT JOIN (
      SELECT lesson_id, SUM(completion_count) AS total_completions
      FROM lesson_engagement GROUP BY lesson_id
    ) e ON e.lesson_id = l.id
"""

_ORDER = " ORDER BY l.created_at DESC, l.rowid DESC"

_SEARCH_CLAUSE = (
    "(l.title LIKE ? ESCAPE '\\' OR l.description LIKE ? ESCAPE '\\' "
    "OR l.subject LIKE ? ESCAPE '\\' OR l.tags LIKE ? ESCAPE '\\')"
)


def _row_to_lesson(row: aiosqlite.Row) -> LessonWithStats:
    data = dict(row)
    for column in JSON_COLUMNS:
        data[column] = decode_json(data.get(column))
    data["is_published"] = data.get("is_published") == 1
    data["source"] = data.get("source") or "curated"
    return LessonWithStats(**data)


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


async def _page(
    db: aiosqlite.Connection, where: WhereBuilder, limit: int, offset: int
) -> Tuple[List[LessonWithStats], int]:
    cursor = await db.execute(
        _SELECT_WITH_STATS + where.render() + _ORDER + " LIMIT ? OFFSET ?",
        (*where.params, limit, offset),
    )
    lessons = [_row_to_lesson(r) for r in await cursor.fetchall()]

    cursor = await db.execute(
        "SELECT COUNT(*) AS count FROM lessons l" + where.render(),
        where.params,
    )
    row = await cursor.fetchone()
    return lessons, (row["count"] if row else 0)


# ══════════════════════════════════════════════════════════════════════════════
# READ
# ══════════════════════════════════════════════════════════════════════════════

async def list_lessons(
    db: aiosqlite.Connection,
    subject: Optional[str] = None,
    grade_level: Optional[str] = None,
    difficulty: Optional[str] = None,
    source: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> Tuple[List[LessonWithStats], int]:
    """Published lessons matching the filters, newest first, plus the total count."""
    where = (
        WhereBuilder("l.is_published = 1")
        .equals("l.subject", subject)
        .equals("l.grade_level", grade_level)
        .equals("l.difficulty", difficulty)
        .equals("l.source", source)
    )
    return await _page(db, where, limit, offset)


async def search_lessons(
    db: aiosqlite.Connection, term: str, limit: int = 20, offset: int = 0
) -> Tuple[List[LessonWithStats], int]:
    """Plain substring search over title, description, subject and tags."""
    pattern = _like_pattern(term)
    where = WhereBuilder("l.is_published = 1").add(_SEARCH_CLAUSE, pattern, pattern, pattern, pattern)
    return await _page(db, where, limit, offset)


async def get_lesson(db: aiosqlite.Connection, lesson_id: str) -> Optional[LessonWithStats]:
    cursor = await db.execute(_SELECT_WITH_STATS + " WHERE l.id = ?", (lesson_id,))
    row = await cursor.fetchone()
    return _row_to_lesson(row) if row else None


async def lesson_exists(db: aiosqlite.Connection, lesson_id: str) -> bool:
    cursor = await db.execute("SELECT id FROM lessons WHERE id = ?", (lesson_id,))
    return await cursor.fetchone() is not None


async def list_published_with_stats(
    db: aiosqlite.Connection, subject: Optional[str] = None
) -> List[LessonWithStats]:
    where = WhereBuilder("l.is_published = 1").equals("l.subject", subject)
    cursor = await db.execute(_SELECT_WITH_STATS + where.render() + _ORDER, where.params)
    return [_row_to_lesson(r) for r in await cursor.fetchall()]


async def list_subjects(db: aiosqlite.Connection) -> List[str]:
    cursor = await db.execute(
        "SELECT DISTINCT subject FROM lessons WHERE is_published = 1 ORDER BY subject"
    )
    return [r["subject"] for r in await cursor.fetchall()]


async def list_grade_levels(db: aiosqlite.Connection) -> List[str]:
    cursor = await db.execute(
        """SELECT DISTINCT grade_level FROM lessons
           WHERE is_published = 1 AND grade_level IS NOT NULL
           ORDER BY grade_level"""
    )
    return [r["grade_level"] for r in await cursor.fetchall()]


async def get_age_range(db: aiosqlite.Connection) -> Tuple[Optional[int], Optional[int]]:
    cursor = await db.execute(
        "SELECT MIN(age_min) AS min_age, MAX(age_max) AS max_age FROM lessons WHERE is_published = 1"
    )
    row = await cursor.fetchone()
    if not row:
        return None, None
    return row["min_age"], row["max_age"]


async def get_recommendations(
    db: aiosqlite.Connection,
    lesson: Lesson,
    child: Optional[Child] = None,
    limit: int = 5,
) -> List[LessonWithStats]:
    """Random published lessons sharing the subject or grade level.

    With a child, lessons outside the child's age or learning style are dropped.
    """
    where = (
        WhereBuilder("l.is_published = 1")
        .add("l.id != ?", lesson.id)
        .add("(l.subject = ? OR l.grade_level = ?)", lesson.subject, lesson.grade_level or "")
    )
    if child is not None:
        if child.age:
            where.add(
                "(l.age_min IS NULL OR l.age_min <= ?) AND (l.age_max IS NULL OR l.age_max >= ?)",
                child.age, child.age,
            )
        if child.learning_style:
            where.add(
                "(l.learning_styles IS NULL OR l.learning_styles LIKE ?)",
                f'%"{child.learning_style}"%',
            )

    cursor = await db.execute(
        _SELECT_WITH_STATS + where.render() + " ORDER BY RANDOM() LIMIT ?",
        (*where.params, limit),
    )
    return [_row_to_lesson(r) for r in await cursor.fetchall()]


# ══════════════════════════════════════════════════════════════════════════════
# WRITE
# ══════════════════════════════════════════════════════════════════════════════

def _with_activity_ids(
    activities: Optional[List[Any]], taken: Iterable[str] = ()
) -> Optional[List[Any]]:
    """Give every structured activity a stable id so progress can point at it.

    Ids in ``taken`` belong to another lesson and are replaced.
    """
    if activities is None:
        return None
    taken = set(taken)
    result = []
    for activity in activities:
        if isinstance(activity, dict) and (not activity.get("id") or activity["id"] in taken):
            activity = {**activity, "id": new_id()}
        result.append(activity)
    return result


async def _foreign_activity_ids(
    db: aiosqlite.Connection, lesson_id: str, activities: Optional[List[Any]]
) -> List[str]:
    ids = [a["id"] for a in activities or [] if isinstance(a, dict) and a.get("id")]
    if not ids:
        return []
    placeholders = ", ".join("?" for _ in ids)
    cursor = await db.execute(
        f"SELECT id FROM lesson_activities WHERE id IN ({placeholders}) AND lesson_id != ?",
        (*ids, lesson_id),
    )
    return [r["id"] for r in await cursor.fetchall()]


async def _sync_activities(db: aiosqlite.Connection, lesson_id: str, activities: List[Any]) -> None:
    """Mirror typed activities into lesson_activities; the JSON copy stays authoritative."""
    keep_ids = []
    for order, activity in enumerate(activities):
        if not isinstance(activity, dict):
            continue
        if activity.get("type") not in ACTIVITY_TYPES or not activity.get("instructions"):
            continue
        keep_ids.append(activity["id"])
        await db.execute(
            """INSERT INTO lesson_activities
                 (id, lesson_id, type, instructions, spoken_instructions, activity_order, points, content)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                 type = excluded.type,
                 instructions = excluded.instructions,
                 spoken_instructions = excluded.spoken_instructions,
                 activity_order = excluded.activity_order,
                 points = excluded.points,
                 content = excluded.content,
                 updated_at = datetime('now')
               WHERE lesson_activities.lesson_id = excluded.lesson_id""",
            (
                activity["id"],
                lesson_id,
                activity["type"],
                activity["instructions"],
                activity.get("spokenInstructions") or activity.get("spoken_instructions"),
                order,
                activity.get("points", 10),
                encode_json(activity),
            ),
        )

    placeholders = ", ".join("?" for _ in keep_ids)
    sql = "DELETE FROM lesson_activities WHERE lesson_id = ?"
    if keep_ids:
        sql += f" AND id NOT IN ({placeholders})"
    await db.execute(sql, (lesson_id, *keep_ids))
    await db.commit()


async def create_lesson(db: aiosqlite.Connection, payload: LessonPayload) -> LessonWithStats:
    lesson_id = new_id()
    activities = _with_activity_ids(
        payload.activities, await _foreign_activity_ids(db, lesson_id, payload.activities)
    )
    await db.execute(
        """INSERT INTO lessons (
             id, title, subject, description, grade_level, difficulty,
             duration_minutes, age_min, age_max, learning_styles, interests,
             objectives, activities, materials, assessment_criteria,
             source, tags, prerequisites, thumbnail_url, is_published
           )
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            lesson_id,
            payload.title,
            payload.subject,
            payload.description,
            payload.grade_level,
            payload.difficulty,
            payload.duration_minutes,
            payload.age_min,
            payload.age_max,
            encode_json(payload.learning_styles),
            encode_json(payload.interests),
            encode_json(payload.objectives),
            encode_json(activities),
            encode_json(payload.materials),
            encode_json(payload.assessment_criteria),
            payload.source or "curated",
            encode_json(payload.tags),
            encode_json(payload.prerequisites),
            payload.thumbnail_url,
            0 if payload.is_published is False else 1,
        ),
    )
    await db.commit()

    if activities:
        await _sync_activities(db, lesson_id, activities)

    logger.info("Created lesson %s (%s)", lesson_id, payload.subject)
    return await get_lesson(db, lesson_id)


async def update_lesson(
    db: aiosqlite.Connection, lesson_id: str, payload: LessonPayload
) -> Optional[LessonWithStats]:
    """Partial update: only attributes present in the request body are written."""
    if not await lesson_exists(db, lesson_id):
        return None

    changes: Dict[str, Any] = payload.model_dump(exclude_unset=True)
    if "activities" in changes:
        changes["activities"] = _with_activity_ids(
            changes["activities"],
            await _foreign_activity_ids(db, lesson_id, changes["activities"]),
        )

    update = UpdateBuilder("lessons")
    for field, value in changes.items():
        if field not in _COLUMNS:
            continue
        if field in JSON_COLUMNS:
            value = encode_json(value)
        elif field == "is_published":
            if value is None:
                continue
            value = 1 if value else 0
        update.set(field, value)

    if update:
        sql, params = update.render("id = ?", (lesson_id,))
        await db.execute(sql, params)
        await db.commit()

    if changes.get("activities") is not None:
        await _sync_activities(db, lesson_id, changes["activities"])

    return await get_lesson(db, lesson_id)


async def delete_lesson(db: aiosqlite.Connection, lesson_id: str) -> bool:
    cursor = await db.execute("DELETE FROM lessons WHERE id = ?", (lesson_id,))
    await db.commit()
    return cursor.rowcount > 0


async def rate_lesson(
    db: aiosqlite.Connection,
    lesson_id: str,
    user_id: str,
    rating: int,
    feedback: Optional[str] = None,
    child_id: Optional[str] = None,
) -> Tuple[float, int]:
    """Insert or replace the caller's rating, then return (average, count)."""
    # No conflict target: either the (lesson, user, child) constraint or the
    # NULL-child expression index may fire.
    await db.execute(
        """INSERT INTO lesson_ratings (id, lesson_id, user_id, child_id, rating, feedback)
           VALUES (?, ?, ?, ?, ?, ?)
           ON CONFLICT DO UPDATE SET
             rating = excluded.rating,
             feedback = excluded.feedback""",
        (new_id(), lesson_id, user_id, child_id, rating, feedback),
    )
    await db.commit()

    cursor = await db.execute(
        "SELECT AVG(rating) AS avg_rating, COUNT(*) AS rating_count FROM lesson_ratings WHERE lesson_id = ?",
        (lesson_id,),
    )
    row = await cursor.fetchone()
    return (row["avg_rating"] or 0.0), (row["rating_count"] or 0)


async def track_engagement(
    db: aiosqlite.Connection,
    lesson_id: str,
    child_id: str,
    action: str,
    time_seconds: Optional[int] = None,
) -> None:
    """Bump the counter for ``action`` and add elapsed seconds, creating the row if needed."""
    counter = ENGAGEMENT_COUNTERS[action]
    seconds = time_seconds or 0
    await db.execute(
        f"""INSERT INTO lesson_engagement (
              id, lesson_id, child_id, view_count, start_count, completion_count,
              total_time_seconds, last_accessed_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, datetime('now'))
            ON CONFLICT(lesson_id, child_id) DO UPDATE SET
              {counter} = {counter} + 1,
              total_time_seconds = total_time_seconds + excluded.total_time_seconds,
              last_accessed_at = datetime('now'),
              updated_at = datetime('now')""",
        (
            new_id(),
            lesson_id,
            child_id,
            1 if action == "view" else 0,
            1 if action == "start" else 0,
            1 if action == "complete" else 0,
            seconds,
        ),
    )
    await db.commit()


async def get_engagement(db: aiosqlite.Connection, lesson_id: str, child_id: str) -> Optional[Dict[str, Any]]:
    cursor = await db.execute(
        "SELECT * FROM lesson_engagement WHERE lesson_id = ? AND child_id = ?",
        (lesson_id, child_id),
    )
    row = await cursor.fetchone()
    return dict(row) if row else None
