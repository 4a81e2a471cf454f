"""
progress.py - Per-child lesson progress and activity-level progress

One progress row per (child, lesson); start/complete are single upserts on
that natural key. Callers are responsible for the ownership check.
"""

from typing import Any, Dict, List, Optional

import aiosqlite

from l2r.db.database import new_id
from l2r.db.query import UpdateBuilder
from l2r.models.progress import ActivityProgress, ProgressRecord, ProgressSummary

_COLUMNS = {"status": "status", "score": "score", "time_spent": "time_spent"}


def _row_to_progress(row: aiosqlite.Row) -> ProgressRecord:
    data = dict(row)
    data["status"] = data.get("status") or "not_started"
    data["time_spent"] = data.get("time_spent") or 0
    data["current_activity_index"] = data.get("current_activity_index") or 0
    return ProgressRecord(**data)


async def list_progress(db: aiosqlite.Connection, child_id: str) -> List[ProgressRecord]:
    cursor = await db.execute(
        """SELECT p.*, l.title AS lesson_title, l.subject
           FROM progress p
           LEFT JOIN lessons l ON p.lesson_id = l.id
           WHERE p.child_id = ?
           ORDER BY p.updated_at DESC, p.rowid DESC""",
        (child_id,),
    )
    return [_row_to_progress(r) for r in await cursor.fetchall()]


async def get_progress(db: aiosqlite.Connection, child_id: str, lesson_id: str) -> Optional[ProgressRecord]:
    cursor = await db.execute(
        "SELECT * FROM progress WHERE child_id = ? AND lesson_id = ?",
        (child_id, lesson_id),
    )
    row = await cursor.fetchone()
    return _row_to_progress(row) if row else None


async def start_lesson(db: aiosqlite.Connection, child_id: str, lesson_id: str) -> ProgressRecord:
    """Mark in progress; the first ``started_at`` is kept on restarts."""
    await db.execute(
        """INSERT INTO progress (id, child_id, lesson_id, status, started_at)
           VALUES (?, ?, ?, 'in_progress', datetime('now'))
           ON CONFLICT(child_id, lesson_id) DO UPDATE SET
             status = 'in_progress',
             started_at = COALESCE(progress.started_at, datetime('now')),
             updated_at = datetime('now')""",
        (new_id(), child_id, lesson_id),
    )
    await db.commit()
    return await get_progress(db, child_id, lesson_id)


async def complete_lesson(
    db: aiosqlite.Connection,
    child_id: str,
    lesson_id: str,
    score: Optional[int] = None,
    time_spent: Optional[int] = None,
) -> ProgressRecord:
    """Mark completed; score and time spent keep their stored values when not given."""
    await db.execute(
        """INSERT INTO progress (id, child_id, lesson_id, status, score, time_spent, started_at, completed_at)
           VALUES (?, ?, ?, 'completed', ?, ?, datetime('now'), datetime('now'))
           ON CONFLICT(child_id, lesson_id) DO UPDATE SET
             status = 'completed',
             score = COALESCE(excluded.score, progress.score),
             time_spent = COALESCE(?, progress.time_spent),
             completed_at = datetime('now'),
             updated_at = datetime('now')""",
        (new_id(), child_id, lesson_id, score, time_spent or 0, time_spent),
    )
    await db.commit()
    return await get_progress(db, child_id, lesson_id)


async def update_progress(
    db: aiosqlite.Connection, child_id: str, lesson_id: str, changes: Dict[str, Any]
) -> Optional[ProgressRecord]:
    """Partial update of an existing row. Returns None when there is no row."""
    existing = await get_progress(db, child_id, lesson_id)
    if existing is None:
        return None

    update = UpdateBuilder("progress")
    for field, value in changes.items():
        update.set(_COLUMNS[field], value)

    if update:
        sql, params = update.render("id = ?", (existing.id,))
        await db.execute(sql, params)
        await db.commit()

    return await get_progress(db, child_id, lesson_id)


async def get_summary(db: aiosqlite.Connection, child_id: str) -> ProgressSummary:
    cursor = await db.execute(
        """SELECT
             COUNT(*) AS total_lessons,
             SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END) AS completed_lessons,
             SUM(CASE WHEN status = 'in_progress' THEN 1 ELSE 0 END) AS in_progress_lessons,
             AVG(score) AS average_score,
             SUM(time_spent) AS total_time_spent
           FROM progress WHERE child_id = ?""",
        (child_id,),
    )
    row = await cursor.fetchone()
    return ProgressSummary(
        total_lessons=row["total_lessons"] or 0,
        completed_lessons=row["completed_lessons"] or 0,
        in_progress_lessons=row["in_progress_lessons"] or 0,
        average_score=row["average_score"],
        total_time_spent=row["total_time_spent"] or 0,
    )


async def completed_lessons_for_child(db: aiosqlite.Connection, child_id: str) -> List[Dict[str, Any]]:
    """(lesson_id, score, difficulty, subject) for every completed lesson."""
    cursor = await db.execute(
        """SELECT p.lesson_id, p.score, l.difficulty, l.subject
           FROM progress p
           JOIN lessons l ON p.lesson_id = l.id
           WHERE p.child_id = ? AND p.status = 'completed'""",
        (child_id,),
    )
    return [dict(r) for r in await cursor.fetchall()]


# ══════════════════════════════════════════════════════════════════════════════
# ACTIVITY PROGRESS
# ══════════════════════════════════════════════════════════════════════════════

async def activity_exists(db: aiosqlite.Connection, lesson_id: str, activity_id: str) -> bool:
    cursor = await db.execute(
        "SELECT id FROM lesson_activities WHERE id = ? AND lesson_id = ?",
        (activity_id, lesson_id),
    )
    return await cursor.fetchone() is not None


async def save_activity_progress(
    db: aiosqlite.Connection,
    child_id: str,
    lesson_id: str,
    activity_id: str,
    completed: bool,
    score: Optional[int] = None,
    attempts: Optional[int] = None,
    time_spent_seconds: Optional[int] = None,
    current_activity_index: Optional[int] = None,
) -> ActivityProgress:
    """Record one activity attempt and refresh the lesson's weighted score.

    ``attempts`` overrides the stored count when given, otherwise each call
    counts as one more attempt. Time is accumulated.
    """
    await db.execute(
        """INSERT INTO activity_progress
             (id, child_id, lesson_id, activity_id, completed, score, attempts,
              time_spent_seconds, completed_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, CASE WHEN ? THEN datetime('now') END)
           ON CONFLICT(child_id, activity_id) DO UPDATE SET
             completed = MAX(activity_progress.completed, excluded.completed),
             score = COALESCE(excluded.score, activity_progress.score),
             attempts = COALESCE(?, activity_progress.attempts + 1),
             time_spent_seconds = activity_progress.time_spent_seconds + excluded.time_spent_seconds,
             completed_at = COALESCE(activity_progress.completed_at, excluded.completed_at),
             updated_at = datetime('now')""",
        (
            new_id(), child_id, lesson_id, activity_id,
            1 if completed else 0,
            score,
            attempts if attempts is not None else 1,
            time_spent_seconds or 0,
            1 if completed else 0,
            attempts,
        ),
    )

    # Weighted by activity points; unscored activities do not count
    await db.execute(
        """INSERT INTO progress (id, child_id, lesson_id, status, started_at, current_activity_index)
           VALUES (?, ?, ?, 'in_progress', datetime('now'), COALESCE(?, 0))
           ON CONFLICT(child_id, lesson_id) DO UPDATE SET
             current_activity_index = COALESCE(?, progress.current_activity_index),
             updated_at = datetime('now')""",
        (new_id(), child_id, lesson_id, current_activity_index, current_activity_index),
    )
    await db.execute(
        """UPDATE progress SET overall_score = (
             SELECT CAST(SUM(ap.score * la.points) AS REAL) / SUM(la.points)
             FROM activity_progress ap
             JOIN lesson_activities la ON la.id = ap.activity_id
             WHERE ap.child_id = ? AND ap.lesson_id = ? AND ap.score IS NOT NULL AND la.points > 0
           )
           WHERE child_id = ? AND lesson_id = ?""",
        (child_id, lesson_id, child_id, lesson_id),
    )
    await db.commit()

    cursor = await db.execute(
        "SELECT * FROM activity_progress WHERE child_id = ? AND activity_id = ?",
        (child_id, activity_id),
    )
    return _row_to_activity(await cursor.fetchone())


def _row_to_activity(row: aiosqlite.Row) -> ActivityProgress:
    data = dict(row)
    data["completed"] = bool(data["completed"])
    data["attempts"] = data.get("attempts") or 0
    data["time_spent_seconds"] = data.get("time_spent_seconds") or 0
    return ActivityProgress(**data)


async def list_activity_progress(
    db: aiosqlite.Connection, child_id: str, lesson_id: str
) -> List[ActivityProgress]:
    cursor = await db.execute(
        """SELECT ap.* FROM activity_progress ap
           LEFT JOIN lesson_activities la ON la.id = ap.activity_id
           WHERE ap.child_id = ? AND ap.lesson_id = ?
           ORDER BY la.activity_order""",
        (child_id, lesson_id),
    )
    return [_row_to_activity(r) for r in await cursor.fetchall()]
