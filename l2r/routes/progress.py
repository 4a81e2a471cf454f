from typing import Optional

import aiosqlite
from fastapi import APIRouter, Depends, HTTPException

from l2r.db import children as child_db
from l2r.db import lessons as lesson_db
from l2r.db import progress as progress_db
from l2r.db.database import get_db
from l2r.models.progress import (
    ActivityProgressRequest,
    CompleteLessonRequest,
    ProgressRecord,
    ProgressUpdate,
)
from l2r.routes.auth import AuthUser, require_user

router = APIRouter(prefix="/api/progress/child/{child_id}", tags=["progress"])


async def owned_child_id(
    child_id: str,
    auth: AuthUser = Depends(require_user),
    db: aiosqlite.Connection = Depends(get_db),
) -> str:
    """Resolve the path's child, 404 unless it belongs to the caller."""
    if not await child_db.child_belongs_to(db, auth.user_id, child_id):
        raise HTTPException(status_code=404, detail="Child not found")
    return child_id


async def _require_lesson(db: aiosqlite.Connection, lesson_id: str) -> None:
    if not await lesson_db.lesson_exists(db, lesson_id):
        raise HTTPException(status_code=404, detail="Lesson not found")


@router.get("")
async def list_progress(
    child_id: str = Depends(owned_child_id),
    db: aiosqlite.Connection = Depends(get_db),
):
    records = await progress_db.list_progress(db, child_id)
    return {"progress": [r.model_dump() for r in records]}


@router.get("/summary")
async def get_summary(
    child_id: str = Depends(owned_child_id),
    db: aiosqlite.Connection = Depends(get_db),
):
    summary = await progress_db.get_summary(db, child_id)
    return {"summary": summary.model_dump()}


@router.get("/lesson/{lesson_id}")
async def get_lesson_progress(
    lesson_id: str,
    child_id: str = Depends(owned_child_id),
    db: aiosqlite.Connection = Depends(get_db),
):
    record = await progress_db.get_progress(db, child_id, lesson_id)
    if record is None:
        # Not started yet; nothing is written
        record = ProgressRecord(child_id=child_id, lesson_id=lesson_id)
    return {"progress": record.model_dump()}


@router.post("/lesson/{lesson_id}/start")
async def start_lesson(
    lesson_id: str,
    child_id: str = Depends(owned_child_id),
    db: aiosqlite.Connection = Depends(get_db),
):
    await _require_lesson(db, lesson_id)
    record = await progress_db.start_lesson(db, child_id, lesson_id)
    return {"progress": record.model_dump()}


@router.post("/lesson/{lesson_id}/complete")
async def complete_lesson(
    lesson_id: str,
    body: Optional[CompleteLessonRequest] = None,
    child_id: str = Depends(owned_child_id),
    db: aiosqlite.Connection = Depends(get_db),
):
    await _require_lesson(db, lesson_id)
    body = body or CompleteLessonRequest()
    record = await progress_db.complete_lesson(
        db, child_id, lesson_id, score=body.score, time_spent=body.time_spent
    )
    return {"progress": record.model_dump()}


@router.put("/lesson/{lesson_id}")
async def update_progress(
    lesson_id: str,
    body: ProgressUpdate,
    child_id: str = Depends(owned_child_id),
    db: aiosqlite.Connection = Depends(get_db),
):
    changes = body.model_dump(exclude_unset=True)
    if "status" in changes and changes["status"] is None:
        raise HTTPException(status_code=400, detail="Status cannot be null")

    record = await progress_db.update_progress(db, child_id, lesson_id, changes)
    if record is None:
        raise HTTPException(status_code=404, detail="Progress record not found")
    return {"progress": record.model_dump()}


@router.post("/lesson/{lesson_id}/activity")
async def save_activity(
    lesson_id: str,
    body: ActivityProgressRequest,
    child_id: str = Depends(owned_child_id),
    db: aiosqlite.Connection = Depends(get_db),
):
    if not body.activity_id:
        raise HTTPException(status_code=400, detail="activityId is required")
    if body.score is not None and not 0 <= body.score <= 100:
        raise HTTPException(status_code=400, detail="Score must be between 0 and 100")

    if not await progress_db.activity_exists(db, lesson_id, body.activity_id):
        raise HTTPException(status_code=404, detail="Activity not found")

    activity = await progress_db.save_activity_progress(
        db,
        child_id,
        lesson_id,
        body.activity_id,
        completed=body.completed,
        score=body.score,
        attempts=body.attempts,
        time_spent_seconds=body.time_spent_seconds,
        current_activity_index=body.current_activity_index,
    )
    return {"activity": activity.model_dump()}


@router.get("/lesson/{lesson_id}/activities")
async def list_activities(
    lesson_id: str,
    child_id: str = Depends(owned_child_id),
    db: aiosqlite.Connection = Depends(get_db),
):
    activities = await progress_db.list_activity_progress(db, child_id, lesson_id)
    return {"activities": [a.model_dump() for a in activities]}
