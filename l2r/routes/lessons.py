import logging
from typing import Optional

import aiosqlite
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from l2r.db import children as child_db
from l2r.db import lessons as lesson_db
from l2r.db.database import get_db
from l2r.models.lesson import (
    DIFFICULTIES,
    LEARNING_STYLES,
    SOURCES,
    EngagementRequest,
    LessonPayload,
    RateRequest,
)
from l2r.routes.auth import AuthUser, require_user
from l2r.services.lesson_matcher import MatchOptions, match_lessons_for_child

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/lessons", tags=["lessons"])

DEFAULT_MIN_AGE = 3
DEFAULT_MAX_AGE = 12
MAX_PAGE_SIZE = 100


async def _owned_child(db: aiosqlite.Connection, auth: AuthUser, child_id: str):
    child = await child_db.get_child(db, auth.user_id, child_id)
    if not child:
        raise HTTPException(status_code=404, detail="Child not found")
    return child


# ── Collection routes (registered before /{lesson_id}) ─────────────────

@router.get("")
async def list_lessons(
    subject: Optional[str] = None,
    difficulty: Optional[str] = None,
    grade_level: Optional[str] = Query(None, alias="gradeLevel"),
    source: Optional[str] = None,
    limit: int = Query(20, ge=0, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: aiosqlite.Connection = Depends(get_db),
):
    lessons, total = await lesson_db.list_lessons(
        db,
        subject=subject,
        grade_level=grade_level,
        difficulty=difficulty,
        source=source,
        limit=limit,
        offset=offset,
    )
    return {
        "lessons": [l.model_dump(by_alias=True) for l in lessons],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.post("", status_code=201)
async def create_lesson(
    body: LessonPayload,
    auth: AuthUser = Depends(require_user),
    db: aiosqlite.Connection = Depends(get_db),
):
    if not body.title or not body.subject:
        raise HTTPException(status_code=400, detail="Title and subject are required")

    lesson = await lesson_db.create_lesson(db, body)
    return {"lesson": lesson.model_dump(by_alias=True)}


@router.get("/subjects")
async def list_subjects(db: aiosqlite.Connection = Depends(get_db)):
    return {"subjects": await lesson_db.list_subjects(db)}


@router.get("/filters")
async def get_filters(db: aiosqlite.Connection = Depends(get_db)):
    min_age, max_age = await lesson_db.get_age_range(db)
    return {
        "subjects": await lesson_db.list_subjects(db),
        "gradeLevels": await lesson_db.list_grade_levels(db),
        "difficulties": DIFFICULTIES,
        "sources": SOURCES,
        "learningStyles": LEARNING_STYLES,
        "ageRange": {
            "min": min_age if min_age is not None else DEFAULT_MIN_AGE,
            "max": max_age if max_age is not None else DEFAULT_MAX_AGE,
        },
    }


@router.get("/search")
async def search_lessons(
    q: str = "",
    limit: int = Query(20, ge=0, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: aiosqlite.Connection = Depends(get_db),
):
    term = q.strip()
    if not term:
        raise HTTPException(status_code=400, detail="Search query is required")

    lessons, total = await lesson_db.search_lessons(db, term, limit=limit, offset=offset)
    return {
        "lessons": [l.model_dump(by_alias=True) for l in lessons],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/match")
async def match_lessons(
    child_id: Optional[str] = Query(None, alias="childId"),
    subject: Optional[str] = None,
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    min_score: int = Query(0, alias="minScore"),
    exclude_completed: bool = Query(True, alias="excludeCompleted"),
    auth: AuthUser = Depends(require_user),
    db: aiosqlite.Connection = Depends(get_db),
):
    if not child_id:
        raise HTTPException(status_code=400, detail="childId is required")

    child = await _owned_child(db, auth, child_id)
    options = MatchOptions(
        limit=limit,
        exclude_completed=exclude_completed,
        subject=subject or None,
        min_score=min_score,
    )
    scored = await match_lessons_for_child(db, child, options)
    return {"lessons": [s.model_dump(by_alias=True) for s in scored]}


# ── Single lesson ──────────────────────────────────────────────────────

@router.get("/{lesson_id}")
async def get_lesson(lesson_id: str, db: aiosqlite.Connection = Depends(get_db)):
    lesson = await lesson_db.get_lesson(db, lesson_id)
    if not lesson:
        raise HTTPException(status_code=404, detail="Lesson not found")
    return {"lesson": lesson.model_dump(by_alias=True)}


@router.put("/{lesson_id}")
async def update_lesson(
    lesson_id: str,
    body: LessonPayload,
    auth: AuthUser = Depends(require_user),
    db: aiosqlite.Connection = Depends(get_db),
):
    for field in ("title", "subject"):
        if field in body.model_fields_set and not getattr(body, field):
            raise HTTPException(status_code=400, detail="Title and subject are required")

    lesson = await lesson_db.update_lesson(db, lesson_id, body)
    if not lesson:
        raise HTTPException(status_code=404, detail="Lesson not found")
    return {"lesson": lesson.model_dump(by_alias=True)}


@router.delete("/{lesson_id}", status_code=204)
async def delete_lesson(
    lesson_id: str,
    auth: AuthUser = Depends(require_user),
    db: aiosqlite.Connection = Depends(get_db),
):
    if not await lesson_db.delete_lesson(db, lesson_id):
        raise HTTPException(status_code=404, detail="Lesson not found")
    logger.info("User %s deleted lesson %s", auth.user_id, lesson_id)
    return Response(status_code=204)


@router.get("/{lesson_id}/recommendations")
async def get_recommendations(
    lesson_id: str,
    request: Request,
    child_id: Optional[str] = Query(None, alias="childId"),
    db: aiosqlite.Connection = Depends(get_db),
):
    lesson = await lesson_db.get_lesson(db, lesson_id)
    if not lesson:
        raise HTTPException(status_code=404, detail="Lesson not found")

    child = None
    if child_id:
        # Personalised recommendations need to know whose child this is
        auth = await require_user(request)
        child = await _owned_child(db, auth, child_id)

    recommendations = await lesson_db.get_recommendations(db, lesson, child)
    return {"recommendations": [r.model_dump(by_alias=True) for r in recommendations]}


@router.post("/{lesson_id}/rate")
async def rate_lesson(
    lesson_id: str,
    body: RateRequest,
    auth: AuthUser = Depends(require_user),
    db: aiosqlite.Connection = Depends(get_db),
):
    if body.rating is None or not 1 <= body.rating <= 5:
        raise HTTPException(status_code=400, detail="Rating must be between 1 and 5")

    if not await lesson_db.lesson_exists(db, lesson_id):
        raise HTTPException(status_code=404, detail="Lesson not found")

    if body.child_id:
        await _owned_child(db, auth, body.child_id)

    avg_rating, rating_count = await lesson_db.rate_lesson(
        db,
        lesson_id,
        auth.user_id,
        body.rating,
        feedback=body.feedback or None,
        child_id=body.child_id or None,
    )
    return {"success": True, "avg_rating": avg_rating, "rating_count": rating_count}


@router.post("/{lesson_id}/engagement")
async def track_engagement(
    lesson_id: str,
    body: EngagementRequest,
    auth: AuthUser = Depends(require_user),
    db: aiosqlite.Connection = Depends(get_db),
):
    if not body.child_id or not body.action:
        raise HTTPException(status_code=400, detail="childId and action are required")

    if body.action not in lesson_db.ENGAGEMENT_COUNTERS:
        raise HTTPException(status_code=400, detail="Invalid action")

    if not await lesson_db.lesson_exists(db, lesson_id):
        raise HTTPException(status_code=404, detail="Lesson not found")

    await _owned_child(db, auth, body.child_id)
    await lesson_db.track_engagement(db, lesson_id, body.child_id, body.action, body.time_seconds)
    return {"success": True}
