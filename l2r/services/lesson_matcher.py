"""Lesson matcher: ranks published lessons for one child.

Each lesson gets five 0-100 sub-scores which are blended into a single
match score:

    age            30%   child age (or grade-derived age) vs the lesson's range
    interests      25%   child interests vs lesson interests/tags/subject
    learning style 20%   child style vs the lesson's style list
    difficulty     15%   distance from the next level up from what was completed
    popularity     10%   average rating plus a log bonus for completions
"""

import math
from dataclasses import dataclass, field
from typing import Optional

import aiosqlite

from l2r.db import lessons as lesson_db
from l2r.db import progress as progress_db
from l2r.models.child import Child
from l2r.models.lesson import DIFFICULTIES, LessonWithStats, ScoreBreakdown, ScoredLesson

WEIGHTS = {
    "age": 0.30,
    "interest": 0.25,
    "learning_style": 0.20,
    "difficulty": 0.15,
    "popularity": 0.10,
}

GRADE_TO_AGE = {
    "Pre-K": (3, 4),
    "Kindergarten": (5, 6),
    "1st grade": (6, 7),
    "2nd grade": (7, 8),
    "3rd grade": (8, 9),
    "4th grade": (9, 10),
    "5th grade": (10, 11),
}


@dataclass
class ChildHistory:
    completed_lesson_ids: set = field(default_factory=set)
    completed_difficulties: set = field(default_factory=set)
    # subject -> (completed count, average score)
    subject_scores: dict = field(default_factory=dict)


@dataclass
class MatchOptions:
    limit: int = 20
    exclude_completed: bool = True
    subject: Optional[str] = None
    min_score: int = 0


def build_history(completed_rows: list[dict]) -> ChildHistory:
    history = ChildHistory()
    for row in completed_rows:
        history.completed_lesson_ids.add(row["lesson_id"])
        if row.get("difficulty"):
            history.completed_difficulties.add(row["difficulty"])
        count, avg = history.subject_scores.get(row["subject"], (0, 0.0))
        new_count = count + 1
        history.subject_scores[row["subject"]] = (
            new_count,
            (avg * count + (row.get("score") or 0)) / new_count,
        )
    return history


# ── Sub-scores ────────────────────────────────────────────────────────

def age_score(lesson: LessonWithStats, age: Optional[int], grade_level: Optional[str]) -> float:
    effective_age = age
    if not effective_age and grade_level in GRADE_TO_AGE:
        low, high = GRADE_TO_AGE[grade_level]
        effective_age = round((low + high) / 2)

    if not effective_age:
        return 50
    if lesson.age_min is None and lesson.age_max is None:
        return 60

    min_age = lesson.age_min if lesson.age_min is not None else 0
    max_age = lesson.age_max if lesson.age_max is not None else 100

    if min_age <= effective_age <= max_age:
        range_size = max_age - min_age
        if range_size == 0:
            return 100
        center = (min_age + max_age) / 2
        # 80 at the edges of the range, 100 in the middle
        return 100 - (abs(effective_age - center) / (range_size / 2)) * 20

    distance = min_age - effective_age if effective_age < min_age else effective_age - max_age
    return max(0, 50 - distance * 15)


def interest_score(lesson: LessonWithStats, interests: list[str]) -> float:
    if not interests:
        return 50

    keywords = {i.lower() for i in (lesson.interests or [])}
    keywords.update(t.lower() for t in (lesson.tags or []))
    keywords.add(lesson.subject.lower())
    keywords.discard("")
    if not keywords:
        return 40

    matches = 0
    for interest in (i.lower() for i in interests):
        if any(k == interest or interest in k or k in interest for k in keywords):
            matches += 1

    return round(40 + (matches / len(interests)) * 60)


def learning_style_score(lesson: LessonWithStats, learning_style: Optional[str]) -> float:
    styles = lesson.learning_styles or []
    if not learning_style or not styles:
        return 50
    if learning_style in styles:
        return 100 if styles[0] == learning_style else 85
    return 30


def difficulty_score(lesson: LessonWithStats, history: ChildHistory) -> float:
    if lesson.difficulty not in DIFFICULTIES:
        return 50

    lesson_index = DIFFICULTIES.index(lesson.difficulty)
    top = len(DIFFICULTIES) - 1

    max_completed = max(
        (DIFFICULTIES.index(d) for d in history.completed_difficulties if d in DIFFICULTIES),
        default=-1,
    )
    subject = history.subject_scores.get(lesson.subject)
    if subject and subject[1] >= 80:
        max_completed = min(max_completed + 1, top)

    ideal_index = min(max_completed + 1, top) if max_completed >= 0 else 0
    if lesson_index == ideal_index:
        return 100

    distance = abs(lesson_index - ideal_index)
    if lesson_index < ideal_index:
        return max(50, 100 - distance * 20)
    return max(20, 100 - distance * 30)


def popularity_score(avg_rating: Optional[float], total_completions: int) -> float:
    score = 50.0
    if avg_rating:
        score += (avg_rating / 5) * 30
    score += min(20, math.log10(total_completions + 1) * 10)
    return round(score)


def score_lesson(lesson: LessonWithStats, child: Child, history: ChildHistory) -> ScoredLesson:
    breakdown = ScoreBreakdown(
        age_score=age_score(lesson, child.age, child.grade_level),
        interest_score=interest_score(lesson, child.interests),
        learning_style_score=learning_style_score(lesson, child.learning_style),
        difficulty_score=difficulty_score(lesson, history),
        popularity_score=popularity_score(lesson.avg_rating, lesson.total_completions),
    )
    total = (
        breakdown.age_score * WEIGHTS["age"]
        + breakdown.interest_score * WEIGHTS["interest"]
        + breakdown.learning_style_score * WEIGHTS["learning_style"]
        + breakdown.difficulty_score * WEIGHTS["difficulty"]
        + breakdown.popularity_score * WEIGHTS["popularity"]
    )
    return ScoredLesson(
        **lesson.model_dump(),
        match_score=round(total),
        score_breakdown=breakdown,
    )


async def match_lessons_for_child(
    db: aiosqlite.Connection, child: Child, options: Optional[MatchOptions] = None
) -> list[ScoredLesson]:
    """Score every published lesson for ``child``, best match first."""
    options = options or MatchOptions()
    history = build_history(await progress_db.completed_lessons_for_child(db, child.id))
    candidates = await lesson_db.list_published_with_stats(db, options.subject)

    scored = []
    for lesson in candidates:
        if options.exclude_completed and lesson.id in history.completed_lesson_ids:
            continue
        result = score_lesson(lesson, child, history)
        if result.match_score >= options.min_score:
            scored.append(result)

    scored.sort(key=lambda s: s.match_score, reverse=True)
    return scored[: options.limit]
