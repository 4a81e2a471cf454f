from typing import Any, Literal, Optional

from pydantic import Field

from l2r.models.base import CamelModel

LessonDifficulty = Literal["beginner", "easy", "medium", "hard", "advanced"]
LessonSource = Literal["ai_generated", "curated"]
LearningStyle = Literal["visual", "auditory", "kinesthetic"]

DIFFICULTIES: list[str] = ["beginner", "easy", "medium", "hard", "advanced"]
SOURCES: list[str] = ["ai_generated", "curated"]
LEARNING_STYLES: list[str] = ["visual", "auditory", "kinesthetic"]

ACTIVITY_TYPES = {
    "reading", "spelling", "phonics", "sight-words", "quiz",
    "matching", "fill-in-blank", "listen-repeat", "word-building",
}


class Lesson(CamelModel):
    id: str
    title: str
    subject: str
    description: Optional[str] = None
    grade_level: Optional[str] = None
    difficulty: Optional[str] = None
    duration_minutes: Optional[int] = None
    age_min: Optional[int] = None
    age_max: Optional[int] = None
    learning_styles: Optional[list[str]] = None
    interests: Optional[list[str]] = None
    objectives: Optional[list[Any]] = None
    activities: Optional[list[Any]] = None
    materials: Optional[list[Any]] = None
    assessment_criteria: Optional[list[Any]] = None
    source: str = "curated"
    tags: Optional[list[str]] = None
    prerequisites: Optional[list[str]] = None
    thumbnail_url: Optional[str] = None
    is_published: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class LessonWithStats(Lesson):
    # Aggregates keep their snake_case names on the wire
    avg_rating: Optional[float] = Field(None, alias="avg_rating")
    rating_count: int = Field(0, alias="rating_count")
    total_completions: int = Field(0, alias="total_completions")


class ScoreBreakdown(CamelModel):
    age_score: float
    interest_score: float
    learning_style_score: float
    difficulty_score: float
    popularity_score: float


class ScoredLesson(LessonWithStats):
    match_score: int
    score_breakdown: ScoreBreakdown


class LessonPayload(CamelModel):
    """Body of POST/PUT /api/lessons. Every field is optional so PUT can be partial."""

    title: Optional[str] = None
    subject: Optional[str] = None
    description: Optional[str] = None
    grade_level: Optional[str] = None
    difficulty: Optional[LessonDifficulty] = None
    duration_minutes: Optional[int] = None
    age_min: Optional[int] = None
    age_max: Optional[int] = None
    learning_styles: Optional[list[str]] = None
    interests: Optional[list[str]] = None
    objectives: Optional[list[Any]] = None
    activities: Optional[list[Any]] = None
    materials: Optional[list[Any]] = None
    assessment_criteria: Optional[list[Any]] = None
    source: Optional[LessonSource] = None
    tags: Optional[list[str]] = None
    prerequisites: Optional[list[str]] = None
    thumbnail_url: Optional[str] = None
    is_published: Optional[bool] = None


class RateRequest(CamelModel):
    rating: Optional[int] = None
    feedback: Optional[str] = None
    child_id: Optional[str] = None


class EngagementRequest(CamelModel):
    child_id: Optional[str] = None
    action: Optional[str] = None
    time_seconds: Optional[int] = None
