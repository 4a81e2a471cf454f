from typing import Literal, Optional

from pydantic import BaseModel

from l2r.models.base import CamelModel

ProgressStatus = Literal["not_started", "in_progress", "completed"]


class ProgressRecord(BaseModel):
    id: Optional[str] = None
    child_id: str
    lesson_id: str
    status: str = "not_started"
    score: Optional[int] = None
    time_spent: int = 0
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    current_activity_index: int = 0
    overall_score: Optional[float] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    # Present on the per-child listing only
    lesson_title: Optional[str] = None
    subject: Optional[str] = None


class ProgressSummary(BaseModel):
    total_lessons: int = 0
    completed_lessons: int = 0
    in_progress_lessons: int = 0
    average_score: Optional[float] = None
    total_time_spent: int = 0


class CompleteLessonRequest(CamelModel):
    score: Optional[int] = None
    time_spent: Optional[int] = None


class ProgressUpdate(CamelModel):
    status: Optional[ProgressStatus] = None
    score: Optional[int] = None
    time_spent: Optional[int] = None


class ActivityProgressRequest(CamelModel):
    activity_id: Optional[str] = None
    completed: bool = False
    score: Optional[int] = None
    attempts: Optional[int] = None
    time_spent_seconds: Optional[int] = None
    current_activity_index: Optional[int] = None


class ActivityProgress(BaseModel):
    id: str
    child_id: str
    lesson_id: str
    activity_id: str
    completed: bool = False
    score: Optional[int] = None
    attempts: int = 0
    time_spent_seconds: int = 0
    completed_at: Optional[str] = None
    updated_at: Optional[str] = None
