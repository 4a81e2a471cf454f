from typing import Optional

from pydantic import BaseModel

from l2r.models.base import CamelModel


class Child(BaseModel):
    id: str
    user_id: str
    name: str
    age: Optional[int] = None
    sex: Optional[str] = None
    avatar: Optional[str] = None
    grade_level: Optional[str] = None
    learning_style: Optional[str] = None
    interests: list[str] = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ChildPayload(CamelModel):
    name: Optional[str] = None
    age: Optional[int] = None
    sex: Optional[str] = None
    avatar: Optional[str] = None
    grade_level: Optional[str] = None
    learning_style: Optional[str] = None
    interests: Optional[list[str]] = None
