from typing import Any, Optional

from pydantic import BaseModel


class RegisterRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class User(BaseModel):
    id: str
    email: str
    name: str
    created_at: Optional[str] = None


class OnboardingState(BaseModel):
    id: Optional[str] = None
    completed: bool = False
    step: int = 0
    data: dict[str, Any] = {}


class OnboardingUpdate(BaseModel):
    step: Optional[int] = None
    data: Optional[dict[str, Any]] = None
    completed: Optional[bool] = None
