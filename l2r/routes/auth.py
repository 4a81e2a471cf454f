import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import aiosqlite
import bcrypt
import jwt
from fastapi import APIRouter, Depends, HTTPException, Request

from l2r.config import settings
from l2r.db import accounts
from l2r.db.database import get_db
from l2r.models.account import LoginRequest, RegisterRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

JWT_ALGORITHM = "HS256"
JWT_EXPIRY_DAYS = 7

AUTH_REQUIRED = "Authorization required"


@dataclass
class AuthUser:
    user_id: str
    email: str


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))


def create_token(user_id: str, email: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "userId": user_id,
        "email": email,
        "iat": now,
        "exp": now + timedelta(days=JWT_EXPIRY_DAYS),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> AuthUser:
    """Verify signature and expiry. Every failure is the same 401."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail=AUTH_REQUIRED)

    user_id = payload.get("userId")
    email = payload.get("email")
    if not isinstance(user_id, str) or not isinstance(email, str):
        raise HTTPException(status_code=401, detail=AUTH_REQUIRED)
    return AuthUser(user_id=user_id, email=email)


async def require_user(request: Request) -> AuthUser:
    """Route dependency returning the caller decoded from the bearer token."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail=AUTH_REQUIRED)

    token = auth_header[len("Bearer "):].strip()
    if not token:
        raise HTTPException(status_code=401, detail=AUTH_REQUIRED)
    return decode_token(token)


@router.post("/register", status_code=201)
async def register(body: RegisterRequest, db: aiosqlite.Connection = Depends(get_db)):
    if not body.email or not body.password or not body.name:
        raise HTTPException(status_code=400, detail="Email, password, and name are required")

    if await accounts.email_exists(db, body.email):
        raise HTTPException(status_code=409, detail="Email already registered")

    user_id = await accounts.create_user(db, body.email, hash_password(body.password), body.name)
    logger.info("Registered user %s", user_id)

    return {
        "user": {"id": user_id, "email": body.email, "name": body.name},
        "token": create_token(user_id, body.email),
    }


@router.post("/login")
async def login(body: LoginRequest, db: aiosqlite.Connection = Depends(get_db)):
    if not body.email or not body.password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    user = await accounts.get_user_credentials(db, body.email)
    if not user or not user["password_hash"]:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if not verify_password(body.password, user["password_hash"]):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    return {
        "user": {"id": user["id"], "email": user["email"], "name": user["name"]},
        "token": create_token(user["id"], user["email"]),
    }


@router.get("/me")
async def get_me(
    auth: AuthUser = Depends(require_user),
    db: aiosqlite.Connection = Depends(get_db),
):
    user = await accounts.get_user(db, auth.user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user": user.model_dump()}
