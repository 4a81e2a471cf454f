import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from l2r.config import settings
from l2r.db.database import init_db
from l2r.middleware.auth import API_RESOURCES, AuthMiddleware
from l2r.services.voice_client import VoiceNotFound, VoiceServiceUnavailable

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

# CORS: use CORS_ORIGINS (comma-separated) or local dev defaults.
if settings.cors_origins:
    _allowed_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
else:
    _allowed_origins = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ]


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


app = FastAPI(title="L2RR2L API", version=API_VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)
app.add_middleware(AuthMiddleware)


# ── Error envelope ─────────────────────────────────────────────────────

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if not errors:
        return JSONResponse(status_code=400, content={"error": "Invalid request"})

    first = errors[0]
    if first.get("type") == "json_invalid":
        return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})

    # loc is ("body" | "query" | "path", field, ...)
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "body"
    return JSONResponse(
        status_code=400,
        content={"error": f"Invalid value for {field}: {first.get('msg', 'invalid')}"},
    )


@app.exception_handler(VoiceServiceUnavailable)
async def voice_unavailable_handler(request: Request, exc: VoiceServiceUnavailable):
    logger.warning("Voice service unavailable for %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"error": "Voice service unavailable"})


@app.exception_handler(VoiceNotFound)
async def voice_not_found_handler(request: Request, exc: VoiceNotFound):
    return JSONResponse(status_code=404, content={"error": "Voice not found"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Import and register routes
from l2r.routes.auth import router as auth_router
from l2r.routes.lessons import router as lessons_router
from l2r.routes.children import router as children_router
from l2r.routes.progress import router as progress_router
from l2r.routes.onboarding import router as onboarding_router
from l2r.routes.voice_settings import router as voice_settings_router
from l2r.routes.voice import router as voice_router

app.include_router(auth_router)
app.include_router(lessons_router)
app.include_router(children_router)
app.include_router(progress_router)
app.include_router(onboarding_router)
app.include_router(voice_settings_router)
app.include_router(voice_router)


@app.get("/health")
async def health_check():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/api")
async def api_root():
    return {"message": "L2RR2L API", "version": API_VERSION}


# Catch-alls (must be last so every real route matches first)
_ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"]


@app.api_route("/api/{resource}", methods=_ALL_METHODS, include_in_schema=False)
@app.api_route("/api/{resource}/{rest:path}", methods=_ALL_METHODS, include_in_schema=False)
async def unmatched_api_route(resource: str, rest: str = ""):
    if resource in API_RESOURCES:
        return JSONResponse(status_code=405, content={"error": "Method not allowed"})
    return JSONResponse(status_code=404, content={"error": "Not found"})
