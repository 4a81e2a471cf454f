from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

# API paths that don't require authentication
PUBLIC_API_PATHS = {
    "/api",
    "/api/auth/register",
    "/api/auth/login",
}

# Lesson catalogue reads are public; /match checks the token in its route
PUBLIC_GET_PREFIX = "/api/lessons"

# First path segment after /api/ of every mounted router
API_RESOURCES = {"auth", "lessons", "children", "progress", "onboarding", "voice"}

# Non-API prefixes that are always public (docs)
PUBLIC_PREFIXES = (
    "/docs",
    "/openapi",
    "/redoc",
)


class AuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path.rstrip("/") or "/"

        if path.startswith(PUBLIC_PREFIXES):
            return await call_next(request)

        # Allow non-API paths (health check)
        if path != "/api" and not path.startswith("/api/"):
            return await call_next(request)

        if path in PUBLIC_API_PATHS:
            return await call_next(request)

        # Unknown resources fall through to the 404 catch-all
        if path.split("/")[2] not in API_RESOURCES:
            return await call_next(request)

        # CORS preflight never carries credentials
        if request.method == "OPTIONS":
            return await call_next(request)

        if request.method == "GET" and (
            path == PUBLIC_GET_PREFIX or path.startswith(PUBLIC_GET_PREFIX + "/")
        ):
            return await call_next(request)

        # All other API paths require a Bearer token
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            # Token present; the route's require_user verifies it
            return await call_next(request)

        return JSONResponse(status_code=401, content={"error": "Authorization required"})
