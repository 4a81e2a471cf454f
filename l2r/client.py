"""Async Python client for the L2R API.

Usage:
    async with L2RClient("http://localhost:8000/api") as api:
        await api.login("parent@example.com", "secret")
        kids = await api.list_children()
        summary = await api.progress_summary(kids[0]["id"])

Login and register store the returned token; every later request sends it
as a Bearer header. Non-2xx answers raise a typed ``APIError`` subclass.
GET requests are retried (at most ``max_retries`` times, exponential
backoff) on network errors and 5xx answers; nothing else is retried.
"""

import logging
from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)


class APIError(Exception):
    status_code: int = 0

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NetworkError(APIError):
    pass


class BadRequest(APIError):
    status_code = 400


class Unauthorized(APIError):
    status_code = 401


class NotFound(APIError):
    status_code = 404


class Conflict(APIError):
    status_code = 409


class ServerError(APIError):
    status_code = 500


class ServiceUnavailable(ServerError):
    status_code = 503


_STATUS_ERRORS = {
    400: BadRequest,
    401: Unauthorized,
    404: NotFound,
    409: Conflict,
    503: ServiceUnavailable,
}

RETRYABLE = (NetworkError, ServerError)


def _error_for(response: httpx.Response) -> APIError:
    try:
        message = response.json().get("error")
    except ValueError:
        message = None
    status = response.status_code
    if status in _STATUS_ERRORS:
        return _STATUS_ERRORS[status](message, status)
    if status >= 500:
        return ServerError(message, status)
    return APIError(message, status)


class L2RClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000/api",
        token: Optional[str] = None,
        max_retries: int = 2,
        backoff: float = 1.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.max_retries = max_retries
        self.backoff = backoff
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> "L2RClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── Transport ────────────────────────────────────────────────────

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            response = await self._http.request(method, path, headers=headers, **kwargs)
        except httpx.TransportError as e:
            raise NetworkError(str(e)) from e

        if response.status_code >= 400:
            raise _error_for(response)
        return response

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        if method != "GET":
            return await self._send(method, path, **kwargs)

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.backoff, min=0),
            retry=retry_if_exception_type(RETRYABLE),
            before_sleep=lambda retry_state: logger.debug(
                "Retrying GET %s (attempt %d/%d)",
                path, retry_state.attempt_number + 1, self.max_retries + 1,
            ),
            reraise=True,
        ):
            with attempt:
                return await self._send(method, path, **kwargs)

    async def _json(self, method: str, path: str, **kwargs) -> Any:
        response = await self._request(method, path, **kwargs)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # ── Auth ─────────────────────────────────────────────────────────

    async def register(self, email: str, password: str, name: str) -> dict:
        data = await self._json("POST", "/auth/register", json={"email": email, "password": password, "name": name})
        self.token = data["token"]
        return data["user"]

    async def login(self, email: str, password: str) -> dict:
        data = await self._json("POST", "/auth/login", json={"email": email, "password": password})
        self.token = data["token"]
        return data["user"]

    async def me(self) -> dict:
        return (await self._json("GET", "/auth/me"))["user"]

    # ── Lessons ──────────────────────────────────────────────────────

    async def list_lessons(self, limit: int = 20, offset: int = 0, **filters) -> dict:
        params = {"limit": limit, "offset": offset}
        params.update({k: v for k, v in filters.items() if v is not None})
        return await self._json("GET", "/lessons", params=params)

    async def search_lessons(self, query: str, limit: int = 20, offset: int = 0) -> dict:
        return await self._json("GET", "/lessons/search", params={"q": query, "limit": limit, "offset": offset})

    async def get_lesson(self, lesson_id: str) -> dict:
        return (await self._json("GET", f"/lessons/{lesson_id}"))["lesson"]

    async def create_lesson(self, **fields) -> dict:
        return (await self._json("POST", "/lessons", json=fields))["lesson"]

    async def match_lessons(self, child_id: str, **options) -> list:
        params = {"childId": child_id, **{k: v for k, v in options.items() if v is not None}}
        return (await self._json("GET", "/lessons/match", params=params))["lessons"]

    async def rate_lesson(self, lesson_id: str, rating: int, child_id: Optional[str] = None,
                          feedback: Optional[str] = None) -> dict:
        body = {"rating": rating, "childId": child_id, "feedback": feedback}
        return await self._json("POST", f"/lessons/{lesson_id}/rate", json=body)

    # ── Children ─────────────────────────────────────────────────────

    async def list_children(self) -> list:
        return (await self._json("GET", "/children"))["children"]

    async def get_child(self, child_id: str) -> dict:
        return (await self._json("GET", f"/children/{child_id}"))["child"]

    async def create_child(self, name: str, **fields) -> dict:
        return (await self._json("POST", "/children", json={"name": name, **fields}))["child"]

    async def update_child(self, child_id: str, **fields) -> dict:
        return (await self._json("PUT", f"/children/{child_id}", json=fields))["child"]

    async def delete_child(self, child_id: str) -> None:
        await self._json("DELETE", f"/children/{child_id}")

    # ── Progress ─────────────────────────────────────────────────────

    async def child_progress(self, child_id: str) -> list:
        return (await self._json("GET", f"/progress/child/{child_id}"))["progress"]

    async def progress_summary(self, child_id: str) -> dict:
        return (await self._json("GET", f"/progress/child/{child_id}/summary"))["summary"]

    async def start_lesson(self, child_id: str, lesson_id: str) -> dict:
        path = f"/progress/child/{child_id}/lesson/{lesson_id}/start"
        return (await self._json("POST", path))["progress"]

    async def complete_lesson(self, child_id: str, lesson_id: str, score: Optional[int] = None,
                              time_spent: Optional[int] = None) -> dict:
        path = f"/progress/child/{child_id}/lesson/{lesson_id}/complete"
        body = {"score": score, "timeSpent": time_spent}
        return (await self._json("POST", path, json=body))["progress"]

    # ── Onboarding & voice ───────────────────────────────────────────

    async def get_onboarding(self) -> dict:
        return (await self._json("GET", "/onboarding"))["onboarding"]

    async def update_onboarding(self, **fields) -> dict:
        return (await self._json("PUT", "/onboarding", json=fields))["onboarding"]

    async def get_voice_settings(self, child_id: str) -> dict:
        return await self._json("GET", f"/voice/settings/{child_id}")

    async def save_voice_settings(self, child_id: str, **settings) -> dict:
        return await self._json("PUT", f"/voice/settings/{child_id}", json=settings)

    async def text_to_speech(self, text: str, voice_id: Optional[str] = None) -> bytes:
        body = {"text": text}
        if voice_id:
            body["voiceId"] = voice_id
        response = await self._request("POST", "/voice/tts", json=body)
        return response.content
