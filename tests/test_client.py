"""Tests for the async API client against a mocked transport."""

import asyncio
import json

import httpx
import pytest

from l2r.client import (
    BadRequest,
    Conflict,
    L2RClient,
    NetworkError,
    NotFound,
    ServerError,
    ServiceUnavailable,
    Unauthorized,
)


def run(coro):
    return asyncio.run(coro)


def make_client(handler, **kwargs):
    kwargs.setdefault("backoff", 0)
    return L2RClient("http://api.test/api", transport=httpx.MockTransport(handler), **kwargs)


class TestAuthFlow:
    def test_login_stores_token_for_later_requests(self):
        seen = []

        def handler(request):
            seen.append(request)
            if request.url.path == "/api/auth/login":
                return httpx.Response(200, json={"user": {"id": "u1"}, "token": "tok-123"})
            return httpx.Response(200, json={"children": [{"id": "c1"}]})

        async def flow():
            async with make_client(handler) as api:
                user = await api.login("a@example.com", "pw")
                kids = await api.list_children()
                return user, kids

        user, kids = run(flow())
        assert user == {"id": "u1"}
        assert kids == [{"id": "c1"}]
        assert "authorization" not in seen[0].headers
        assert seen[1].headers["authorization"] == "Bearer tok-123"
        assert json.loads(seen[0].content) == {"email": "a@example.com", "password": "pw"}


class TestErrors:
    @pytest.mark.parametrize(
        "status, error",
        [(400, BadRequest), (401, Unauthorized), (404, NotFound), (409, Conflict), (500, ServerError)],
    )
    def test_status_maps_to_typed_error(self, status, error):
        handler = lambda request: httpx.Response(status, json={"error": "nope"})

        async def call():
            async with make_client(handler, max_retries=0) as api:
                await api.get_child("c1")

        with pytest.raises(error) as exc_info:
            run(call())
        assert exc_info.value.status_code == status
        assert exc_info.value.message == "nope"

    def test_503_is_service_unavailable(self):
        handler = lambda request: httpx.Response(503, json={"error": "Voice service unavailable"})

        async def call():
            async with make_client(handler) as api:
                await api.text_to_speech("hi")

        with pytest.raises(ServiceUnavailable):
            run(call())


class TestRetries:
    def test_get_retries_on_server_error_then_succeeds(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            if calls["n"] < 3:
                return httpx.Response(503, json={"error": "busy"})
            return httpx.Response(200, json={"lesson": {"id": "l1"}})

        async def call():
            async with make_client(handler, max_retries=2) as api:
                return await api.get_lesson("l1")

        assert run(call()) == {"id": "l1"}
        assert calls["n"] == 3

    def test_get_gives_up_after_max_retries(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            raise httpx.ConnectError("refused", request=request)

        async def call():
            async with make_client(handler, max_retries=2) as api:
                await api.list_lessons()

        with pytest.raises(NetworkError):
            run(call())
        assert calls["n"] == 3

    def test_client_errors_are_not_retried(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            return httpx.Response(404, json={"error": "Lesson not found"})

        async def call():
            async with make_client(handler) as api:
                await api.get_lesson("missing")

        with pytest.raises(NotFound):
            run(call())
        assert calls["n"] == 1

    def test_writes_are_never_retried(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            return httpx.Response(500, json={"error": "Internal server error"})

        async def call():
            async with make_client(handler) as api:
                await api.create_child("Mia", age=6)

        with pytest.raises(ServerError):
            run(call())
        assert calls["n"] == 1


class TestRequests:
    def test_list_lessons_drops_empty_filters(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"lessons": [], "total": 0, "limit": 5, "offset": 0})

        async def call():
            async with make_client(handler) as api:
                return await api.list_lessons(limit=5, subject="phonics", difficulty=None)

        run(call())
        assert seen["params"] == {"limit": "5", "offset": "0", "subject": "phonics"}

    def test_delete_child_handles_empty_body(self):
        handler = lambda request: httpx.Response(204)

        async def call():
            async with make_client(handler) as api:
                return await api.delete_child("c1")

        assert run(call()) is None

    def test_complete_lesson_body(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"progress": {"status": "completed"}})

        async def call():
            async with make_client(handler) as api:
                return await api.complete_lesson("c1", "l1", score=90, time_spent=300)

        assert run(call()) == {"status": "completed"}
        assert seen["path"] == "/api/progress/child/c1/lesson/l1/complete"
        assert seen["body"] == {"score": 90, "timeSpent": 300}
