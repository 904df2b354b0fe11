import json

import httpx
import pytest

from livelocal.config import Settings
from livelocal.models.domain.session_domain import AuthUser
from livelocal.services.remote.contract import (
    NoRowsError,
    RemoteServiceError,
    UniqueViolationError,
)
from livelocal.services.remote.filters import Order, eq, is_null
from livelocal.services.remote.supabase_service import SupabaseService
from livelocal.services.session import AuthSession

CONFIG = Settings(
    SUPABASE_URL="https://project.supabase.co",
    SUPABASE_ANON_KEY="anon-key",
    MAX_RETRIES=2,
)


def _service(handler, session=None) -> SupabaseService:
    return SupabaseService(
        session or AuthSession(), config=CONFIG, transport=httpx.MockTransport(handler)
    )


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr("livelocal.services.remote.supabase_service.BACKOFF_FACTOR", 0)


@pytest.mark.asyncio
async def test_select_builds_postgrest_query():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url
        seen["headers"] = request.headers
        return httpx.Response(200, json=[{"id": "n1"}])

    service = _service(handler)
    rows = await service.select(
        "notifications",
        [eq("user_id", "u1"), is_null("read_at")],
        columns="id,title",
        order=Order("created_at", ascending=False),
        limit=20,
    )

    assert rows == [{"id": "n1"}]
    url = seen["url"]
    assert url.path == "/rest/v1/notifications"
    assert url.params["select"] == "id,title"
    assert url.params["user_id"] == "eq.u1"
    assert url.params["read_at"] == "is.null"
    assert url.params["order"] == "created_at.desc"
    assert url.params["limit"] == "20"
    assert seen["headers"]["apikey"] == "anon-key"
    assert seen["headers"]["authorization"] == "Bearer anon-key"
    await service.close()


@pytest.mark.asyncio
async def test_insert_returns_representation():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["prefer"] == "return=representation"
        body = json.loads(request.content)
        return httpx.Response(201, json=[{"id": "s1", **body}])

    service = _service(handler)
    row = await service.insert("saved_experiences", {"user_id": "u1", "experience_id": "e1"})

    assert row == {"id": "s1", "user_id": "u1", "experience_id": "e1"}


@pytest.mark.asyncio
async def test_error_codes_map_to_exception_types():
    responses = iter(
        [
            httpx.Response(409, json={"code": "23505", "message": "duplicate key value"}),
            httpx.Response(406, json={"code": "PGRST116", "message": "no rows"}),
            httpx.Response(400, json={"code": "42501", "message": "permission denied"}),
        ]
    )
    service = _service(lambda request: next(responses))

    with pytest.raises(UniqueViolationError):
        await service.insert("saved_experiences", {"user_id": "u1"})
    with pytest.raises(NoRowsError):
        await service.select("bookings", [eq("id", "b1")])
    with pytest.raises(RemoteServiceError) as exc_info:
        await service.delete("notifications", [eq("id", "n1")])
    assert exc_info.value.status_code == 400
    assert exc_info.value.recoverable is False


@pytest.mark.asyncio
async def test_retries_server_errors_then_succeeds():
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        if attempts["count"] == 1:
            return httpx.Response(503)
        return httpx.Response(204)

    service = _service(handler)
    await service.update("notifications", [eq("id", "n1")], {"read": True})

    assert attempts["count"] == 2


@pytest.mark.asyncio
async def test_transport_failure_becomes_remote_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    service = _service(handler)

    with pytest.raises(RemoteServiceError) as exc_info:
        await service.select("notifications")
    assert exc_info.value.recoverable is True


@pytest.mark.asyncio
async def test_sign_in_updates_session_and_auth_header():
    session = AuthSession()
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/auth/v1/token":
            return httpx.Response(
                200,
                json={"access_token": "user-token", "user": {"id": "u1", "email": "a@b.co"}},
            )
        return httpx.Response(200, json=[])

    service = _service(handler, session)
    user = await service.sign_in_with_password("a@b.co", "secret")
    await service.select("notifications")

    assert user.id == "u1"
    assert session.get_current_user().id == "u1"
    assert seen[0].url.params["grant_type"] == "password"
    assert seen[1].headers["authorization"] == "Bearer user-token"


@pytest.mark.asyncio
async def test_sign_out_clears_session_even_if_remote_fails():
    session = AuthSession()
    service = _service(lambda request: httpx.Response(500), session)

    await session.set_session(AuthUser(id="u1"), "token")
    await service.sign_out()

    assert session.get_current_user() is None
    assert session.access_token is None


@pytest.mark.asyncio
async def test_invoke_posts_to_functions():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/functions/v1/semantic-search"
        return httpx.Response(200, json={"results": []})

    service = _service(handler)

    assert await service.invoke("semantic-search", {"query": "kayak"}) == {"results": []}
