from unittest.mock import AsyncMock

import pytest

from livelocal.models.domain.session_domain import AuthUser
from livelocal.services.session import AuthSession


@pytest.mark.asyncio
async def test_listeners_fire_only_on_identity_change(user):
    session = AuthSession()
    listener = AsyncMock()
    session.on_auth_state_change(listener)

    await session.set_session(user, "token-1")
    await session.set_session(user, "token-2")  # refresh
    await session.set_session(AuthUser(id="user-2"), "token-3")
    await session.clear()
    await session.clear()

    assert [c.args[0].id if c.args[0] else None for c in listener.await_args_list] == [
        "user-1",
        "user-2",
        None,
    ]
    assert session.access_token is None


@pytest.mark.asyncio
async def test_removed_listener_is_not_notified(user):
    session = AuthSession()
    listener = AsyncMock()
    remove = session.on_auth_state_change(listener)

    remove()
    remove()
    await session.set_session(user)

    listener.assert_not_awaited()


@pytest.mark.asyncio
async def test_failing_listener_does_not_block_others(user):
    session = AuthSession()
    healthy = AsyncMock()
    session.on_auth_state_change(AsyncMock(side_effect=RuntimeError("boom")))
    session.on_auth_state_change(healthy)

    await session.set_session(user)

    healthy.assert_awaited_once_with(user)
