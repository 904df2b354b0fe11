from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from livelocal.client import LiveLocalClient
from livelocal.services.notification_store import NOTIFICATIONS_TABLE
from livelocal.services.store_base import StoreState
from tests.conftest import ts


@pytest_asyncio.fixture
async def signed_in_client(fake_remote, session, notices, user, ratings):
    notifier = MagicMock()
    notifier.permission = "granted"
    client = LiveLocalClient(
        fake_remote, session, notices, system_notifier=notifier, ratings=ratings
    )
    await client.start()
    await session.set_session(user)
    yield client
    await client.close()


@pytest.mark.asyncio
async def test_new_user_sees_empty_state(signed_in_client, notices, fake_remote):
    client = signed_in_client

    assert all(store.state == StoreState.READY for store in client.stores)
    assert all(store.loading is False for store in client.stores)
    assert client.conversations.conversations == []
    assert client.conversations.messages == []
    assert client.notifications.notifications == []
    assert client.notifications.unread_count == 0
    assert client.saved.saved_items == []
    assert await client.ratings.get_ratings([]) == {}
    assert notices.errors == []


@pytest.mark.asyncio
async def test_pushed_notification_lands_on_top(signed_in_client, fake_remote, notices):
    client = signed_in_client
    fake_remote.seed(
        NOTIFICATIONS_TABLE,
        {
            "id": "n-old",
            "user_id": "user-1",
            "type": "message",
            "title": "New message",
            "message": "Rita sent you a message",
            "read": False,
            "created_at": ts(1),
            "updated_at": ts(1),
        },
    )
    await client.notifications.fetch_notifications()
    before = client.notifications.unread_count

    delivered = await fake_remote.push(
        NOTIFICATIONS_TABLE,
        "INSERT",
        {
            "id": "n-new",
            "user_id": "user-1",
            "type": "booking",
            "title": "Booking confirmed",
            "message": "Sunset kayak on Saturday",
            "data": {"booking_id": "b-1"},
            "read": False,
            "created_at": ts(5),
            "updated_at": ts(5),
        },
    )

    assert delivered == 1
    assert client.notifications.notifications[0].id == "n-new"
    assert client.notifications.unread_count == before + 1
    assert notices.history[-1].title == "Booking confirmed"
    assert notices.errors == []
