"""
Postgres change listener feeding the change feed hub.

Table triggers publish row changes with pg_notify on a single channel, as JSON:

    {"type": "INSERT", "table": "notifications", "record": {...}, "old_record": null}

The listener keeps one LISTEN connection open. The feed has no sequence
numbers or replay, so after any reconnect every subscriber is asked to do a
full refetch instead of catching up incrementally.
"""

import asyncio
import json

import psycopg
from psycopg import sql

from livelocal.config import Settings, settings
from livelocal.infrastructure.observability.logging import get_logger
from livelocal.services.remote.change_feed import ChangeFeedHub
from livelocal.services.remote.contract import ALL_EVENTS, ChangeEvent

logger = get_logger(__name__)


def parse_change_payload(payload: str) -> ChangeEvent | None:
    """Decode a NOTIFY payload; returns None for anything malformed."""
    try:
        data = json.loads(payload)
    except (TypeError, ValueError):
        logger.warning("Discarding non-JSON change payload", length=len(payload or ""))
        return None

    if not isinstance(data, dict):
        return None
    event_type = str(data.get("type", "")).upper()
    table = data.get("table")
    if event_type not in ALL_EVENTS or not table:
        logger.warning("Discarding unrecognized change payload", event_type=event_type)
        return None

    return ChangeEvent(
        table=table,
        event_type=event_type,
        new=data.get("record") or {},
        old=data.get("old_record") or {},
    )


class PostgresChangeListener:
    def __init__(self, hub: ChangeFeedHub, dsn: str, config: Settings = settings):
        self._hub = hub
        self._dsn = dsn
        self._channel = config.REALTIME_CHANNEL
        self._base_delay = config.REALTIME_RECONNECT_DELAY
        self._max_delay = config.REALTIME_RECONNECT_MAX_DELAY
        self._task: asyncio.Task | None = None
        self._connected_once = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            logger.warning("Change listener already running")
            return
        self._task = asyncio.create_task(self._run(), name="livelocal-change-listener")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Change listener stopped")

    async def _run(self) -> None:
        attempt = 0
        while True:
            try:
                await self._listen()
                attempt = 0
            except psycopg.Error as e:
                attempt += 1
                delay = min(self._max_delay, self._base_delay * (2 ** (attempt - 1)))
                logger.warning(
                    "Change listener disconnected, reconnecting",
                    attempt=attempt,
                    delay=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)

    async def _listen(self) -> None:
        async with await psycopg.AsyncConnection.connect(self._dsn, autocommit=True) as conn:
            await conn.execute(sql.SQL("LISTEN {}").format(sql.Identifier(self._channel)))
            logger.info("Change listener connected", channel=self._channel)

            # Anything committed while we were away is lost; refetch everything
            if self._connected_once:
                await self._hub.resync()
            self._connected_once = True

            async for notify in conn.notifies():
                event = parse_change_payload(notify.payload)
                if event is not None:
                    await self._hub.publish(event)
