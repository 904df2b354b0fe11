"""
In-process fan-out for table change notifications.

Whatever transport delivers change events (database LISTEN, websocket, test
fake) publishes into a ChangeFeedHub; the hub routes each event to the
subscriptions whose table, event types and predicates match.
"""

from collections.abc import Iterable, Sequence

from livelocal.infrastructure.observability.logging import get_logger
from livelocal.services.remote.contract import (
    ALL_EVENTS,
    ChangeEvent,
    ChangeEventType,
    ChangeHandler,
    ResyncHandler,
    Subscription,
)
from livelocal.services.remote.filters import Predicate, matches_all

logger = get_logger(__name__)


class ChangeFeedHub:
    def __init__(self):
        self._subscriptions: list[Subscription] = []

    @property
    def active_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        table: str,
        predicates: Sequence[Predicate],
        on_event: ChangeHandler,
        *,
        events: Iterable[ChangeEventType] = ALL_EVENTS,
        on_resync: ResyncHandler | None = None,
    ) -> Subscription:
        subscription = Subscription(
            table=table,
            predicates=tuple(predicates),
            events=frozenset(events),
            on_event=on_event,
            on_resync=on_resync,
        )
        self._subscriptions.append(subscription)
        logger.debug("Subscribed to changes", table=table, events=sorted(subscription.events))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.active = False
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            return
        logger.debug("Unsubscribed from changes", table=subscription.table)

    def _matching(self, event: ChangeEvent) -> list[Subscription]:
        return [
            s
            for s in self._subscriptions
            if s.table == event.table
            and event.event_type in s.events
            and matches_all(s.predicates, event.record)
        ]

    async def publish(self, event: ChangeEvent) -> int:
        """
        Deliver an event to every matching subscription, in subscription order.

        Handler failures are logged and do not stop delivery to the others.

        Returns:
            Number of subscriptions the event was delivered to
        """
        delivered = 0
        for subscription in self._matching(event):
            # A handler earlier in the loop may have torn this one down
            if not subscription.active:
                continue
            try:
                await subscription.on_event(event)
                delivered += 1
            except Exception as e:
                logger.error(
                    "Change handler failed",
                    table=event.table,
                    event_type=event.event_type,
                    error=str(e),
                )
        return delivered

    async def resync(self) -> None:
        """Ask every subscriber to refetch; used after the transport reconnects."""
        logger.info("Resynchronizing change feed subscribers", count=len(self._subscriptions))
        for subscription in list(self._subscriptions):
            if not subscription.active or subscription.on_resync is None:
                continue
            try:
                await subscription.on_resync()
            except Exception as e:
                logger.error("Resync handler failed", table=subscription.table, error=str(e))
