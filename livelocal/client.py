"""
Composition root for the sync layer.

Builds the remote service, auth session, notice center and stores, and
ties their lifecycles together.
"""

from collections.abc import Callable

from livelocal.config import Settings, settings
from livelocal.infrastructure.observability.logging import get_logger, setup_logging
from livelocal.services.conversation_store import ConversationSyncStore
from livelocal.services.notices import NoticeCenter, SystemNotifier
from livelocal.services.notification_store import NotificationSyncStore
from livelocal.services.ratings_cache import RatingsCache, ratings_cache
from livelocal.services.remote.contract import RemoteDataService
from livelocal.services.remote.realtime_listener import PostgresChangeListener
from livelocal.services.remote.supabase_service import SupabaseService
from livelocal.services.review_service import ReviewService
from livelocal.services.saved_items_store import SavedItemsStore
from livelocal.services.session import AuthSession

logger = get_logger(__name__)


class LiveLocalClient:
    def __init__(
        self,
        remote: RemoteDataService,
        session: AuthSession,
        notices: NoticeCenter | None = None,
        system_notifier: SystemNotifier | None = None,
        sign_in_redirect: Callable[[], None] | None = None,
        ratings: RatingsCache = ratings_cache,
        config: Settings = settings,
    ):
        self.remote = remote
        self.session = session
        self.notices = notices or NoticeCenter()
        self.ratings = ratings
        self.ratings.bind(remote)

        self.conversations = ConversationSyncStore(remote, session, self.notices)
        self.notifications = NotificationSyncStore(
            remote,
            session,
            self.notices,
            system_notifier=system_notifier,
            page_size=config.NOTIFICATIONS_PAGE_SIZE,
            icon_url=config.NOTIFICATION_ICON_URL,
        )
        self.saved = SavedItemsStore(
            remote, session, self.notices, sign_in_redirect=sign_in_redirect, ratings=ratings
        )
        self._listener: PostgresChangeListener | None = None

    @property
    def stores(self):
        return (self.conversations, self.notifications, self.saved)

    def reviews_for(self, experience_id: str) -> ReviewService:
        return ReviewService(self.remote, self.session, self.notices, experience_id)

    def attach_listener(self, listener: PostgresChangeListener) -> None:
        self._listener = listener

    async def start(self) -> None:
        for store in self.stores:
            await store.start()
        if self._listener is not None:
            await self._listener.start()
        logger.info("Live Local client started", realtime=self._listener is not None)

    async def close(self) -> None:
        if self._listener is not None:
            await self._listener.stop()
        for store in self.stores:
            await store.close()
        close = getattr(self.remote, "close", None)
        if close is not None:
            await close()
        logger.info("Live Local client closed")


def create_client(
    config: Settings = settings,
    system_notifier: SystemNotifier | None = None,
    sign_in_redirect: Callable[[], None] | None = None,
) -> LiveLocalClient:
    """Build a client backed by the configured Supabase project."""
    setup_logging(config.LOG_LEVEL)
    session = AuthSession()
    remote = SupabaseService(session, config=config)
    client = LiveLocalClient(
        remote,
        session,
        system_notifier=system_notifier,
        sign_in_redirect=sign_in_redirect,
        config=config,
    )
    if config.realtime_enabled():
        client.attach_listener(PostgresChangeListener(remote.hub, config.SUPABASE_DB_URL, config))
    else:
        logger.warning("SUPABASE_DB_URL not set; change feed disabled")
    return client
