"""
Notification Sync Store.

Holds the latest page of the user's notifications and an unread counter
derived from that page. Read and delete actions update local state first and
sync to the server afterwards; a failed sync is logged and not rolled back.
"""

from livelocal.config import settings
from livelocal.infrastructure.observability.logging import get_logger
from livelocal.models.domain.notification_domain import Notification
from livelocal.models.domain.session_domain import AuthUser
from livelocal.services.notices import NoticeCenter, SystemNotifier
from livelocal.services.remote.contract import (
    ChangeEvent,
    NoRowsError,
    RemoteDataService,
    RemoteServiceError,
    Subscription,
    decode_row,
    decode_rows,
)
from livelocal.services.remote.filters import Order, eq
from livelocal.services.session import AuthSession
from livelocal.services.store_base import UserScopedStore

logger = get_logger(__name__)

NOTIFICATIONS_TABLE = "notifications"
NOTIFICATION_COLUMNS = "id,user_id,type,title,message,data,read,created_at,updated_at"


class NotificationSyncStore(UserScopedStore):
    name = "notifications"

    def __init__(
        self,
        remote: RemoteDataService,
        session: AuthSession,
        notices: NoticeCenter,
        system_notifier: SystemNotifier | None = None,
        page_size: int = settings.NOTIFICATIONS_PAGE_SIZE,
        icon_url: str | None = settings.NOTIFICATION_ICON_URL,
    ):
        self._system_notifier = system_notifier
        self._page_size = page_size
        self._icon_url = icon_url
        super().__init__(remote, session, notices)

    def _reset_state(self) -> None:
        self.notifications: list[Notification] = []
        self.unread_count = 0

    def _open_subscriptions(self, user: AuthUser) -> list[Subscription]:
        return [
            self._remote.subscribe(
                NOTIFICATIONS_TABLE,
                [eq("user_id", user.id)],
                self._on_change,
                events=("INSERT", "UPDATE"),
                on_resync=self._resync,
            )
        ]

    async def _load(self) -> None:
        await self.fetch_notifications()

    async def fetch_notifications(self, surface_errors: bool = True) -> list[Notification]:
        user = self._user
        if user is None:
            return []
        generation = self._generation

        try:
            rows = await self._remote.select(
                NOTIFICATIONS_TABLE,
                [eq("user_id", user.id)],
                columns=NOTIFICATION_COLUMNS,
                order=Order("created_at", ascending=False),
                limit=self._page_size,
            )
            notifications = decode_rows(Notification, rows, NOTIFICATIONS_TABLE)
        except NoRowsError:
            notifications = []
        except RemoteServiceError as e:
            logger.error("Error fetching notifications", error=str(e))
            if surface_errors and self._is_current(generation):
                self._notices.error(
                    "Error loading notifications", "Failed to load your notifications"
                )
            return self.notifications

        if self._is_current(generation):
            self.notifications = notifications
            # Scoped to the fetched page, not a global count
            self.unread_count = sum(1 for n in notifications if not n.read)
        return notifications

    async def mark_as_read(self, notification_id: str) -> bool:
        user = self._user
        if user is None:
            return False

        updated = []
        for n in self.notifications:
            if n.id == notification_id and not n.read:
                n = n.model_copy(update={"read": True})
                self.unread_count = max(0, self.unread_count - 1)
            updated.append(n)
        self.notifications = updated

        try:
            await self._remote.update(
                NOTIFICATIONS_TABLE,
                [eq("id", notification_id), eq("user_id", user.id)],
                {"read": True},
            )
        except RemoteServiceError as e:
            logger.warning(
                "Error marking notification as read", notification_id=notification_id, error=str(e)
            )
            return False
        return True

    async def mark_all_as_read(self) -> bool:
        user = self._user
        if user is None:
            return False

        self.notifications = [
            n if n.read else n.model_copy(update={"read": True}) for n in self.notifications
        ]
        self.unread_count = 0

        try:
            await self._remote.update(
                NOTIFICATIONS_TABLE,
                [eq("user_id", user.id), eq("read", False)],
                {"read": True},
            )
        except RemoteServiceError as e:
            logger.warning("Error marking all notifications as read", error=str(e))
            return False
        return True

    async def delete_notification(self, notification_id: str) -> bool:
        user = self._user
        if user is None:
            return False

        removed = next((n for n in self.notifications if n.id == notification_id), None)
        if removed is not None:
            self.notifications = [n for n in self.notifications if n.id != notification_id]
            if not removed.read:
                self.unread_count = max(0, self.unread_count - 1)

        try:
            await self._remote.delete(
                NOTIFICATIONS_TABLE,
                [eq("id", notification_id), eq("user_id", user.id)],
            )
        except RemoteServiceError as e:
            logger.warning(
                "Error deleting notification", notification_id=notification_id, error=str(e)
            )
            return False
        return True

    # =================================================================
    # CHANGE FEED
    # =================================================================

    async def _on_change(self, event: ChangeEvent) -> None:
        try:
            notification = decode_row(Notification, event.new, NOTIFICATIONS_TABLE)
        except RemoteServiceError as e:
            logger.warning("Ignoring malformed notification event", error=str(e))
            return

        if event.event_type == "INSERT":
            self._apply_insert(notification)
        elif event.event_type == "UPDATE":
            # Counter changes only flow through the explicit actions
            self.notifications = [
                notification if n.id == notification.id else n for n in self.notifications
            ]

    def _apply_insert(self, notification: Notification) -> None:
        if any(n.id == notification.id for n in self.notifications):
            return
        logger.info("New notification received", notification_type=notification.type)
        self.notifications = [notification, *self.notifications]
        if not notification.read:
            self.unread_count += 1

        self._notices.show(notification.title, notification.message)

        notifier = self._system_notifier
        if notifier is not None and notifier.permission == "granted":
            try:
                notifier.show(notification.title, notification.message, self._icon_url)
            except Exception as e:
                logger.warning("System notification failed", error=str(e))

    async def _resync(self) -> None:
        await self.fetch_notifications(surface_errors=False)
