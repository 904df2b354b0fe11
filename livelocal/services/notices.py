"""User-visible transient notices (toasts) and system-level notifications."""

from collections import deque
from collections.abc import Callable
from typing import Protocol

from livelocal.infrastructure.observability.logging import get_logger
from livelocal.models.domain.session_domain import Notice

logger = get_logger(__name__)

NoticeListener = Callable[[Notice], None]

HISTORY_LIMIT = 50


class SystemNotifier(Protocol):
    """OS / browser level notifications, shown only when permission is granted."""

    @property
    def permission(self) -> str: ...

    def show(self, title: str, body: str, icon: str | None = None) -> None: ...


class NoticeCenter:
    """Collects notices and hands them to whatever renders them."""

    def __init__(self, history_limit: int = HISTORY_LIMIT):
        self._listeners: list[NoticeListener] = []
        self.history: deque[Notice] = deque(maxlen=history_limit)

    def subscribe(self, listener: NoticeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def show(self, title: str, description: str | None = None) -> Notice:
        return self._emit(Notice(title=title, description=description))

    def error(self, title: str, description: str | None = None) -> Notice:
        return self._emit(Notice(title=title, description=description, variant="destructive"))

    def _emit(self, notice: Notice) -> Notice:
        self.history.append(notice)
        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception as e:
                logger.error("Notice listener failed", title=notice.title, error=str(e))
        return notice

    @property
    def errors(self) -> list[Notice]:
        return [n for n in self.history if n.is_error]
