"""
Lifecycle shared by the per-user stores.

Each store follows the auth session: it is Uninitialized while signed out,
Loading while its first fetch runs, and Ready afterwards. Any identity change
discards all state and subscriptions before the new user's are created.
"""

from enum import StrEnum

from livelocal.infrastructure.observability.logging import get_logger
from livelocal.models.domain.session_domain import AuthUser
from livelocal.services.notices import NoticeCenter
from livelocal.services.remote.contract import RemoteDataService, Subscription
from livelocal.services.session import AuthSession

logger = get_logger(__name__)


class StoreState(StrEnum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


class UserScopedStore:
    """Base class; subclasses implement `_reset_state`, `_open_subscriptions` and `_load`."""

    name = "store"

    def __init__(self, remote: RemoteDataService, session: AuthSession, notices: NoticeCenter):
        self._remote = remote
        self._session = session
        self._notices = notices
        self._user: AuthUser | None = None
        self._subscriptions: list[Subscription] = []
        self._remove_listener = None
        # Bumped on every identity change and on close; async results that
        # started under an older generation are dropped
        self._generation = 0
        self.state = StoreState.UNINITIALIZED
        self.loading = False
        self._reset_state()

    @property
    def user(self) -> AuthUser | None:
        return self._user

    async def start(self) -> None:
        """Bind to the auth session and load for the current user, if any."""
        if self._remove_listener is None:
            self._remove_listener = self._session.on_auth_state_change(self._handle_auth_change)
        await self._handle_auth_change(self._session.get_current_user())

    async def close(self) -> None:
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        self._teardown()
        self._user = None

    async def _handle_auth_change(self, user: AuthUser | None) -> None:
        if user is not None and self._user is not None and user.id == self._user.id:
            return
        self._teardown()
        self._user = user
        if user is None:
            logger.debug("Store reset after sign-out", store=self.name)
            return

        self.state = StoreState.LOADING
        self.loading = True
        generation = self._generation
        self._subscriptions = list(self._open_subscriptions(user))
        await self._load()
        if self._is_current(generation):
            self.state = StoreState.READY
            self.loading = False

    def _teardown(self) -> None:
        for subscription in self._subscriptions:
            self._remote.unsubscribe(subscription)
        self._subscriptions = []
        self._generation += 1
        self._reset_state()
        self.state = StoreState.UNINITIALIZED
        self.loading = False

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _reset_state(self) -> None:
        raise NotImplementedError

    def _open_subscriptions(self, user: AuthUser) -> list[Subscription]:
        return []

    async def _load(self) -> None:
        raise NotImplementedError
