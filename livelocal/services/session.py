"""
Authenticated session state shared by every store.

The user identity is the only scoping parameter of the sync layer: listeners
are notified when it changes (sign-in, sign-out, account switch), never on a
plain token refresh.
"""

from collections.abc import Awaitable, Callable

from livelocal.infrastructure.observability.logging import bind_user_context, get_logger
from livelocal.models.domain.session_domain import AuthUser

logger = get_logger(__name__)

AuthStateListener = Callable[[AuthUser | None], Awaitable[None]]


class AuthSession:
    def __init__(self):
        self._user: AuthUser | None = None
        self._access_token: str | None = None
        self._listeners: list[AuthStateListener] = []

    @property
    def access_token(self) -> str | None:
        return self._access_token

    def get_current_user(self) -> AuthUser | None:
        return self._user

    def on_auth_state_change(self, listener: AuthStateListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    async def set_session(self, user: AuthUser, access_token: str | None = None) -> None:
        previous = self._user
        self._user = user
        self._access_token = access_token
        if previous is not None and previous.id == user.id:
            return
        logger.info("Auth state changed", signed_in=True)
        bind_user_context(user.id)
        await self._notify(user)

    async def clear(self) -> None:
        was_signed_in = self._user is not None
        self._user = None
        self._access_token = None
        if not was_signed_in:
            return
        logger.info("Auth state changed", signed_in=False)
        bind_user_context(None)
        await self._notify(None)

    async def _notify(self, user: AuthUser | None) -> None:
        for listener in list(self._listeners):
            try:
                await listener(user)
            except Exception as e:
                logger.error("Auth state listener failed", error=str(e))
