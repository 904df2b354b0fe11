"""
Supabase implementation of the remote data service contract.
Talks to PostgREST (tables), Edge Functions (invoke) and GoTrue (auth) over httpx.
Change subscriptions are served from a ChangeFeedHub fed by a separate transport.
"""

import asyncio
import time
from collections.abc import Iterable, Sequence
from typing import Any

import httpx

from livelocal.config import Settings, settings
from livelocal.infrastructure.observability.logging import get_logger, log_remote_call
from livelocal.models.domain.session_domain import AuthUser
from livelocal.services.remote.change_feed import ChangeFeedHub
from livelocal.services.remote.contract import (
    ALL_EVENTS,
    ChangeEventType,
    ChangeHandler,
    RemoteServiceError,
    ResyncHandler,
    Subscription,
    error_for_code,
)
from livelocal.services.remote.filters import Order, Predicate, Row, to_query_params
from livelocal.services.session import AuthSession

logger = get_logger(__name__)

BACKOFF_FACTOR = 0.5
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class SupabaseService:
    """
    Remote data service backed by a Supabase project.

    Requests carry the anon key plus, when signed in, the user's access token so
    that row-level security applies. Signing in and out updates the shared
    AuthSession, which drives every store's lifecycle.
    """

    def __init__(
        self,
        session: AuthSession,
        hub: ChangeFeedHub | None = None,
        config: Settings = settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._session = session
        self._hub = hub or ChangeFeedHub()
        self._config = config
        self._client = self._create_client(transport)

    @property
    def hub(self) -> ChangeFeedHub:
        return self._hub

    def _create_client(self, transport: httpx.AsyncBaseTransport | None) -> httpx.AsyncClient:
        """Create async HTTP client for the Supabase APIs."""
        timeout = httpx.Timeout(self._config.REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=timeout, limits=limits, transport=transport)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        token = self._session.access_token or self._config.SUPABASE_ANON_KEY
        headers = {
            "apikey": self._config.SUPABASE_ANON_KEY,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request with retry and backoff."""
        max_retries = max(1, self._config.MAX_RETRIES)
        for attempt in range(1, max_retries + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
                if response.status_code in RETRY_STATUS_CODES and attempt < max_retries:
                    backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                    logger.debug(
                        "Supabase retrying request",
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt >= max_retries:
                    raise RemoteServiceError(
                        f"Request failed: {e}", operation=method.lower(), recoverable=True
                    ) from e
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Supabase request error, retrying",
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
        raise RuntimeError("Supabase retry loop exhausted")

    async def _call(self, operation: str, target: str, method: str, url: str, **kwargs) -> Any:
        """Run one request, translate platform errors, and log the outcome."""
        start = time.perf_counter()
        try:
            response = await self._request_with_retry(method, url, **kwargs)
            if response.status_code >= 400:
                raise self._error_from_response(response, operation)
            payload = response.json() if response.content else None
        except RemoteServiceError as e:
            log_remote_call(
                operation, target, False, (time.perf_counter() - start) * 1000, error=str(e)
            )
            raise
        rows = len(payload) if isinstance(payload, list) else None
        log_remote_call(operation, target, True, (time.perf_counter() - start) * 1000, rows=rows)
        return payload

    @staticmethod
    def _error_from_response(response: httpx.Response, operation: str) -> RemoteServiceError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = (
            body.get("message")
            or body.get("msg")
            or body.get("error_description")
            or f"HTTP {response.status_code}"
        )
        code = body.get("code") or body.get("error_code")
        return error_for_code(
            str(message),
            str(code) if code is not None else None,
            response.status_code,
            operation,
        )

    # =================================================================
    # TABLES
    # =================================================================

    async def select(
        self,
        table: str,
        predicates: Sequence[Predicate] = (),
        *,
        columns: str = "*",
        order: Order | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        params = [("select", columns), *to_query_params(predicates)]
        if order:
            params.append(order.to_param())
        if limit is not None:
            params.append(("limit", str(limit)))
        rows = await self._call(
            "select",
            table,
            "GET",
            f"{self._config.rest_url()}/{table}",
            params=params,
            headers=self._headers(),
        )
        return rows or []

    async def insert(self, table: str, row: Row) -> Row:
        rows = await self._call(
            "insert",
            table,
            "POST",
            f"{self._config.rest_url()}/{table}",
            json=row,
            headers=self._headers({"Prefer": "return=representation"}),
        )
        if not rows:
            raise RemoteServiceError(f"Insert into {table} returned no row", operation="insert")
        return rows[0] if isinstance(rows, list) else rows

    async def update(self, table: str, predicates: Sequence[Predicate], patch: Row) -> None:
        await self._call(
            "update",
            table,
            "PATCH",
            f"{self._config.rest_url()}/{table}",
            params=to_query_params(predicates),
            json=patch,
            headers=self._headers({"Prefer": "return=minimal"}),
        )

    async def delete(self, table: str, predicates: Sequence[Predicate]) -> None:
        await self._call(
            "delete",
            table,
            "DELETE",
            f"{self._config.rest_url()}/{table}",
            params=to_query_params(predicates),
            headers=self._headers({"Prefer": "return=minimal"}),
        )

    async def invoke(self, name: str, payload: dict[str, Any]) -> Any:
        return await self._call(
            "invoke",
            name,
            "POST",
            f"{self._config.functions_url()}/{name}",
            json=payload,
            headers=self._headers(),
        )

    # =================================================================
    # CHANGE FEED
    # =================================================================

    def subscribe(
        self,
        table: str,
        predicates: Sequence[Predicate],
        on_event: ChangeHandler,
        *,
        events: Iterable[ChangeEventType] = ALL_EVENTS,
        on_resync: ResyncHandler | None = None,
    ) -> Subscription:
        return self._hub.subscribe(table, predicates, on_event, events=events, on_resync=on_resync)

    def unsubscribe(self, subscription: Subscription) -> None:
        self._hub.unsubscribe(subscription)

    # =================================================================
    # AUTH
    # =================================================================

    async def sign_in_with_password(self, email: str, password: str) -> AuthUser:
        payload = await self._call(
            "sign_in",
            "auth",
            "POST",
            f"{self._config.auth_url()}/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            headers=self._headers(),
        )
        user = AuthUser.model_validate(payload["user"])
        await self._session.set_session(user, payload.get("access_token"))
        return user

    async def sign_out(self) -> None:
        try:
            if self._session.access_token:
                await self._call(
                    "sign_out",
                    "auth",
                    "POST",
                    f"{self._config.auth_url()}/logout",
                    headers=self._headers(),
                )
        except RemoteServiceError as e:
            # The local session is dropped regardless
            logger.warning("Remote sign-out failed", error=str(e))
        finally:
            await self._session.clear()

    async def fetch_current_user(self) -> AuthUser | None:
        """Resolve the user behind the current access token, if any."""
        if not self._session.access_token:
            return None
        try:
            payload = await self._call(
                "get_user",
                "auth",
                "GET",
                f"{self._config.auth_url()}/user",
                headers=self._headers(),
            )
        except RemoteServiceError as e:
            if e.status_code in (401, 403):
                await self._session.clear()
                return None
            raise
        return AuthUser.model_validate(payload)
