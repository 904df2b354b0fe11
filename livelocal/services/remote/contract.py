"""
Contract consumed from the hosted data platform.

The stores only depend on this protocol: table CRUD with filter predicates,
per-table change subscriptions and callable server-side functions.
"""

from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from livelocal.services.remote.filters import Order, Predicate, Row

ChangeEventType = Literal["INSERT", "UPDATE", "DELETE"]
ALL_EVENTS: tuple[ChangeEventType, ...] = ("INSERT", "UPDATE", "DELETE")

# PostgREST / Postgres error codes the stores branch on
NO_ROWS_CODE = "PGRST116"
UNIQUE_VIOLATION_CODE = "23505"


class RemoteServiceError(Exception):
    """Custom exception for remote data service operations."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status_code: int | None = None,
        operation: str = "unknown",
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.operation = operation
        self.recoverable = recoverable


class NoRowsError(RemoteServiceError):
    """A single-row read found nothing. Treated as an empty result, never an error notice."""


class UniqueViolationError(RemoteServiceError):
    """Insert collided with a unique constraint (duplicate action)."""


class RowDecodeError(RemoteServiceError):
    """A remote row did not match its domain schema."""

    def __init__(self, message: str, table: str, row: Row | None = None):
        super().__init__(message, operation="decode", recoverable=False)
        self.table = table
        self.row = row


def error_for_code(
    message: str, code: str | None, status_code: int | None = None, operation: str = "unknown"
) -> RemoteServiceError:
    """Map a platform error code to the matching exception type."""
    if code == NO_ROWS_CODE:
        return NoRowsError(message, code=code, status_code=status_code, operation=operation)
    if code == UNIQUE_VIOLATION_CODE:
        return UniqueViolationError(
            message, code=code, status_code=status_code, operation=operation, recoverable=False
        )
    recoverable = status_code is None or status_code >= 500 or status_code == 429
    return RemoteServiceError(
        message, code=code, status_code=status_code, operation=operation, recoverable=recoverable
    )


ModelT = TypeVar("ModelT", bound=BaseModel)


def decode_row(model: type[ModelT], row: Row, table: str) -> ModelT:
    try:
        return model.model_validate(row)
    except ValidationError as e:
        raise RowDecodeError(f"Invalid {table} row: {e.error_count()} error(s)", table, row) from e


def decode_rows(model: type[ModelT], rows: Iterable[Row], table: str) -> list[ModelT]:
    return [decode_row(model, row, table) for row in rows]


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: ChangeEventType
    new: Row = field(default_factory=dict)
    old: Row = field(default_factory=dict)

    @property
    def record(self) -> Row:
        """The row used for filter matching: new state, or old state for deletes."""
        return self.new or self.old


ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]
ResyncHandler = Callable[[], Awaitable[None]]


@dataclass(eq=False)
class Subscription:
    """Handle returned by `subscribe`; pass it back to `unsubscribe`."""

    table: str
    predicates: tuple[Predicate, ...]
    events: frozenset[str]
    on_event: ChangeHandler
    on_resync: ResyncHandler | None = None
    active: bool = True


class RemoteDataService(Protocol):
    async def select(
        self,
        table: str,
        predicates: Sequence[Predicate] = (),
        *,
        columns: str = "*",
        order: Order | None = None,
        limit: int | None = None,
    ) -> list[Row]: ...

    async def insert(self, table: str, row: Row) -> Row: ...

    async def update(self, table: str, predicates: Sequence[Predicate], patch: Row) -> None: ...

    async def delete(self, table: str, predicates: Sequence[Predicate]) -> None: ...

    async def invoke(self, name: str, payload: dict[str, Any]) -> Any: ...

    def subscribe(
        self,
        table: str,
        predicates: Sequence[Predicate],
        on_event: ChangeHandler,
        *,
        events: Iterable[ChangeEventType] = ALL_EVENTS,
        on_resync: ResyncHandler | None = None,
    ) -> Subscription: ...

    def unsubscribe(self, subscription: Subscription) -> None: ...
