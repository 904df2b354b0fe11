"""
Row filter predicates shared by table reads, writes and change subscriptions.

Each predicate can evaluate itself against a row (used by the change feed to
route events) and render itself as a PostgREST query parameter.
"""

from dataclasses import dataclass
from typing import Any

Row = dict[str, Any]

OPERATORS = {"eq", "neq", "in", "is"}


def _format_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class Filter:
    column: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, row: Row) -> bool:
        actual = row.get(self.column)
        if self.op == "eq":
            return actual is not None and actual == self.value
        if self.op == "neq":
            # SQL semantics: NULL is neither equal nor unequal
            return actual is not None and actual != self.value
        if self.op == "in":
            return actual in self.value
        return actual is self.value if self.value is None else actual == self.value

    def expression(self) -> str:
        """Render as `column.op.value`, the form used inside `or=(...)`."""
        if self.op == "in":
            return f"{self.column}.in.({','.join(_format_value(v) for v in self.value)})"
        return f"{self.column}.{self.op}.{_format_value(self.value)}"

    def to_param(self) -> tuple[str, str]:
        column, _, rest = self.expression().partition(".")
        return column, rest


@dataclass(frozen=True)
class AnyOf:
    """Disjunction of simple filters (PostgREST `or=(...)`)."""

    filters: tuple[Filter, ...]

    def matches(self, row: Row) -> bool:
        return any(f.matches(row) for f in self.filters)

    def to_param(self) -> tuple[str, str]:
        return "or", f"({','.join(f.expression() for f in self.filters)})"


Predicate = Filter | AnyOf


@dataclass(frozen=True)
class Order:
    column: str
    ascending: bool = True

    def to_param(self) -> tuple[str, str]:
        return "order", f"{self.column}.{'asc' if self.ascending else 'desc'}"


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return Filter(column, "neq", value)


def in_(column: str, values) -> Filter:
    return Filter(column, "in", tuple(values))


def is_null(column: str) -> Filter:
    return Filter(column, "is", None)


def any_of(*filters: Filter) -> AnyOf:
    return AnyOf(tuple(filters))


def matches_all(predicates, row: Row) -> bool:
    return all(p.matches(row) for p in predicates)


def to_query_params(predicates) -> list[tuple[str, str]]:
    return [p.to_param() for p in predicates]
