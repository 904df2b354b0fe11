from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, Field


class RatingSummary(BaseModel):
    """Aggregated rating for one experience."""

    average: float = 0.0
    count: int = Field(default=0, ge=0)


class RatingRow(BaseModel):
    """One `reviews` row as read for aggregation."""

    experience_id: str
    rating: int = Field(ge=1, le=5)


class RatingCacheEntry(BaseModel):
    """Cached aggregation result. Overwritten on every successful refetch."""

    entity_id: str
    average: float
    count: int = Field(ge=0)
    fetched_at_ms: int

    def is_fresh(self, now_ms: int, ttl_ms: int) -> bool:
        return now_ms - self.fetched_at_ms < ttl_ms

    def summary(self) -> RatingSummary:
        return RatingSummary(average=self.average, count=self.count)


def round_rating(value: float | Decimal) -> float:
    """Round to one decimal, half-up (4.25 -> 4.3)."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def summarize_ratings(values: Iterable[int]) -> RatingSummary:
    """Mean of the given 1-5 ratings rounded to one decimal, or 0/0 when empty."""
    values = list(values)
    if not values:
        return RatingSummary(average=0.0, count=0)
    mean = Decimal(sum(values)) / Decimal(len(values))
    return RatingSummary(average=round_rating(mean), count=len(values))
