from collections import Counter
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from livelocal.models.domain.rating_domain import summarize_ratings


class ReviewerProfile(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    avatar_url: str | None = None


class Review(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    rating: int = Field(ge=1, le=5)
    comment: str | None = None
    created_at: datetime
    guest_id: str
    experience_id: str
    booking_id: str
    profiles: ReviewerProfile | None = None


class ReviewDraft(BaseModel):
    """Input for a new review."""

    rating: int = Field(ge=1, le=5)
    comment: str = ""
    experience_id: str
    booking_id: str


class ReviewStats(BaseModel):
    average_rating: float = 0.0
    total_reviews: int = 0
    distribution: dict[int, int] = Field(default_factory=lambda: {i: 0 for i in range(1, 6)})

    @classmethod
    def from_reviews(cls, reviews: list[Review]) -> "ReviewStats":
        summary = summarize_ratings(r.rating for r in reviews)
        counts = Counter(r.rating for r in reviews)
        return cls(
            average_rating=summary.average,
            total_reviews=summary.count,
            distribution={i: counts.get(i, 0) for i in range(1, 6)},
        )


class Booking(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    guest_id: str
    status: str
    booking_date: datetime
