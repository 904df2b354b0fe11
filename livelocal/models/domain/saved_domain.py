from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from livelocal.models.domain.conversation_domain import format_display_name

FALLBACK_HOST_DISPLAY_NAME = "Unknown Host"


class SavedExperienceSummary(BaseModel):
    """Joined experience fields shown in the saved list."""

    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    description: str | None = None
    location: str | None = None
    price: float | None = None
    duration_hours: float | None = None
    image_urls: list[str] = Field(default_factory=list)
    host_name: str = FALLBACK_HOST_DISPLAY_NAME
    average_rating: float = 0.0
    review_count: int = 0

    @model_validator(mode="before")
    @classmethod
    def flatten_host_profile(cls, data):
        if isinstance(data, dict) and "profiles" in data:
            data = dict(data)
            data["host_name"] = format_display_name(
                data.pop("profiles"), FALLBACK_HOST_DISPLAY_NAME
            )
        if isinstance(data, dict) and data.get("image_urls") is None:
            data = {**data, "image_urls": []}
        return data


class SavedItem(BaseModel):
    """A saved experience. Unique per (user_id, experience_id)."""

    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    experience_id: str
    created_at: datetime
    experience: SavedExperienceSummary | None = Field(
        default=None, validation_alias=AliasChoices("experience", "experiences")
    )
