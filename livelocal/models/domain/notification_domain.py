from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

NotificationType = str  # "booking" | "message" | "review" | "system" | custom


class Notification(BaseModel):
    """User notification pushed by server-side events."""

    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str | None = None
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] | None = None
    read: bool = False
    created_at: datetime
    updated_at: datetime

    @field_validator("data", mode="before")
    @classmethod
    def parse_data(cls, value: Any) -> dict[str, Any] | None:
        # The payload column is free-form JSON; only objects are meaningful
        if isinstance(value, dict):
            return value
        return None
