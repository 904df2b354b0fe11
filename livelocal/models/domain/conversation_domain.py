from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator

# Fallback display policy for enrichment lookups that fail or find nothing.
# Missing titles and previews are simply omitted (None).
FALLBACK_GUEST_NAME = "Guest"
FALLBACK_HOST_NAME = "Host"
FALLBACK_SENDER_NAME = "User"


def format_display_name(profile: dict | None, fallback: str) -> str:
    """Join first/last name from a profile row, or return the fallback."""
    if not profile:
        return fallback
    name = f"{profile.get('first_name') or ''} {profile.get('last_name') or ''}".strip()
    return name or fallback


class Conversation(BaseModel):
    """Conversation between a host and a guest, enriched client-side."""

    model_config = ConfigDict(extra="ignore")

    id: str
    host_id: str
    guest_id: str
    experience_id: str | None = None
    created_at: datetime
    updated_at: datetime

    # Derived, never stored by the remote service
    host_name: str = FALLBACK_HOST_NAME
    guest_name: str = FALLBACK_GUEST_NAME
    experience_title: str | None = None
    last_message_preview: str | None = None
    unread_count: int = 0

    def involves(self, user_id: str) -> bool:
        return user_id in (self.host_id, self.guest_id)

    def other_participant_id(self, user_id: str) -> str:
        return self.guest_id if user_id == self.host_id else self.host_id

    def other_participant_name(self, user_id: str) -> str:
        return self.guest_name if user_id == self.host_id else self.host_name

    def name_for(self, participant_id: str) -> str:
        if participant_id == self.host_id:
            return self.host_name
        if participant_id == self.guest_id:
            return self.guest_name
        return FALLBACK_SENDER_NAME


class Message(BaseModel):
    """Chat message. Only read_at is ever mutated."""

    model_config = ConfigDict(extra="ignore")

    id: str
    conversation_id: str
    sender_id: str
    content: str
    created_at: datetime
    read_at: datetime | None = None
    sender_name: str | None = None

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("message content must not be empty")
        return value

    @property
    def is_read(self) -> bool:
        return self.read_at is not None
