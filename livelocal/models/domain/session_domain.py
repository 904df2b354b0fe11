from typing import Literal

from pydantic import BaseModel, ConfigDict


class AuthUser(BaseModel):
    """Authenticated user identity. The id scopes every store."""

    model_config = ConfigDict(extra="allow")

    id: str
    email: str | None = None


class Notice(BaseModel):
    """Transient user-visible notice (toast)."""

    title: str
    description: str | None = None
    variant: Literal["default", "destructive"] = "default"

    @property
    def is_error(self) -> bool:
        return self.variant == "destructive"
