"""Schemas related to users."""

from pydantic import BaseModel, ConfigDict


class PublicUser(BaseModel):
    """Minimal public-facing user information."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    login: str
    display_name: str | None = None
    avatar_url: str | None = None
    is_active: bool = False
