"""Schemas related to chat messages."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.users import PublicUser


class MessageCreate(BaseModel):
    """Payload for sending a direct or group message."""

    text: str = Field(..., description="Message body; surrounding whitespace is trimmed")
    image_url: str | None = Field(
        default=None,
        max_length=512,
        description="URL returned by the media uploader, if the message carries an image",
    )

    @field_validator("text")
    @classmethod
    def strip_text(cls, value: str) -> str:
        return value.strip()


class MessageRead(BaseModel):
    """Serialized message with its sender populated."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_id: int
    sender: PublicUser
    receiver_id: int | None = None
    group_id: int | None = None
    text: str
    image_url: str | None = None
    created_at: datetime
