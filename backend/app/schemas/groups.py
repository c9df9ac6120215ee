"""Schemas for groups and their membership."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import GroupRole
from app.schemas.users import PublicUser


class GroupCreate(BaseModel):
    """Payload for creating a group; the caller becomes its admin."""

    name: str = Field(..., min_length=1, max_length=128)
    description: str = Field(default="", max_length=512)
    member_ids: list[int] = Field(default_factory=list)


class GroupMembersAdd(BaseModel):
    user_ids: list[int] = Field(..., min_length=1)


class GroupPromotion(BaseModel):
    user_id: int


class GroupMemberRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user: PublicUser
    role: GroupRole


class GroupRead(BaseModel):
    """Group populated with its members."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str = ""
    members: list[GroupMemberRead] = Field(default_factory=list)
    created_at: datetime
