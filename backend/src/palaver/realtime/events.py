"""Outbound event values and room naming helpers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable


class EventKind(str, Enum):
    """Event kinds pushed to live connections."""

    PRESENCE_SNAPSHOT = "presence-snapshot"
    NEW_MESSAGE = "new-message"
    MESSAGE_DELETED = "message-deleted"
    NEW_GROUP = "new-group"
    GROUP_UPDATED = "group-updated"
    REMOVED_FROM_GROUP = "removed-from-group"
    GROUP_DELETED = "group-deleted"
    TYPING = "typing"
    STOP_TYPING = "stop-typing"
    ERROR = "error"
    PONG = "pong"


@dataclass(frozen=True, slots=True)
class OutboundEvent:
    """Immutable event consumed once per target connection."""

    kind: EventKind
    payload: Any = None
    message_id: str | None = None

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.kind.value, "payload": self.payload}
        if self.message_id is not None:
            data["message_id"] = self.message_id
        return data


@dataclass(frozen=True, slots=True)
class DirectRecipients:
    """Recipients of a one-to-one message."""

    receiver_id: str
    sender_id: str


@dataclass(frozen=True, slots=True)
class GroupRecipients:
    """Recipients of a group message."""

    group_id: str
    member_ids: frozenset[str]
    sender_id: str

    @classmethod
    def build(cls, group_id: Any, member_ids: Iterable[Any], sender_id: Any) -> "GroupRecipients":
        return cls(
            group_id=str(group_id),
            member_ids=frozenset(str(member) for member in member_ids),
            sender_id=str(sender_id),
        )


@dataclass(frozen=True, slots=True)
class GroupSnapshot:
    """Post-mutation view of a group as needed for fanout.

    ``payload`` is the populated group exactly as clients receive it.
    """

    group_id: str
    member_ids: frozenset[str]
    payload: Any

    @classmethod
    def build(cls, group_id: Any, member_ids: Iterable[Any], payload: Any) -> "GroupSnapshot":
        return cls(
            group_id=str(group_id),
            member_ids=frozenset(str(member) for member in member_ids),
            payload=payload,
        )


USER_ROOM_PREFIX = "user:"
GROUP_ROOM_PREFIX = "group:"


def user_room(user_id: Any) -> str:
    return f"{USER_ROOM_PREFIX}{user_id}"


def group_room(group_id: Any) -> str:
    return f"{GROUP_ROOM_PREFIX}{group_id}"


def presence_snapshot_event(online: Iterable[str]) -> OutboundEvent:
    return OutboundEvent(EventKind.PRESENCE_SNAPSHOT, sorted(online))


def error_event(detail: str) -> OutboundEvent:
    return OutboundEvent(EventKind.ERROR, {"detail": detail})
