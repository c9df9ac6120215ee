"""Deliver persisted messages to the connections of online recipients."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from .connections import ConnectionTable
from .events import DirectRecipients, EventKind, GroupRecipients, OutboundEvent
from .presence import PresenceRegistry

logger = logging.getLogger(__name__)

Recipients = DirectRecipients | GroupRecipients


class MessageFanoutDispatcher:
    """Route message events through the presence registry.

    Must only be called once the message is durably stored. The sender never
    receives its own message back; every event carries the message id so
    consumers can suppress duplicates.
    """

    def __init__(self, registry: PresenceRegistry, connections: ConnectionTable) -> None:
        self._registry = registry
        self._connections = connections

    async def dispatch(self, message: Mapping[str, Any], recipients: Recipients) -> int:
        message_id = _message_id(message)
        if isinstance(recipients, DirectRecipients):
            event = OutboundEvent(EventKind.NEW_MESSAGE, dict(message), message_id=message_id)
            return await self._deliver_direct(recipients, event)
        event = OutboundEvent(
            EventKind.NEW_MESSAGE,
            {"groupId": recipients.group_id, "message": dict(message)},
            message_id=message_id,
        )
        return await self._deliver_group(recipients, event)

    async def dispatch_deletion(self, message_id: Any, recipients: Recipients) -> int:
        message_key = str(message_id)
        if isinstance(recipients, DirectRecipients):
            event = OutboundEvent(
                EventKind.MESSAGE_DELETED,
                {"messageId": message_key, "userId": recipients.receiver_id},
                message_id=message_key,
            )
            return await self._deliver_direct(recipients, event)
        event = OutboundEvent(
            EventKind.MESSAGE_DELETED,
            {"messageId": message_key, "groupId": recipients.group_id},
            message_id=message_key,
        )
        return await self._deliver_group(recipients, event)

    async def _deliver_direct(self, recipients: DirectRecipients, event: OutboundEvent) -> int:
        if not recipients.receiver_id or recipients.receiver_id == recipients.sender_id:
            return 0
        connection_id = await self._registry.lookup(recipients.receiver_id)
        if connection_id is None:
            logger.debug(
                "Receiver %s offline; no %s delivery", recipients.receiver_id, event.kind.value
            )
            return 0
        return int(self._connections.send(connection_id, event))

    async def _deliver_group(self, recipients: GroupRecipients, event: OutboundEvent) -> int:
        delivered = 0
        targeted: set[str] = set()
        for member_id in sorted(recipients.member_ids):
            if member_id == recipients.sender_id:
                continue
            connection_id = await self._registry.lookup(member_id)
            if connection_id is None or connection_id in targeted:
                continue
            targeted.add(connection_id)
            if self._connections.send(connection_id, event):
                delivered += 1
        logger.debug(
            "Group %s %s fanout reached %d connection(s)",
            recipients.group_id,
            event.kind.value,
            delivered,
        )
        return delivered


def _message_id(message: Mapping[str, Any]) -> str | None:
    value = message.get("id")
    return None if value is None else str(value)
