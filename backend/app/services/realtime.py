"""Application wiring of the realtime core: identity, authorization and presence hooks."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from fastapi import HTTPException
from sqlalchemy.orm import Session
from starlette.requests import HTTPConnection

from palaver.realtime import RealtimeCore, build_realtime

from app.api.deps import get_user_from_token
from app.config import get_settings
from app.database import SessionLocal
from app.models import User
from app.services.membership import membership_index

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


def _parse_id(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def create_realtime(session_factory: SessionFactory = SessionLocal) -> RealtimeCore:
    """Build the realtime core with hooks reading from *session_factory*."""

    settings = get_settings()

    async def authenticate(data: Mapping[str, Any]) -> str | None:
        token = data.get("token")
        if not isinstance(token, str) or not token:
            return None
        with session_factory() as db:
            try:
                user = get_user_from_token(token, db)
            except HTTPException:
                return None
            return str(user.id)

    async def authorize_group(user_id: str, group_id: str) -> bool:
        user_key, group_key = _parse_id(user_id), _parse_id(group_id)
        if user_key is None or group_key is None:
            return False
        with session_factory() as db:
            return membership_index.is_member(group_key, user_key, db)

    async def on_presence(user_id: str, online: bool) -> None:
        user_key = _parse_id(user_id)
        if user_key is None:
            return
        with session_factory() as db:
            user = db.get(User, user_key)
            if user is None or user.is_active == online:
                return
            user.is_active = online
            db.commit()
        logger.debug("Marked user %s %s", user_key, "online" if online else "offline")

    return build_realtime(
        outbox_size=settings.realtime_outbox_size,
        authenticate=authenticate,
        authorize_group=authorize_group,
        on_presence=on_presence,
    )


def get_realtime(connection: HTTPConnection) -> RealtimeCore:
    """FastAPI dependency returning the realtime core owned by the application."""

    return connection.app.state.realtime
