"""HTTP endpoints for direct messages and message deletion."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session, selectinload

from palaver.realtime import DirectRecipients, GroupRecipients, RealtimeCore

from app.api.deps import get_current_user
from app.config import get_settings
from app.database import get_db
from app.models import Message, User
from app.schemas import MessageCreate, MessageRead
from app.services.membership import membership_index
from app.services.realtime import get_realtime

router = APIRouter(prefix="/messages", tags=["messages"])

settings = get_settings()


def validate_message_text(text: str) -> str:
    """Return *text* unchanged when it is non-empty and within the length limit."""

    if not text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message content is required")
    if len(text) > settings.chat_message_max_length:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Message exceeds maximum length of {settings.chat_message_max_length} characters",
        )
    return text


def serialize_message(message: Message) -> MessageRead:
    return MessageRead.model_validate(message)


def _get_message(message_id: int, db: Session) -> Message:
    stmt = select(Message).where(Message.id == message_id).options(selectinload(Message.sender))
    message = db.execute(stmt).scalar_one_or_none()
    if message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return message


@router.post("/{receiver_id}", response_model=MessageRead, status_code=status.HTTP_201_CREATED)
async def send_direct_message(
    receiver_id: int,
    payload: MessageCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    realtime: RealtimeCore = Depends(get_realtime),
) -> MessageRead:
    """Store a direct message, then deliver it to the receiver if online."""

    if receiver_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot message yourself")
    receiver = db.get(User, receiver_id)
    if receiver is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    message = Message(
        sender_id=current_user.id,
        receiver_id=receiver.id,
        text=validate_message_text(payload.text),
        image_url=payload.image_url,
    )
    db.add(message)
    db.commit()

    serialized = serialize_message(_get_message(message.id, db))
    await realtime.dispatcher.dispatch(
        serialized.model_dump(mode="json"),
        DirectRecipients(receiver_id=str(receiver.id), sender_id=str(current_user.id)),
    )
    return serialized


@router.get("/{other_user_id}", response_model=list[MessageRead])
def read_direct_conversation(
    other_user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[MessageRead]:
    """Return the full conversation with another user, oldest first."""

    if db.get(User, other_user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    stmt = (
        select(Message)
        .where(
            or_(
                and_(Message.sender_id == current_user.id, Message.receiver_id == other_user_id),
                and_(Message.sender_id == other_user_id, Message.receiver_id == current_user.id),
            )
        )
        .options(selectinload(Message.sender))
        .order_by(Message.created_at.asc(), Message.id.asc())
    )
    return [serialize_message(message) for message in db.execute(stmt).scalars()]


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    realtime: RealtimeCore = Depends(get_realtime),
) -> None:
    """Delete one of the caller's messages and retract it from live recipients."""

    message = _get_message(message_id, db)
    if message.sender_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the sender can delete this message",
        )

    if message.group_id is not None:
        recipients: DirectRecipients | GroupRecipients = GroupRecipients.build(
            message.group_id,
            membership_index.member_ids(message.group_id, db),
            current_user.id,
        )
    else:
        recipients = DirectRecipients(
            receiver_id=str(message.receiver_id), sender_id=str(current_user.id)
        )

    db.delete(message)
    db.commit()

    await realtime.dispatcher.dispatch_deletion(message_id, recipients)
