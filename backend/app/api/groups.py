"""HTTP endpoints for groups, their membership and group messages."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.orm import Session, selectinload

from palaver.realtime import GroupRecipients, GroupSnapshot, RealtimeCore

from app.api.deps import (
    get_current_user,
    get_group_or_404,
    require_group_admin,
    require_group_member,
)
from app.api.messages import serialize_message, validate_message_text
from app.database import get_db
from app.models import Group, GroupMember, GroupRole, Message, User
from app.schemas import (
    GroupCreate,
    GroupMembersAdd,
    GroupPromotion,
    GroupRead,
    MessageCreate,
    MessageRead,
)
from app.services.membership import membership_index
from app.services.realtime import get_realtime

router = APIRouter(prefix="/groups", tags=["groups"])


def _load_group(group_id: int, db: Session) -> Group:
    stmt = (
        select(Group)
        .where(Group.id == group_id)
        .options(selectinload(Group.members).selectinload(GroupMember.user))
        .execution_options(populate_existing=True)
    )
    group = db.execute(stmt).scalar_one_or_none()
    if group is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found")
    return group


def serialize_group(group: Group) -> GroupRead:
    return GroupRead.model_validate(group)


def _snapshot(group_id: int, db: Session) -> tuple[GroupRead, GroupSnapshot]:
    """Reload a committed group, refresh the membership index and build its snapshot."""

    serialized = serialize_group(_load_group(group_id, db))
    members = membership_index.refresh(group_id, db)
    snapshot = GroupSnapshot.build(group_id, members, serialized.model_dump(mode="json"))
    return serialized, snapshot


def _ensure_users_exist(user_ids: set[int], db: Session) -> None:
    if not user_ids:
        return
    found = set(db.execute(select(User.id).where(User.id.in_(user_ids))).scalars())
    missing = sorted(user_ids - found)
    if missing:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown users: {', '.join(str(user_id) for user_id in missing)}",
        )


@router.post("", response_model=GroupRead, status_code=status.HTTP_201_CREATED)
async def create_group(
    payload: GroupCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    realtime: RealtimeCore = Depends(get_realtime),
) -> GroupRead:
    """Create a group administered by the caller and announce it to its members."""

    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Group name is required")

    member_ids = set(payload.member_ids) - {current_user.id}
    _ensure_users_exist(member_ids, db)

    group = Group(name=name, description=payload.description.strip())
    group.members.append(GroupMember(user_id=current_user.id, role=GroupRole.ADMIN))
    for user_id in sorted(member_ids):
        group.members.append(GroupMember(user_id=user_id, role=GroupRole.MEMBER))
    db.add(group)
    db.commit()

    serialized, snapshot = _snapshot(group.id, db)
    await realtime.notifier.notify_created(snapshot)
    return serialized


@router.get("", response_model=list[GroupRead])
def list_groups(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[GroupRead]:
    """Return the groups the caller belongs to."""

    stmt = (
        select(Group)
        .join(GroupMember, GroupMember.group_id == Group.id)
        .where(GroupMember.user_id == current_user.id)
        .options(selectinload(Group.members).selectinload(GroupMember.user))
        .order_by(Group.id)
    )
    return [serialize_group(group) for group in db.execute(stmt).scalars().unique()]


@router.get("/{group_id}", response_model=GroupRead)
def read_group(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> GroupRead:
    get_group_or_404(group_id, db)
    require_group_member(group_id, current_user.id, db)
    return serialize_group(_load_group(group_id, db))


@router.post("/{group_id}/members", response_model=GroupRead)
async def add_group_members(
    group_id: int,
    payload: GroupMembersAdd,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    realtime: RealtimeCore = Depends(get_realtime),
) -> GroupRead:
    """Add users to a group; users already in it are left untouched."""

    get_group_or_404(group_id, db)
    require_group_admin(group_id, current_user.id, db)

    existing = membership_index.refresh(group_id, db)
    new_ids = set(payload.user_ids) - set(existing)
    _ensure_users_exist(new_ids, db)
    for user_id in sorted(new_ids):
        db.add(GroupMember(group_id=group_id, user_id=user_id, role=GroupRole.MEMBER))
    db.commit()

    serialized, snapshot = _snapshot(group_id, db)
    await realtime.notifier.notify_updated(snapshot)
    return serialized


@router.delete("/{group_id}/members/{user_id}", response_model=GroupRead)
async def remove_group_member(
    group_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    realtime: RealtimeCore = Depends(get_realtime),
) -> GroupRead:
    """Remove a member and revoke their live access to the group."""

    get_group_or_404(group_id, db)
    require_group_admin(group_id, current_user.id, db)

    stmt = select(GroupMember).where(
        GroupMember.group_id == group_id,
        GroupMember.user_id == user_id,
    )
    membership = db.execute(stmt).scalar_one_or_none()
    if membership is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
    db.delete(membership)
    db.commit()

    serialized, snapshot = _snapshot(group_id, db)
    await realtime.notifier.notify_member_removed(snapshot, user_id)
    return serialized


@router.post("/{group_id}/admins", response_model=GroupRead)
async def promote_group_admin(
    group_id: int,
    payload: GroupPromotion,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    realtime: RealtimeCore = Depends(get_realtime),
) -> GroupRead:
    get_group_or_404(group_id, db)
    require_group_admin(group_id, current_user.id, db)

    stmt = select(GroupMember).where(
        GroupMember.group_id == group_id,
        GroupMember.user_id == payload.user_id,
    )
    membership = db.execute(stmt).scalar_one_or_none()
    if membership is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
    membership.role = GroupRole.ADMIN
    db.commit()

    serialized, snapshot = _snapshot(group_id, db)
    await realtime.notifier.notify_updated(snapshot)
    return serialized


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    realtime: RealtimeCore = Depends(get_realtime),
) -> None:
    """Delete a group with its messages and notify everyone who was in it."""

    group = get_group_or_404(group_id, db)
    require_group_admin(group_id, current_user.id, db)

    former_member_ids = membership_index.refresh(group_id, db)
    db.execute(delete(Message).where(Message.group_id == group_id))
    db.delete(group)
    db.commit()
    membership_index.forget(group_id)

    await realtime.notifier.notify_deleted(group_id, former_member_ids)


@router.get("/{group_id}/messages", response_model=list[MessageRead])
def read_group_messages(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[MessageRead]:
    get_group_or_404(group_id, db)
    require_group_member(group_id, current_user.id, db)

    stmt = (
        select(Message)
        .where(Message.group_id == group_id)
        .options(selectinload(Message.sender))
        .order_by(Message.created_at.asc(), Message.id.asc())
    )
    return [serialize_message(message) for message in db.execute(stmt).scalars()]


@router.post(
    "/{group_id}/messages",
    response_model=MessageRead,
    status_code=status.HTTP_201_CREATED,
)
async def send_group_message(
    group_id: int,
    payload: MessageCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    realtime: RealtimeCore = Depends(get_realtime),
) -> MessageRead:
    """Store a group message, then deliver it to every other online member."""

    get_group_or_404(group_id, db)
    require_group_member(group_id, current_user.id, db)

    message = Message(
        sender_id=current_user.id,
        group_id=group_id,
        text=validate_message_text(payload.text),
        image_url=payload.image_url,
    )
    db.add(message)
    db.commit()
    db.refresh(message)

    serialized = serialize_message(message)
    await realtime.dispatcher.dispatch(
        serialized.model_dump(mode="json"),
        GroupRecipients.build(
            group_id, membership_index.member_ids(group_id, db), current_user.id
        ),
    )
    return serialized
