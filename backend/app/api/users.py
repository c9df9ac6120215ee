"""HTTP endpoints exposing the user directory."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.database import get_db
from app.models import User
from app.schemas import PublicUser

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[PublicUser])
def list_users(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[PublicUser]:
    """Return every other user with their current online flag."""

    stmt = select(User).where(User.id != current_user.id).order_by(User.login)
    return [PublicUser.model_validate(user) for user in db.execute(stmt).scalars()]


@router.get("/me", response_model=PublicUser)
def read_own_profile(current_user: User = Depends(get_current_user)) -> PublicUser:
    return PublicUser.model_validate(current_user)


@router.get("/{user_id}", response_model=PublicUser)
def read_user_profile(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PublicUser:
    """Return one user's public profile."""

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return PublicUser.model_validate(user)
