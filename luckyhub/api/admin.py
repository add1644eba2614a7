import logging
from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from luckyhub.api.auth import MAX_ROW_ID, GroupOut, UserOut, group_out, require_admin, user_out
from luckyhub.core.bootstrap import SEEDED_GROUP_NAMES, get_bot_user
from luckyhub.core.security import get_password_hash
from luckyhub.db.models import Group, User
from luckyhub.db.session import get_db

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger("uvicorn.error")


class AdminUserUpdateRequest(BaseModel):
    fullname: Optional[str] = Field(default=None, min_length=1, max_length=255)
    birthday: Optional[date] = None
    height: Optional[float] = Field(default=None, gt=0, le=300)
    gender: Optional[str] = Field(default=None, min_length=1, max_length=32)
    group_id: Optional[int] = Field(default=None, ge=1, le=MAX_ROW_ID)
    password: Optional[str] = Field(default=None, min_length=1, max_length=128)


class GroupWriteRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=255)
    can_message: bool = False
    can_note: bool = False
    can_administer: bool = False


def _get_user_or_404(db: Session, user_id: int) -> User:
    row = db.query(User).filter(User.id == user_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="User not found")
    return row


def _get_group_or_404(db: Session, group_id: int) -> Group:
    row = db.query(Group).filter(Group.id == group_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Group not found")
    return row


@router.get("/users", response_model=list[UserOut])
def list_users(admin: User = Depends(require_admin), db: Session = Depends(get_db)) -> list[UserOut]:
    _ = admin
    rows = db.query(User).order_by(User.id.asc()).all()
    return [user_out(row) for row in rows]


@router.put("/users/{user_id}", response_model=UserOut)
def update_user(
    user_id: Annotated[int, Path(ge=1, le=MAX_ROW_ID)],
    payload: AdminUserUpdateRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> UserOut:
    row = _get_user_or_404(db, user_id)
    if payload.group_id is not None:
        group = _get_group_or_404(db, payload.group_id)
        if row.id == admin.id and not group.can_administer:
            raise HTTPException(status_code=400, detail="You cannot remove your own admin permission")
        row.group_id = group.id
    if payload.fullname is not None:
        row.fullname = payload.fullname.strip()
    if payload.birthday is not None:
        row.birthday = payload.birthday
    if payload.height is not None:
        row.height = payload.height
    if payload.gender is not None:
        row.gender = payload.gender.strip()
    if payload.password:
        row.password_hash = get_password_hash(payload.password)
    db.commit()
    db.refresh(row)
    logger.info("admin_user_updated admin_id=%s user_id=%s", admin.id, row.id)
    return user_out(row)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: int = Path(ge=1, le=MAX_ROW_ID),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Response:
    row = _get_user_or_404(db, user_id)
    if row.id == admin.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    bot = get_bot_user(db)
    if bot and row.id == bot.id:
        raise HTTPException(status_code=400, detail="The coach bot account cannot be deleted")
    # Metrics and messages are left in place.
    db.delete(row)
    db.commit()
    logger.info("admin_user_deleted admin_id=%s user_id=%s", admin.id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/groups", response_model=list[GroupOut])
def list_groups(admin: User = Depends(require_admin), db: Session = Depends(get_db)) -> list[GroupOut]:
    _ = admin
    return [group_out(row) for row in db.query(Group).order_by(Group.id.asc()).all()]


@router.post("/groups", response_model=GroupOut, status_code=status.HTTP_201_CREATED)
def create_group(
    payload: GroupWriteRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> GroupOut:
    _ = admin
    name = payload.name.strip()
    if db.query(Group).filter(Group.name == name).first():
        raise HTTPException(status_code=409, detail="Group name already exists")
    row = Group(**payload.model_dump(exclude={"name"}), name=name)
    db.add(row)
    db.commit()
    db.refresh(row)
    return group_out(row)


@router.put("/groups/{group_id}", response_model=GroupOut)
def update_group(
    group_id: Annotated[int, Path(ge=1, le=MAX_ROW_ID)],
    payload: GroupWriteRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> GroupOut:
    row = _get_group_or_404(db, group_id)
    name = payload.name.strip()
    if row.name in SEEDED_GROUP_NAMES and name != row.name:
        raise HTTPException(status_code=400, detail="Default groups cannot be renamed")
    if admin.group_id == row.id and not payload.can_administer:
        raise HTTPException(status_code=400, detail="You cannot remove your own admin permission")
    clash = db.query(Group).filter(Group.name == name, Group.id != row.id).first()
    if clash:
        raise HTTPException(status_code=409, detail="Group name already exists")
    row.name = name
    row.description = payload.description
    row.can_message = payload.can_message
    row.can_note = payload.can_note
    row.can_administer = payload.can_administer
    db.commit()
    db.refresh(row)
    return group_out(row)


@router.delete("/groups/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_group(
    group_id: int = Path(ge=1, le=MAX_ROW_ID),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Response:
    _ = admin
    row = _get_group_or_404(db, group_id)
    if row.name in SEEDED_GROUP_NAMES:
        raise HTTPException(status_code=400, detail="Default groups cannot be deleted")
    if db.query(User).filter(User.group_id == row.id).first():
        raise HTTPException(status_code=409, detail="Group still has members")
    db.delete(row)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
