from datetime import date, datetime
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from luckyhub.core.bootstrap import ADMIN_RESET_ENABLED, MEMBER_GROUP_NAME, reset_admin_account
from luckyhub.core.roles import Capability, group_capabilities, has_capability
from luckyhub.core.security import get_password_hash, normalize_username, verify_password
from luckyhub.db.models import Group, User
from luckyhub.db.session import get_db

router = APIRouter(tags=["auth"])

# Largest id a SQLite INTEGER column can bind.
MAX_ROW_ID = 2**63 - 1


class RegisterRequest(BaseModel):
    username: str = Field(min_length=1, max_length=120)
    password: str = Field(min_length=1, max_length=128)
    fullname: str = Field(min_length=1, max_length=255)
    birthday: date
    height: float = Field(gt=0, le=300)
    gender: str = Field(min_length=1, max_length=32)


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=120)
    password: str = Field(min_length=1, max_length=128)


class MessageResponse(BaseModel):
    message: str


class GroupOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    capabilities: list[Capability]


class UserOut(BaseModel):
    id: int
    username: str
    fullname: str
    birthday: date
    height: float
    gender: str
    avatar: Optional[str] = None
    group: Optional[GroupOut] = None
    created_at: datetime


class LoginResponse(BaseModel):
    user: UserOut


def group_out(group: Group) -> GroupOut:
    return GroupOut(
        id=group.id,
        name=group.name,
        description=group.description,
        capabilities=group_capabilities(group),
    )


def user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        username=user.username,
        fullname=user.fullname,
        birthday=user.birthday,
        height=user.height,
        gender=user.gender,
        avatar=user.avatar,
        group=group_out(user.group) if user.group else None,
        created_at=user.created_at,
    )


def _not_authenticated() -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")


def get_current_user_id(x_user_id: Optional[str] = Header(default=None, alias="x-user-id")) -> int:
    # The header value is trusted as-is; there is no signature to check.
    raw = (x_user_id or "").strip()
    if not raw or raw == "null":
        raise _not_authenticated()
    try:
        user_id = int(raw)
    except ValueError:
        raise _not_authenticated()
    if not 1 <= user_id <= MAX_ROW_ID:
        raise _not_authenticated()
    return user_id


def get_current_user(
    user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)
) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise _not_authenticated()
    return user


def require_capability(capability: Capability) -> Callable[..., User]:
    def _dependency(user: User = Depends(get_current_user)) -> User:
        if not has_capability(user, capability):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permission: {capability.value}",
            )
        return user

    return _dependency


require_admin = require_capability(Capability.administer)


@router.post("/dangky", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> MessageResponse:
    username = normalize_username(payload.username)
    if not username:
        raise HTTPException(status_code=400, detail="Username is required")
    if db.query(User).filter(User.username == username).first():
        raise HTTPException(status_code=409, detail="Username already exists")

    member_group = db.query(Group).filter(Group.name == MEMBER_GROUP_NAME).first()
    user = User(
        username=username,
        password_hash=get_password_hash(payload.password),
        fullname=payload.fullname.strip(),
        birthday=payload.birthday,
        height=payload.height,
        gender=payload.gender.strip(),
        group_id=member_group.id if member_group else None,
    )
    db.add(user)
    db.commit()
    return MessageResponse(message="Registration successful")


@router.post("/dangnhap", response_model=LoginResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> LoginResponse:
    user = db.query(User).filter(User.username == normalize_username(payload.username)).first()
    # One message for unknown users and wrong passwords alike.
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=400, detail="Invalid credentials")
    return LoginResponse(user=user_out(user))


@router.get("/adminreset", response_model=MessageResponse)
def admin_reset(db: Session = Depends(get_db)) -> MessageResponse:
    if not ADMIN_RESET_ENABLED:
        raise HTTPException(status_code=404, detail="Not found")
    reset_admin_account(db)
    return MessageResponse(message="Admin account reset")
