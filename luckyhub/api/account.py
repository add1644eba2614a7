import base64
import os
from datetime import date

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from luckyhub.api.auth import MessageResponse, UserOut, get_current_user, user_out
from luckyhub.core.security import get_password_hash, verify_password
from luckyhub.db.models import User
from luckyhub.db.session import get_db

router = APIRouter(prefix="/api/account", tags=["account"])
AVATAR_MAX_BYTES = int(os.getenv("AVATAR_MAX_BYTES", str(2 * 1024 * 1024)))


class ProfileUpdateRequest(BaseModel):
    fullname: str = Field(min_length=1, max_length=255)
    birthday: date
    height: float = Field(gt=0, le=300)
    gender: str = Field(min_length=1, max_length=32)


class PasswordChangeRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)


@router.get("/profile", response_model=UserOut)
def get_profile(user: User = Depends(get_current_user)) -> UserOut:
    return user_out(user)


@router.put("/profile", response_model=UserOut)
def update_profile(
    payload: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserOut:
    user.fullname = payload.fullname.strip()
    user.birthday = payload.birthday
    user.height = payload.height
    user.gender = payload.gender.strip()
    db.commit()
    db.refresh(user)
    return user_out(user)


@router.put("/password", response_model=MessageResponse)
def change_password(
    payload: PasswordChangeRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    if not verify_password(payload.current_password, user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    user.password_hash = get_password_hash(payload.new_password)
    db.commit()
    return MessageResponse(message="Password updated")


@router.post("/avatar", response_model=UserOut)
def upload_avatar(
    avatar: UploadFile = File(...),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserOut:
    if not avatar.content_type or not avatar.content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image uploads are supported.")
    image_bytes = avatar.file.read(AVATAR_MAX_BYTES + 1)
    if not image_bytes:
        raise HTTPException(status_code=400, detail="Uploaded image is empty.")
    if len(image_bytes) > AVATAR_MAX_BYTES:
        raise HTTPException(
            status_code=400,
            detail=f"Image too large. Max size is {AVATAR_MAX_BYTES // 1024}KB.",
        )
    encoded = base64.b64encode(image_bytes).decode("ascii")
    user.avatar = f"data:{avatar.content_type};base64,{encoded}"
    db.commit()
    db.refresh(user)
    return user_out(user)
