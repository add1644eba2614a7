import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from luckyhub.api.auth import MAX_ROW_ID, get_current_user
from luckyhub.api.metrics import latest_metrics
from luckyhub.core.bootstrap import get_bot_user
from luckyhub.db.models import Message, User
from luckyhub.db.session import get_db
from luckyhub.services.chat import can_message, fetch_history
from luckyhub.services.llm import AI_BUSY_MESSAGE, LLMClient, get_llm_client

router = APIRouter(prefix="/api/chat", tags=["chat"])
logger = logging.getLogger("uvicorn.error")

MEAL_PHOTO_PLACEHOLDER = "[Meal photo]"


class ChatUserItem(BaseModel):
    id: int
    username: str
    fullname: str
    group: Optional[str] = None
    is_bot: bool = False


class SendMessageRequest(BaseModel):
    to: int = Field(ge=1, le=MAX_ROW_ID)
    content: str = Field(min_length=1, max_length=8000)
    image: Optional[str] = None


class SendMealRequest(BaseModel):
    image_base64: str
    to: Optional[int] = Field(default=None, ge=1, le=MAX_ROW_ID)


class MessageItem(BaseModel):
    id: int
    sender_id: int
    recipient_id: int
    content: str
    image: Optional[str] = None
    created_at: datetime
    sender_name: Optional[str] = None


class SendMealResponse(BaseModel):
    message: str
    ai_reply: str
    ai_available: bool


def message_item(row: Message, sender_name: Optional[str] = None) -> MessageItem:
    return MessageItem(
        id=row.id,
        sender_id=row.sender_id,
        recipient_id=row.recipient_id,
        content=row.content,
        image=row.image,
        created_at=row.created_at,
        sender_name=sender_name,
    )


def _meal_prompt(db: Session, user: User) -> str:
    rows = latest_metrics(db, user.id, count=1)
    metrics_text = ""
    if rows:
        latest = rows[0]
        parts = []
        if latest.weight_kg is not None:
            parts.append(f"weight {latest.weight_kg:g} kg")
        if latest.body_fat_pct is not None:
            parts.append(f"body fat {latest.body_fat_pct:g}%")
        if latest.muscle_mass_kg is not None:
            parts.append(f"muscle mass {latest.muscle_mass_kg:g} kg")
        if parts:
            metrics_text = f" ({', '.join(parts)})"
    return (
        f"This is a meal eaten by {user.fullname}{metrics_text}. "
        "Give short, easy-to-follow nutrition advice for this meal."
    )


@router.get("/users", response_model=list[ChatUserItem])
def list_chat_users(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ChatUserItem]:
    bot = get_bot_user(db)
    rows = db.query(User).filter(User.id != user.id).order_by(User.fullname.asc(), User.id.asc()).all()
    return [
        ChatUserItem(
            id=row.id,
            username=row.username,
            fullname=row.fullname,
            group=row.group.name if row.group else None,
            is_bot=bool(bot and row.id == bot.id),
        )
        for row in rows
    ]


@router.post("/send", response_model=MessageItem, status_code=status.HTTP_201_CREATED)
def send_message(
    payload: SendMessageRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageItem:
    recipient = db.query(User).filter(User.id == payload.to).first()
    if not recipient:
        raise HTTPException(status_code=404, detail="Recipient not found")
    bot = get_bot_user(db)
    if not can_message(user, recipient, bot.id if bot else None):
        raise HTTPException(status_code=403, detail="You cannot message this user")
    row = Message(
        sender_id=user.id,
        recipient_id=recipient.id,
        content=payload.content,
        image=payload.image,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return message_item(row, sender_name=user.fullname)


@router.get("/history/{user_id}", response_model=list[MessageItem])
def get_history(
    user_id: int = Path(ge=1, le=MAX_ROW_ID),
    limit: Optional[int] = Query(default=None, ge=1),
    before: Optional[datetime] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[MessageItem]:
    if before is not None and before.tzinfo is not None:
        # Stored timestamps are naive UTC.
        before = before.astimezone(timezone.utc).replace(tzinfo=None)
    bot = get_bot_user(db)
    rows = fetch_history(
        db,
        user_id=user.id,
        partner_id=user_id,
        bot_id=bot.id if bot else None,
        limit=limit,
        before=before,
    )
    return [message_item(row, sender_name) for row, sender_name in rows]


@router.post("/send-meal", response_model=SendMealResponse)
def send_meal(
    payload: SendMealRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    llm_client: LLMClient = Depends(get_llm_client),
) -> SendMealResponse:
    bot = get_bot_user(db)
    bot_id = bot.id if bot else None
    recipient_id = payload.to if payload.to is not None else bot_id
    recipient = db.query(User).filter(User.id == recipient_id).first() if recipient_id is not None else None
    if not recipient:
        raise HTTPException(status_code=404, detail="Recipient not found")
    if not can_message(user, recipient, bot_id):
        raise HTTPException(status_code=403, detail="You cannot message this user")

    meal_message = Message(
        sender_id=user.id,
        recipient_id=recipient.id,
        content=MEAL_PHOTO_PLACEHOLDER,
        image=payload.image_base64,
    )
    db.add(meal_message)
    db.commit()

    reply = llm_client.generate_text(_meal_prompt(db, user), image=payload.image_base64)
    ai_available = reply is not None
    if reply is None:
        logger.warning("meal_advice_unavailable user_id=%s", user.id)
        reply = AI_BUSY_MESSAGE

    if bot:
        # Addressed to the sender so it shows up in every conversation they view.
        db.add(Message(sender_id=bot.id, recipient_id=user.id, content=reply))
        db.commit()
    else:
        logger.error("meal_advice_bot_missing user_id=%s", user.id)
    return SendMealResponse(message="ok", ai_reply=reply, ai_available=ai_available)
