import os
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from luckyhub.core.roles import Capability, has_capability, is_admin
from luckyhub.db.models import Message, User

CHAT_HISTORY_DEFAULT_LIMIT = int(os.getenv("CHAT_HISTORY_DEFAULT_LIMIT", "100"))
CHAT_HISTORY_MAX_LIMIT = int(os.getenv("CHAT_HISTORY_MAX_LIMIT", "500"))


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None or limit <= 0:
        return CHAT_HISTORY_DEFAULT_LIMIT
    return min(limit, CHAT_HISTORY_MAX_LIMIT)


def fetch_history(
    db: Session,
    *,
    user_id: int,
    partner_id: int,
    bot_id: Optional[int],
    limit: Optional[int] = None,
    before: Optional[datetime] = None,
) -> list[tuple[Message, Optional[str]]]:
    """Messages between two users plus the bot's replies to either of them.

    Bot replies are addressed to the human who triggered them, not to the
    conversation partner, so both bot directions are unioned in. Results are
    newest first and paired with the sender's current display name.
    """
    pairs = [
        and_(Message.sender_id == user_id, Message.recipient_id == partner_id),
        and_(Message.sender_id == partner_id, Message.recipient_id == user_id),
    ]
    if bot_id is not None:
        pairs.append(and_(Message.sender_id == bot_id, Message.recipient_id == user_id))
        pairs.append(and_(Message.sender_id == bot_id, Message.recipient_id == partner_id))

    query = (
        db.query(Message, User.fullname)
        .outerjoin(User, User.id == Message.sender_id)
        .filter(or_(*pairs))
    )
    if before is not None:
        query = query.filter(Message.created_at < before)
    rows = (
        query.order_by(Message.created_at.desc(), Message.id.desc())
        .limit(clamp_limit(limit))
        .all()
    )
    return [(message, sender_name) for message, sender_name in rows]


def can_message(sender: User, recipient: User, bot_id: Optional[int]) -> bool:
    if recipient.id == sender.id:
        return False
    if bot_id is not None and bot_id in (sender.id, recipient.id):
        return True
    if is_admin(sender) or is_admin(recipient):
        return True
    return has_capability(sender, Capability.message)
