import logging
import os
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from luckyhub.core.security import get_password_hash, normalize_username, unusable_password_hash
from luckyhub.db.models import Group, User

logger = logging.getLogger("uvicorn.error")

ADMIN_GROUP_NAME = os.getenv("ADMIN_GROUP_NAME", "Administrators")
MEMBER_GROUP_NAME = os.getenv("MEMBER_GROUP_NAME", "Members")
SEEDED_GROUP_NAMES = frozenset({ADMIN_GROUP_NAME, MEMBER_GROUP_NAME})

ADMIN_USERNAME = normalize_username(os.getenv("ADMIN_USERNAME", "admin"))
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin")
ADMIN_RESET_ENABLED = os.getenv("ADMIN_RESET_ENABLED", "true").strip().lower() in {"1", "true", "yes"}

BOT_USERNAME = normalize_username(os.getenv("BOT_USERNAME", "hlvai"))
BOT_DISPLAY_NAME = os.getenv("BOT_DISPLAY_NAME", "HLV AI")


def _ensure_group(db: Session, name: str, description: str, **flags: bool) -> Group:
    group = db.query(Group).filter(Group.name == name).first()
    if group is None:
        group = Group(name=name, description=description, **flags)
        db.add(group)
        db.flush()
        logger.info("seed_group_created name=%s", name)
    return group


def ensure_default_groups_and_bot(db: Session) -> User:
    admin_group = _ensure_group(
        db,
        ADMIN_GROUP_NAME,
        "System administrators",
        can_message=True,
        can_note=True,
        can_administer=True,
    )
    # The administrator group must never lose admin rights, or nobody can repair it.
    admin_group.can_administer = True
    member_group = _ensure_group(db, MEMBER_GROUP_NAME, "Regular members")

    bot = db.query(User).filter(User.username == BOT_USERNAME).first()
    if bot is None:
        bot = User(
            username=BOT_USERNAME,
            password_hash=unusable_password_hash(),
            fullname=BOT_DISPLAY_NAME,
            birthday=date(2000, 1, 1),
            height=170,
            gender="Other",
            group_id=member_group.id,
        )
        db.add(bot)
        logger.info("seed_bot_created username=%s", BOT_USERNAME)
    db.commit()
    db.refresh(bot)
    return bot


def reset_admin_account(db: Session) -> User:
    admin_group = db.query(Group).filter(Group.name == ADMIN_GROUP_NAME).first()
    if admin_group is None:
        ensure_default_groups_and_bot(db)
        admin_group = db.query(Group).filter(Group.name == ADMIN_GROUP_NAME).one()

    admin = db.query(User).filter(User.username == ADMIN_USERNAME).first()
    if admin is None:
        admin = User(username=ADMIN_USERNAME)
        db.add(admin)
    admin.password_hash = get_password_hash(ADMIN_PASSWORD)
    admin.fullname = "Administrator"
    admin.birthday = date(1990, 1, 1)
    admin.height = 170
    admin.gender = "Male"
    admin.group_id = admin_group.id
    db.commit()
    db.refresh(admin)
    logger.info("admin_account_reset username=%s", ADMIN_USERNAME)
    return admin


def get_bot_user(db: Session) -> Optional[User]:
    return db.query(User).filter(User.username == BOT_USERNAME).first()
