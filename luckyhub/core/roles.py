from enum import Enum
from typing import Optional

from luckyhub.db.models import Group, User


class Capability(str, Enum):
    message = "message"
    note = "note"
    administer = "administer"


CAPABILITY_FLAGS: dict[Capability, str] = {
    Capability.message: "can_message",
    Capability.note: "can_note",
    Capability.administer: "can_administer",
}


def group_capabilities(group: Optional[Group]) -> list[Capability]:
    if group is None:
        return []
    return [cap for cap, flag in CAPABILITY_FLAGS.items() if getattr(group, flag, False)]


def has_capability(user: Optional[User], capability: Capability) -> bool:
    if user is None or user.group is None:
        return False
    return bool(getattr(user.group, CAPABILITY_FLAGS[capability], False))


def is_admin(user: Optional[User]) -> bool:
    return has_capability(user, Capability.administer)
