"""Membership authorization: role lookup and mutation gates.

These checks give fast feedback to the caller. The storage layer enforces the
same rules on its own (see ``store.insert_message`` / ``store.delete_message``).
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.errors import Unauthorized
from app.models.room import RoomRole
from app.services import store

logger = logging.getLogger(__name__)


def role_of(db: Session, user_id: str, room_id: str) -> Optional[RoomRole]:
    """Fresh role lookup for (user, room). Never cached: roles change between visits."""
    member = store.membership(db, user_id, room_id)
    return member.role if member else None


def require_member(db: Session, user_id: str, room_id: str) -> RoomRole:
    """Return the caller's role in the room or raise ``Unauthorized``."""
    role = role_of(db, user_id, room_id)
    if role is None:
        raise Unauthorized("You are not a member of this room")
    return role


def can_delete(user_id: str, message, role: Optional[RoomRole]) -> bool:
    """Authors may delete their own messages; admins may delete any message in the room."""
    return message.user_id == user_id or role == RoomRole.admin
