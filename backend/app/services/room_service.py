"""Room lifecycle: creating rooms and joining them by group id.

Room creation is two separate writes (room, then the creator's admin
membership). If the second write keeps failing for any reason, the room is
removed again so no room is left without an admin, and ``RoomCreationFailed``
is raised.
"""
import logging
import secrets

from sqlalchemy.orm import Session

from app.config import settings
from app.errors import ChatError, NotFound, RoomCreationFailed, TransportError, ValidationError
from app.models.room import Room, RoomRole
from app.services import store
from app.session import Identity

logger = logging.getLogger(__name__)


def new_group_id() -> str:
    """Mint an unguessable invite token."""
    return secrets.token_urlsafe(settings.GROUP_ID_BYTES)


def create_room(db: Session, identity: Identity, name: str) -> Room:
    """Create a room and make ``identity`` its sole admin."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Room name must not be empty")

    room = store.insert_room(db, name=name, group_id=new_group_id(), created_by=identity.user_id)
    room_id = room.id

    attempts = settings.MEMBERSHIP_WRITE_RETRIES + 1
    for attempt in range(1, attempts + 1):
        try:
            store.insert_membership(db, room_id, identity.user_id, RoomRole.admin)
            break
        except ChatError as exc:
            logger.warning(
                "Admin membership write for room %s failed (attempt %d/%d): %s", room_id, attempt, attempts, exc.kind
            )
    else:
        try:
            store.delete_room(db, room_id)
            logger.warning("Rolled back room %s after failed admin membership write", room_id)
        except TransportError:
            logger.error("Room %s left without an admin: rollback failed", room_id)
        raise RoomCreationFailed("Room could not be created, please try again")

    logger.info("Created room '%s' (%s) by user %s", room.name, room.id, identity.user_id)
    return room


def join_room(db: Session, identity: Identity, group_id: str) -> Room:
    """Join the room behind ``group_id`` as a member."""
    group_id = (group_id or "").strip()
    if not group_id:
        raise ValidationError("Group ID must not be empty")

    room = store.room_by_group_id(db, group_id)
    if room is None:
        raise NotFound("No room matches this group ID")

    store.insert_membership(db, room.id, identity.user_id, RoomRole.member)
    logger.info("User %s joined room %s as member", identity.user_id, room.id)
    return room
