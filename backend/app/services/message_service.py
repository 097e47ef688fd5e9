"""Message reads and writes.

Writes never touch a client's message list directly: after commit they are
published on the push bus and every attached channel (the writer's included)
applies the echo.
"""
import logging
from typing import Any

from sqlalchemy.orm import Session

from app.errors import NotFound, Unauthorized, ValidationError
from app.models.message import Message
from app.services import membership, store
from app.services.push_bus import EventKind, PushBus
from app.session import Identity

logger = logging.getLogger(__name__)


def message_row(message: Message) -> dict[str, Any]:
    """The bare message fields carried by push events (no author data)."""
    return {
        "id": message.id,
        "room_id": message.room_id,
        "user_id": message.user_id,
        "content": message.content,
        "created_at": message.created_at,
    }


def list_messages(db: Session, room_id: str) -> list[Message]:
    return store.messages_for_room(db, room_id)


def send_message(db: Session, bus: PushBus, room_id: str, identity: Identity, content: str) -> Message:
    """Store a message and publish ``MessageCreated``.

    Blank content is rejected before any storage access.
    """
    content = (content or "").strip()
    if not content:
        raise ValidationError("Message must not be empty")

    message = store.insert_message(db, room_id=room_id, user_id=identity.user_id, content=content)
    bus.publish(room_id, EventKind.created, message_row(message))
    logger.info("User %s sent message %s to room %s", identity.user_id, message.id, room_id)
    return message


def delete_message(db: Session, bus: PushBus, message_id: str, identity: Identity) -> None:
    """Delete a message and publish ``MessageDeleted``."""
    message = store.get_message(db, message_id)
    if message is None:
        raise NotFound("Message not found")
    room_id = message.room_id

    role = membership.role_of(db, identity.user_id, room_id)
    if not membership.can_delete(identity.user_id, message, role):
        raise Unauthorized("Only the author or a room admin may delete this message")

    if not store.delete_message(db, message_id, identity.user_id):
        raise Unauthorized("Delete rejected by storage policy")

    bus.publish(room_id, EventKind.deleted, {"id": message_id, "room_id": room_id})
    logger.info("User %s deleted message %s in room %s", identity.user_id, message_id, room_id)
