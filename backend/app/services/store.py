"""Storage primitives over profiles, rooms, room_members and messages.

Everything the services read or write goes through here. Two policies are
enforced at this layer regardless of what callers checked beforehand:

- a message may only be inserted by a member of its room;
- a message may only be deleted by its author or by an admin of its room.

Duplicate memberships are rejected by the ``uq_room_members_room_user``
constraint. Any other SQLAlchemy failure is rolled back and re-raised as
``TransportError``.
"""
import logging
from contextlib import contextmanager
from typing import Iterable, Optional

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import AlreadyMember, TransportError, Unauthorized
from app.models.message import Message
from app.models.profile import Profile
from app.models.room import Room, RoomMember, RoomRole
from app.session import Identity

logger = logging.getLogger(__name__)


@contextmanager
def guarded(db: Session, action: str):
    """Roll back and wrap storage failures raised inside the block."""
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Storage failure during %s: %s", action, exc)
        raise TransportError(f"Storage failure during {action}") from exc


# ---------------------------------------------------------------------------
# profiles
# ---------------------------------------------------------------------------
def upsert_profile(db: Session, identity: Identity) -> Profile:
    """Create the profile row for an identity on first sight, refresh it afterwards."""
    with guarded(db, "profile upsert"):
        profile = db.get(Profile, identity.user_id)
        if profile is None:
            profile = Profile(
                id=identity.user_id,
                email=identity.email,
                full_name=identity.full_name,
                email_verified=identity.email_verified,
            )
            db.add(profile)
            try:
                db.commit()
            except IntegrityError:
                # Inserted concurrently by another request for the same user
                db.rollback()
                profile = db.get(Profile, identity.user_id)
                if profile is None:
                    raise
                logger.info("Profile %s was created concurrently", identity.user_id)
            else:
                db.refresh(profile)
                logger.info("Created profile %s (%s)", profile.id, profile.email)
                return profile

        changed = False
        if profile.email != identity.email:
            profile.email = identity.email
            changed = True
        if profile.email_verified != identity.email_verified:
            profile.email_verified = identity.email_verified
            changed = True
        if identity.full_name and not profile.full_name:
            profile.full_name = identity.full_name
            changed = True
        if changed:
            db.commit()
            db.refresh(profile)
        return profile


def get_profile(db: Session, user_id: str) -> Optional[Profile]:
    with guarded(db, "profile lookup"):
        return db.get(Profile, user_id)


def update_profile(db: Session, profile: Profile, full_name: Optional[str]) -> Profile:
    with guarded(db, "profile update"):
        profile.full_name = full_name
        db.commit()
        db.refresh(profile)
        return profile


# ---------------------------------------------------------------------------
# rooms & memberships
# ---------------------------------------------------------------------------
def memberships_for(db: Session, user_id: str) -> list[RoomMember]:
    """All membership rows of a user, in the order they were created."""
    with guarded(db, "membership listing"):
        return (
            db.query(RoomMember)
            .filter(RoomMember.user_id == user_id)
            .order_by(RoomMember.created_at)
            .all()
        )


def membership(db: Session, user_id: str, room_id: str) -> Optional[RoomMember]:
    with guarded(db, "membership lookup"):
        return (
            db.query(RoomMember)
            .filter(RoomMember.room_id == room_id, RoomMember.user_id == user_id)
            .first()
        )


def rooms_by_ids(db: Session, room_ids: Iterable[str]) -> list[Room]:
    room_ids = list(room_ids)
    if not room_ids:
        return []
    with guarded(db, "room listing"):
        return db.query(Room).filter(Room.id.in_(room_ids)).all()


def room_by_group_id(db: Session, group_id: str) -> Optional[Room]:
    with guarded(db, "room lookup"):
        return db.query(Room).filter(Room.group_id == group_id).first()


def insert_room(db: Session, name: str, group_id: str, created_by: str) -> Room:
    with guarded(db, "room insert"):
        room = Room(name=name, group_id=group_id, created_by=created_by)
        db.add(room)
        db.commit()
        db.refresh(room)
        return room


def delete_room(db: Session, room_id: str) -> None:
    with guarded(db, "room delete"):
        db.execute(delete(Room).where(Room.id == room_id).execution_options(synchronize_session=False))
        db.commit()


def insert_membership(db: Session, room_id: str, user_id: str, role: RoomRole) -> RoomMember:
    """Insert a membership row.

    A duplicate (room, user) pair raises ``AlreadyMember``; any other
    integrity failure (a missing room or profile) is a ``TransportError``.
    """
    member = RoomMember(room_id=room_id, user_id=user_id, role=role)
    try:
        db.add(member)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if membership(db, user_id, room_id) is not None:
            raise AlreadyMember("You are already a member of this room") from exc
        logger.error("Integrity failure during membership insert: %s", exc)
        raise TransportError("Storage failure during membership insert") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Storage failure during membership insert: %s", exc)
        raise TransportError("Storage failure during membership insert") from exc
    db.refresh(member)
    return member


# ---------------------------------------------------------------------------
# messages
# ---------------------------------------------------------------------------
def messages_for_room(db: Session, room_id: str) -> list[Message]:
    """Every message of a room, oldest first, with its author profile loaded."""
    with guarded(db, "message listing"):
        return (
            db.query(Message)
            .filter(Message.room_id == room_id)
            .order_by(Message.created_at.asc())
            .all()
        )


def get_message(db: Session, message_id: str) -> Optional[Message]:
    with guarded(db, "message lookup"):
        return db.get(Message, message_id)


def insert_message(db: Session, room_id: str, user_id: str, content: str) -> Message:
    """Insert a message; only members of the room may write to it."""
    with guarded(db, "message insert"):
        is_member = db.execute(
            select(RoomMember.id).where(RoomMember.room_id == room_id, RoomMember.user_id == user_id)
        ).first()
        if is_member is None:
            db.rollback()
            raise Unauthorized("Only members of this room may send messages")
        message = Message(room_id=room_id, user_id=user_id, content=content)
        db.add(message)
        db.commit()
        db.refresh(message)
        return message


def delete_message(db: Session, message_id: str, actor_id: str) -> bool:
    """Delete a message if ``actor_id`` is its author or an admin of its room.

    Returns False when no row matched the policy (missing or not permitted).
    """
    admin_rooms = select(RoomMember.room_id).where(
        RoomMember.user_id == actor_id,
        RoomMember.role == RoomRole.admin,
    )
    stmt = (
        delete(Message)
        .where(
            Message.id == message_id,
            or_(Message.user_id == actor_id, Message.room_id.in_(admin_rooms)),
        )
        .execution_options(synchronize_session=False)
    )
    with guarded(db, "message delete"):
        result = db.execute(stmt)
        db.commit()
        return result.rowcount > 0
