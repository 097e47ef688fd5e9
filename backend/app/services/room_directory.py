"""Room directory: which rooms an identity belongs to, and with which role."""
import logging
from typing import NamedTuple, Optional

from sqlalchemy.orm import Session

from app.models.room import Room, RoomRole
from app.services import store

logger = logging.getLogger(__name__)


class RoomListing(NamedTuple):
    room: Room
    role: RoomRole


def list_my_rooms(db: Session, user_id: str) -> list[RoomListing]:
    """Resolve the user's rooms in membership order.

    Memberships are read first, then the rooms they reference. A membership
    whose room vanished between the two reads is skipped; the next refresh
    settles it. Storage failures propagate as ``TransportError``.
    """
    memberships = store.memberships_for(db, user_id)
    if not memberships:
        return []

    roles = {m.room_id: m.role for m in memberships}
    rooms = {room.id: room for room in store.rooms_by_ids(db, roles.keys())}

    listings = [
        RoomListing(rooms[m.room_id], roles[m.room_id])
        for m in memberships
        if m.room_id in rooms
    ]
    logger.debug("Listed %d rooms for user %s", len(listings), user_id)
    return listings


def select_default(listings: list[RoomListing], active_room_id: Optional[str] = None) -> Optional[RoomListing]:
    """Pick the room to show after a directory refresh.

    Keeps the active room while it is still listed, otherwise falls back to the
    first listing. The role comes from the listing itself, no extra lookup.
    """
    if not listings:
        return None
    if active_room_id is not None:
        for listing in listings:
            if listing.room.id == active_room_id:
                return listing
    return listings[0]
