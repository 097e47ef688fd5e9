"""Room API routes: directory, lifecycle, roles and room messages."""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.deps import get_push_bus, verified_identity
from app.errors import NotFound
from app.models.room import RoomRole
from app.schemas.message import MessageCreate, MessageOut
from app.schemas.room import RoleOut, RoomCreate, RoomJoin, RoomListingOut, RoomOut
from app.services import membership, message_service, room_directory, room_service
from app.services.push_bus import PushBus
from app.session import Identity

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/mine", response_model=list[RoomListingOut])
def list_my_rooms(identity: Identity = Depends(verified_identity), db: Session = Depends(get_db)):
    """Rooms the caller belongs to, with the caller's role in each."""
    return [
        RoomListingOut(room=RoomOut.model_validate(listing.room), role=listing.role)
        for listing in room_directory.list_my_rooms(db, identity.user_id)
    ]


@router.post("/", response_model=RoomListingOut, status_code=status.HTTP_201_CREATED)
def create_room(payload: RoomCreate, identity: Identity = Depends(verified_identity), db: Session = Depends(get_db)):
    """Create a room. The creator becomes its admin."""
    room = room_service.create_room(db, identity, payload.name)
    return RoomListingOut(room=RoomOut.model_validate(room), role=RoomRole.admin)


@router.post("/join", response_model=RoomListingOut, status_code=status.HTTP_201_CREATED)
def join_room(payload: RoomJoin, identity: Identity = Depends(verified_identity), db: Session = Depends(get_db)):
    """Join a room by its group ID."""
    room = room_service.join_room(db, identity, payload.group_id)
    return RoomListingOut(room=RoomOut.model_validate(room), role=RoomRole.member)


@router.get("/{room_id}/role", response_model=RoleOut)
def get_my_role(room_id: str, identity: Identity = Depends(verified_identity), db: Session = Depends(get_db)):
    """The caller's current role in a room."""
    role = membership.role_of(db, identity.user_id, room_id)
    if role is None:
        raise NotFound("Membership not found")
    return RoleOut(room_id=room_id, role=role)


@router.get("/{room_id}/messages", response_model=list[MessageOut])
def list_room_messages(room_id: str, identity: Identity = Depends(verified_identity), db: Session = Depends(get_db)):
    """All messages of a room, oldest first (members only)."""
    membership.require_member(db, identity.user_id, room_id)
    return message_service.list_messages(db, room_id)


@router.post("/{room_id}/messages", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
def send_message(
    room_id: str,
    payload: MessageCreate,
    identity: Identity = Depends(verified_identity),
    db: Session = Depends(get_db),
    bus: PushBus = Depends(get_push_bus),
):
    """Send a message; subscribers see it through the push echo."""
    return message_service.send_message(db, bus, room_id, identity, payload.content)
