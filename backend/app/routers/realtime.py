"""WebSocket surface: one connection is one chat client.

Protocol
========

Connect with ``/ws?token=<session token>``. Unauthenticated and unverified
sessions receive a ``redirect`` frame and are closed.

Client -> server actions::

    {"action": "refresh_rooms"}
    {"action": "select_room", "room_id": "..."}
    {"action": "send", "content": "..."}
    {"action": "delete", "message_id": "..."}
    {"action": "create_room", "name": "..."}
    {"action": "join_room", "group_id": "..."}
    {"action": "refresh_token", "token": "..."}
    {"action": "sign_out"}

Server -> client frames::

    {"type": "rooms", "rooms": [{room, role}], "active_room_id": ..., "role": ...}
    {"type": "room_selected", "room_id": ..., "role": ...}
    {"type": "snapshot", "room_id": ..., "messages": [...]}
    {"type": "message_created", "message": {...}}
    {"type": "message_deleted", "message_id": ...}
    {"type": "room_created" | "room_joined", "room": {...}, "role": ...}
    {"type": "error", "error": <kind>, "message": "..."}
    {"type": "redirect", "location": "/login" | "/verify-email"}

A failed action produces an ``error`` frame; the connection stays open.
"""
import asyncio
import json
import logging
from typing import Any, Callable, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import sessionmaker
from starlette.concurrency import run_in_threadpool

from app.database import get_session_factory
from app.errors import ChatError, ValidationError
from app.models.room import RoomRole
from app.routing import LOGIN_PATH, VERIFY_EMAIL_PATH
from app.schemas.message import MessageOut
from app.schemas.profile import AuthorOut
from app.schemas.room import RoomListingOut, RoomOut
from app.services import membership, message_service, room_directory, room_service, store
from app.services.message_channel import MessageChannel
from app.services.push_bus import PushBus
from app.session import Identity, SessionEvent, SessionState

logger = logging.getLogger(__name__)
router = APIRouter()

CLOSE_UNAUTHENTICATED = 4401
CLOSE_UNVERIFIED = 4403


def _text_arg(message: dict[str, Any], key: str) -> Optional[str]:
    """Action argument ``key``; must be a string when present."""
    value = message.get(key)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value


class ChatClient:
    """Directory, active room and message channel of one connected client."""

    def __init__(self, websocket: WebSocket, session: SessionState, bus: PushBus, factory: sessionmaker):
        self.websocket = websocket
        self.session = session
        self.bus = bus
        self.factory = factory
        self.active_room_id: Optional[str] = None
        self.role: Optional[RoomRole] = None
        self.channel = MessageChannel(bus, self._load_messages, self._load_author, self._on_channel_change)
        self._attach_task: Optional[asyncio.Task] = None
        self._send_lock = asyncio.Lock()
        self._unsubscribe_session = session.subscribe(self._on_session_change)

    @property
    def identity(self) -> Identity:
        return self.session.identity

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------
    async def send(self, frame: dict[str, Any]) -> None:
        async with self._send_lock:
            await self.websocket.send_json(frame)

    async def send_error(self, exc: ChatError) -> None:
        await self.send({"type": "error", "error": exc.kind, "message": exc.detail})

    def _run_db(self, fn: Callable, *args):
        with self.factory() as db:
            return fn(db, *args)

    async def db(self, fn: Callable, *args):
        return await run_in_threadpool(self._run_db, fn, *args)

    async def _load_messages(self, room_id: str) -> list[MessageOut]:
        def _load(db, room_id):
            return [MessageOut.model_validate(m) for m in message_service.list_messages(db, room_id)]

        return await self.db(_load, room_id)

    async def _load_author(self, user_id: str) -> Optional[AuthorOut]:
        def _load(db, user_id):
            profile = store.get_profile(db, user_id)
            return AuthorOut.model_validate(profile) if profile else None

        return await self.db(_load, user_id)

    async def _on_channel_change(self, kind: str, payload: Any) -> None:
        if kind == "snapshot":
            await self.send({
                "type": "snapshot",
                "room_id": self.channel.room_id,
                "messages": [m.model_dump(mode="json") for m in payload],
            })
        elif kind == "message_created":
            await self.send({"type": "message_created", "message": payload.model_dump(mode="json")})
        elif kind == "message_deleted":
            await self.send({"type": "message_deleted", "message_id": payload["id"]})

    def _on_session_change(self, event: SessionEvent, identity: Optional[Identity]) -> None:
        if event == SessionEvent.signed_out or identity is None:
            self.stop_streaming()

    def stop_streaming(self) -> None:
        if self._attach_task is not None and not self._attach_task.done():
            self._attach_task.cancel()
        self._attach_task = None
        self.channel.detach()
        self.active_room_id = None
        self.role = None

    def close(self) -> None:
        self.stop_streaming()
        self._unsubscribe_session()
        self.session.teardown()

    # ------------------------------------------------------------------
    # actions
    # ------------------------------------------------------------------
    async def refresh_rooms(self) -> None:
        """Send the directory and make sure some room is active."""
        def _list(db, user_id):
            return [
                RoomListingOut(room=RoomOut.model_validate(listing.room), role=listing.role)
                for listing in room_directory.list_my_rooms(db, user_id)
            ]

        listings = await self.db(_list, self.identity.user_id)
        selected = room_directory.select_default(listings, self.active_room_id)
        if selected is None:
            self.stop_streaming()
        elif selected.room.id != self.active_room_id:
            self._activate(selected.room.id, selected.role)
        else:
            self.role = selected.role

        await self.send({
            "type": "rooms",
            "rooms": [listing.model_dump(mode="json") for listing in listings],
            "active_room_id": self.active_room_id,
            "role": self.role.value if self.role else None,
        })

    async def select_room(self, room_id: Optional[str]) -> None:
        if not room_id:
            raise ValidationError("room_id is required")
        role = await self.db(membership.require_member, self.identity.user_id, room_id)
        self._activate(room_id, role)
        await self.send({"type": "room_selected", "room_id": room_id, "role": role.value})

    def _activate(self, room_id: str, role: RoomRole) -> None:
        self.stop_streaming()
        self.active_room_id = room_id
        self.role = role
        self._attach_task = asyncio.create_task(self._attach(room_id))

    async def _attach(self, room_id: str) -> None:
        try:
            await self.channel.attach(room_id)
        except ChatError as exc:
            logger.warning("Could not attach to room %s: %s", room_id, exc.detail)
            try:
                await self.send_error(exc)
            except Exception as send_exc:
                logger.error("Could not report attach failure for room %s: %s", room_id, send_exc)
        except Exception as exc:
            logger.error("Attach to room %s failed: %s", room_id, exc)

    async def send_message(self, content: Optional[str]) -> None:
        if self.active_room_id is None:
            raise ValidationError("No active room")
        await self.db(message_service.send_message, self.bus, self.active_room_id, self.identity, content)

    async def delete_message(self, message_id: Optional[str]) -> None:
        if not message_id:
            raise ValidationError("message_id is required")
        await self.db(message_service.delete_message, self.bus, message_id, self.identity)

    async def create_room(self, name: Optional[str]) -> None:
        def _create(db, identity, name):
            return RoomOut.model_validate(room_service.create_room(db, identity, name))

        room = await self.db(_create, self.identity, name)
        await self.send({"type": "room_created", "room": room.model_dump(mode="json"), "role": RoomRole.admin.value})
        await self.refresh_rooms()

    async def join_room(self, group_id: Optional[str]) -> None:
        def _join(db, identity, group_id):
            return RoomOut.model_validate(room_service.join_room(db, identity, group_id))

        room = await self.db(_join, self.identity, group_id)
        await self.send({"type": "room_joined", "room": room.model_dump(mode="json"), "role": RoomRole.member.value})
        await self.refresh_rooms()

    async def refresh_token(self, token: Optional[str]) -> bool:
        """Apply a refreshed token. Returns False if the session ended."""
        previous = self.identity.user_id
        identity = self.session.apply(SessionEvent.token_refreshed, token)
        if identity is None:
            await self.send({"type": "redirect", "location": LOGIN_PATH})
            return False
        if not identity.email_verified:
            self.stop_streaming()
            await self.send({"type": "redirect", "location": VERIFY_EMAIL_PATH})
            return False
        await self.db(store.upsert_profile, identity)
        if identity.user_id != previous:
            self.stop_streaming()
            await self.refresh_rooms()
        return True

    async def sign_out(self) -> None:
        self.session.apply(SessionEvent.signed_out)
        await self.send({"type": "redirect", "location": LOGIN_PATH})

    async def dispatch(self, message: dict[str, Any]) -> bool:
        """Run one client action. Returns False when the connection should close."""
        action = message.get("action")
        if action == "refresh_rooms":
            await self.refresh_rooms()
        elif action == "select_room":
            await self.select_room(_text_arg(message, "room_id"))
        elif action == "send":
            await self.send_message(_text_arg(message, "content"))
        elif action == "delete":
            await self.delete_message(_text_arg(message, "message_id"))
        elif action == "create_room":
            await self.create_room(_text_arg(message, "name"))
        elif action == "join_room":
            await self.join_room(_text_arg(message, "group_id"))
        elif action == "refresh_token":
            return await self.refresh_token(_text_arg(message, "token"))
        elif action == "sign_out":
            await self.sign_out()
            return False
        else:
            await self.send({"type": "error", "error": "unknown_action", "message": f"Unknown action: {action}"})
        return True


@router.websocket("/ws")
async def realtime_endpoint(
    websocket: WebSocket,
    token: Optional[str] = None,
    factory: sessionmaker = Depends(get_session_factory),
):
    """Realtime chat connection; see the module docstring for the protocol."""
    await websocket.accept()

    session = SessionState(websocket.app.state.session_oracle)
    identity = session.init(token)
    if identity is None:
        await websocket.send_json({"type": "redirect", "location": LOGIN_PATH})
        await websocket.close(code=CLOSE_UNAUTHENTICATED)
        return
    if not identity.email_verified:
        await websocket.send_json({"type": "redirect", "location": VERIFY_EMAIL_PATH})
        await websocket.close(code=CLOSE_UNVERIFIED)
        return

    client = ChatClient(websocket, session, websocket.app.state.push_bus, factory)
    logger.info("Client connected (user=%s)", identity.user_id)
    try:
        try:
            await client.db(store.upsert_profile, identity)
            await client.refresh_rooms()
        except ChatError as exc:
            await client.send_error(exc)

        keep_open = True
        while keep_open:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await client.send({"type": "error", "error": "invalid_json", "message": "Invalid JSON"})
                continue
            if not isinstance(message, dict):
                await client.send({"type": "error", "error": "invalid_json", "message": "Expected an object"})
                continue
            try:
                keep_open = await client.dispatch(message)
            except ChatError as exc:
                await client.send_error(exc)
        await websocket.close()
    except WebSocketDisconnect:
        logger.info("Client disconnected (user=%s)", identity.user_id)
    finally:
        client.close()
