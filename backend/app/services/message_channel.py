"""Live, ordered view of one room's messages.

A channel moves through ``DETACHED -> LOADING -> LIVE -> DETACHED``. On attach
it subscribes to the room first and only then bulk-loads the history, so
nothing published during the load is missed. Events seen while loading are
buffered and merged by id once the history lands:

- a create whose id is already in the history is dropped;
- a delete is applied to the merged list, and its id is remembered so a
  create arriving later for the same id is ignored.

Live creates are appended in arrival order, not by ``created_at``: the push
channel gives no ordering guarantee between concurrent writers, so the list is
only approximately chronological at the tail.

Every await re-checks the generation and room captured when the work started;
anything that resolves after a detach or a switch to another room is dropped.
"""
import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, Optional

from app.schemas.message import MessageOut
from app.schemas.profile import AuthorOut
from app.services.push_bus import EventKind, PushBus, PushEvent, Subscription

logger = logging.getLogger(__name__)

PLACEHOLDER_AUTHOR = AuthorOut(email="unknown", full_name=None)

MessageLoader = Callable[[str], Awaitable[list[MessageOut]]]
AuthorLoader = Callable[[str], Awaitable[Optional[AuthorOut]]]
Listener = Callable[[str, Any], Awaitable[None]]


class ChannelState(str, enum.Enum):
    detached = "detached"
    loading = "loading"
    live = "live"


class MessageChannel:
    """Message list for the single active room of one client."""

    def __init__(
        self,
        bus: PushBus,
        load_messages: MessageLoader,
        load_author: AuthorLoader,
        listener: Optional[Listener] = None,
    ):
        self.bus = bus
        self.load_messages = load_messages
        self.load_author = load_author
        self.listener = listener

        self.state = ChannelState.detached
        self.room_id: Optional[str] = None
        self.messages: list[MessageOut] = []

        self._generation = 0
        self._subscription: Optional[Subscription] = None
        self._pump: Optional[asyncio.Task] = None
        self._buffer: list[PushEvent] = []
        self._deleted_ids: set[str] = set()
        self._emit_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    async def attach(self, room_id: str) -> list[MessageOut]:
        """Make ``room_id`` the active room and return its merged message list.

        Raises whatever the history load raises (``TransportError`` from
        storage); the channel is then left detached.
        """
        self.detach()
        generation = self._generation
        self.room_id = room_id
        self.state = ChannelState.loading

        subscription = self.bus.subscribe(room_id)
        self._subscription = subscription
        self._pump = asyncio.create_task(self._run(subscription, generation, room_id))
        self._pump.add_done_callback(_log_pump_failure)

        try:
            history = await self.load_messages(room_id)
        except BaseException:
            if self._is_current(generation, room_id):
                self.detach()
            raise
        if not self._is_current(generation, room_id):
            logger.debug("Dropped history for superseded room %s", room_id)
            return []

        self.messages = list(history)
        while self._buffer:
            event = self._buffer.pop(0)
            await self._apply(event, generation, room_id)
            if not self._is_current(generation, room_id):
                return []

        self.state = ChannelState.live
        snapshot = list(self.messages)
        logger.info("Channel live for room %s with %d messages", room_id, len(snapshot))
        await self._emit("snapshot", snapshot)
        return snapshot

    def detach(self) -> None:
        """Stop streaming the active room. Safe to call when already detached."""
        self._generation += 1
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        if self._pump is not None and not self._pump.done():
            self._pump.cancel()
        self._pump = None
        if self.room_id is not None:
            logger.debug("Channel detached from room %s", self.room_id)
        self.room_id = None
        self.state = ChannelState.detached
        self.messages = []
        self._buffer = []
        self._deleted_ids = set()

    close = detach

    # ------------------------------------------------------------------
    # event handling
    # ------------------------------------------------------------------
    def _is_current(self, generation: int, room_id: str) -> bool:
        return generation == self._generation and room_id == self.room_id

    def _index_of(self, message_id: str) -> Optional[int]:
        for i, message in enumerate(self.messages):
            if message.id == message_id:
                return i
        return None

    async def _run(self, subscription: Subscription, generation: int, room_id: str) -> None:
        async for event in subscription:
            if not self._is_current(generation, room_id):
                break
            if event.room_id != room_id:
                continue
            if self.state == ChannelState.loading:
                self._buffer.append(event)
                continue
            change = await self._apply(event, generation, room_id)
            if change is not None and self._is_current(generation, room_id):
                await self._emit(*change)

    async def _apply(self, event: PushEvent, generation: int, room_id: str):
        """Apply one event to the list. Returns the change to announce, if any."""
        message_id = event.row.get("id")
        if message_id is None:
            logger.warning("Ignoring %s event without id in room %s", event.kind.value, room_id)
            return None

        if event.kind == EventKind.deleted:
            self._deleted_ids.add(message_id)
            index = self._index_of(message_id)
            if index is None:
                return None
            del self.messages[index]
            return "message_deleted", {"id": message_id, "room_id": room_id}

        if message_id in self._deleted_ids or self._index_of(message_id) is not None:
            return None
        author = await self._author_for(event.row.get("user_id"))
        if not self._is_current(generation, room_id):
            return None
        if message_id in self._deleted_ids or self._index_of(message_id) is not None:
            return None
        message = MessageOut(**event.row, author=author)
        self.messages.append(message)
        return "message_created", message

    async def _author_for(self, user_id: Optional[str]) -> AuthorOut:
        if not user_id:
            return PLACEHOLDER_AUTHOR
        try:
            author = await self.load_author(user_id)
        except Exception as exc:
            logger.warning("Author lookup for %s failed, using placeholder: %s", user_id, exc)
            return PLACEHOLDER_AUTHOR
        return author or PLACEHOLDER_AUTHOR

    async def _emit(self, kind: str, payload: Any) -> None:
        if self.listener is None:
            return
        async with self._emit_lock:
            await self.listener(kind, payload)


def _log_pump_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Message channel pump stopped: %s", exc)
