"""Session coordinator: room membership lifecycle and event dispatch.

This module owns the real-time session state for the whole process: the
room registry, the identity mapping, the live connection hub and the
relay dispatcher. All of it runs on the single asyncio event loop; every
mutation completes before the next ``await``, so a handler never leaves
partially updated state behind.

Join Flow:
    1. A previous connection of the same identity is evicted (mappings
       erased, removed from its room, socket closed) without ``user-left``
    2. The connection subscribes to the room's broadcast group and drops
       any other group it was in
    3. The identity is bound and its activity touched
    4. The room is fetched or created
    5. The connection becomes a member (RoomFull is reported to the joiner)
    6. ``participants-update`` is broadcast to the whole room
    7. ``room-participants`` is sent to the joiner as its acknowledgment
    8. ``user-joined`` reaches those already in the room once the joiner
       sends ``ready`` (or ``ready_timeout`` elapses)

    A repeated ``join-room`` for the room a connection is already in only
    re-sends ``room-participants``; nothing is broadcast.

Disconnect Flow:
    A dropped connection keeps its seat for ``grace_period`` seconds. When
    the period elapses the binding is re-checked: if the identity has been
    bound to a newer connection nothing happens, otherwise the participant
    is removed and ``user-left`` plus ``participants-update`` go out.
    Scheduled continuations are never cancelled; they re-check on fire.
"""
import asyncio
import itertools
import logging
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from pydantic import ValidationError

from huddle.config import AppConfig
from huddle.errors import InternalFailure, InvalidPayload, RoomFull, SessionError
from huddle.rooms.models import Room
from huddle.rooms.registry import RoomRegistry
from huddle.rooms.validation import validate_identity, validate_room_code

from .connection import CLOSE_SUPERSEDED
from .events import (
    INBOUND_TYPES,
    ChatMessageIn,
    ConnectedOut,
    ErrorOut,
    JoinRoomIn,
    MediaStateChangeIn,
    ParticipantEntry,
    ParticipantsUpdateOut,
    PingIn,
    PongOut,
    PrivateMessageIn,
    ReadyIn,
    RecordingStartedIn,
    RecordingStoppedIn,
    RoomParticipantsOut,
    ScreenShareIn,
    SignalIn,
    UserJoinedOut,
    UserLeftOut,
    dump_event,
    parse_inbound,
)
from .hub import ConnectionHub
from .identity import Binding, IdentityMap
from .relay import RelayDispatcher

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 5.0
DEFAULT_READY_TIMEOUT = 1.5

# Inbound presence event -> event broadcast to the rest of the room
PRESENCE_EVENTS = {
    "media-state-change": "user-media-state-changed",
    "screen-share-start": "user-screen-share-started",
    "screen-share-stop": "user-screen-share-stopped",
    "recording-started": "user-recording-started",
    "recording-stopped": "user-recording-stopped",
}


class SessionState(str, Enum):
    """Lifecycle of one identity.

    ABSENT -> BOUND -> PENDING_REMOVAL -> ABSENT, or back to BOUND when the
    identity reconnects within the grace period.
    """
    ABSENT = "absent"
    BOUND = "bound"
    PENDING_REMOVAL = "pending_removal"


class SessionCoordinator:
    """Owns the registry, identity mapping and hub for all rooms."""

    def __init__(
        self,
        registry: Optional[RoomRegistry] = None,
        identities: Optional[IdentityMap] = None,
        hub: Optional[ConnectionHub] = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        ready_timeout: float = DEFAULT_READY_TIMEOUT,
    ) -> None:
        self.registry = registry if registry is not None else RoomRegistry()
        self.identities = identities if identities is not None else IdentityMap()
        self.hub = hub if hub is not None else ConnectionHub()
        self.relay = RelayDispatcher(self.registry, self.identities, self.hub)
        self.grace_period = grace_period
        self.ready_timeout = ready_timeout

        # connHandle -> (generation, binding, audience) awaiting the user-joined
        # announcement; the audience is who was in the group at join time
        self._pending_announcements: Dict[str, Tuple[int, Binding, Tuple[str, ...]]] = {}
        self._generations = itertools.count(1)

        # Scheduled continuations (grace period, ready fallback)
        self._tasks: Set[asyncio.Task] = set()

        self._handlers = {
            JoinRoomIn: self._on_join,
            ReadyIn: self._on_ready,
            PingIn: self._on_ping,
            SignalIn: self._on_signal,
            ChatMessageIn: self._on_chat,
            PrivateMessageIn: self._on_private,
            MediaStateChangeIn: self._on_media_state,
            ScreenShareIn: self._on_screen_share,
            RecordingStartedIn: self._on_recording_started,
            RecordingStoppedIn: self._on_recording_stopped,
        }

    @classmethod
    def from_config(cls, config: AppConfig) -> "SessionCoordinator":
        registry = RoomRegistry(
            capacity=config.rooms.max_participants,
            history_limit=config.rooms.history_limit,
        )
        return cls(
            registry=registry,
            grace_period=config.session.grace_period_seconds,
            ready_timeout=config.session.ready_timeout_seconds,
        )

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self, connection) -> None:
        """Register a freshly accepted connection and tell it its handle."""
        self.hub.register(connection)
        await self.hub.send(connection.handle, dump_event(ConnectedOut(connHandle=connection.handle)))

    async def handle_event(self, connection, data) -> None:
        """Dispatch one inbound frame.

        Failures are reported to *connection* as an ``error`` event and
        never raised to the transport.
        """
        try:
            event = parse_inbound(data)
            await self._handlers[type(event)](connection, event)
        except SessionError as e:
            await self._send_error(connection.handle, e)
        except ValidationError:
            await self._send_error(connection.handle, InvalidPayload(self._describe_invalid(data)))
        except Exception:
            logger.exception(f"[Session] Failed to handle event from {connection.handle}")
            await self._send_error(connection.handle, InternalFailure())

    async def disconnect(self, handle: str) -> None:
        """Transport-level disconnect: start the grace period, do not remove yet."""
        self.hub.unregister(handle)
        self._pending_announcements.pop(handle, None)

        binding = self.identities.resolve_identity(handle)
        if binding is None:
            logger.debug(f"[Session] Unbound connection {handle} disconnected")
            return

        logger.info(
            f"[Session] {binding.identity} dropped from room {binding.room_code}, "
            f"removal in {self.grace_period}s unless they reconnect"
        )
        self._spawn(self._finalize_removal(handle, binding))

    def session_state(self, identity: str) -> SessionState:
        handle = self.identities.resolve_connection(identity)
        if handle is None:
            return SessionState.ABSENT
        if self.hub.is_connected(handle):
            return SessionState.BOUND
        return SessionState.PENDING_REMOVAL

    async def close(self) -> None:
        """Cancel outstanding continuations (application shutdown)."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    # =========================================================================
    # Join
    # =========================================================================

    async def join(self, connection, room_code: str, identity: str) -> Room:
        """Admit *connection* into *room_code* as *identity*.

        Raises:
            InvalidRoomCode, InvalidIdentity: Malformed input.
            RoomFull: The room is at capacity. The connection stays
                subscribed to the room group but is neither bound nor a member.
        """
        code = validate_room_code(room_code)
        identity = validate_identity(identity)
        handle = connection.handle

        departures: List[Tuple[Binding, str]] = []
        superseded_connection = None

        # Reconciliation: at most one live connection per identity
        superseded = self.identities.resolve_connection(identity)
        if superseded is not None and superseded != handle:
            previous = self._detach(superseded)
            superseded_connection = self.hub.unregister(superseded)
            if previous is not None and previous.room_code != code:
                departures.append((previous, superseded))
            logger.info(f"[Session] Cleaning up existing session for {identity} ({superseded})")

        # Re-joining connection leaves whatever it was in before
        current = self.identities.resolve_identity(handle)
        if current is not None and current != Binding(identity, code):
            self._detach(handle)
            departures.append((current, handle))

        # Includes groups kept after a RoomFull refusal, which left no binding
        for group in self.hub.subscriptions(handle):
            if group != code:
                self.hub.unsubscribe(handle, group)

        self.hub.subscribe(handle, code)
        self.identities.bind(handle, identity, code)
        self.identities.touch(identity)
        room = self.registry.get_or_create(code)

        if current == Binding(identity, code) and handle in room.members:
            # Repeated join-room: the peers already know this participant
            await self._send_roster(room, handle)
            logger.debug(f"[Session] {identity} re-sent join-room for {code}")
            return room

        try:
            self.registry.add_member(room, handle, identity)
        except RoomFull:
            self.identities.unbind(handle, identity)
            raise
        finally:
            if superseded_connection is not None:
                await superseded_connection.close(CLOSE_SUPERSEDED, "Superseded by a newer connection")
            for binding, old_handle in departures:
                await self._announce_departure(binding, old_handle)

        await self._broadcast_roster(room)
        await self._send_roster(room, handle)

        generation = next(self._generations)
        audience = tuple(h for h in self.hub.members(code) if h != handle)
        self._pending_announcements[handle] = (generation, Binding(identity, code), audience)
        self._spawn(self._announce_after_timeout(handle, generation))

        logger.info(f"[Session] {identity} joined room {code} ({room.size}/{room.capacity})")
        return room

    async def mark_ready(self, handle: str) -> bool:
        """Joiner acknowledged its roster; announce it to the room."""
        return await self._announce(handle)

    async def _announce(self, handle: str, generation: Optional[int] = None) -> bool:
        pending = self._pending_announcements.get(handle)
        if pending is None:
            return False
        pending_generation, binding, audience = pending
        if generation is not None and generation != pending_generation:
            return False
        del self._pending_announcements[handle]

        if self.identities.resolve_identity(handle) != binding:
            return False
        # Later joiners already got this participant in their roster
        subscribed = set(self.hub.members(binding.room_code))
        event = UserJoinedOut(connHandle=handle, identity=binding.identity)
        await self.hub.multicast([h for h in audience if h in subscribed], dump_event(event))
        return True

    async def _announce_after_timeout(self, handle: str, generation: int) -> None:
        try:
            await asyncio.sleep(self.ready_timeout)
            if await self._announce(handle, generation):
                logger.debug(f"[Session] Announced {handle} without a ready acknowledgment")
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"[Session] Join announcement for {handle} failed")

    # =========================================================================
    # Leave
    # =========================================================================

    async def _finalize_removal(self, handle: str, binding: Binding) -> None:
        try:
            await asyncio.sleep(self.grace_period)
            if self.identities.resolve_connection(binding.identity) != handle:
                logger.info(
                    f"[Session] {binding.identity} reconnected within the grace period"
                )
                return
            self._detach(handle)
            await self._announce_departure(binding, handle)
            logger.info(f"[Session] {binding.identity} left room {binding.room_code}")
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"[Session] Removal of {binding.identity} failed")

    def _detach(self, handle: str) -> Optional[Binding]:
        """Erase the bindings of *handle* and drop it from its room."""
        binding = self.identities.resolve_identity(handle)
        if binding is None:
            return None
        self.identities.unbind(handle, binding.identity)
        self._pending_announcements.pop(handle, None)
        room = self.registry.get(binding.room_code)
        if room is not None:
            self.registry.remove_member(room, handle)
        return binding

    async def _announce_departure(self, binding: Binding, handle: str) -> None:
        room = self.registry.get(binding.room_code)
        if room is None:
            return
        event = UserLeftOut(connHandle=handle, identity=binding.identity)
        await self.hub.broadcast(dump_event(event), room.code, exclude=handle)
        await self._broadcast_roster(room)

    async def _broadcast_roster(self, room: Room) -> None:
        update = ParticipantsUpdateOut(
            count=room.size,
            participants=[ParticipantEntry.of(p) for p in room.participants()],
        )
        await self.hub.broadcast(dump_event(update), room.code)

    async def _send_roster(self, room: Room, handle: str) -> None:
        roster = RoomParticipantsOut(
            participants=[ParticipantEntry.of(p) for p in room.participants(exclude=handle)]
        )
        await self.hub.send(handle, dump_event(roster))

    # =========================================================================
    # Event handlers
    # =========================================================================

    async def _on_join(self, connection, event: JoinRoomIn) -> None:
        logger.info(f"[Session] {event.identity} attempting to join room {event.roomCode}")
        await self.join(connection, event.roomCode, event.identity)

    async def _on_ready(self, connection, event: ReadyIn) -> None:
        await self.mark_ready(connection.handle)

    async def _on_ping(self, connection, event: PingIn) -> None:
        binding = self.identities.resolve_identity(connection.handle)
        if binding is not None:
            self.identities.touch(binding.identity)
        await self.hub.send(connection.handle, dump_event(PongOut()))

    async def _on_signal(self, connection, event: SignalIn) -> None:
        await self.relay.relay_signal(connection.handle, event.type, event.payload, event.to)

    async def _on_chat(self, connection, event: ChatMessageIn) -> None:
        await self.relay.broadcast_chat(connection.handle, event.body)

    async def _on_private(self, connection, event: PrivateMessageIn) -> None:
        await self.relay.relay_private(connection.handle, event.recipientIdentity, event.body)

    async def _on_media_state(self, connection, event: MediaStateChangeIn) -> None:
        await self.relay.broadcast_presence(
            connection.handle, PRESENCE_EVENTS[event.type],
            media=event.media, enabled=event.enabled,
        )

    async def _on_screen_share(self, connection, event: ScreenShareIn) -> None:
        await self.relay.broadcast_presence(connection.handle, PRESENCE_EVENTS[event.type])

    async def _on_recording_started(self, connection, event: RecordingStartedIn) -> None:
        await self.relay.broadcast_presence(
            connection.handle, PRESENCE_EVENTS[event.type],
            recordingType=event.recordingType,
        )

    async def _on_recording_stopped(self, connection, event: RecordingStoppedIn) -> None:
        await self.relay.broadcast_presence(
            connection.handle, PRESENCE_EVENTS[event.type],
            filename=event.filename, recordingType=event.recordingType,
        )

    # =========================================================================
    # Internal
    # =========================================================================

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _send_error(self, handle: str, error: SessionError) -> None:
        logger.debug(f"[Session] Error for {handle}: {error.code} {error.message}")
        await self.hub.send(handle, dump_event(ErrorOut(code=error.code, message=error.message)))

    @staticmethod
    def _describe_invalid(data) -> str:
        event_type = data.get("type") if isinstance(data, dict) else None
        if event_type not in INBOUND_TYPES:
            return f"Unknown event type: {event_type}"
        return f"Invalid {event_type} payload"
