"""In-memory registry of meeting rooms.

The registry exclusively owns Room objects. It is mutated only by the
session coordinator and the janitor, both running on the single event
loop, so no locking is needed: every method runs to completion without
awaiting.
"""
import logging
import time
from typing import Dict, Iterator, List, Optional

from huddle.errors import RoomFull, RoomNotFound

from .models import (
    DEFAULT_CAPACITY,
    DEFAULT_HISTORY_LIMIT,
    Message,
    Participant,
    Room,
    normalize_code,
)

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Maps normalized room codes to Room state."""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.capacity = capacity
        self.history_limit = history_limit
        self._rooms: Dict[str, Room] = {}

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_or_create(self, code: str) -> Room:
        """Return the room for *code*, creating it on first use.

        Never creates a second Room for the same normalized code.
        """
        key = normalize_code(code)
        room = self._rooms.get(key)
        if room is None:
            room = Room(key, capacity=self.capacity, history_limit=self.history_limit)
            self._rooms[key] = room
            logger.info(f"[Registry] Room {key} created")
        return room

    def get(self, code: str) -> Optional[Room]:
        return self._rooms.get(normalize_code(code))

    def require(self, code: str) -> Room:
        """Like get() but raises RoomNotFound for unknown codes."""
        room = self.get(code)
        if room is None:
            raise RoomNotFound("Meeting room not found")
        return room

    def exists(self, code: str) -> bool:
        return normalize_code(code) in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def __iter__(self) -> Iterator[Room]:
        return iter(list(self._rooms.values()))

    # =========================================================================
    # Membership
    # =========================================================================

    def add_member(self, room: Room, conn_handle: str, identity: str) -> Participant:
        """Record *conn_handle* as a member of *room*.

        Raises:
            RoomFull: The room already holds ``capacity`` members. Membership
                is left untouched.
        """
        existing = room.members.get(conn_handle)
        if existing is not None:
            return existing
        if room.is_full:
            logger.warning(f"[Registry] Room {room.code} is full ({room.capacity})")
            raise RoomFull("Meeting room is full. Maximum participants reached.")

        participant = Participant(
            connHandle=conn_handle,
            identity=identity,
            roomCode=room.code,
        )
        room.members[conn_handle] = participant
        room.active = True
        return participant

    def remove_member(self, room: Room, conn_handle: str) -> int:
        """Drop *conn_handle* from *room* and return the remaining member count.

        Removing a handle that is not a member is a no-op.
        """
        room.members.pop(conn_handle, None)
        if not room.members:
            room.active = False
        return room.size

    # =========================================================================
    # Messages
    # =========================================================================

    def append_message(self, room: Room, body: str, sender_identity: str) -> Message:
        """Store a group message; history keeps only the newest ``history_limit``."""
        message = Message(roomCode=room.code, body=body, senderIdentity=sender_identity)
        room.messages.append(message)
        return message

    # =========================================================================
    # Maintenance and read accessors
    # =========================================================================

    def sweep_empty(self) -> List[str]:
        """Delete every room that is empty and inactive; return their codes."""
        removed = [
            code for code, room in self._rooms.items()
            if not room.members and not room.active
        ]
        for code in removed:
            del self._rooms[code]
            logger.info(f"[Registry] Cleaned up empty room: {code}")
        return removed

    def active_rooms(self) -> List[Room]:
        """Rooms with at least one member, newest first."""
        rooms = [room for room in self._rooms.values() if room.members]
        return sorted(rooms, key=lambda room: room.created_at, reverse=True)

    def stats(self) -> dict:
        return {
            "totalRooms": len(self._rooms),
            "activeRooms": sum(1 for room in self._rooms.values() if room.members),
            "totalParticipants": sum(room.size for room in self._rooms.values()),
            "timestamp": time.time(),
            "status": "operational",
        }
