"""Room, participant and message models.

Rooms are mutable in-memory state owned by the RoomRegistry. Participants
and messages are pydantic records; a Message is frozen once created.
"""
import time
import uuid
from collections import deque
from enum import Enum
from typing import Deque, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from huddle.errors import InvalidRoomCode

# Capacity of a room (members)
DEFAULT_CAPACITY = 50

# Messages kept per room; oldest are dropped first
DEFAULT_HISTORY_LIMIT = 100


def normalize_code(code: str) -> str:
    """Room codes are case-insensitive and stored uppercase."""
    normalized = (code or "").strip().upper()
    if not normalized:
        raise InvalidRoomCode("Meeting code is required")
    return normalized


def _message_id() -> str:
    # Millisecond prefix keeps ids roughly ordered; the suffix absorbs collisions.
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


class MessageKind(str, Enum):
    """GROUP messages go to the whole room, PRIVATE ones to a single recipient."""
    GROUP = "group"
    PRIVATE = "private"


class Message(BaseModel):
    """Chat message as stored in room history and sent to clients.

    Attributes:
        id: Server-assigned id (millisecond timestamp plus random suffix).
        kind: group or private.
        roomCode: Room the sender was in.
        body: Message text.
        senderIdentity: Identity of the sender.
        recipientIdentity: Target identity for private messages, None otherwise.
        ts: Unix timestamp (seconds since epoch).
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_message_id, description="Unique message ID")
    kind: MessageKind = Field(default=MessageKind.GROUP, description="Message kind")
    roomCode: str = Field(..., description="Room code this message belongs to")
    body: str = Field(..., description="Message content")
    senderIdentity: str = Field(..., description="Identity of the sender")
    recipientIdentity: Optional[str] = Field(
        default=None,
        description="Recipient identity (private messages only)"
    )
    ts: float = Field(default_factory=time.time, description="Timestamp in seconds since epoch")


class Participant(BaseModel):
    """A live connection counted as a member of a room."""
    connHandle: str = Field(..., description="Connection handle")
    identity: str = Field(..., description="Logical user identity")
    roomCode: str = Field(..., description="Owning room code")
    joinedAt: float = Field(default_factory=time.time, description="Join timestamp")


class Room:
    """State of one meeting room.

    ``active`` mirrors whether the room had members the last time
    membership changed; a room is created inactive and becomes active on
    its first member. Only empty, inactive rooms are swept.
    """

    def __init__(
        self,
        code: str,
        capacity: int = DEFAULT_CAPACITY,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.code = normalize_code(code)
        self.created_at = time.time()
        self.capacity = capacity
        self.active = False
        # connHandle -> Participant, in join order
        self.members: Dict[str, Participant] = {}
        self.messages: Deque[Message] = deque(maxlen=history_limit)

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def is_full(self) -> bool:
        return len(self.members) >= self.capacity

    def participants(self, exclude: Optional[str] = None) -> List[Participant]:
        return [p for handle, p in self.members.items() if handle != exclude]

    def get_info(self) -> dict:
        return {
            "code": self.code,
            "participantCount": self.size,
            "createdAt": self.created_at,
            "isActive": self.size > 0,
            "maxParticipants": self.capacity,
            "messageCount": len(self.messages),
        }

    def __repr__(self) -> str:
        return f"Room(code={self.code!r}, members={self.size}, active={self.active})"
