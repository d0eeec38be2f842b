"""Real-time event types exchanged over the session WebSocket.

Every frame is a JSON object with a ``type`` discriminator. Inbound frames
are validated into one of the ``*In`` models via ``parse_inbound``;
outbound frames are built from the ``*Out`` models and serialized with
``dump_event``.

Caller-supplied ``identity``/``roomCode`` fields on anything but
``join-room`` are tolerated for client compatibility and ignored: the
sender and its room always come from the server-side identity mapping.
"""
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from huddle.rooms.models import Message, Participant

INBOUND_TYPES = (
    "join-room", "ready", "ping", "offer", "answer", "ice-candidate",
    "chat-message", "private-message", "media-state-change",
    "screen-share-start", "screen-share-stop", "recording-started", "recording-stopped",
)


# =============================================================================
# Inbound
# =============================================================================


class JoinRoomIn(BaseModel):
    type: Literal["join-room"]
    roomCode: str = Field(..., description="Room code to join")
    identity: str = Field(..., description="Caller-supplied user identity")


class ReadyIn(BaseModel):
    """Joiner has processed its roster and can receive offers."""
    type: Literal["ready"]


class PingIn(BaseModel):
    type: Literal["ping"]


class SignalIn(BaseModel):
    """Opaque call-setup payload for one peer connection."""
    type: Literal["offer", "answer", "ice-candidate"]
    payload: Any = Field(..., description="Offer, answer or ICE candidate, never inspected")
    to: str = Field(..., description="Target connection handle")


class ChatMessageIn(BaseModel):
    type: Literal["chat-message"]
    body: str = Field(..., min_length=1)


class PrivateMessageIn(BaseModel):
    type: Literal["private-message"]
    body: str = Field(..., min_length=1)
    recipientIdentity: str = Field(..., min_length=1)


class MediaStateChangeIn(BaseModel):
    type: Literal["media-state-change"]
    media: Literal["audio", "video"]
    enabled: bool


class ScreenShareIn(BaseModel):
    type: Literal["screen-share-start", "screen-share-stop"]


class RecordingStartedIn(BaseModel):
    type: Literal["recording-started"]
    recordingType: str = "single"


class RecordingStoppedIn(BaseModel):
    type: Literal["recording-stopped"]
    filename: Optional[str] = None
    recordingType: str = "single"


InboundEvent = Annotated[
    Union[
        JoinRoomIn,
        ReadyIn,
        PingIn,
        SignalIn,
        ChatMessageIn,
        PrivateMessageIn,
        MediaStateChangeIn,
        ScreenShareIn,
        RecordingStartedIn,
        RecordingStoppedIn,
    ],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter = TypeAdapter(InboundEvent)


def parse_inbound(data: Any) -> BaseModel:
    """Validate a raw frame. Raises pydantic.ValidationError on bad shape."""
    return _inbound_adapter.validate_python(data)


# =============================================================================
# Outbound
# =============================================================================


class ParticipantEntry(BaseModel):
    connHandle: str
    identity: str

    @classmethod
    def of(cls, participant: Participant) -> "ParticipantEntry":
        return cls(connHandle=participant.connHandle, identity=participant.identity)


class ConnectedOut(BaseModel):
    type: Literal["connected"] = "connected"
    connHandle: str


class RoomParticipantsOut(BaseModel):
    type: Literal["room-participants"] = "room-participants"
    participants: List[ParticipantEntry]


class UserJoinedOut(BaseModel):
    type: Literal["user-joined"] = "user-joined"
    connHandle: str
    identity: str


class UserLeftOut(BaseModel):
    type: Literal["user-left"] = "user-left"
    connHandle: str
    identity: str


class ParticipantsUpdateOut(BaseModel):
    """Authoritative roster and member count of a room."""
    type: Literal["participants-update"] = "participants-update"
    count: int
    participants: List[ParticipantEntry]


class PongOut(BaseModel):
    type: Literal["pong"] = "pong"


class SignalOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["offer", "answer", "ice-candidate"]
    payload: Any
    from_: str = Field(..., alias="from")
    fromIdentity: Optional[str] = None


class PresenceOut(BaseModel):
    """Media, screen-share and recording state of one participant.

    Extra fields (media/enabled, recordingType, filename) ride along as-is.
    """
    model_config = ConfigDict(extra="allow")

    type: str
    connHandle: str
    identity: str


class ErrorOut(BaseModel):
    type: Literal["error"] = "error"
    code: str
    message: str


def message_event(event_type: str, message: Message) -> dict:
    """Envelope a stored Message as a ``chat-message``/``private-message`` frame."""
    return {"type": event_type, **message.model_dump(mode="json")}


def dump_event(event: BaseModel) -> dict:
    return event.model_dump(mode="json", by_alias=True)
