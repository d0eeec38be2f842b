"""Error taxonomy shared by the room registry and the session coordinator.

Every failure carries a stable machine ``code`` plus a human ``message``.
The WebSocket layer turns them into ``error`` events for the requester;
the HTTP layer maps them to status codes. Neither mapping lives here.
"""


class SessionError(Exception):
    """Base class for failures local to one request or event."""

    code = "internal_failure"
    default_message = "Internal server error"

    def __init__(self, message: str = "") -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class RoomFull(SessionError):
    code = "room_full"
    default_message = "Room is full"


class RoomNotFound(SessionError):
    code = "room_not_found"
    default_message = "Room not found"


class RecipientOffline(SessionError):
    code = "recipient_offline"
    default_message = "Recipient not found"


class InvalidIdentity(SessionError):
    code = "invalid_identity"
    default_message = "Invalid identity"


class InvalidRoomCode(SessionError):
    code = "invalid_room_code"
    default_message = "Invalid meeting code format"


class InvalidPayload(SessionError):
    code = "invalid_payload"
    default_message = "Invalid message format"


class NotJoined(SessionError):
    code = "not_joined"
    default_message = "Join a room first"


class InternalFailure(SessionError):
    pass
