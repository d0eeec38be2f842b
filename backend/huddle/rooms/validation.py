"""Format checks applied before a request reaches the registry."""
import re

from huddle.errors import InvalidIdentity, InvalidRoomCode

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
ROOM_CODE_RE = re.compile(r"^[A-Z0-9]{3,12}$", re.IGNORECASE)

# Identities are free-form (usually an email) but bounded
MAX_IDENTITY_LENGTH = 254


def validate_room_code(code: str) -> str:
    """Return the normalized (uppercase) code or raise InvalidRoomCode."""
    code = (code or "").strip()
    if not code:
        raise InvalidRoomCode("Meeting code is required")
    if not ROOM_CODE_RE.match(code):
        raise InvalidRoomCode("Invalid meeting code format")
    return code.upper()


def validate_email(email: str) -> str:
    email = (email or "").strip()
    if not email:
        raise InvalidIdentity("Email is required")
    if not EMAIL_RE.match(email):
        raise InvalidIdentity("Invalid email format")
    return email


def validate_identity(identity: str) -> str:
    """Identities are trusted but must be a non-empty, bounded string."""
    identity = (identity or "").strip()
    if not identity:
        raise InvalidIdentity("Identity is required")
    if len(identity) > MAX_IDENTITY_LENGTH:
        raise InvalidIdentity("Identity is too long")
    return identity
