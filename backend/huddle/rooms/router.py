"""Room REST API router.

Endpoints:
    GET /api/join/{email}/{code}    - Check that a room can be joined
    GET /api/room/{code}            - Room information
    GET /api/room/{code}/messages   - Group message history
    GET /api/rooms                  - Active rooms, newest first
    GET /api/stats                  - Registry totals
    GET /api/health                 - API health
    GET /join/{email}/{code}        - Meeting page (creates the room on demand)

Errors from the room and session layers are rendered by
``session_error_handler`` as ``{"success": false, "error": message}``.
"""
import html
import logging
import time
from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse

from huddle import __version__
from huddle.errors import (
    InvalidIdentity,
    InvalidPayload,
    InvalidRoomCode,
    RoomFull,
    RoomNotFound,
    SessionError,
)

from .registry import RoomRegistry
from .schemas import (
    ActiveRoom,
    ActiveRoomsResponse,
    ApiHealthResponse,
    JoinCheck,
    JoinCheckResponse,
    RoomInfo,
    RoomInfoResponse,
    RoomMessagesResponse,
    RoomStats,
    RoomStatsResponse,
)
from .validation import validate_email, validate_room_code

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rooms"])

# HTML template directory
TEMPLATES_DIR = Path(__file__).parent / "templates"

# Error class -> HTTP status; anything else is a 500
_STATUS_BY_ERROR = {
    RoomNotFound: 404,
    RoomFull: 403,
    InvalidIdentity: 400,
    InvalidRoomCode: 400,
    InvalidPayload: 400,
}


def status_for(error: SessionError) -> int:
    for error_type, status in _STATUS_BY_ERROR.items():
        if isinstance(error, error_type):
            return status
    return 500


async def session_error_handler(request: Request, exc: SessionError) -> JSONResponse:
    """Render a SessionError raised by an HTTP route."""
    status = status_for(exc)
    if status >= 500:
        logger.error(f"[API] {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status, content={"success": False, "error": exc.message})


def _registry(request: Request) -> RoomRegistry:
    return request.app.state.coordinator.registry


# =============================================================================
# JSON API
# =============================================================================


@router.get("/api/join/{email}/{code}", response_model=JoinCheckResponse)
async def check_join(request: Request, email: str, code: str) -> JoinCheckResponse:
    """Check whether *email* may join the existing room *code*.

    Args:
        email: Email the client will join with.
        code: Meeting code (case-insensitive).

    Returns:
        JoinCheckResponse with the room summary.

    Raises:
        InvalidIdentity, InvalidRoomCode: Malformed email or code (400).
        RoomNotFound: No such room (404).
        RoomFull: The room is at capacity (403).
    """
    email = validate_email(email)
    code = validate_room_code(code)

    registry = _registry(request)
    room = registry.get(code)
    if room is None:
        raise RoomNotFound("Meeting room not found. Please check the meeting code.")
    if room.is_full:
        raise RoomFull("Meeting room is full. Maximum participants reached.")

    return JoinCheckResponse(
        data=JoinCheck(
            roomCode=room.code,
            participantCount=room.size,
            createdAt=room.created_at,
            userEmail=email,
        )
    )


@router.get("/api/room/{code}", response_model=RoomInfoResponse)
async def get_room_info(request: Request, code: str) -> RoomInfoResponse:
    room = _registry(request).require(code)
    return RoomInfoResponse(data=RoomInfo.of(room))


@router.get("/api/room/{code}/messages", response_model=RoomMessagesResponse)
async def get_room_messages(request: Request, code: str) -> RoomMessagesResponse:
    """Return the retained group messages of a room, oldest first."""
    room = _registry(request).require(code)
    messages = list(room.messages)
    return RoomMessagesResponse(data=messages, total=len(messages))


@router.get("/api/rooms", response_model=ActiveRoomsResponse)
async def list_active_rooms(request: Request) -> ActiveRoomsResponse:
    rooms = [
        ActiveRoom(code=room.code, participantCount=room.size, createdAt=room.created_at)
        for room in _registry(request).active_rooms()
    ]
    return ActiveRoomsResponse(data=rooms, total=len(rooms))


@router.get("/api/stats", response_model=RoomStatsResponse)
async def get_stats(request: Request) -> RoomStatsResponse:
    return RoomStatsResponse(data=RoomStats(**_registry(request).stats()))


@router.get("/api/health", response_model=ApiHealthResponse)
async def api_health() -> ApiHealthResponse:
    return ApiHealthResponse(timestamp=time.time(), version=__version__)


# =============================================================================
# Meeting page
# =============================================================================


@router.get("/join/{email}/{code}", response_class=HTMLResponse)
async def meeting_page(request: Request, email: str, code: str) -> HTMLResponse:
    """Render the meeting page, creating the room if it does not exist yet.

    Args:
        email: Identity the page will join with.
        code: Meeting code (case-insensitive).

    Returns:
        HTMLResponse with the rendered meeting page.
    """
    email = validate_email(email)
    code = validate_room_code(code)
    _registry(request).get_or_create(code)

    template_path = TEMPLATES_DIR / "meeting.html"
    template = template_path.read_text(encoding="utf-8")

    # Simple template substitution (no Jinja2 dependency)
    content = template.replace("{{ room_code }}", html.escape(code))
    content = content.replace("{{ email }}", html.escape(email))

    logger.info(f"[API] Serving meeting page for {email} in room {code}")
    return HTMLResponse(content=content)
