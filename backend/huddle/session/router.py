"""Session router providing the real-time WebSocket endpoint.

This module provides:
    - WebSocket /ws: join rooms, relay signaling, chat and presence

Protocol Flow:
    1. Client connects -> Server sends {type: "connected", connHandle}
    2. Client sends {type: "join-room", roomCode, identity}
       -> Room broadcast: {type: "participants-update", count, participants}
       -> Joiner receives: {type: "room-participants", participants}
    3. Client sends {type: "ready"}
       -> Others receive: {type: "user-joined", connHandle, identity}
    4. Client sends offer/answer/ice-candidate {payload, to}
       -> Target receives {type, payload, from, fromIdentity}
    5. On disconnect -> after the grace period, unless the identity
       reconnected: {type: "user-left"} and {type: "participants-update"}

Any failure is answered with {type: "error", code, message} to the sender.
"""
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from .connection import Connection
from .coordinator import SessionCoordinator

logger = logging.getLogger(__name__)

router = APIRouter()


def _coordinator(websocket: WebSocket) -> SessionCoordinator:
    return websocket.app.state.coordinator


@router.websocket("/ws")
async def session_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for one participant connection.

    Args:
        websocket: The WebSocket connection.
    """
    coordinator = _coordinator(websocket)
    await websocket.accept()
    connection = Connection(websocket)
    logger.info(f"[WS] User connected: {connection.handle}")

    await coordinator.connect(connection)

    try:
        while not connection.closed:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                data = None
            await coordinator.handle_event(connection, data)
    except WebSocketDisconnect as e:
        logger.info(f"[WS] User disconnected: {connection.handle} (code={e.code})")
    finally:
        await coordinator.disconnect(connection.handle)
