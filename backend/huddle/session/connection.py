"""One live WebSocket connection, addressed by an opaque handle."""
import logging
import uuid
from typing import Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)

# Close code sent to a connection replaced by a newer one of the same identity
CLOSE_SUPERSEDED = 4001


class Connection:
    """Wraps a FastAPI WebSocket with a server-assigned handle.

    The coordinator and hub only rely on ``handle``, ``send_json`` and
    ``close``, so tests can substitute any object offering those.
    """

    def __init__(self, websocket: WebSocket, handle: Optional[str] = None) -> None:
        self.websocket = websocket
        self.handle = handle or str(uuid.uuid4())
        self.closed = False

    async def send_json(self, data: dict) -> None:
        await self.websocket.send_json(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self.websocket.close(code=code, reason=reason)
        except RuntimeError as e:
            # Already closed by the client
            logger.debug(f"[WS] Close on {self.handle} ignored: {e}")

    def __repr__(self) -> str:
        return f"Connection({self.handle})"
