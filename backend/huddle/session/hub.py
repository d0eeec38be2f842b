"""Live connection table and per-room broadcast groups.

The hub knows which transport connections are open and which room groups
they subscribe to. It is the only place that writes to sockets. Group
subscription is independent of room membership: a connection refused
with RoomFull stays subscribed and keeps receiving room broadcasts.

Performance Notes:
    - Broadcasting uses asyncio.gather() for concurrent delivery
    - A failed send drops that connection from the hub
"""
import asyncio
import logging
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


class ConnectionHub:
    """Maps connection handles to live connections and groups to handles."""

    def __init__(self) -> None:
        # connHandle -> Connection
        self.connections: Dict = {}

        # room code -> {connHandle: None}, insertion ordered
        self.groups: Dict[str, Dict[str, None]] = {}

    # =========================================================================
    # Connection table
    # =========================================================================

    def register(self, connection) -> None:
        self.connections[connection.handle] = connection

    def unregister(self, handle: str):
        """Forget a connection and all its group subscriptions."""
        connection = self.connections.pop(handle, None)
        for group in list(self.groups):
            self._discard(group, handle)
        return connection

    def is_connected(self, handle: Optional[str]) -> bool:
        return handle is not None and handle in self.connections

    # =========================================================================
    # Groups
    # =========================================================================

    def subscribe(self, handle: str, group: str) -> None:
        self.groups.setdefault(group, {})[handle] = None

    def unsubscribe(self, handle: str, group: str) -> None:
        self._discard(group, handle)

    def members(self, group: str) -> List[str]:
        return list(self.groups.get(group, {}))

    def subscriptions(self, handle: str) -> List[str]:
        """Groups *handle* is currently subscribed to."""
        return [group for group, handles in self.groups.items() if handle in handles]

    def _discard(self, group: str, handle: str) -> None:
        handles = self.groups.get(group)
        if handles is None:
            return
        handles.pop(handle, None)
        if not handles:
            del self.groups[group]

    # =========================================================================
    # Delivery
    # =========================================================================

    async def send(self, handle: str, message: dict) -> bool:
        """Send to one connection. Unknown handles are a silent no-op."""
        connection = self.connections.get(handle)
        if connection is None:
            logger.debug(f"[Hub] Dropping {message.get('type')} for stale handle {handle}")
            return False
        if await self._safe_send(connection, message):
            return True
        self.unregister(handle)
        return False

    async def broadcast(
        self, message: dict, group: str, exclude: Optional[str] = None
    ) -> None:
        """Send to every connection subscribed to *group* except *exclude*."""
        handles = [h for h in self.members(group) if h != exclude]
        await self._deliver(handles, message)

    async def multicast(self, handles: Iterable[str], message: dict) -> None:
        """Send to the given handles; unknown ones are skipped."""
        await self._deliver(handles, message)

    async def _deliver(self, handles: Iterable[str], message: dict) -> None:
        connections = [self.connections[h] for h in handles if h in self.connections]
        if not connections:
            return

        results = await asyncio.gather(
            *[self._safe_send(conn, message) for conn in connections],
            return_exceptions=True
        )

        # Remove failed connections
        for conn, success in zip(connections, results):
            if success is not True:
                self.unregister(conn.handle)
                logger.debug(f"[Hub] Removed dead connection {conn.handle}")

    async def _safe_send(self, connection, message: dict) -> bool:
        """Send a message with error handling.

        Returns:
            True if successful, False if the connection failed.
        """
        try:
            await connection.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"[Hub] Failed to send to {connection.handle}: {e}")
            return False
