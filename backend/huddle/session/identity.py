"""Bidirectional mapping between connection handles and user identities.

Invariant: if ``identity -> connection`` maps *u* to *c* then
``connection -> binding`` maps *c* to *u* with the same room code, and an
identity is bound to at most one connection at any time.
"""
import logging
import time
from typing import Dict, NamedTuple, Optional

logger = logging.getLogger(__name__)


class Binding(NamedTuple):
    identity: str
    room_code: str


class IdentityMap:
    """Connection <-> identity lookups plus per-identity last activity."""

    def __init__(self) -> None:
        # connHandle -> Binding(identity, room_code)
        self._by_conn: Dict[str, Binding] = {}

        # identity -> connHandle
        self._by_identity: Dict[str, str] = {}

        # identity -> unix timestamp of the last liveness signal
        self._last_activity: Dict[str, float] = {}

    def bind(self, conn_handle: str, identity: str, room_code: str) -> Optional[str]:
        """Bind *conn_handle* to *identity* in *room_code*.

        Any previous connection of *identity* is erased first and its
        handle returned, so the caller can terminate it. A connection that
        was bound to another identity loses that binding.
        """
        superseded = self._by_identity.get(identity)
        if superseded == conn_handle:
            superseded = None
        if superseded is not None:
            self._by_conn.pop(superseded, None)
            logger.info(f"[Identity] {identity} superseded connection {superseded}")

        previous = self._by_conn.get(conn_handle)
        if previous is not None and previous.identity != identity:
            if self._by_identity.get(previous.identity) == conn_handle:
                del self._by_identity[previous.identity]
                self._last_activity.pop(previous.identity, None)

        self._by_conn[conn_handle] = Binding(identity, room_code)
        self._by_identity[identity] = conn_handle
        return superseded

    def resolve_identity(self, conn_handle: str) -> Optional[Binding]:
        return self._by_conn.get(conn_handle)

    def resolve_connection(self, identity: str) -> Optional[str]:
        return self._by_identity.get(identity)

    def unbind(self, conn_handle: str, identity: str) -> bool:
        """Remove both directions and the activity timestamp.

        Only acts when *identity* is still bound to *conn_handle*; a binding
        already taken over by a newer connection is left alone.
        """
        if self._by_identity.get(identity) != conn_handle:
            return False
        del self._by_identity[identity]
        self._by_conn.pop(conn_handle, None)
        self._last_activity.pop(identity, None)
        return True

    def touch(self, identity: str, now: Optional[float] = None) -> None:
        self._last_activity[identity] = time.time() if now is None else now

    def last_activity(self, identity: str) -> Optional[float]:
        return self._last_activity.get(identity)

    def __len__(self) -> int:
        return len(self._by_identity)

    def __contains__(self, identity: str) -> bool:
        return identity in self._by_identity
