"""Relay dispatcher: forwards signaling, chat and presence events.

Three delivery shapes:
    - Targeted relay: offer/answer/ICE to one connection handle
    - Room broadcast: chat to the whole room group (sender included, so it
      sees the server-assigned id and timestamp), presence to everyone but
      the sender
    - Private relay: one recipient identity, echoed back to the sender as
      delivery confirmation

Payloads are never inspected. The dispatcher holds no state of its own.
"""
import logging
from typing import Optional

from huddle.errors import NotJoined, RecipientOffline, RoomNotFound
from huddle.rooms.models import Message, MessageKind
from huddle.rooms.registry import RoomRegistry

from .events import PresenceOut, SignalOut, dump_event, message_event
from .hub import ConnectionHub
from .identity import Binding, IdentityMap

logger = logging.getLogger(__name__)


class RelayDispatcher:

    def __init__(
        self, registry: RoomRegistry, identities: IdentityMap, hub: ConnectionHub
    ) -> None:
        self.registry = registry
        self.identities = identities
        self.hub = hub

    def _require_binding(self, sender: str) -> Binding:
        binding = self.identities.resolve_identity(sender)
        if binding is None:
            raise NotJoined()
        return binding

    async def relay_signal(
        self, sender: str, signal_type: str, payload, target: str
    ) -> bool:
        """Deliver a signaling payload to *target* only.

        Returns False when the target connection is gone; stale targets are
        normal while peers churn, so that is not an error.
        """
        binding = self.identities.resolve_identity(sender)
        from_identity = binding.identity if binding else None
        event = SignalOut(
            type=signal_type,
            payload=payload,
            from_=sender,
            fromIdentity=from_identity,
        )
        logger.debug(f"[Relay] {signal_type} from {from_identity} ({sender}) to {target}")
        return await self.hub.send(target, dump_event(event))

    async def broadcast_chat(self, sender: str, body: str) -> Message:
        """Persist a group message, then send it to the whole room."""
        binding = self._require_binding(sender)
        room = self.registry.get(binding.room_code)
        if room is None:
            raise RoomNotFound()
        message = self.registry.append_message(room, body, binding.identity)
        await self.hub.broadcast(message_event("chat-message", message), room.code)
        logger.info(f"[Relay] Group chat message from {binding.identity} in room {room.code}")
        return message

    async def broadcast_presence(self, sender: str, event_type: str, **fields) -> bool:
        """Tell everyone else in the sender's room about a local state change.

        Senders without a binding are ignored.
        """
        binding = self.identities.resolve_identity(sender)
        if binding is None:
            logger.debug(f"[Relay] Ignoring {event_type} from unbound connection {sender}")
            return False
        event = PresenceOut(
            type=event_type,
            connHandle=sender,
            identity=binding.identity,
            **fields,
        )
        await self.hub.broadcast(dump_event(event), binding.room_code, exclude=sender)
        return True

    async def relay_private(
        self, sender: str, recipient_identity: str, body: str
    ) -> Message:
        """Deliver a private message and echo it to the sender.

        Raises:
            NotJoined: The sender has no binding.
            RecipientOffline: No live connection is bound to the recipient.
        """
        binding = self._require_binding(sender)
        recipient: Optional[str] = self.identities.resolve_connection(recipient_identity)
        if not self.hub.is_connected(recipient):
            raise RecipientOffline(f"Recipient not found: {recipient_identity}")

        message = Message(
            kind=MessageKind.PRIVATE,
            roomCode=binding.room_code,
            body=body,
            senderIdentity=binding.identity,
            recipientIdentity=recipient_identity,
        )
        event = message_event("private-message", message)
        if recipient != sender:
            await self.hub.send(recipient, event)
        await self.hub.send(sender, event)
        logger.info(f"[Relay] Private message from {binding.identity} to {recipient_identity}")
        return message
