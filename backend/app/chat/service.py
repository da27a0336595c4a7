"""ChatService — message operations plus their realtime fanout.

Both the HTTP routes and the WebSocket handlers call into this service, so a
send takes the same path (``MessagingGate`` → ``MessageLog`` → broadcast)
whichever transport it arrived on.
"""
import logging
from typing import List, Optional

from app.identity.service import IdentityStore
from app.messages.gate import MessagingGate
from app.messages.schemas import ChatStatus, IntroResult, Message
from app.messages.service import DEFAULT_HISTORY_LIMIT, MessageLog
from app.realtime.manager import ConnectionManager
from app.rooms.schemas import Room
from app.rooms.service import RoomLedger

logger = logging.getLogger(__name__)


def message_event(message: Message, client_id: Optional[str] = None) -> dict:
    """Wire form of a ``receive_message`` event."""
    event = {"type": "receive_message", **message.model_dump(mode="json")}
    if client_id:
        event["clientId"] = client_id
    return event


class ChatService:
    """Room history, status, sends, typing and clearing."""

    def __init__(
        self,
        identity: IdentityStore,
        rooms: RoomLedger,
        messages: MessageLog,
        gate: MessagingGate,
        realtime: ConnectionManager,
        max_history_limit: int = 500,
    ) -> None:
        self._identity = identity
        self._rooms = rooms
        self._messages = messages
        self._gate = gate
        self._realtime = realtime
        self._max_history_limit = max_history_limit

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def rooms_for_user(self, user_id: str) -> List[Room]:
        return self._rooms.list_rooms_for_user(user_id)

    def room_status(self, room_id: str, user_id: str) -> ChatStatus:
        return self._gate.chat_status(room_id, user_id)

    def room_history(
        self, room_id: str, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT
    ) -> List[Message]:
        self._gate.require_participant_room(room_id, user_id)
        limit = max(1, min(limit, self._max_history_limit))
        return self._messages.list_for_room(room_id, limit)

    # -----------------------------------------------------------------------
    # Sends
    # -----------------------------------------------------------------------

    async def send_intro_message(
        self, sender_id: str, target_id: str, content: str
    ) -> IntroResult:
        result = await self._gate.send_intro_message(sender_id, target_id, content)
        await self._realtime.broadcast(message_event(result.message), result.room.id)
        return result

    async def send_message(
        self,
        room_id: str,
        sender_id: str,
        content: str,
        client_id: Optional[str] = None,
    ) -> Optional[Message]:
        """Gate, persist and broadcast a message.

        Returns:
            The stored message, or None when *client_id* was already
            delivered in this room (a client retry).
        """
        if self._realtime.has_seen_message(room_id, client_id):
            logger.debug(f"[Chat] Duplicate client message ignored: {client_id}")
            return None

        message = await self._gate.send_message(room_id, sender_id, content)
        self._realtime.mark_message_seen(room_id, client_id)

        logger.info(
            f"[Chat] Message {message.id} in room {room_id} from {sender_id}, "
            f"broadcasting to {self._realtime.get_room_size(room_id)} connections"
        )
        await self._realtime.broadcast(message_event(message, client_id), room_id)
        return message

    # -----------------------------------------------------------------------
    # Room-level events
    # -----------------------------------------------------------------------

    async def clear_room(self, room_id: str, actor_id: str) -> int:
        """Delete a room's messages; the room record itself is kept.

        Raises:
            NotFound: Room does not exist.
            Forbidden: *actor_id* is not a participant.
        """
        self._gate.require_participant_room(room_id, actor_id)
        deleted = self._messages.clear_room(room_id)
        self._rooms.reset_last_message(room_id)
        self._realtime.forget_room_messages(room_id)

        actor = self._identity.get_profile(actor_id)
        await self._realtime.broadcast({
            "type": "chat_cleared",
            "roomId": room_id,
            "clearedBy": {"id": actor_id, "name": actor.name if actor else ""},
        }, room_id)
        return deleted

    async def typing(self, room_id: str, user_name: str, connection_id: str) -> None:
        """Relay a typing indicator to everyone in the room but the typist."""
        await self._realtime.broadcast_except(
            {"type": "user_typing", "roomId": room_id, "userName": user_name},
            room_id,
            exclude_connection_id=connection_id,
        )
