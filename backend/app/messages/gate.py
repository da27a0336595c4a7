"""MessagingGate — the single decision point for send permission.

Every message send, realtime or request/response, passes through this gate
before it reaches ``MessageLog.append``:

    isConnected = user in otherParticipant.connections
    myCount     = MessageLog.count_from(room, user)
    canSend     = isConnected or myCount < intro_message_limit

``isConnected`` is always read from the identity store; ``room.isIntro`` is
reported but never used on its own to grant or deny a send.

The permission check and the append run under the pair's lock so two
interleaved sends cannot both spend the same intro allowance.
"""
import logging

from app.errors import Conflict, Forbidden, InvalidOperation, LimitExceeded
from app.identity.service import IdentityStore
from app.rooms.pairs import PairLocks
from app.rooms.schemas import Room
from app.rooms.service import RoomLedger

from .schemas import ChatStatus, IntroResult, Message
from .service import MessageLog, normalize_content

logger = logging.getLogger(__name__)

INTRO_LIMIT_MESSAGE = (
    "You already sent an intro message. Wait for them to accept your connection."
)


class MessagingGate:
    """Computes chat status and performs gated sends.

    Args:
        identity: Source of truth for who is connected to whom.
        rooms: Room ledger.
        messages: Message log.
        locks: Per-pair locks shared with the connection state machine.
        intro_message_limit: Messages an unconnected participant may send
            into a room.
    """

    def __init__(
        self,
        identity: IdentityStore,
        rooms: RoomLedger,
        messages: MessageLog,
        locks: PairLocks,
        intro_message_limit: int = 1,
    ) -> None:
        self._identity = identity
        self._rooms = rooms
        self._messages = messages
        self._locks = locks
        self._intro_limit = intro_message_limit

    # -----------------------------------------------------------------------
    # Status
    # -----------------------------------------------------------------------

    def require_participant_room(self, room_id: str, user_id: str) -> Room:
        """Fetch a room the caller takes part in.

        Raises:
            NotFound: If the room does not exist.
            Forbidden: If *user_id* is not one of its participants.
        """
        room = self._rooms.require_room(room_id)
        if not room.has_participant(user_id):
            raise Forbidden("Access denied.")
        return room

    def status_for(self, room: Room, user_id: str) -> ChatStatus:
        other_id = room.other_participant(user_id)
        is_connected = self._identity.is_connected(user_id, other_id)
        my_count = self._messages.count_from(room.id, user_id)
        return ChatStatus(
            isIntro=room.isIntro,
            isConnected=is_connected,
            myMessageCount=my_count,
            canSend=is_connected or my_count < self._intro_limit,
        )

    def chat_status(self, room_id: str, user_id: str) -> ChatStatus:
        room = self.require_participant_room(room_id, user_id)
        return self.status_for(room, user_id)

    def can_send(self, room_id: str, user_id: str) -> bool:
        return self.chat_status(room_id, user_id).canSend

    # -----------------------------------------------------------------------
    # Sends
    # -----------------------------------------------------------------------

    async def send_intro_message(
        self, sender_id: str, target_id: str, content: str
    ) -> IntroResult:
        """Send a cold intro to a user the sender is not connected to.

        Finds or creates the pair's intro room. This is the only send path
        that creates rooms.

        Raises:
            ValidationError: Empty content.
            InvalidOperation: Sender and target are the same user.
            NotFound: Target user does not exist.
            Conflict: The pair is already connected.
            LimitExceeded: The sender already used their intro allowance.
        """
        text = normalize_content(content)
        if sender_id == target_id:
            raise InvalidOperation("Cannot message yourself.")
        self._identity.require_user(target_id)

        async with self._locks.lock(sender_id, target_id):
            if self._identity.is_connected(sender_id, target_id):
                raise Conflict("You are already connected. Use the regular chat.")

            room = self._rooms.find_intro_room(sender_id, target_id)
            if room is None:
                room = self._rooms.create_room([sender_id, target_id], is_intro=True)
            # create_room may hand back a room another writer just created
            if self._messages.count_from(room.id, sender_id) >= self._intro_limit:
                logger.info(
                    "[Gate] Intro limit reached: sender=%s target=%s room=%s",
                    sender_id, target_id, room.id,
                )
                raise LimitExceeded(INTRO_LIMIT_MESSAGE)

            message = self._messages.append(room.id, sender_id, text)

        logger.info("[Gate] Intro sent: sender=%s target=%s room=%s", sender_id, target_id, room.id)
        return IntroResult(message=message, room=self._rooms.get_room(room.id) or room)

    async def send_message(self, room_id: str, sender_id: str, content: str) -> Message:
        """Append a message to an existing room if the sender may send.

        A connected pair still holding an intro room has it upgraded here.

        Raises:
            ValidationError: Empty content.
            NotFound: Room does not exist.
            Forbidden: Sender is not a participant.
            LimitExceeded: Sender is unconnected and out of intro allowance.
        """
        text = normalize_content(content)
        room = self.require_participant_room(room_id, sender_id)
        other_id = room.other_participant(sender_id)

        async with self._locks.lock(sender_id, other_id):
            status = self.status_for(room, sender_id)
            if not status.canSend:
                logger.info("[Gate] Send blocked: sender=%s room=%s", sender_id, room_id)
                raise LimitExceeded(INTRO_LIMIT_MESSAGE)
            if status.isConnected and room.isIntro:
                logger.info("[Gate] Upgrading stale intro room %s for connected pair", room_id)
                self._rooms.upgrade_to_connected(room_id)
            return self._messages.append(room_id, sender_id, text)
