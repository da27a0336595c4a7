"""ConnectionService — the NONE → REQUESTED → CONNECTED state machine.

Each transition is a single step function that runs under the pair's lock
(shared with the messaging gate) and writes all of its rows in one database
transaction:

    request_connection  NONE      → REQUESTED
    accept_connection   REQUESTED → CONNECTED   (+credits, room upgrade/create)
    reject_connection   REQUESTED → NONE

Realtime notifications are emitted after the lock is released; a user who is
offline simply misses them.
"""
import logging
from typing import Tuple

from app.db import Database
from app.errors import Conflict, InvalidOperation, NotFound
from app.identity.schemas import RelationKind, UserView
from app.identity.service import IdentityStore
from app.realtime.manager import ConnectionManager
from app.rooms.pairs import PairLocks
from app.rooms.schemas import Room
from app.rooms.service import RoomLedger

from .schemas import AcceptResult, ConnectionState

logger = logging.getLogger(__name__)


class ConnectionService:
    """Connection requests between users and their side effects."""

    def __init__(
        self,
        db: Database,
        identity: IdentityStore,
        rooms: RoomLedger,
        locks: PairLocks,
        realtime: ConnectionManager,
        credit_grant: int = 10,
    ) -> None:
        self._db = db
        self._identity = identity
        self._rooms = rooms
        self._locks = locks
        self._realtime = realtime
        self._credit_grant = credit_grant

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def state(self, requester_id: str, target_id: str) -> ConnectionState:
        if self._identity.is_connected(requester_id, target_id):
            return ConnectionState.CONNECTED
        if self._identity.has_relation(target_id, requester_id, RelationKind.PENDING):
            return ConnectionState.REQUESTED
        return ConnectionState.NONE

    def view_user(self, viewer_id: str, user_id: str) -> UserView:
        """A user's profile plus its relation to the viewer."""
        profile = self._identity.get_profile(user_id)
        if profile is None:
            raise NotFound("User not found.")
        has_pending = (
            self._identity.has_relation(viewer_id, user_id, RelationKind.PENDING)
            or self._identity.has_relation(viewer_id, user_id, RelationKind.SENT)
        )
        return UserView(
            **profile.model_dump(),
            isConnected=self._identity.is_connected(user_id, viewer_id),
            hasPendingRequest=has_pending,
        )

    # -----------------------------------------------------------------------
    # Transitions
    # -----------------------------------------------------------------------

    async def request_connection(self, requester_id: str, target_id: str) -> None:
        """NONE → REQUESTED.

        Raises:
            InvalidOperation: requester == target.
            NotFound: Target does not exist.
            Conflict: Already connected, request already sent, or the target
                already asked the requester (accept that request instead).
        """
        if requester_id == target_id:
            raise InvalidOperation("You cannot connect with yourself.")
        requester = self._identity.require_user(requester_id)
        self._identity.require_user(target_id)

        async with self._locks.lock(requester_id, target_id):
            state = self.state(requester_id, target_id)
            if state is ConnectionState.CONNECTED:
                raise Conflict("Already connected.")
            if state is ConnectionState.REQUESTED:
                raise Conflict("Connection request already sent.")
            if self.state(target_id, requester_id) is ConnectionState.REQUESTED:
                raise Conflict("This user already sent you a request. Accept it instead.")
            self._identity.record_request(requester_id, target_id)

        logger.info("[Connections] Request %s -> %s", requester_id, target_id)
        await self._realtime.send_to_user(target_id, {
            "type": "connection_request_received",
            "user": requester.profile().model_dump(mode="json"),
        })

    async def accept_connection(self, accepter_id: str, sender_id: str) -> AcceptResult:
        """REQUESTED → CONNECTED.

        Connects both users, grants both the credit bonus and resolves the
        pair's room (upgrade the existing one, or create a full room).
        A duplicate concurrent accept finds no pending request and fails.

        Raises:
            NotFound: Sender does not exist or has no pending request.
        """
        self._identity.require_user(sender_id)
        if accepter_id == sender_id:
            raise InvalidOperation("You cannot connect with yourself.")

        async with self._locks.lock(accepter_id, sender_id):
            if self.state(sender_id, accepter_id) is not ConnectionState.REQUESTED:
                raise NotFound("No pending request from this user.")

            with self._db.transaction():
                accepter_credits, sender_credits = self._identity.record_acceptance(
                    accepter_id, sender_id, self._credit_grant
                )
                room, action = self._resolve_room(accepter_id, sender_id)

        logger.info(
            "[Connections] %s accepted %s, room %s %s",
            accepter_id, sender_id, room.id, action,
        )

        accepter = self._identity.require_user(accepter_id)
        await self._realtime.send_to_user(sender_id, {
            "type": "connection_accepted",
            "user": accepter.profile().model_dump(mode="json"),
            "roomId": room.id,
        })
        for user_id, credits in ((accepter_id, accepter_credits), (sender_id, sender_credits)):
            await self._realtime.broadcast_all({
                "type": "leaderboard_update",
                "userId": user_id,
                "credits": credits,
            })

        return AcceptResult(chatroom=room, credits=accepter_credits)

    async def reject_connection(self, rejecter_id: str, sender_id: str) -> None:
        """REQUESTED → NONE. No realtime event is sent.

        Raises:
            NotFound: No pending request from *sender_id*.
        """
        async with self._locks.lock(rejecter_id, sender_id):
            if self.state(sender_id, rejecter_id) is not ConnectionState.REQUESTED:
                raise NotFound("No pending request from this user.")
            self._identity.record_rejection(rejecter_id, sender_id)
        logger.info("[Connections] %s rejected %s", rejecter_id, sender_id)

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _resolve_room(self, accepter_id: str, sender_id: str) -> Tuple[Room, str]:
        existing = self._rooms.find_any_room(accepter_id, sender_id)
        if existing is None:
            return self._rooms.create_room([accepter_id, sender_id], is_intro=False), "created"
        if existing.isIntro:
            return self._rooms.upgrade_to_connected(existing.id) or existing, "upgraded"
        return existing, "reused"
