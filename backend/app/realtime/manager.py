"""WebSocket connection manager for the realtime fanout engine.

This module tracks live WebSocket connections, their room subscriptions and
the online-user directory, and delivers events to them.

Key features:
    - Backend-assigned connection IDs
    - Room channels (join/leave) and per-user delivery via presence
    - Presence that survives a reconnect race: a disconnect only removes the
      user if their current connection is the one going away
    - Concurrent broadcasting with asyncio.gather()
    - Automatic dead connection cleanup
    - Client message ID deduplication with an LRU cache

Thread Safety:
    This implementation is designed for async/await usage with a single event loop.
    It is NOT thread-safe for concurrent access from multiple threads.

Scaling:
    All state is process-local. Running more than one instance requires a
    shared PresenceStore and an external broadcast backplane.
"""
import asyncio
import logging
import uuid
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Set

from fastapi import WebSocket

from .presence import InMemoryPresenceStore, PresenceStore

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

# Maximum number of client message IDs to track per room for deduplication
MESSAGE_DEDUP_CACHE_SIZE = 10000

# Maximum number of rooms with a dedup cache; the least recently written is dropped
MESSAGE_DEDUP_ROOM_LIMIT = 1000


class ConnectionManager:
    """Manages WebSocket connections, room channels and presence.

    Authorization is not checked here: callers subscribe a connection to a
    room only after fetching the room through an authenticated path.
    """

    def __init__(
        self,
        presence: Optional[PresenceStore] = None,
        dedup_cache_size: int = MESSAGE_DEDUP_CACHE_SIZE,
        dedup_room_limit: int = MESSAGE_DEDUP_ROOM_LIMIT,
    ) -> None:
        """Initialize empty connection manager."""
        self.presence: PresenceStore = presence or InMemoryPresenceStore()
        self._dedup_cache_size = dedup_cache_size
        self._dedup_room_limit = dedup_room_limit

        # connection_id -> WebSocket
        self.connections: Dict[str, WebSocket] = {}

        # room_id -> subscribed connection IDs
        self.room_subscribers: Dict[str, Set[str]] = {}

        # connection_id -> subscribed room IDs (for disconnect cleanup)
        self.connection_rooms: Dict[str, Set[str]] = {}

        # connection_id -> user ID announced on that connection
        self.connection_users: Dict[str, str] = {}

        # Message deduplication: room_id -> OrderedDict of client IDs (LRU cache)
        self.seen_message_ids: "OrderedDict[str, OrderedDict]" = OrderedDict()

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self, websocket: WebSocket) -> str:
        """Accept a WebSocket and assign it a backend-generated connection ID."""
        await websocket.accept()
        connection_id = str(uuid.uuid4())
        self.connections[connection_id] = websocket
        self.connection_rooms[connection_id] = set()
        logger.info(f"[Manager] Connection {connection_id} opened ({len(self.connections)} live)")
        return connection_id

    def disconnect(self, connection_id: str) -> List[str]:
        """Forget a connection, its subscriptions and (if still current) its presence.

        Returns:
            The user IDs removed from presence; empty if presence did not change.
        """
        self.connections.pop(connection_id, None)
        for room_id in self.connection_rooms.pop(connection_id, set()):
            subscribers = self.room_subscribers.get(room_id)
            if subscribers is not None:
                subscribers.discard(connection_id)
                if not subscribers:
                    del self.room_subscribers[room_id]
        self.connection_users.pop(connection_id, None)

        removed_users = self.presence.remove_connection(connection_id)
        logger.info(
            f"[Manager] Connection {connection_id} closed"
            + (f", users {removed_users} offline" if removed_users else "")
        )
        return removed_users

    def announce_online(self, connection_id: str, user_id: str) -> None:
        """Bind *user_id* to the connection and mark the user online.

        A newer announcement from another connection replaces the older one.
        Re-announcing a different user on the same connection takes the
        previous user offline.
        """
        previous = self.connection_users.get(connection_id)
        if previous is not None and previous != user_id:
            self.presence.set_offline(previous, connection_id)
            logger.info(f"[Manager] Connection {connection_id} rebound from {previous} to {user_id}")
        self.connection_users[connection_id] = user_id
        self.presence.set_online(user_id, connection_id)
        logger.info(f"[Manager] User {user_id} online on {connection_id}")

    def user_for_connection(self, connection_id: str) -> Optional[str]:
        return self.connection_users.get(connection_id)

    # =========================================================================
    # Room channels
    # =========================================================================

    def join(self, connection_id: str, room_id: str) -> None:
        self.room_subscribers.setdefault(room_id, set()).add(connection_id)
        self.connection_rooms.setdefault(connection_id, set()).add(room_id)

    def leave(self, connection_id: str, room_id: str) -> None:
        subscribers = self.room_subscribers.get(room_id)
        if subscribers is not None:
            subscribers.discard(connection_id)
            if not subscribers:
                del self.room_subscribers[room_id]
        self.connection_rooms.get(connection_id, set()).discard(room_id)

    def get_room_size(self, room_id: str) -> int:
        """Get the number of connections subscribed to a room."""
        return len(self.room_subscribers.get(room_id, ()))

    # =========================================================================
    # Delivery
    # =========================================================================

    async def broadcast(self, message: dict, room_id: str) -> None:
        """Deliver *message* to every subscriber of *room_id*."""
        await self._deliver(list(self.room_subscribers.get(room_id, ())), message)

    async def broadcast_except(
        self, message: dict, room_id: str, exclude_connection_id: str
    ) -> None:
        """Deliver to room subscribers except one connection (typing indicators)."""
        targets = [
            cid for cid in self.room_subscribers.get(room_id, ())
            if cid != exclude_connection_id
        ]
        await self._deliver(targets, message)

    async def broadcast_all(self, message: dict) -> None:
        await self._deliver(list(self.connections.keys()), message)

    async def broadcast_presence(self) -> None:
        """Send the full current online-user set to every connection."""
        await self.broadcast_all({
            "type": "online_users",
            "userIds": self.presence.online_user_ids(),
        })

    async def send_to_connection(self, connection_id: str, message: dict) -> bool:
        websocket = self.connections.get(connection_id)
        if websocket is None:
            return False
        return await self._safe_send(websocket, message)

    async def send_to_user(self, user_id: str, message: dict) -> bool:
        """Deliver to the user's current connection, if they are online."""
        connection_id = self.presence.connection_for(user_id)
        if connection_id is None:
            logger.debug(f"[Manager] User {user_id} offline, dropping {message.get('type')}")
            return False
        return await self.send_to_connection(connection_id, message)

    async def _deliver(self, connection_ids: List[str], message: dict) -> None:
        pairs = [
            (cid, self.connections[cid]) for cid in connection_ids
            if cid in self.connections
        ]
        if not pairs:
            return

        # Send to all connections concurrently
        results = await asyncio.gather(
            *[self._safe_send(ws, message) for _, ws in pairs],
            return_exceptions=True
        )

        # Unsubscribe failed connections
        failed = [cid for (cid, _), ok in zip(pairs, results) if ok is not True]
        self._cleanup_connections(failed)

    async def _safe_send(self, connection: WebSocket, message: dict) -> bool:
        """Send a message to a WebSocket connection with error handling.

        Returns:
            True if successful, False if connection failed.
        """
        try:
            await connection.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to connection: {e}")
            return False

    def _cleanup_connections(self, failed_connections: Iterable[str]) -> None:
        """Stop delivering to failed connections.

        Presence is left to ``disconnect`` so the offline change is still
        broadcast when the socket's receive loop ends.
        """
        for cid in failed_connections:
            for room_id in list(self.connection_rooms.get(cid, ())):
                self.leave(cid, room_id)
            self.connections.pop(cid, None)
            logger.debug(f"Removed dead connection {cid}")

    # =========================================================================
    # Message Deduplication
    # =========================================================================

    def has_seen_message(self, room_id: str, client_id: Optional[str]) -> bool:
        if not client_id:
            return False  # No ID means we can't dedupe
        return client_id in self.seen_message_ids.get(room_id, {})

    def mark_message_seen(self, room_id: str, client_id: Optional[str]) -> None:
        """Remember a client message ID, evicting the oldest past the cache size."""
        if not client_id:
            return
        cache = self.seen_message_ids.setdefault(room_id, OrderedDict())
        self.seen_message_ids.move_to_end(room_id)
        cache[client_id] = True
        cache.move_to_end(client_id)
        while len(cache) > self._dedup_cache_size:
            cache.popitem(last=False)
        while len(self.seen_message_ids) > self._dedup_room_limit:
            self.seen_message_ids.popitem(last=False)

    def forget_room_messages(self, room_id: str) -> None:
        self.seen_message_ids.pop(room_id, None)
