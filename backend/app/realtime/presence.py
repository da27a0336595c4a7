"""Presence stores: which users currently hold a live realtime connection.

``InMemoryPresenceStore`` is the single-process implementation. A
multi-instance deployment needs a shared implementation (for example backed by
an external pub/sub store) behind the same interface, plus a broadcast
backplane; neither is provided here.
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional


class PresenceStore(ABC):
    """Maps an online user to the connection that announced them."""

    @abstractmethod
    def set_online(self, user_id: str, connection_id: str) -> None:
        """Record *connection_id* as the user's current connection."""

    @abstractmethod
    def set_offline(self, user_id: str, connection_id: str) -> bool:
        """Drop *user_id* only while *connection_id* is still their current one."""

    @abstractmethod
    def remove_connection(self, connection_id: str) -> List[str]:
        """Drop every user whose current connection is *connection_id*.

        Returns:
            The removed user IDs; empty if no user maps to that connection
            (e.g. the user already reconnected on a newer connection).
        """

    @abstractmethod
    def connection_for(self, user_id: str) -> Optional[str]:
        ...

    @abstractmethod
    def online_user_ids(self) -> List[str]:
        ...

    def is_online(self, user_id: str) -> bool:
        return self.connection_for(user_id) is not None


class InMemoryPresenceStore(PresenceStore):
    """Process-local presence map."""

    def __init__(self) -> None:
        self._users: Dict[str, str] = {}

    def set_online(self, user_id: str, connection_id: str) -> None:
        self._users[user_id] = connection_id

    def set_offline(self, user_id: str, connection_id: str) -> bool:
        if self._users.get(user_id) != connection_id:
            return False
        del self._users[user_id]
        return True

    def remove_connection(self, connection_id: str) -> List[str]:
        removed = [u for u, current in self._users.items() if current == connection_id]
        for user_id in removed:
            del self._users[user_id]
        return removed

    def connection_for(self, user_id: str) -> Optional[str]:
        return self._users.get(user_id)

    def online_user_ids(self) -> List[str]:
        return list(self._users.keys())
