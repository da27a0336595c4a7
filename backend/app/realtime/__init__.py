"""Realtime fanout: WebSocket connections, room channels and presence."""

from .manager import ConnectionManager
from .presence import InMemoryPresenceStore, PresenceStore

__all__ = ["ConnectionManager", "InMemoryPresenceStore", "PresenceStore"]
