"""Connection state machine between users."""

from .schemas import AcceptResult, ConnectionState
from .service import ConnectionService

__all__ = ["AcceptResult", "ConnectionService", "ConnectionState"]
