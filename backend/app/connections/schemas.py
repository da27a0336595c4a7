"""Pydantic schemas for the connection state machine."""
from enum import Enum

from pydantic import BaseModel, Field

from app.rooms.schemas import Room


class ConnectionState(str, Enum):
    """State of an ordered (requester, target) pair.

    Attributes:
        NONE: No relation; a request may be sent.
        REQUESTED: requester is in target's pendingRequests.
        CONNECTED: Both users list each other in connections.
    """
    NONE = "none"
    REQUESTED = "requested"
    CONNECTED = "connected"


class AcceptResult(BaseModel):
    """Outcome of an accepted connection request."""
    message: str = "Connection accepted."
    chatroom: Room = Field(..., description="Upgraded or newly created full room")
    credits: int = Field(..., description="Accepter's credit balance after the grant")
