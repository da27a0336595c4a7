"""Pydantic schemas for the message log and the messaging routes."""
import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.rooms.schemas import Room


class Message(BaseModel):
    """A stored chat message.

    Attributes:
        id: Unique message identifier (auto-generated UUID).
        room: Room ID this message belongs to.
        sender: User ID of the sender (always a participant of the room).
        content: Trimmed, non-empty message text.
        readBy: User IDs that have read the message.
        createdAt: Persistence time (UTC); defines the order within a room.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Message ID")
    room: str = Field(..., description="Room ID")
    sender: str = Field(..., description="Sender user ID")
    content: str = Field(..., min_length=1, description="Message content")
    readBy: List[str] = Field(default_factory=list)
    createdAt: datetime = Field(default_factory=datetime.utcnow)


class ChatStatus(BaseModel):
    """Send permission for one user in one room, recomputed on every read."""
    isIntro: bool
    isConnected: bool
    myMessageCount: int
    canSend: bool


class IntroResult(BaseModel):
    """Result of a successful cold intro: the stored message and its room."""
    message: Message
    room: Room


class IntroMessageRequest(BaseModel):
    """Request body for ``POST /api/messages/intro/{userId}``.

    ``content`` defaults to empty so a missing body field reaches the core
    validation and yields its specific error message.
    """
    content: str = Field(default="")


class SendMessageRequest(BaseModel):
    """Request body for ``POST /api/messages/{roomId}``."""
    content: str = Field(default="")
    clientId: Optional[str] = Field(default=None, description="Client-side optimistic ID")
