"""Pydantic schemas for the room ledger."""
import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class Room(BaseModel):
    """A conversation between exactly two participants.

    Attributes:
        id: Unique room identifier (auto-generated UUID).
        participants: The two participant user IDs (order carries no meaning).
        isIntro: True while the pair is not connected; flips to False once.
        lastMessage: Cached text of the most recent message, if any.
        lastMessageAt: When the cache was last written, if ever.
        createdAt: When the room was created (UTC).
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Room ID")
    participants: List[str] = Field(..., min_length=2, max_length=2)
    isIntro: bool = Field(default=False, description="Intro (cold) room flag")
    lastMessage: Optional[str] = Field(default=None, description="Last message preview")
    lastMessageAt: Optional[datetime] = Field(default=None, description="Last message time")
    createdAt: datetime = Field(default_factory=datetime.utcnow)

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participants

    def other_participant(self, user_id: str) -> str:
        """Return the participant that is not *user_id*."""
        return next(p for p in self.participants if p != user_id)
