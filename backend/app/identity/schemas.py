"""Pydantic schemas for the identity store.

The identity store is the platform's user directory. The messaging core only
relies on three relations between user pairs:

    - connections:     symmetric, both users list each other
    - pendingRequests: incoming requests waiting for this user's answer
    - sentRequests:    outgoing requests, the inverse of the other side's
                       pendingRequests
"""
from datetime import datetime
from enum import Enum
from typing import List

from pydantic import BaseModel, Field


class RelationKind(str, Enum):
    """Relation between an owner user and another user.

    Attributes:
        CONNECTION: The two users are connected.
        PENDING: The other user asked the owner to connect.
        SENT: The owner asked the other user to connect.
    """
    CONNECTION = "connections"
    PENDING = "pendingRequests"
    SENT = "sentRequests"


class UserProfile(BaseModel):
    """Public user card embedded in realtime events and request lists."""
    id: str = Field(..., description="User ID")
    name: str = Field(..., description="Display name")
    avatar: str = Field(default="", description="Avatar URL")
    campusCredits: int = Field(default=0, description="Campus credit balance")


class User(UserProfile):
    """Full user record including its relation sets."""
    connections: List[str] = Field(default_factory=list)
    pendingRequests: List[str] = Field(default_factory=list)
    sentRequests: List[str] = Field(default_factory=list)
    createdAt: datetime = Field(default_factory=datetime.utcnow)

    def profile(self) -> UserProfile:
        return UserProfile(
            id=self.id,
            name=self.name,
            avatar=self.avatar,
            campusCredits=self.campusCredits,
        )


class UserView(UserProfile):
    """A user as seen by another user (``GET /api/users/{id}``)."""
    isConnected: bool = False
    hasPendingRequest: bool = False
