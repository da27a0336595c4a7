"""Identity store: users and their connection / request relations."""

from .schemas import RelationKind, User, UserProfile, UserView
from .service import IdentityStore

__all__ = [
    "IdentityStore",
    "RelationKind",
    "User",
    "UserProfile",
    "UserView",
]
