"""IdentityStore — DuckDB-backed user records and pair relations.

Database Schema:
    users table:
        - id, name, avatar
        - campus_credits: credit balance (leaderboard input)
        - created_at
    user_relations table:
        - owner_id, other_id
        - kind: 'connections', 'pendingRequests' or 'sentRequests'

Each multi-row change (a request, an acceptance, a rejection) is written in a
single transaction so both sides of a pair are updated together.
"""
import logging
import uuid
from datetime import datetime
from typing import List, Optional, Set, Tuple

from app.db import Database
from app.errors import NotFound

from .schemas import RelationKind, User, UserProfile

logger = logging.getLogger(__name__)

_CREATE_USERS = """
CREATE TABLE IF NOT EXISTS users (
    id             VARCHAR PRIMARY KEY,
    name           VARCHAR NOT NULL,
    avatar         VARCHAR NOT NULL DEFAULT '',
    campus_credits INTEGER NOT NULL DEFAULT 0,
    created_at     TIMESTAMP NOT NULL
)
"""

_CREATE_RELATIONS = """
CREATE TABLE IF NOT EXISTS user_relations (
    owner_id   VARCHAR NOT NULL,
    other_id   VARCHAR NOT NULL,
    kind       VARCHAR NOT NULL,
    created_at TIMESTAMP NOT NULL,
    PRIMARY KEY (owner_id, other_id, kind)
)
"""


class IdentityStore:
    """User directory with the connection / request relation sets."""

    def __init__(self, db: Database) -> None:
        self._db = db
        self._db.execute(_CREATE_USERS)
        self._db.execute(_CREATE_RELATIONS)

    # -----------------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------------

    def create_user(
        self,
        name: str,
        avatar: str = "",
        user_id: Optional[str] = None,
        campus_credits: int = 0,
    ) -> User:
        user_id = user_id or str(uuid.uuid4())
        self._db.execute(
            """
            INSERT INTO users (id, name, avatar, campus_credits, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            [user_id, name, avatar, campus_credits, datetime.utcnow()],
        )
        logger.info("[Identity] Created user %s (%s)", user_id, name)
        return self.require_user(user_id)

    def get_user(self, user_id: str) -> Optional[User]:
        row = self._db.fetchone(
            "SELECT id, name, avatar, campus_credits, created_at FROM users WHERE id = ?",
            [user_id],
        )
        if row is None:
            return None
        return User(
            id=row[0],
            name=row[1],
            avatar=row[2],
            campusCredits=row[3],
            createdAt=row[4],
            connections=sorted(self.related_ids(user_id, RelationKind.CONNECTION)),
            pendingRequests=sorted(self.related_ids(user_id, RelationKind.PENDING)),
            sentRequests=sorted(self.related_ids(user_id, RelationKind.SENT)),
        )

    def require_user(self, user_id: str) -> User:
        user = self.get_user(user_id)
        if user is None:
            raise NotFound("User not found.")
        return user

    def exists(self, user_id: str) -> bool:
        row = self._db.fetchone("SELECT 1 FROM users WHERE id = ?", [user_id])
        return row is not None

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        row = self._db.fetchone(
            "SELECT id, name, avatar, campus_credits FROM users WHERE id = ?",
            [user_id],
        )
        if row is None:
            return None
        return UserProfile(id=row[0], name=row[1], avatar=row[2], campusCredits=row[3])

    def add_credits(self, user_id: str, amount: int) -> int:
        row = self._db.fetchone(
            """
            UPDATE users SET campus_credits = campus_credits + ?
            WHERE id = ?
            RETURNING campus_credits
            """,
            [amount, user_id],
        )
        if row is None:
            raise NotFound("User not found.")
        return row[0]

    # -----------------------------------------------------------------------
    # Relations
    # -----------------------------------------------------------------------

    def related_ids(self, user_id: str, kind: RelationKind) -> Set[str]:
        rows = self._db.fetchall(
            "SELECT other_id FROM user_relations WHERE owner_id = ? AND kind = ?",
            [user_id, kind.value],
        )
        return {r[0] for r in rows}

    def has_relation(self, owner_id: str, other_id: str, kind: RelationKind) -> bool:
        row = self._db.fetchone(
            """
            SELECT 1 FROM user_relations
            WHERE owner_id = ? AND other_id = ? AND kind = ?
            """,
            [owner_id, other_id, kind.value],
        )
        return row is not None

    def is_connected(self, user_id: str, other_id: str) -> bool:
        """True when *user_id* is in *other_id*'s connections."""
        return self.has_relation(other_id, user_id, RelationKind.CONNECTION)

    def pending_profiles(self, user_id: str) -> List[UserProfile]:
        rows = self._db.fetchall(
            """
            SELECT u.id, u.name, u.avatar, u.campus_credits
            FROM user_relations r JOIN users u ON u.id = r.other_id
            WHERE r.owner_id = ? AND r.kind = ?
            ORDER BY r.created_at ASC
            """,
            [user_id, RelationKind.PENDING.value],
        )
        return [
            UserProfile(id=r[0], name=r[1], avatar=r[2], campusCredits=r[3])
            for r in rows
        ]

    def _insert_relation(self, owner_id: str, other_id: str, kind: RelationKind) -> None:
        self._db.execute(
            """
            INSERT INTO user_relations (owner_id, other_id, kind, created_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT DO NOTHING
            """,
            [owner_id, other_id, kind.value, datetime.utcnow()],
        )

    def _delete_relation(self, owner_id: str, other_id: str, kind: RelationKind) -> None:
        self._db.execute(
            "DELETE FROM user_relations WHERE owner_id = ? AND other_id = ? AND kind = ?",
            [owner_id, other_id, kind.value],
        )

    def record_request(self, requester_id: str, target_id: str) -> None:
        """Add target to requester's sentRequests and requester to target's pendingRequests."""
        with self._db.transaction():
            self._insert_relation(requester_id, target_id, RelationKind.SENT)
            self._insert_relation(target_id, requester_id, RelationKind.PENDING)

    def record_acceptance(
        self, accepter_id: str, sender_id: str, credit_grant: int
    ) -> Tuple[int, int]:
        """Connect the pair, clear their requests and grant credits to both.

        Returns:
            Tuple of (accepter_credits, sender_credits) after the grant.
        """
        with self._db.transaction():
            for owner, other in ((accepter_id, sender_id), (sender_id, accepter_id)):
                self._delete_relation(owner, other, RelationKind.PENDING)
                self._delete_relation(owner, other, RelationKind.SENT)
                self._insert_relation(owner, other, RelationKind.CONNECTION)
            accepter_credits = self.add_credits(accepter_id, credit_grant)
            sender_credits = self.add_credits(sender_id, credit_grant)
        return accepter_credits, sender_credits

    def record_rejection(self, rejecter_id: str, sender_id: str) -> None:
        with self._db.transaction():
            self._delete_relation(rejecter_id, sender_id, RelationKind.PENDING)
            self._delete_relation(sender_id, rejecter_id, RelationKind.SENT)
