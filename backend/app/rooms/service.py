"""RoomLedger — DuckDB-backed record of two-person conversations.

Database Schema:
    rooms table:
        - id: Room identifier (UUID)
        - user_a, user_b: Participants, stored sorted
        - pair_key: "user_a:user_b", the unordered pair lookup key
        - is_intro: True until the pair connects
        - last_message, last_message_at: Denormalized recency preview
        - created_at
    intro_room_keys table:
        - pair_key: PRIMARY KEY, one live intro room per pair
        - room_id

The preview columns are a best-effort projection of the message log; they are
never a substitute for ``MessageLog.list_for_room``.
"""
import logging
import uuid
from datetime import datetime
from typing import List, Optional, Sequence

import duckdb

from app.db import Database
from app.errors import NotFound, ValidationError

from .pairs import ordered_pair, pair_key
from .schemas import Room

logger = logging.getLogger(__name__)

_CREATE_ROOMS = """
CREATE TABLE IF NOT EXISTS rooms (
    id              VARCHAR PRIMARY KEY,
    user_a          VARCHAR NOT NULL,
    user_b          VARCHAR NOT NULL,
    pair_key        VARCHAR NOT NULL,
    is_intro        BOOLEAN NOT NULL DEFAULT FALSE,
    last_message    VARCHAR,
    last_message_at TIMESTAMP,
    created_at      TIMESTAMP NOT NULL
)
"""

_CREATE_INTRO_KEYS = """
CREATE TABLE IF NOT EXISTS intro_room_keys (
    pair_key VARCHAR PRIMARY KEY,
    room_id  VARCHAR NOT NULL
)
"""

_COLUMNS = "id, user_a, user_b, is_intro, last_message, last_message_at, created_at"


class RoomLedger:
    """Persistent rooms between user pairs, with the intro/connected phase flag."""

    def __init__(self, db: Database) -> None:
        self._db = db
        self._db.execute(_CREATE_ROOMS)
        self._db.execute(_CREATE_INTRO_KEYS)

    # -----------------------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------------------

    def get_room(self, room_id: str) -> Optional[Room]:
        row = self._db.fetchone(f"SELECT {_COLUMNS} FROM rooms WHERE id = ?", [room_id])
        return self._row_to_room(row) if row else None

    def require_room(self, room_id: str) -> Room:
        room = self.get_room(room_id)
        if room is None:
            raise NotFound("Room not found.")
        return room

    def find_intro_room(self, user_a: str, user_b: str) -> Optional[Room]:
        row = self._db.fetchone(
            f"""
            SELECT {_COLUMNS} FROM rooms
            WHERE pair_key = ? AND is_intro
            ORDER BY created_at ASC
            LIMIT 1
            """,
            [pair_key(user_a, user_b)],
        )
        return self._row_to_room(row) if row else None

    def find_any_room(self, user_a: str, user_b: str) -> Optional[Room]:
        row = self._db.fetchone(
            f"""
            SELECT {_COLUMNS} FROM rooms
            WHERE pair_key = ?
            ORDER BY created_at ASC
            LIMIT 1
            """,
            [pair_key(user_a, user_b)],
        )
        return self._row_to_room(row) if row else None

    def list_rooms_for_user(self, user_id: str) -> List[Room]:
        """Rooms the user takes part in, most recent message first, never-messaged last."""
        rows = self._db.fetchall(
            f"""
            SELECT {_COLUMNS} FROM rooms
            WHERE user_a = ? OR user_b = ?
            ORDER BY last_message_at DESC NULLS LAST, created_at DESC
            """,
            [user_id, user_id],
        )
        return [self._row_to_room(r) for r in rows]

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    def create_room(self, participants: Sequence[str], is_intro: bool) -> Room:
        """Create a room for two distinct participants.

        An intro room also claims the pair's row in ``intro_room_keys``. If a
        concurrent writer already claimed it, the existing intro room is
        returned instead of a duplicate.
        """
        if len(participants) != 2:
            raise ValidationError("A room needs exactly two participants.")
        user_a, user_b = ordered_pair(participants[0], participants[1])
        key = f"{user_a}:{user_b}"
        room_id = str(uuid.uuid4())
        nested = self._db.in_transaction

        try:
            with self._db.transaction():
                self._db.execute(
                    """
                    INSERT INTO rooms
                      (id, user_a, user_b, pair_key, is_intro, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [room_id, user_a, user_b, key, is_intro, datetime.utcnow()],
                )
                if is_intro:
                    self._db.execute(
                        "INSERT INTO intro_room_keys (pair_key, room_id) VALUES (?, ?)",
                        [key, room_id],
                    )
        except duckdb.ConstraintException:
            if nested:
                raise
            existing = self.find_intro_room(user_a, user_b)
            if existing is None:
                raise
            logger.info("[Rooms] Intro room for %s already exists: %s", key, existing.id)
            return existing

        logger.info(
            "[Rooms] Created %s room %s for %s",
            "intro" if is_intro else "full", room_id, key,
        )
        return self.require_room(room_id)

    def upgrade_to_connected(self, room_id: str) -> Optional[Room]:
        """Clear the intro flag. Idempotent; a missing room is a no-op (returns None)."""
        with self._db.transaction():
            self._db.execute("UPDATE rooms SET is_intro = FALSE WHERE id = ? AND is_intro", [room_id])
            self._db.execute("DELETE FROM intro_room_keys WHERE room_id = ?", [room_id])
        room = self.get_room(room_id)
        if room is None:
            logger.debug("[Rooms] Upgrade skipped, room %s not found", room_id)
        return room

    def touch_last_message(
        self, room_id: str, content: str, at: Optional[datetime] = None
    ) -> bool:
        """Overwrite the preview cache. Last writer wins."""
        row = self._db.fetchone(
            """
            UPDATE rooms SET last_message = ?, last_message_at = ?
            WHERE id = ?
            RETURNING id
            """,
            [content, at or datetime.utcnow(), room_id],
        )
        return row is not None

    def reset_last_message(self, room_id: str, at: Optional[datetime] = None) -> bool:
        row = self._db.fetchone(
            """
            UPDATE rooms SET last_message = NULL, last_message_at = ?
            WHERE id = ?
            RETURNING id
            """,
            [at or datetime.utcnow(), room_id],
        )
        return row is not None

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    @staticmethod
    def _row_to_room(row) -> Room:
        return Room(
            id=row[0],
            participants=[row[1], row[2]],
            isIntro=row[3],
            lastMessage=row[4],
            lastMessageAt=row[5],
            createdAt=row[6],
        )
