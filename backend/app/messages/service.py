"""MessageLog — DuckDB-backed, append-only message history per room.

Messages are ordered by ``created_at`` and, for equal timestamps, by the
insertion sequence. The only mutation besides ``append`` is ``clear_room``,
which deletes a room's whole history.
"""
import logging
import uuid
from datetime import datetime
from typing import List, Optional

from app.db import Database
from app.errors import ValidationError
from app.rooms.service import RoomLedger

from .schemas import Message

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100

_CREATE_SEQUENCE = "CREATE SEQUENCE IF NOT EXISTS messages_seq START 1"

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS messages (
    seq        BIGINT DEFAULT nextval('messages_seq'),
    id         VARCHAR PRIMARY KEY,
    room_id    VARCHAR NOT NULL,
    sender_id  VARCHAR NOT NULL,
    content    VARCHAR NOT NULL,
    read_by    VARCHAR[] NOT NULL,
    created_at TIMESTAMP NOT NULL
)
"""

_INDEX = "CREATE INDEX IF NOT EXISTS idx_messages_room ON messages(room_id)"

_COLUMNS = "id, room_id, sender_id, content, read_by, created_at"


def normalize_content(content: Optional[str]) -> str:
    """Trim *content*, rejecting missing or blank text."""
    text = content.strip() if isinstance(content, str) else ""
    if not text:
        raise ValidationError("Message content is required.")
    return text


class MessageLog:
    """Append-only per-room message sequence.

    Args:
        db: Shared database.
        rooms: Ledger whose preview cache is refreshed after each append.
            Optional so the log can be exercised on its own.
    """

    def __init__(self, db: Database, rooms: Optional[RoomLedger] = None) -> None:
        self._db = db
        self._rooms = rooms
        self._db.execute(_CREATE_SEQUENCE)
        self._db.execute(_CREATE_TABLE)
        self._db.execute(_INDEX)

    def append(self, room_id: str, sender_id: str, content: str) -> Message:
        """Store a message and refresh the room's preview cache.

        Raises:
            ValidationError: If *content* is empty after trimming.
        """
        text = normalize_content(content)
        message = Message(
            id=str(uuid.uuid4()),
            room=room_id,
            sender=sender_id,
            content=text,
            createdAt=datetime.utcnow(),
        )
        self._db.execute(
            """
            INSERT INTO messages (id, room_id, sender_id, content, read_by, created_at)
            VALUES (?, ?, ?, ?, []::VARCHAR[], ?)
            """,
            [message.id, room_id, sender_id, text, message.createdAt],
        )
        self._touch_room(message)
        return message

    def _touch_room(self, message: Message) -> None:
        if self._rooms is None:
            return
        try:
            self._rooms.touch_last_message(message.room, message.content, message.createdAt)
        except Exception as e:
            logger.warning(
                "[Messages] Could not update last message for room %s: %s", message.room, e
            )

    def count_from(self, room_id: str, sender_id: str) -> int:
        row = self._db.fetchone(
            "SELECT COUNT(*) FROM messages WHERE room_id = ? AND sender_id = ?",
            [room_id, sender_id],
        )
        return row[0]

    def list_for_room(self, room_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[Message]:
        """Oldest-first history for a room, capped at *limit* messages."""
        rows = self._db.fetchall(
            f"""
            SELECT {_COLUMNS} FROM messages
            WHERE room_id = ?
            ORDER BY created_at ASC, seq ASC
            LIMIT ?
            """,
            [room_id, limit],
        )
        return [self._row_to_message(r) for r in rows]

    def clear_room(self, room_id: str) -> int:
        """Delete every message of a room. Returns the number deleted."""
        result = self._db.fetchall(
            "DELETE FROM messages WHERE room_id = ? RETURNING id", [room_id]
        )
        logger.info("[Messages] Cleared %d messages from room %s", len(result), room_id)
        return len(result)

    @staticmethod
    def _row_to_message(row) -> Message:
        return Message(
            id=row[0],
            room=row[1],
            sender=row[2],
            content=row[3],
            readBy=list(row[4] or []),
            createdAt=row[5],
        )
