"""Unit tests for the room ledger."""
from datetime import datetime, timedelta

import pytest

from app.db import Database
from app.errors import InvalidOperation, NotFound, ValidationError
from app.rooms.pairs import PairLocks, pair_key
from app.rooms.service import RoomLedger


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def ledger(db):
    return RoomLedger(db)


class TestPairKey:
    def test_pair_key_is_order_independent(self):
        assert pair_key("alice", "bob") == pair_key("bob", "alice") == "alice:bob"

    def test_pair_key_rejects_same_user(self):
        with pytest.raises(InvalidOperation):
            pair_key("alice", "alice")

    def test_pair_locks_share_lock_for_same_pair(self):
        locks = PairLocks()
        first = locks.lock("alice", "bob")
        assert locks.lock("bob", "alice") is first
        assert locks.lock("alice", "carol") is not first


class TestCreateAndFind:
    def test_create_intro_room(self, ledger):
        room = ledger.create_room(["bob", "alice"], is_intro=True)

        assert room.isIntro is True
        assert sorted(room.participants) == ["alice", "bob"]
        assert room.lastMessage is None
        assert room.lastMessageAt is None

    def test_find_intro_room_either_order(self, ledger):
        room = ledger.create_room(["alice", "bob"], is_intro=True)

        assert ledger.find_intro_room("alice", "bob").id == room.id
        assert ledger.find_intro_room("bob", "alice").id == room.id
        assert ledger.find_intro_room("alice", "carol") is None

    def test_find_intro_room_ignores_full_rooms(self, ledger):
        room = ledger.create_room(["alice", "bob"], is_intro=False)

        assert ledger.find_intro_room("alice", "bob") is None
        assert ledger.find_any_room("bob", "alice").id == room.id

    def test_second_intro_room_for_pair_returns_existing(self, ledger):
        first = ledger.create_room(["alice", "bob"], is_intro=True)
        second = ledger.create_room(["bob", "alice"], is_intro=True)

        assert second.id == first.id
        assert len(ledger.list_rooms_for_user("alice")) == 1

    def test_room_requires_distinct_participants(self, ledger):
        with pytest.raises(InvalidOperation):
            ledger.create_room(["alice", "alice"], is_intro=True)

    def test_room_requires_two_participants(self, ledger):
        with pytest.raises(ValidationError):
            ledger.create_room(["alice"], is_intro=True)

    def test_require_room_missing(self, ledger):
        with pytest.raises(NotFound):
            ledger.require_room("missing")


class TestUpgrade:
    def test_upgrade_clears_intro_flag(self, ledger):
        room = ledger.create_room(["alice", "bob"], is_intro=True)

        upgraded = ledger.upgrade_to_connected(room.id)

        assert upgraded.id == room.id
        assert upgraded.isIntro is False
        assert ledger.find_intro_room("alice", "bob") is None
        assert ledger.find_any_room("alice", "bob").id == room.id

    def test_upgrade_is_idempotent(self, ledger):
        room = ledger.create_room(["alice", "bob"], is_intro=True)

        once = ledger.upgrade_to_connected(room.id)
        twice = ledger.upgrade_to_connected(room.id)

        assert once == twice

    def test_upgrade_missing_room_is_noop(self, ledger):
        assert ledger.upgrade_to_connected("missing") is None


class TestLastMessageCache:
    def test_touch_updates_preview(self, ledger):
        room = ledger.create_room(["alice", "bob"], is_intro=True)
        at = datetime(2024, 1, 1, 12, 0, 0)

        assert ledger.touch_last_message(room.id, "Hi!", at) is True

        stored = ledger.get_room(room.id)
        assert stored.lastMessage == "Hi!"
        assert stored.lastMessageAt == at

    def test_touch_last_writer_wins(self, ledger):
        room = ledger.create_room(["alice", "bob"], is_intro=True)
        ledger.touch_last_message(room.id, "newer", datetime(2024, 1, 2))
        ledger.touch_last_message(room.id, "older", datetime(2024, 1, 1))

        assert ledger.get_room(room.id).lastMessage == "older"

    def test_touch_missing_room(self, ledger):
        assert ledger.touch_last_message("missing", "Hi") is False

    def test_reset_clears_preview(self, ledger):
        room = ledger.create_room(["alice", "bob"], is_intro=False)
        ledger.touch_last_message(room.id, "Hi!")

        ledger.reset_last_message(room.id)

        stored = ledger.get_room(room.id)
        assert stored.lastMessage is None
        assert stored.lastMessageAt is not None


class TestListRoomsForUser:
    def test_sorted_by_last_message_desc_with_null_last(self, ledger):
        base = datetime(2024, 5, 1, 9, 0, 0)
        quiet = ledger.create_room(["alice", "dave"], is_intro=False)
        older = ledger.create_room(["alice", "bob"], is_intro=False)
        newer = ledger.create_room(["alice", "carol"], is_intro=True)
        ledger.touch_last_message(older.id, "old", base)
        ledger.touch_last_message(newer.id, "new", base + timedelta(hours=1))

        rooms = ledger.list_rooms_for_user("alice")

        assert [r.id for r in rooms] == [newer.id, older.id, quiet.id]

    def test_only_rooms_of_user(self, ledger):
        ledger.create_room(["alice", "bob"], is_intro=False)
        ledger.create_room(["carol", "dave"], is_intro=False)

        rooms = ledger.list_rooms_for_user("bob")

        assert len(rooms) == 1
        assert "bob" in rooms[0].participants
