"""Tests for the messaging gate: intro allowance, status and gated sends."""
import asyncio

import pytest

from app.errors import Conflict, Forbidden, InvalidOperation, LimitExceeded, NotFound, ValidationError
from app.messages.gate import INTRO_LIMIT_MESSAGE


async def connect_pair(services, requester, target):
    await services.connections.request_connection(requester, target)
    await services.connections.accept_connection(target, requester)


class TestIntroMessage:
    @pytest.mark.asyncio
    async def test_intro_creates_intro_room(self, services, alice, bob):
        result = await services.gate.send_intro_message("alice", "bob", "Hi!")

        assert result.room.isIntro is True
        assert sorted(result.room.participants) == ["alice", "bob"]
        assert result.room.lastMessage == "Hi!"
        assert result.message.content == "Hi!"
        assert result.message.sender == "alice"
        assert services.messages.count_from(result.room.id, "alice") == 1

    @pytest.mark.asyncio
    async def test_second_intro_blocked(self, services, alice, bob):
        first = await services.gate.send_intro_message("alice", "bob", "Hi!")

        with pytest.raises(LimitExceeded) as exc_info:
            await services.gate.send_intro_message("alice", "bob", "Hello?")

        assert exc_info.value.message == INTRO_LIMIT_MESSAGE
        assert exc_info.value.status_code == 409
        assert [m.content for m in services.messages.list_for_room(first.room.id)] == ["Hi!"]

    @pytest.mark.asyncio
    async def test_cannot_message_yourself(self, services, alice):
        with pytest.raises(InvalidOperation, match="Cannot message yourself."):
            await services.gate.send_intro_message("alice", "alice", "Hi me")

    @pytest.mark.asyncio
    async def test_unknown_target(self, services, alice):
        with pytest.raises(NotFound):
            await services.gate.send_intro_message("alice", "ghost", "Hi!")

    @pytest.mark.asyncio
    async def test_empty_intro_creates_nothing(self, services, alice, bob):
        with pytest.raises(ValidationError):
            await services.gate.send_intro_message("alice", "bob", "   ")

        assert services.rooms.list_rooms_for_user("alice") == []

    @pytest.mark.asyncio
    async def test_connected_pair_uses_regular_chat(self, services, alice, bob):
        await connect_pair(services, "alice", "bob")

        with pytest.raises(Conflict, match="already connected"):
            await services.gate.send_intro_message("alice", "bob", "Hi!")

    @pytest.mark.asyncio
    async def test_both_directions_share_one_intro_room(self, services, alice, bob):
        first = await services.gate.send_intro_message("alice", "bob", "Hi Bob")
        reply = await services.gate.send_intro_message("bob", "alice", "Hi Alice")

        assert reply.room.id == first.room.id
        assert len(services.rooms.list_rooms_for_user("alice")) == 1

    @pytest.mark.asyncio
    async def test_concurrent_intros_spend_one_allowance(self, services, alice, bob):
        results = await asyncio.gather(
            services.gate.send_intro_message("alice", "bob", "Hi once"),
            services.gate.send_intro_message("alice", "bob", "Hi twice"),
            return_exceptions=True,
        )

        sent = [r for r in results if not isinstance(r, Exception)]
        blocked = [r for r in results if isinstance(r, LimitExceeded)]
        assert len(sent) == 1
        assert len(blocked) == 1
        room = services.rooms.find_intro_room("alice", "bob")
        assert services.messages.count_from(room.id, "alice") == 1

    @pytest.mark.asyncio
    async def test_concurrent_first_contact_creates_one_room(self, services, alice, bob):
        results = await asyncio.gather(
            services.gate.send_intro_message("alice", "bob", "Hi Bob"),
            services.gate.send_intro_message("bob", "alice", "Hi Alice"),
        )

        assert results[0].room.id == results[1].room.id
        assert len(services.rooms.list_rooms_for_user("bob")) == 1


class TestChatStatus:
    @pytest.mark.asyncio
    async def test_status_in_intro_room(self, services, alice, bob):
        result = await services.gate.send_intro_message("alice", "bob", "Hi!")

        sender = services.gate.chat_status(result.room.id, "alice")
        assert sender.isIntro is True
        assert sender.isConnected is False
        assert sender.myMessageCount == 1
        assert sender.canSend is False

        recipient = services.gate.chat_status(result.room.id, "bob")
        assert recipient.myMessageCount == 0
        assert recipient.canSend is True

    def test_status_unknown_room(self, services, alice):
        with pytest.raises(NotFound):
            services.gate.chat_status("missing", "alice")

    @pytest.mark.asyncio
    async def test_status_requires_participant(self, services, alice, bob, carol):
        result = await services.gate.send_intro_message("alice", "bob", "Hi!")

        with pytest.raises(Forbidden, match="Access denied."):
            services.gate.chat_status(result.room.id, "carol")

    @pytest.mark.asyncio
    async def test_connection_drives_status(self, services, alice, bob):
        room = services.rooms.create_room(["alice", "bob"], is_intro=False)
        services.messages.append(room.id, "alice", "one")

        assert services.gate.can_send(room.id, "alice") is False

        await connect_pair(services, "alice", "bob")

        status = services.gate.chat_status(room.id, "alice")
        assert status.isConnected is True
        assert status.canSend is True


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_intro_then_connect_then_unlimited(self, services, alice, bob):
        intro = await services.gate.send_intro_message("alice", "bob", "Hi!")
        room_id = intro.room.id
        with pytest.raises(LimitExceeded):
            await services.gate.send_message(room_id, "alice", "Still there?")

        await services.connections.request_connection("alice", "bob")
        result = await services.connections.accept_connection("bob", "alice")

        assert result.chatroom.id == room_id
        assert result.chatroom.isIntro is False
        for who in ("alice", "bob"):
            status = services.gate.chat_status(room_id, who)
            assert status.isIntro is False
            assert status.isConnected is True
            assert status.canSend is True

        for i in range(5):
            await services.gate.send_message(room_id, "alice", f"msg {i}")
        assert services.messages.count_from(room_id, "alice") == 6

    @pytest.mark.asyncio
    async def test_recipient_may_reply_once(self, services, alice, bob):
        intro = await services.gate.send_intro_message("alice", "bob", "Hi!")

        reply = await services.gate.send_message(intro.room.id, "bob", "Hey")
        assert reply.sender == "bob"

        with pytest.raises(LimitExceeded):
            await services.gate.send_message(intro.room.id, "bob", "Hello again")

    @pytest.mark.asyncio
    async def test_non_participant_forbidden(self, services, alice, bob, carol):
        intro = await services.gate.send_intro_message("alice", "bob", "Hi!")

        with pytest.raises(Forbidden):
            await services.gate.send_message(intro.room.id, "carol", "Let me in")

    @pytest.mark.asyncio
    async def test_unknown_room(self, services, alice):
        with pytest.raises(NotFound):
            await services.gate.send_message("missing", "alice", "Hello")

    @pytest.mark.asyncio
    async def test_empty_content(self, services, alice, bob):
        room = services.rooms.create_room(["alice", "bob"], is_intro=False)

        with pytest.raises(ValidationError):
            await services.gate.send_message(room.id, "alice", "")

    @pytest.mark.asyncio
    async def test_stale_intro_room_upgraded_on_send(self, services, alice, bob):
        room = services.rooms.create_room(["alice", "bob"], is_intro=True)
        services.messages.append(room.id, "alice", "Hi!")
        # connect without going through the room-aware accept path
        services.identity.record_request("alice", "bob")
        services.identity.record_acceptance("bob", "alice", 0)

        await services.gate.send_message(room.id, "alice", "Connected now")

        assert services.rooms.get_room(room.id).isIntro is False
        assert services.messages.count_from(room.id, "alice") == 2

    @pytest.mark.asyncio
    async def test_concurrent_sends_spend_one_allowance(self, services, alice, bob):
        room = services.rooms.create_room(["alice", "bob"], is_intro=True)

        results = await asyncio.gather(
            *[services.gate.send_message(room.id, "bob", f"try {i}") for i in range(3)],
            return_exceptions=True,
        )

        assert sum(1 for r in results if not isinstance(r, Exception)) == 1
        assert sum(1 for r in results if isinstance(r, LimitExceeded)) == 2
        assert services.messages.count_from(room.id, "bob") == 1
