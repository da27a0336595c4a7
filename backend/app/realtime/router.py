"""Realtime router providing the WebSocket channel.

The WebSocket protocol carries JSON objects with a ``type`` field.

Client → server:
    - user_online:  {userId}                 announce identity, updates presence
    - join_room:    {roomId}                 subscribe to a room channel
    - leave_room:   {roomId}                 unsubscribe
    - send_message: {roomId, content, senderId?, clientId?}
    - typing:       {roomId, userName}
    - clear_chat:   {roomId}

Server → client:
    - connected:   {connectionId, typingTimeout}   once, on connect
    - room_joined / room_left: {roomId}
    - receive_message: Message (+clientId when the sender supplied one)
    - user_typing: {roomId, userName}
    - chat_cleared: {roomId, clearedBy}
    - online_users: {userIds}
    - connection_request_received / connection_accepted: {user, ...}
    - leaderboard_update: {userId, credits}
    - error: {event, code, error, roomId?, clientId?}  only to the originator

Reconnection: the server keeps nothing per client across transports. A
reconnecting client re-announces ``user_online`` and re-joins its room.
"""
import logging
from typing import Awaitable, Callable, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.errors import ChatError, Forbidden, NotFound, ValidationError
from app.services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter()

Handler = Callable[[Services, str, dict], Awaitable[Optional[dict]]]


def _required(data: dict, field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{field} is required.")
    return value


async def _user_online(services: Services, connection_id: str, data: dict) -> None:
    user_id = _required(data, "userId")
    if not services.identity.exists(user_id):
        raise NotFound("User not found.")
    services.realtime.announce_online(connection_id, user_id)
    await services.realtime.broadcast_presence()


async def _join_room(services: Services, connection_id: str, data: dict) -> dict:
    room_id = _required(data, "roomId")
    services.realtime.join(connection_id, room_id)
    return {"type": "room_joined", "roomId": room_id}


async def _leave_room(services: Services, connection_id: str, data: dict) -> dict:
    room_id = _required(data, "roomId")
    services.realtime.leave(connection_id, room_id)
    return {"type": "room_left", "roomId": room_id}


def _acting_user(services: Services, connection_id: str, claimed: Optional[str]) -> str:
    """The announced user of this connection; a claimed ID must agree with it."""
    announced = services.realtime.user_for_connection(connection_id)
    if announced and claimed and claimed != announced:
        raise Forbidden("senderId does not match the user online on this connection.")
    user_id = announced or claimed
    if not user_id:
        raise ValidationError("senderId is required.")
    return user_id


async def _send_message(services: Services, connection_id: str, data: dict) -> None:
    room_id = _required(data, "roomId")
    sender_id = _acting_user(services, connection_id, data.get("senderId"))
    await services.chat.send_message(
        room_id, sender_id, data.get("content", ""), client_id=data.get("clientId")
    )


async def _typing(services: Services, connection_id: str, data: dict) -> None:
    room_id = _required(data, "roomId")
    await services.chat.typing(room_id, data.get("userName", ""), connection_id)


async def _clear_chat(services: Services, connection_id: str, data: dict) -> None:
    room_id = _required(data, "roomId")
    actor_id = _acting_user(services, connection_id, data.get("userId"))
    await services.chat.clear_room(room_id, actor_id)


HANDLERS: Dict[str, Handler] = {
    "user_online": _user_online,
    "join_room": _join_room,
    "leave_room": _leave_room,
    "send_message": _send_message,
    "typing": _typing,
    "clear_chat": _clear_chat,
}


def _error_event(event: Optional[str], data: dict, code: str, error: str) -> dict:
    payload = {"type": "error", "event": event, "code": code, "error": error}
    for key in ("roomId", "clientId"):
        if data.get(key):
            payload[key] = data[key]
    return payload


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for presence, room channels and chat.

    Failures in one event are reported back to this connection as an
    ``error`` event; the connection stays open.
    """
    services = get_services()
    manager = services.realtime
    connection_id = await manager.connect(websocket)

    try:
        await websocket.send_json({
            "type": "connected",
            "connectionId": connection_id,
            "typingTimeout": services.config.chat.typing_timeout_seconds,
        })

        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                await websocket.send_json(
                    _error_event(None, {}, "validation_error", "Invalid JSON payload.")
                )
                continue
            if not isinstance(data, dict):
                await websocket.send_json(
                    _error_event(None, {}, "validation_error", "Payload must be an object.")
                )
                continue

            event = data.get("type")
            logger.debug("[WS] %s received: type=%s", connection_id, event)
            handler = HANDLERS.get(event)
            if handler is None:
                await websocket.send_json(
                    _error_event(event, data, "validation_error", f"Unknown event type: {event}")
                )
                continue

            try:
                reply = await handler(services, connection_id, data)
            except ChatError as exc:
                logger.info(f"[WS] {event} from {connection_id} failed: {exc.code} {exc.message}")
                await websocket.send_json(_error_event(event, data, exc.code, exc.message))
                continue
            except Exception as exc:
                logger.exception(f"[WS] {event} from {connection_id} crashed: {exc}")
                await websocket.send_json(
                    _error_event(event, data, "internal_error", "Something went wrong.")
                )
                continue

            if reply is not None:
                await websocket.send_json(reply)

    except WebSocketDisconnect:
        logger.info(f"[WS] Connection {connection_id} disconnected")
    finally:
        if manager.disconnect(connection_id):
            await manager.broadcast_presence()
