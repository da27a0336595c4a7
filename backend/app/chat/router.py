"""Messaging router providing the request/response chat endpoints.

This module provides:
    - GET    /api/messages/rooms: Rooms of the caller, most recent first
    - POST   /api/messages/intro/{user_id}: Cold intro (one message) to a stranger
    - GET    /api/messages/status/{room_id}: Send permission for the caller
    - DELETE /api/messages/clear/{room_id}: Clear a room's history
    - GET    /api/messages/{room_id}: Room history, oldest first
    - POST   /api/messages/{room_id}: Send into an existing room

Static routes are declared before the dynamic ``{room_id}`` ones. Core
failures (``ChatError``) are translated to JSON by the app-level handler.
"""
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from app.messages.schemas import IntroMessageRequest, SendMessageRequest
from app.messages.service import DEFAULT_HISTORY_LIMIT
from app.services import current_user_id, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.get("/rooms")
async def list_rooms(user_id: str = Depends(current_user_id)) -> JSONResponse:
    """List the caller's rooms sorted by last message time (never-messaged last)."""
    rooms = get_services().chat.rooms_for_user(user_id)
    return JSONResponse([room.model_dump(mode="json") for room in rooms])


@router.post("/intro/{target_user_id}")
async def send_intro(
    target_user_id: str,
    body: IntroMessageRequest,
    user_id: str = Depends(current_user_id),
) -> JSONResponse:
    """Send the single intro message allowed before a connection exists.

    Args:
        target_user_id: The user to introduce yourself to.
        body: ``{content}``.

    Returns:
        JSON with the stored ``message`` and its ``room``.
    """
    result = await get_services().chat.send_intro_message(
        user_id, target_user_id, body.content
    )
    return JSONResponse(result.model_dump(mode="json"))


@router.get("/status/{room_id}")
async def room_status(room_id: str, user_id: str = Depends(current_user_id)) -> JSONResponse:
    """Return ``{isIntro, isConnected, myMessageCount, canSend}`` without sending."""
    status = get_services().chat.room_status(room_id, user_id)
    return JSONResponse(status.model_dump())


@router.delete("/clear/{room_id}")
async def clear_room(room_id: str, user_id: str = Depends(current_user_id)) -> JSONResponse:
    """Delete every message in the room and notify its subscribers."""
    deleted = await get_services().chat.clear_room(room_id, user_id)
    logger.info("[messages] %s cleared room %s (%d messages)", user_id, room_id, deleted)
    return JSONResponse({"message": "Chat cleared.", "deleted": deleted})


@router.get("/{room_id}")
async def room_history(
    room_id: str,
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, description="Maximum messages to return"),
    user_id: str = Depends(current_user_id),
) -> JSONResponse:
    """Return the room's messages in creation order (oldest first)."""
    messages = get_services().chat.room_history(room_id, user_id, limit)
    return JSONResponse([msg.model_dump(mode="json") for msg in messages])


@router.post("/{room_id}")
async def send_message(
    room_id: str,
    body: SendMessageRequest,
    user_id: str = Depends(current_user_id),
) -> JSONResponse:
    """Send a message into an existing room through the messaging gate.

    Returns:
        The stored message, or 200 with ``{"duplicate": true}`` when the
        ``clientId`` was already delivered.
    """
    message = await get_services().chat.send_message(
        room_id, user_id, body.content, client_id=body.clientId
    )
    if message is None:
        return JSONResponse({"duplicate": True, "clientId": body.clientId})
    return JSONResponse(message.model_dump(mode="json"), status_code=201)
