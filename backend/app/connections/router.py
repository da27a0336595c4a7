"""Connection router — request, accept and reject connections between users.

Endpoints:
    GET  /api/users/me/requests   - Incoming pending requests
    GET  /api/users/{user_id}     - Profile plus relation to the caller
    POST /api/users/{user_id}/connect - Send a connection request
    POST /api/users/{user_id}/accept  - Accept that user's request
    POST /api/users/{user_id}/reject  - Decline that user's request
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.services import current_user_id, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["connections"])


@router.get("/me/requests")
async def pending_requests(user_id: str = Depends(current_user_id)) -> JSONResponse:
    profiles = get_services().identity.pending_profiles(user_id)
    return JSONResponse([p.model_dump() for p in profiles])


@router.get("/{target_user_id}")
async def get_user(target_user_id: str, user_id: str = Depends(current_user_id)) -> JSONResponse:
    view = get_services().connections.view_user(user_id, target_user_id)
    return JSONResponse(view.model_dump())


@router.post("/{target_user_id}/connect")
async def connect(target_user_id: str, user_id: str = Depends(current_user_id)) -> JSONResponse:
    """Send a connection request; the target is notified if online."""
    await get_services().connections.request_connection(user_id, target_user_id)
    return JSONResponse({"message": "Connection request sent."})


@router.post("/{sender_user_id}/accept")
async def accept(sender_user_id: str, user_id: str = Depends(current_user_id)) -> JSONResponse:
    """Accept a pending request.

    Returns:
        JSON with ``message``, the pair's ``chatroom`` and the caller's
        ``credits`` after the grant.
    """
    result = await get_services().connections.accept_connection(user_id, sender_user_id)
    return JSONResponse(result.model_dump(mode="json"))


@router.post("/{sender_user_id}/reject")
async def reject(sender_user_id: str, user_id: str = Depends(current_user_id)) -> JSONResponse:
    await get_services().connections.reject_connection(user_id, sender_user_id)
    return JSONResponse({"message": "Connection request declined."})
