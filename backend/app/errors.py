"""Typed failures raised by the messaging and connection core.

Request/response routes translate these into ``{"error", "code"}`` JSON
bodies (see ``install_error_handlers``); realtime handlers turn them into an
``error`` event sent back to the originating connection only.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ChatError(Exception):
    """Base class for every typed core failure."""

    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(ChatError):
    """A required field is missing or empty (e.g. blank message content)."""
    code = "validation_error"


class Unauthorized(ChatError):
    """No caller identity, or it names an unknown user."""
    status_code = 401
    code = "unauthorized"


class NotFound(ChatError):
    status_code = 404
    code = "not_found"


class Forbidden(ChatError):
    """Caller is not a participant of / not authorized for the resource."""
    status_code = 403
    code = "forbidden"


class Conflict(ChatError):
    status_code = 409
    code = "conflict"


class LimitExceeded(Conflict):
    """An unconnected participant already used their intro allowance."""
    code = "limit_exceeded"


class InvalidOperation(ChatError):
    """Self-targeting actions such as messaging or connecting to yourself."""
    code = "invalid_operation"


async def _chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    logger.info(
        "[HTTP] %s %s -> %d %s: %s",
        request.method, request.url.path, exc.status_code, exc.code, exc.message,
    )
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in exc.errors()
    )
    logger.info("[HTTP] %s %s -> 422 %s", request.method, request.url.path, problems)
    return JSONResponse(
        {"error": problems or "Invalid request.", "code": "validation_error"},
        status_code=422,
    )


def install_error_handlers(app: FastAPI) -> None:
    """Register the ChatError and request-validation -> JSON translations on *app*."""
    app.add_exception_handler(ChatError, _chat_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
