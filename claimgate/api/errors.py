"""
Exception handlers for the claim API.

Every failure leaves the service as a ClaimResponse-shaped body:
{"success": false, "message": "...", "reason": "..."}. Internal error
text is logged, never returned.

Register on an app via `register_exception_handlers(app)`.
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..core.errors import ClaimError
from ..schemas import ClaimResponse

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, x-forwarded-for",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def error_response(status_code: int, message: str, reason: str) -> JSONResponse:
    body = ClaimResponse(success=False, message=message, reason=reason)
    return JSONResponse(status_code=status_code, content=body.to_json(), headers=CORS_HEADERS)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed JSON or missing fields -> 400, not FastAPI's default 422."""
    missing = [
        ".".join(str(part) for part in err.get("loc", ())[1:])
        for err in exc.errors()
        if err.get("type") == "missing"
    ]
    if missing:
        message = f"Missing required field: {', '.join(missing)}"
    else:
        message = "Invalid request data"
    return error_response(400, message, "validation_error")


async def claim_error_handler(request: Request, exc: ClaimError):
    """ClaimErrors raised outside ClaimService (should be rare)."""
    return error_response(exc.status_code, exc.public_message, exc.reason)


async def global_exception_handler(request: Request, exc: Exception):
    """Unhandled errors -> generic 500. Details go to the logs only."""
    logger.error(f"Unhandled exception on {request.url.path}: {exc!r}", exc_info=exc)
    return error_response(500, "Internal server error occurred", "server_error")


def register_exception_handlers(app) -> None:
    """Register all exception handlers on the given FastAPI app."""
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(ClaimError, claim_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
