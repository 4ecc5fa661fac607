"""Global exception handlers — map SDK exceptions to HTTP status codes.

The pipeline raises ``ValueError`` subclasses for bad client input
(unknown client or packet type, unknown job, invalid state transition).  Routes let
them propagate and the handlers here pick the status code from the
exception class.  ``IntakeValidationError`` gets its own handler because its
field-level messages are meant for the client.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from packet_pipeline.errors import (
    IntakeValidationError,
    InvalidTransitionError,
    JobNotFoundError,
    UnknownClientTypeError,
    UnknownPacketTypeError,
)

logger = logging.getLogger(__name__)

# --- ValueError subclasses and their HTTP status codes ---
# Checked in order with isinstance; anything else is a 400.
_VALUE_ERROR_STATUS: list[tuple[type[ValueError], int]] = [
    (JobNotFoundError, 404),
    (UnknownClientTypeError, 404),
    (UnknownPacketTypeError, 400),
    # Requeue of an in-flight job, or a transition out of a terminal state
    (InvalidTransitionError, 409),
]


# --- Client-safe messages keyed by HTTP status code ---
# Internal details (client ids, job ids, states) stay in the server log.
_SAFE_MESSAGES: dict[int, str] = {
    404: "Resource not found",
    409: "Request conflicts with the current state of the resource",
    400: "Invalid request",
}


async def intake_validation_error_handler(
    request: Request, exc: IntakeValidationError
) -> JSONResponse:
    """Return 422 with one message per invalid question."""
    logger.info("Intake validation failed at %s: %s", request.url, exc)
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Intake validation failed",
            "errors": exc.errors,
            "first_error_block_id": exc.first_error_block_id,
        },
    )


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Map pipeline ``ValueError`` subclasses to 404 / 409 / 400.

    The raw exception message is logged server-side but never sent to the
    client.
    """
    status = next(
        (code for cls, code in _VALUE_ERROR_STATUS if isinstance(exc, cls)), 400,
    )
    logger.warning(
        "%s [%d] at %s: %s", type(exc).__name__, status, request.url, exc,
    )
    safe_detail = _SAFE_MESSAGES.get(status, "Invalid request")
    return JSONResponse(status_code=status, content={"detail": safe_detail})


async def key_error_handler(request: Request, exc: KeyError) -> JSONResponse:
    """Map ``KeyError`` (e.g. a block id not on the intake path) to 404."""
    logger.warning("KeyError at %s: %s", request.url, exc)
    return JSONResponse(status_code=404, content={"detail": "Resource not found"})


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions — log full traceback, return 500."""
    logger.exception("Unhandled exception at %s", request.url)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
