"""Exception handling for SDLC web endpoints.

Maps :class:`~litestar_sdlc.exceptions.StateMachineError` codes to HTTP
responses.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from litestar import MediaType, Response
from litestar.status_codes import HTTP_400_BAD_REQUEST, HTTP_404_NOT_FOUND, HTTP_409_CONFLICT

from litestar_sdlc.exceptions import ErrorCode, StateMachineError

if TYPE_CHECKING:  # pragma: no cover
    from litestar import Request

__all__ = ["state_machine_error_handler", "status_code_for"]

logger = structlog.get_logger(__name__)

_NOT_FOUND_CODES = frozenset(
    {
        ErrorCode.WORKFLOW_NOT_FOUND,
        ErrorCode.INSTANCE_NOT_FOUND,
        ErrorCode.PHASE_NOT_FOUND,
        ErrorCode.PHASE_INSTANCE_NOT_FOUND,
    }
)
_CONFLICT_CODES = frozenset({ErrorCode.INVALID_STATE, ErrorCode.TRANSITION_ERROR})


def status_code_for(error: StateMachineError) -> int:
    """Return the HTTP status code matching the error's code."""
    if error.code in _NOT_FOUND_CODES:
        return HTTP_404_NOT_FOUND
    if error.code in _CONFLICT_CODES:
        return HTTP_409_CONFLICT
    return HTTP_400_BAD_REQUEST


def state_machine_error_handler(
    _request: Request,
    exc: StateMachineError,
) -> Response:
    """Exception handler for StateMachineError.

    Args:
        request: The Litestar request object.
        exc: The state machine error.

    Returns:
        JSON response carrying the message, code and context of the error.
    """
    status_code = status_code_for(exc)
    logger.info("state_machine_error_response", code=str(exc.code), status_code=status_code)
    return Response(
        content={"error": str(exc.code).lower(), **exc.to_dict()},
        status_code=status_code,
        media_type=MediaType.JSON,
    )
