"""Error taxonomy for the pairing subsystem.

Services raise these directly, the same way the rest of the app raises
``HTTPException``; FastAPI renders them as ``{"detail": ...}`` responses.
"""
import logging

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)


class PairingError(HTTPException):
    """Base class. ``kind`` names the failure category for logs and tests."""

    kind = "error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(status_code=type(self).status_code, detail=detail)


class InvalidInputError(PairingError):
    kind = "invalid_input"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(PairingError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(PairingError):
    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(PairingError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


class ExpiredError(PairingError):
    kind = "expired"
    status_code = status.HTTP_410_GONE


class PairingFatalError(PairingError):
    """The membership invariant may be broken; needs reconciliation."""

    kind = "fatal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str):
        logger.error("Fatal pairing error, reconciliation required: %s", detail)
        super().__init__(detail="Internal server error")
        self.reason = detail
