# errors.py
"""
Domain errors raised by the service layer.

Each error carries the HTTP status it maps to; `server.py` registers a
single handler that turns them into `{"detail": ...}` responses.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse


class PrintalmaError(Exception):
    """Base class for errors surfaced to the immediate caller."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(PrintalmaError):
    """The referenced design, product or user does not exist (or is soft-deleted)."""
    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(PrintalmaError):
    """The acting user lacks admin privileges or does not own the entity."""
    status_code = status.HTTP_403_FORBIDDEN


class InvalidStateError(PrintalmaError):
    """The entity is outside the state the operation expects."""
    status_code = status.HTTP_400_BAD_REQUEST


class NotificationError(Exception):
    """An outbound email could not be sent. Never propagated to API callers."""


async def printalma_error_handler(request: Request, exc: PrintalmaError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
