"""
Error taxonomy for the scheduling core.

Every error is an ``HTTPException`` so FastAPI routes and ``unit_of_work`` handle
it as expected business logic, and carries a ``kind`` the controller layer
can rely on without inspecting status codes.
"""

import logging
from contextlib import contextmanager
from typing import Any, Generator, Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class SchedulingError(HTTPException):
    """Base class for all errors raised by the scheduling services."""

    kind = "internal"
    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(status_code=self.default_status, detail=message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.message, "error": self.kind}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(SchedulingError):
    """Malformed or missing input."""

    kind = "validation"
    default_status = status.HTTP_400_BAD_REQUEST


class NotFoundError(SchedulingError):
    """Doctor, patient, slot or appointment does not exist."""

    kind = "not_found"
    default_status = status.HTTP_404_NOT_FOUND


class ConflictError(SchedulingError):
    """Overlap, illegal state transition or booked-slot mutation."""

    kind = "conflict"
    default_status = status.HTTP_409_CONFLICT


class UnauthorizedError(SchedulingError):
    """Ownership or role check failed."""

    kind = "unauthorized"
    default_status = status.HTTP_403_FORBIDDEN


class ExternalServiceError(SchedulingError):
    """External calendar (or other remote API) failure."""

    kind = "external_service"
    default_status = status.HTTP_502_BAD_GATEWAY


class InternalError(SchedulingError):
    """Unexpected store failure."""

    kind = "internal"
    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR


@contextmanager
def translate_errors(operation: str) -> Generator[None, None, None]:
    """
    Map unexpected failures inside a service operation onto the taxonomy.

    Scheduling errors (and any other HTTPException) pass through unchanged,
    store uniqueness violations become ``ConflictError`` and everything else
    is logged and re-raised as ``InternalError``.
    """
    try:
        yield
    except HTTPException:
        raise
    except IntegrityError as e:
        logger.warning(f"Integrity error during {operation}: {e.orig}")
        raise ConflictError(f"Failed to {operation}: conflicting data was written concurrently") from e
    except Exception as e:
        logger.exception(f"Unexpected error during {operation}: {e}")
        raise InternalError(f"Failed to {operation}") from e
