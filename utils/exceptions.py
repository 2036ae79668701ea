"""
Reservation error taxonomy and the DRF exception handler that renders it.
"""
import logging

from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError as DRFValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler
from django.core.exceptions import ObjectDoesNotExist, ValidationError as DjangoValidationError

logger = logging.getLogger(__name__)


class ReservationError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Reservation request failed."
    default_code = "reservation_error"


class InvalidInput(ReservationError):
    """Bad passenger details or scope; raised before anything is written."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input."
    default_code = "invalid_input"


class SeatUnavailable(ReservationError):
    """Internal signal: the requested seat is taken. Triggers queue fallback."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Seat is not available."
    default_code = "seat_unavailable"


class QueueCapacityExceeded(ReservationError):
    """Internal signal: RAC is full. Triggers waitlist fallback."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Queue is full."
    default_code = "queue_capacity_exceeded"


class ConcurrencyConflict(ReservationError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The reservation could not be completed due to concurrent activity. Please try again."
    default_code = "concurrency_conflict"


class PersistenceFailure(ReservationError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "The reservation store is unavailable. No changes were made."
    default_code = "persistence_failure"


class NotFound(ReservationError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"


def custom_exception_handler(exc, context):
    # Handle Django's DoesNotExist as 404
    if isinstance(exc, ObjectDoesNotExist):
        return Response(
            {"success": False, "error": "Not found."},
            status=status.HTTP_404_NOT_FOUND
        )

    if isinstance(exc, (DjangoValidationError, DRFValidationError)):
        return Response(
            {
                "success": False,
                "error": exc.detail if hasattr(exc, "detail") else exc.messages,
            },
            status=status.HTTP_400_BAD_REQUEST,
        )

    if isinstance(exc, ReservationError):
        if exc.status_code >= 500:
            logger.error("Reservation failure: %s", exc.detail)
        return Response(
            {"success": False, "error": exc.detail, "code": exc.default_code},
            status=exc.status_code,
        )

    # Fallback to DRF's default handler (AuthenticationFailed, NotAuthenticated, ...)
    response = exception_handler(exc, context)
    if response is not None:
        response.data = {"success": False, "error": response.data}
    return response
