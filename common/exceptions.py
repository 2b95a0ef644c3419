import logging

from django.db import InterfaceError, OperationalError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ApplicationError(Exception):
    """
    Base class for errors the core raises on purpose.

    Each subclass carries the HTTP status it maps to, so views never have to
    translate domain failures by hand.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "The request could not be processed."

    def __init__(self, message=None, status_code=None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class InvalidInput(ApplicationError):
    default_message = "Invalid input."


class NotFound(ApplicationError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found."


class UserNotFound(NotFound):
    default_message = "User not found."


class AlreadyRegistered(ApplicationError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "You are already registered for this tournament."


class NotRegistered(ApplicationError):
    default_message = "Not registered for this tournament."


class TournamentStateError(ApplicationError):
    """State-machine violations on a tournament."""

    status_code = status.HTTP_409_CONFLICT


class TournamentFull(TournamentStateError):
    default_message = "Tournament is full."


class RegistrationClosed(TournamentStateError):
    default_message = "Tournament registration is closed."


class TournamentStarted(TournamentStateError):
    default_message = "Cannot unregister from ongoing or completed tournament."


class TournamentNotUpcoming(TournamentStateError):
    default_message = "Tournament is not upcoming."


class TournamentNotOngoing(TournamentStateError):
    default_message = "Tournament is not ongoing."


class ResultAlreadySubmitted(ApplicationError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Results have already been submitted for this tournament."


class InsufficientFunds(ApplicationError):
    default_message = "Insufficient balance."


class TransactionFinalized(ApplicationError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Transaction is already finalized."


class StoreUnavailable(ApplicationError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Service temporarily unavailable. Please retry."


def _error_response(message, status_code, **extra):
    payload = {"success": False, "message": message}
    payload.update(extra)
    return Response(payload, status=status_code)


def custom_exception_handler(exc, context):
    """
    Renders every error as ``{"success": false, "message": ...}``.
    """
    if isinstance(exc, ApplicationError):
        return _error_response(exc.message, exc.status_code)

    if isinstance(exc, (OperationalError, InterfaceError)):
        logger.error(
            f"Store unavailable while handling {context.get('view').__class__.__name__}: {exc}"
        )
        return _error_response(StoreUnavailable.default_message, StoreUnavailable.status_code)

    response = exception_handler(exc, context)
    if response is not None:
        data = response.data
        if isinstance(data, dict) and "detail" in data:
            return _error_response(str(data["detail"]), response.status_code)
        return _error_response("Invalid input.", response.status_code, errors=data)

    view = context.get("view")
    request = context.get("request")
    logger.error(
        "Unhandled error in API view.",
        exc_info=exc,
        extra={
            "view": view.__class__.__name__ if view else None,
            "path": getattr(request, "path", None),
            "user_id": getattr(getattr(request, "user", None), "pk", None),
        },
    )
    return _error_response(
        "An unexpected error occurred.", status.HTTP_500_INTERNAL_SERVER_ERROR
    )
