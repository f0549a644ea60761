"""
Domain Exceptions and Custom Exception Handler for DRF

Failure taxonomy:
- ClassifierUnavailable / SummarizerUnavailable: raised by the AI clients,
  absorbed at the moderation/summary boundary (never reach a response).
- StoreWriteFailure: a user-initiated write could not be persisted.
- InvalidTransition: a flag was reviewed after it had already been decided.

Partial failures (post saved, auto-flag not saved) are not exceptions;
see moderation.ModerationResult.
"""
from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status
from django.db import IntegrityError
import logging

logger = logging.getLogger(__name__)


class BoardError(Exception):
    """Base class for board domain errors."""


class ClassifierUnavailable(BoardError):
    """The toxicity classifier could not produce a usable score."""


class SummarizerUnavailable(BoardError):
    """The summarizer could not produce a summary."""


class StoreWriteFailure(BoardError):
    """A write to the content store failed. Message is user-facing."""


class InvalidTransition(BoardError):
    """A flag is not in a state that allows the requested transition."""

    def __init__(self, flag_id, current_status, requested_status):
        self.flag_id = flag_id
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            f"Flag {flag_id} is already {current_status}; "
            f"cannot move it to {requested_status}."
        )


def custom_exception_handler(exc, context):
    """
    Custom exception handler that:
    1. Logs all exceptions
    2. Converts domain and Django exceptions to DRF responses
    3. Provides consistent error format
    """

    # Call DRF's default exception handler first
    response = exception_handler(exc, context)

    # If DRF handled it, enhance the response
    if response is not None:
        if not isinstance(response.data, dict) or 'error' not in response.data:
            response.data = {
                'error': str(exc),
                'details': response.data
            }
        return response

    if isinstance(exc, InvalidTransition):
        return Response(
            {
                'error': str(exc),
                'details': {'status': exc.current_status}
            },
            status=status.HTTP_409_CONFLICT
        )

    if isinstance(exc, StoreWriteFailure):
        logger.error(f"Store write failure: {exc}")
        return Response(
            {'error': str(exc)},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    if isinstance(exc, IntegrityError):
        logger.warning(f"IntegrityError: {exc}")
        return Response(
            {'error': 'Data integrity error. This may be a duplicate entry.'},
            status=status.HTTP_409_CONFLICT
        )

    if isinstance(exc, ValueError):
        return Response(
            {'error': str(exc)},
            status=status.HTTP_400_BAD_REQUEST
        )

    # Log unexpected exceptions
    logger.exception(f"Unhandled exception: {exc}")

    return Response(
        {'error': 'An unexpected error occurred.'},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )
