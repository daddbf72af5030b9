# common/errors.py
"""
Error taxonomy shared by every service module.

Services raise these; the DRF exception handler below turns them into
`{"detail": ...}` responses and management commands turn them into
CommandError. Nothing here is fatal to the process.
"""
import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class LevyLiteError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be processed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(LevyLiteError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ValidationError(LevyLiteError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


class Unauthorized(LevyLiteError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not permitted"


class CollaboratorError(LevyLiteError):
    """An external service (database, Stripe, mail) failed or timed out."""
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "External service unavailable"


def api_exception_handler(exc, context):
    if isinstance(exc, LevyLiteError):
        if isinstance(exc, CollaboratorError):
            logger.error("Collaborator failure in %s: %s", context.get("view").__class__.__name__, exc.message)
        return Response({"detail": exc.message}, status=exc.status_code)
    return exception_handler(exc, context)


def parse_id(value, error: LevyLiteError) -> int:
    """Coerce a caller-supplied primary key, raising `error` when it is not an integer."""
    if isinstance(value, bool):
        raise error
    try:
        return int(value)
    except (TypeError, ValueError):
        raise error
