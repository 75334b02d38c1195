"""
DRF ``EXCEPTION_HANDLER`` for the project.

Kept apart from core_backend.exceptions: rest_framework.views loads the
authentication classes, which import the exception classes.
"""
import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from core_backend.exceptions import DomainError

logger = logging.getLogger(__name__)


def domain_exception_handler(exc, context):
    """
    Render :class:`DomainError` as ``{"error": ..., "code": ..., **extra}``.

    Anything else falls through to DRF's default handler.
    """
    if isinstance(exc, DomainError):
        view = context.get("view")
        logger.warning(
            f"{exc.__class__.__name__} in {view.__class__.__name__ if view else 'unknown view'}: {exc.message}"
        )
        return Response(exc.as_dict(), status=exc.status_code)

    return exception_handler(exc, context)
