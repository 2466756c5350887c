import logging

from django.db import DatabaseError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    """DRF's handler, plus a 503 for database failures that escape the services."""
    response = exception_handler(exc, context)
    if response is not None:
        return response

    if isinstance(exc, DatabaseError):
        view = context.get('view')
        logger.exception("Database error in %s", view.__class__.__name__ if view else 'unknown view')
        return Response(
            {'detail': 'Service temporarily unavailable. Please retry.'},
            status=status.HTTP_503_SERVICE_UNAVAILABLE
        )
    return None
