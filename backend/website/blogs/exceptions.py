import logging
import re

from rest_framework import exceptions, status
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)

IDENTIFIER_RE = re.compile(r"-?[0-9]+")


class InvalidIdentifier(exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid identifier. Must be a number."
    default_code = "invalid_identifier"


class TransientStoreError(exceptions.APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "The post store is unavailable. Please try again later."
    default_code = "store_unavailable"


def parse_identifier(value, message=None):
    """Parse a path or query value as an integer id, or raise ``InvalidIdentifier``."""
    text = str(value).strip()
    if not IDENTIFIER_RE.fullmatch(text):
        raise InvalidIdentifier(message)
    return int(text)


def api_exception_handler(exc, context):
    """
    Render API errors as ``{"error": "..."}`` so clients see a single message
    field regardless of which exception produced it.
    """
    response = exception_handler(exc, context)
    if response is None:
        return None

    data = response.data
    if isinstance(data, dict) and "detail" in data:
        message = data["detail"]
    elif isinstance(data, list) and data:
        message = data[0]
    else:
        message = data
    response.data = {"error": str(message)}

    if response.status_code >= 500:
        logger.error("API error (status=%s): %s", response.status_code, message)
    return response
