"""
DRF exception handler rendering ledger and workflow errors.

Business errors are rendered in the same envelope the API uses for success
responses: {"success": false, "error": {"code", "message", "details"}}.
"""

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from inventory.exceptions import BusinessException, StorageException

logger = logging.getLogger(__name__)


STATUS_BY_CODE = {
    "UNKNOWN_SKU": status.HTTP_404_NOT_FOUND,
    "SHIPMENT_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INSUFFICIENT_STOCK": status.HTTP_409_CONFLICT,
    "STALE_SHIPMENT": status.HTTP_409_CONFLICT,
    "DUPLICATE_SKU": status.HTTP_409_CONFLICT,
}


def error_response(code, message, details=None, status_code=status.HTTP_400_BAD_REQUEST):
    return Response({
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        }
    }, status=status_code)


def business_exception_handler(exc, context):
    if isinstance(exc, BusinessException):
        return error_response(
            exc.code, exc.message, exc.details, STATUS_BY_CODE.get(exc.code, status.HTTP_400_BAD_REQUEST)
        )

    if isinstance(exc, StorageException):
        logger.error(f"Storage error in {context.get('view').__class__.__name__}: {exc.message}")
        return error_response(exc.code, exc.message, exc.details, status.HTTP_503_SERVICE_UNAVAILABLE)

    response = exception_handler(exc, context)
    if response is not None and response.status_code == status.HTTP_400_BAD_REQUEST:
        return error_response("VALIDATION_ERROR", "Invalid request data", response.data)
    return response
