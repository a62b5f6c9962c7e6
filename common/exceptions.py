"""DRF exception handler producing the `{code, message, errors, status}` envelope.

Service-layer `IntakeError`s carry their own code and HTTP status. DRF's
own exceptions are mapped onto stable codes so clients never branch on
human-readable messages.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from common.errors import IntakeError

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR_MESSAGE = "An unexpected error occurred."

API_ERROR_CODES: tuple[tuple[type[exceptions.APIException], str], ...] = (
    (exceptions.ValidationError, "validation_error"),
    (exceptions.NotAuthenticated, "not_authenticated"),
    (exceptions.AuthenticationFailed, "authentication_failed"),
    (exceptions.PermissionDenied, "permission_denied"),
    (exceptions.NotFound, "not_found"),
    (exceptions.MethodNotAllowed, "method_not_allowed"),
    (exceptions.NotAcceptable, "not_acceptable"),
    (exceptions.UnsupportedMediaType, "unsupported_media_type"),
    (exceptions.ParseError, "parse_error"),
    (exceptions.Throttled, "throttled"),
)


def build_error_envelope(*, code: str, message: str, errors: Any, status_code: int) -> dict[str, Any]:
    return {"code": code, "message": message, "errors": errors, "status": status_code}


def error_response(
    *,
    code: str,
    message: str,
    errors: Any = None,
    status_code: int = status.HTTP_400_BAD_REQUEST,
) -> Response:
    envelope = build_error_envelope(code=code, message=message, errors=errors, status_code=status_code)
    return Response(envelope, status=status_code)


def _intake_error_response(exc: IntakeError) -> Response:
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("intake_error_response", extra={"error_code": exc.code, "reason": exc.message})
    return error_response(
        code=exc.code,
        message=exc.message,
        errors=exc.details or None,
        status_code=exc.status_code,
    )


def _api_error_code(exc: Exception) -> str:
    for exception_type, code in API_ERROR_CODES:
        if isinstance(exc, exception_type):
            return code
    if isinstance(exc, exceptions.APIException):
        return str(getattr(exc, "default_code", "api_error"))
    return "internal_server_error"


def _api_error_message(exc: Exception, data: Any) -> str:
    if isinstance(exc, exceptions.ValidationError):
        return "Validation failed."
    detail = data.get("detail") if isinstance(data, Mapping) else data if isinstance(data, str) else None
    if detail:
        return str(detail)
    if isinstance(exc, exceptions.APIException):
        return str(exc.detail)
    return GENERIC_SERVER_ERROR_MESSAGE


def _field_errors(data: Any) -> Any:
    # A bare {"detail": ...} is already the message; anything else is per-field.
    if isinstance(data, Mapping):
        return None if set(data) == {"detail"} else data
    if isinstance(data, Sequence) and not isinstance(data, str):
        return data
    return None


def custom_exception_handler(exc: Exception, context: dict[str, Any]) -> Response:
    if isinstance(exc, IntakeError):
        return _intake_error_response(exc)

    response = drf_exception_handler(exc, context)
    if response is None:
        view = context.get("view")
        logger.exception("unhandled_api_exception in %s", view.__class__.__name__ if view else "unknown")
        return error_response(
            code="internal_server_error",
            message=GENERIC_SERVER_ERROR_MESSAGE,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    response.data = build_error_envelope(
        code=_api_error_code(exc),
        message=_api_error_message(exc, response.data),
        errors=_field_errors(response.data),
        status_code=response.status_code,
    )
    return response
