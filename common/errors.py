from __future__ import annotations

from typing import Any

from django.db import DatabaseError, IntegrityError, OperationalError
from rest_framework import status

# SQLSTATE codes PostgreSQL raises when statement_timeout / lock_timeout fire.
TIMEOUT_SQLSTATES = {"57014", "55P03"}


class IntakeError(Exception):
    """Base class for every failure the intake and archival services report."""

    code = "intake_error"
    status_code = status.HTTP_400_BAD_REQUEST
    retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def as_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class RecordValidationError(IntakeError):
    code = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class ProcessingError(IntakeError):
    code = "processing_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class NotFoundError(IntakeError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(IntakeError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT
    retryable = True


class OperationTimeoutError(IntakeError, TimeoutError):
    code = "timeout"
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    retryable = True


RETRYABLE_CODES = {ConflictError.code, OperationTimeoutError.code}


def _sqlstate(exc: BaseException) -> str | None:
    cause = exc.__cause__ or exc.__context__
    for candidate in (exc, cause):
        if candidate is None:
            continue
        state = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if state:
            return str(state)
    return None


def translate_database_error(exc: DatabaseError, *, step: str) -> IntakeError:
    """Map a Django database exception raised during `step` onto the intake taxonomy."""
    details = {"step": step, "error": str(exc)}
    if isinstance(exc, IntegrityError):
        return ConflictError(f"Constraint violation during {step}: {exc}", details)
    if isinstance(exc, OperationalError) and _sqlstate(exc) in TIMEOUT_SQLSTATES:
        return OperationTimeoutError(f"Database timeout during {step}: {exc}", details)
    return ProcessingError(f"Database error during {step}: {exc}", details)
