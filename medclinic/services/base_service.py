"""
Base Service Class.

Shared plumbing for every service: the injected logger, a uniform way to
log a failed backend call before re-raising it, and the conversion of a
failed field check into a validation ``ApiError``.
"""

from __future__ import annotations

from medclinic.errors import ApiError
from medclinic.logger import StructuredLogger
from medclinic.models.service_models import ValidationResult


class BaseService:
    """Base class for all service classes. Provides a logger."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger

    def _log_failure(self, action: str, exc: ApiError) -> None:
        """Log *exc* for *action*; cancellations are expected and stay at debug."""
        if exc.is_cancelled:
            self._logger.debug("%s cancelled.", action)
            return
        self._logger.error(
            "%s failed: %s",
            action,
            exc.message,
            extra={"kind": exc.kind.value, "http_status": exc.http_status},
        )

    @staticmethod
    def _ensure_valid(result: ValidationResult, payload: object = None) -> None:
        """Raise a validation ``ApiError`` when *result* is not valid."""
        if not result.is_valid:
            raise ApiError.validation(result.error_message or "Invalid data.", payload)
