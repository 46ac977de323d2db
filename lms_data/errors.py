"""Application errors and the handler that normalises everything into them."""

import logging
from datetime import UTC, datetime
from typing import Any

from lms_data.clients.resilience import APIError

logger = logging.getLogger(__name__)

_SENSITIVE_KEYS = ("authorization", "cookie", "x-api-key", "token", "password", "secret")
REDACTED = "[REDACTED]"


class AppError(Exception):
    """Error surfaced to callers of the data layer.

    Args:
        message: Human-readable description.
        status_code: HTTP status, or a synthetic 500 for unexpected failures.
        is_operational: False for programming errors rather than expected
            runtime conditions.
        context: Extra details, redacted before it is stored.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        is_operational: bool = True,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.is_operational = is_operational
        self.context = redact_context(context or {})

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, status_code={self.status_code})"


class ValidationError(AppError):
    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message, 400, True, context)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized", context: dict[str, Any] | None = None) -> None:
        super().__init__(message, 401, True, context)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Forbidden", context: dict[str, Any] | None = None) -> None:
        super().__init__(message, 403, True, context)


class NotFoundAppError(AppError):
    def __init__(self, resource: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(f"{resource} not found", 404, True, context)


class ConflictError(AppError):
    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message, 409, True, context)


class CacheError(Exception):
    """A cache backend failed to read or write. Callers treat it as a miss."""


def redact_context(context: dict[str, Any]) -> dict[str, Any]:
    """Copy *context* with secret-looking keys masked, recursing into dicts."""
    redacted: dict[str, Any] = {}
    for key, value in context.items():
        if any(marker in str(key).lower() for marker in _SENSITIVE_KEYS):
            redacted[key] = REDACTED
        elif isinstance(value, dict):
            redacted[key] = redact_context(value)
        else:
            redacted[key] = value
    return redacted


class ErrorHandler:
    """Turn any exception into an :class:`AppError` and log it once.

    Args:
        log_errors: Set False to skip logging (e.g. when the caller logs).
    """

    def __init__(self, log_errors: bool = True) -> None:
        self.log_errors = log_errors

    def handle(self, error: BaseException, context: dict[str, Any] | None = None) -> AppError:
        context = context or {}
        if isinstance(error, AppError):
            app_error = error
        elif isinstance(error, APIError):
            app_error = AppError(
                str(error),
                error.status_code or 500,
                True,
                {
                    **context,
                    "request_id": error.request_id,
                    "error_type": type(error).__name__,
                },
            )
        else:
            app_error = AppError(
                str(error) or "An unexpected error occurred",
                500,
                False,
                {**context, "original_error": type(error).__name__},
            )

        if self.log_errors:
            self._log(app_error, context)
        return app_error

    def from_http_status(self, status: int, status_text: str = "") -> AppError:
        message = f"HTTP {status}"
        if status_text:
            message = f"{message}: {status_text}"
        return AppError(message, status, status < 500)

    @staticmethod
    def to_response(error: AppError) -> dict[str, Any]:
        return {
            "error": {
                "message": error.message,
                "statusCode": error.status_code,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        }

    @staticmethod
    def is_operational(error: BaseException) -> bool:
        return isinstance(error, AppError) and error.is_operational

    @staticmethod
    def _log(error: AppError, context: dict[str, Any]) -> None:
        details = {
            "status_code": error.status_code,
            "is_operational": error.is_operational,
            **error.context,
            **redact_context(context),
        }
        if error.status_code >= 500:
            logger.error("%s %s", error.message, details)
        elif error.status_code >= 400:
            logger.warning("%s %s", error.message, details)
        else:
            logger.info("%s %s", error.message, details)
