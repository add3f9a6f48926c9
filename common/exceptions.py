"""
common.exceptions
~~~~~~~~~~~~~~~~~
Centralised DRF exception handler and custom exception classes.

Client errors (validation, permission, not-found, conflicts) are returned
with their detail.  Server-side failures (``DecryptionError``,
``StoreConnectionError``) carry an opaque detail only; the handler logs them
and never echoes ciphertext, key material or backend credentials.
"""
import structlog
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = structlog.get_logger(__name__)


class AppError(Exception):
    """Base application error.  Subclass to define domain-specific errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_code: str = "error"
    default_detail: str = "An error occurred."
    #: Server-side errors are logged at error level and rendered opaquely.
    is_internal: bool = False

    def __init__(self, detail: str | None = None, code: str | None = None) -> None:
        self.detail = detail or self.default_detail
        self.code = code or self.default_code
        super().__init__(self.detail)

    def __str__(self) -> str:
        return self.detail


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"
    default_detail = "The requested resource was not found."


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "conflict"
    default_detail = "A resource conflict occurred."


class ValidationError(AppError):
    """
    Raised when input or stored configuration violates a rule.

    ``errors`` holds the full list of structured violations so callers get
    every problem at once.
    """

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_code = "validation_error"
    default_detail = "Validation failed."

    def __init__(
        self,
        detail: str | None = None,
        code: str | None = None,
        errors: list[dict] | None = None,
    ) -> None:
        super().__init__(detail, code)
        self.errors: list[dict] = errors or []


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "authentication_failed"
    default_detail = "Invalid or expired access token."


class PermissionDeniedError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "permission_denied"
    default_detail = "You do not have permission to perform this action."


class CycleError(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "hierarchy_cycle"
    default_detail = "The parent change would create a cycle in the config set hierarchy."


class DecryptionError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "decryption_failed"
    default_detail = "A stored configuration value could not be decrypted."
    is_internal = True


class StoreConnectionError(AppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "store_unavailable"
    default_detail = "The configuration store is unavailable. Retry later."
    is_internal = True


def custom_exception_handler(exc: Exception, context: dict) -> Response | None:
    """
    Global DRF exception handler.
    Converts AppError subclasses to JSON responses and delegates everything
    else to the default DRF handler so standard DRF exceptions still work.
    """
    if isinstance(exc, AppError):
        if exc.is_internal:
            logger.error(
                "app_internal_error",
                code=exc.code,
                detail=exc.detail,
                status_code=exc.status_code,
                exc_info=exc,
            )
            return Response(
                {"code": exc.code, "detail": exc.default_detail},
                status=exc.status_code,
            )

        logger.warning(
            "app_error",
            code=exc.code,
            detail=exc.detail,
            status_code=exc.status_code,
        )
        payload = {"code": exc.code, "detail": exc.detail}
        if isinstance(exc, ValidationError) and exc.errors:
            payload["errors"] = exc.errors
        return Response(payload, status=exc.status_code)

    response = drf_exception_handler(exc, context)
    if response is not None:
        logger.warning(
            "drf_error",
            detail=response.data,
            status_code=response.status_code,
        )
    else:
        logger.exception("unhandled_exception", exc_info=exc)

    return response
