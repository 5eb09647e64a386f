from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.platform.config import settings
from app.platform.logger import get_logger
from app.platform.response import error_response

logger = get_logger("exceptions")

GENERIC_SERVER_ERROR = "Internal server error"


class AppError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class RateLimitError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after


class AuditFailed(AppError):
    """A mandatory probe failed or the audit ran out of time."""

    def __init__(self, reason: str):
        super().__init__(f"Audit failed: {reason}")
        self.reason = reason


class ProbeError(Exception):
    """Raised by a probe adapter when it cannot produce its fragment."""

    def __init__(self, probe: str, reason: str):
        super().__init__(f"{probe} probe failed: {reason}")
        self.probe = probe
        self.reason = reason


class DependencyFailure(Exception):
    """Cache or persistence backend unavailable. Logged, never surfaced."""


def _public_message(exc: AppError) -> str:
    if exc.status_code >= 500 and not settings.DEBUG:
        return GENERIC_SERVER_ERROR
    return exc.message


def add_exception_handlers(app: FastAPI):
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        headers = {}
        if isinstance(exc, RateLimitError):
            headers["Retry-After"] = str(exc.retry_after)
        return error_response(_public_message(exc), exc.status_code, headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(str(exc.detail) or "Error", exc.status_code, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = "Invalid request"
        if errors:
            message = str(errors[0].get("msg", message)).removeprefix("Value error, ")
        fields = [".".join(str(part) for part in err.get("loc", ())[1:]) for err in errors]
        return error_response(message, status.HTTP_400_BAD_REQUEST, fields=fields)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        message = str(exc) if settings.DEBUG else GENERIC_SERVER_ERROR
        return error_response(message, status.HTTP_500_INTERNAL_SERVER_ERROR)
