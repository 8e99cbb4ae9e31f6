"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. The global exception handler
converts AppError subclasses to consistent JSON responses.

Non-AppError exceptions are logged with full detail and surface as a generic
500 body (with Sentry reporting in production).
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.logging import get_logger

log = get_logger(__name__)


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details
        if code is not None:
            self.error_code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        payload: dict = {"error": self.message, "code": self.error_code}
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        return payload

    def headers(self) -> Optional[dict[str, str]]:
        return None


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"


class UnauthorizedError(AppError):
    status_code = 401
    error_code = "unauthorized"


class ForbiddenError(AppError):
    status_code = 403
    error_code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class ConflictError(AppError):
    status_code = 409
    error_code = "conflict"


class RateLimitedError(AppError):
    """Raised when a cooldown or throttle window is still open.

    ``retry_after`` is the whole number of seconds the caller has to wait.
    """

    status_code = 429
    error_code = "rate_limited"

    def __init__(self, message: str, *, retry_after: int, **kwargs: Any) -> None:
        details = {"retry_after": retry_after}
        super().__init__(message, details=details, **kwargs)
        self.retry_after = retry_after

    def headers(self) -> Optional[dict[str, str]]:
        return {"Retry-After": str(self.retry_after)}


class InvalidOrExpiredError(AppError):
    """A one-time code or signed token was rejected.

    Defaults to 400; raise sites that reject a presented credential pass
    ``status_code=401``.
    """

    status_code = 400
    error_code = "invalid_or_expired"


class DeliveryError(AppError):
    """Notification failed after the state change was already committed."""

    status_code = 502
    error_code = "delivery_failed"


class InternalError(AppError):
    status_code = 500
    error_code = "internal_error"


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers()
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        loc = [str(part) for part in first.get("loc", ()) if part != "body"]
        error = ValidationError(
            first.get("msg", "Invalid request"),
            field=".".join(loc) or None,
        )
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        # Sentry integration: if sentry_sdk is initialized it will auto-capture
        # unhandled exceptions before this handler fires.
        log.exception(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )
        error = InternalError("An internal server error occurred.")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())
