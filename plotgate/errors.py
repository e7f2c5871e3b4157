"""
Error taxonomy for the portal core.

Services raise these; ``register_exception_handlers`` maps them onto HTTP
responses with an ``{"error": ...}`` body.
"""
from typing import List, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


logger = structlog.get_logger(__name__)


class PortalError(Exception):
    status_code = 500
    retryable = False
    body_key = "error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(PortalError):
    """Missing or malformed input. Never retried."""
    status_code = 400


class NotFoundError(PortalError):
    status_code = 404


class BusinessRuleError(PortalError):
    """A rule rejected the request. The message does not say which check failed."""
    status_code = 400


class BackendUnavailableError(PortalError):
    """The document store or identity provider reported a service-level fault."""
    status_code = 503
    retryable = True

    def __init__(self, message: str = "Backend service unavailable. Please try again later.", status_code: Optional[int] = None):
        super().__init__(message, status_code)


class PartiallyAppliedError(PortalError):
    """A multi-step write stopped midway; ``applied`` lists the steps that landed."""
    status_code = 500

    def __init__(self, message: str, applied: List[str], failed: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.applied = list(applied)
        self.failed = failed
        self.cause = cause


class MaintenanceModeError(PortalError):
    status_code = 503
    body_key = "message"

    def __init__(self):
        super().__init__("This API is currently in maintenance mode.")


def _portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    body = {exc.body_key: exc.message}
    if isinstance(exc, PartiallyAppliedError):
        body["applied"] = exc.applied
        body["failed"] = exc.failed
    if exc.status_code >= 500 and not isinstance(exc, MaintenanceModeError):
        logger.error("request_failed", path=request.url.path, error=exc.message, kind=type(exc).__name__)
    return JSONResponse(status_code=exc.status_code, content=body)


def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Missing required fields", "details": jsonable_encoder(exc.errors())},
    )


def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=getattr(exc, "headers", None))


def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PortalError, _portal_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
