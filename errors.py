"""
Error taxonomy for the storefront API.

Every error carries the HTTP status it maps to; handlers registered by
``install_error_handlers`` render them as ``{"error": message}``.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(StorefrontError):
    status_code = 400
    default_message = "Invalid request"


class Unauthorized(StorefrontError):
    status_code = 401
    default_message = "Missing admin token"


class InvalidCredentials(StorefrontError):
    status_code = 401
    default_message = "Invalid credentials"


class Forbidden(StorefrontError):
    status_code = 403
    default_message = "Invalid admin token"


class NotFound(StorefrontError):
    status_code = 404
    default_message = "Not found"


class MethodNotAllowed(StorefrontError):
    status_code = 405
    default_message = "Method not allowed"


class RateLimited(StorefrontError):
    status_code = 429
    default_message = "Too many requests, please try again later."


class UpstreamPaymentError(StorefrontError):
    status_code = 500
    default_message = "Payment provider error"


class ServerMisconfigured(StorefrontError):
    status_code = 500
    default_message = "Server misconfigured"


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    err = errors[0]
    loc = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "path", "query"))
    msg = err.get("msg", "Invalid value")
    return f"{loc}: {msg}" if loc else msg


def install_error_handlers(app: FastAPI, expose_details: bool = True) -> None:
    @app.exception_handler(StorefrontError)
    async def storefront_error_handler(request: Request, exc: StorefrontError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _first_validation_message(exc)})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = "Route not found"
        elif exc.status_code == 405:
            message = MethodNotAllowed.default_message
        else:
            message = str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        message = str(exc) if expose_details else "Internal server error"
        return JSONResponse(status_code=500, content={"error": message or "Internal server error"})
