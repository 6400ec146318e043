import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("tasktrack.api.errors")


class ServiceError(Exception):
    """Base class for errors that map onto an HTTP status and a client-safe message."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(ServiceError):
    """Missing or malformed input, or an illegal transition precondition."""
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthorized(ServiceError):
    """Missing or invalid credential."""
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(ServiceError):
    """Authenticated, but not the owner of the resource."""
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(ServiceError):
    """A retryable write conflict (task code allocation exhausted its retries)."""
    status_code = status.HTTP_409_CONFLICT


# --- Response envelope ---

def envelope(
    status_code: int,
    success: bool,
    message: str | None = None,
    data: dict | None = None,
    headers: dict | None = None,
) -> JSONResponse:
    """
    Builds the uniform { success, message?, data? } response body.
    Keys without a value are left out entirely.
    """
    content: dict = {"success": success}
    if message is not None:
        content["message"] = message
    if data is not None:
        content["data"] = data
    return JSONResponse(status_code=status_code, content=content, headers=headers)


# --- Handlers ---

async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return envelope(exc.status_code, success=False, message=exc.message, headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    FastAPI reports schema failures as 422; the API contract uses 400.
    The first field error becomes the message.
    """
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return envelope(status.HTTP_400_BAD_REQUEST, success=False, message=message)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Router-level failures (unknown path, wrong method)."""
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        message = "Not found"
    elif exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        message = "Method not allowed"
    else:
        message = str(exc.detail)
    return envelope(exc.status_code, success=False, message=message)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Detail stays in the server log; the client only sees a generic message.
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return envelope(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        success=False,
        message="Internal server error",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
