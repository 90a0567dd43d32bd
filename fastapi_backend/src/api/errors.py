"""
Global exception filter.

Every error leaves the service in one shape:
`{"statusCode", "message", "error", "timestamp", "path"}`.
"""

import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, List, Union

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _reason(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def error_body(request: Request, status_code: int, message: Union[str, List[str], Any]) -> dict:
    return {
        "statusCode": status_code,
        "message": message,
        "error": _reason(status_code),
        "timestamp": utc_timestamp(),
        "path": request.url.path,
    }


def _validation_messages(exc: RequestValidationError) -> List[str]:
    messages = []
    for err in exc.errors():
        # Drop the leading "body"/"query" segment from the location.
        loc = [str(part) for part in err.get("loc", ())[1:]]
        field = ".".join(loc) or "body"
        if err.get("type") == "extra_forbidden":
            messages.append(f"property {field} should not exist")
        else:
            messages.append(f"{field}: {err.get('msg')}")
    return messages


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Map HTTPException (FastAPI's or Starlette's) to the common error shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.status_code, exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Reject malformed or over-specified input with 400."""
    messages = _validation_messages(exc)
    logger.debug("Validation failed on %s: %s", request.url.path, messages)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(request, status.HTTP_400_BAD_REQUEST, messages),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log the traceback, answer 500 without leaking details."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"),
    )


# PUBLIC_INTERFACE
def install_exception_handlers(app: FastAPI) -> None:
    """Register the global exception filter on the app."""
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
