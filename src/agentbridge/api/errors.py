"""Error handlers for API."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from agentbridge.core.exceptions import (
    BackendError,
    BackendUnavailableError,
    BridgeError,
    MessageNotFoundError,
    TaskBusyError,
    TaskNotFoundError,
    TaskTimeoutError,
    TransportError,
)

logger = logging.getLogger(__name__)

# Most specific class wins; lookup walks the exception's MRO
EXCEPTION_STATUS_MAP: dict[type[BridgeError], int] = {
    TaskBusyError: 409,
    TaskNotFoundError: 404,
    MessageNotFoundError: 404,
    TaskTimeoutError: 504,
    BackendUnavailableError: 503,
    BackendError: 502,
    TransportError: 502,
}


def status_for(exc: BridgeError) -> int:
    for cls in type(exc).__mro__:
        if cls in EXCEPTION_STATUS_MAP:
            return EXCEPTION_STATUS_MAP[cls]
    return 500


def make_error_response(
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    status_code: int = 500,
) -> JSONResponse:
    """Create the error envelope shared by every endpoint."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    return JSONResponse(
        status_code=status_code,
        headers={"x-request-id": request_id},
        content={
            "success": False,
            "data": None,
            "error": {
                "code": code,
                "message": message,
                "details": details or {},
            },
            "meta": {
                "request_id": request_id,
                "path": request.url.path,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        },
    )


async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
    status_code = status_for(exc)
    logger.warning(f"{request.method} {request.url.path}: {exc.code} - {exc.message}")
    return make_error_response(request, exc.code, exc.message, exc.details, status_code)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed requests in the standard envelope."""
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in exc.errors()
    ]
    return make_error_response(
        request,
        code="INVALID_REQUEST",
        message="Request validation failed",
        details={"errors": errors},
        status_code=422,
    )


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path}: invalid request - {exc}")
    return make_error_response(request, "INVALID_REQUEST", str(exc), status_code=400)


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return make_error_response(
        request,
        code="INTERNAL_ERROR",
        message="An unexpected error occurred",
        status_code=500,
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register all error handlers with the app."""
    app.add_exception_handler(BridgeError, bridge_error_handler)  # type: ignore
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore
    app.add_exception_handler(ValueError, value_error_handler)  # type: ignore
    app.add_exception_handler(Exception, generic_error_handler)
