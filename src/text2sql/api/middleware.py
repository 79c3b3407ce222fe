"""
Middleware and exception handlers for the text-to-SQL FastAPI application.

This module contains:
- HTTP middleware for tracing and request logging
- Centralized exception handlers for the Text2SqlError hierarchy

Exception Handling Strategy:
- Every Text2SqlError subclass is converted to a JSON error body
  using the exception's http_status and error_code
- Pipeline failures of /query are NOT exceptions: the orchestrator
  returns success=false with HTTP 200
- Responses include trace_id for debugging

Usage in main.py:
    from .api.middleware import register_exception_handlers
    register_exception_handlers(app)
"""

import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..domain.errors import Text2SqlError
from ..domain.responses import ErrorResponse
from ..utils.logging import get_module_logger
from ..utils.tracing import current_trace_id, generate_trace_id, reset_trace_id, set_trace_id

logger = get_module_logger()

TRACE_HEADER = "X-Trace-ID"


# =============================================================================
# Middleware Functions
# =============================================================================


async def trace_id_middleware(request: Request, call_next: Callable) -> Response:
    """
    Set a trace ID for the request lifecycle.

    Uses the X-Trace-ID header when present, otherwise a new UUID, and
    echoes it on the response.
    """
    trace_id = request.headers.get(TRACE_HEADER) or generate_trace_id()
    token = set_trace_id(trace_id)
    try:
        response = await call_next(request)
    finally:
        reset_trace_id(token)

    response.headers[TRACE_HEADER] = trace_id
    return response


async def logging_middleware(request: Request, call_next: Callable) -> Response:
    """Log method, path, status and duration; adds X-Process-Time."""
    start_time = time.perf_counter()
    trace_id = current_trace_id()

    logger.info(
        "HTTP request started",
        method=request.method,
        path=request.url.path,
        client_ip=request.client.host if request.client else None,
        trace_id=trace_id,
    )

    response = await call_next(request)

    duration_ms = (time.perf_counter() - start_time) * 1000
    response.headers["X-Process-Time"] = str(round(duration_ms, 2))

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
        trace_id=trace_id,
    )
    return response


# =============================================================================
# Exception Handlers
# =============================================================================


def _create_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """
    Standardized JSON error body:
    {"error", "message", "details"?, "trace_id", "timestamp"}
    """
    error_response = ErrorResponse(
        error=error_code.lower(),
        message=message,
        details=details,
        trace_id=current_trace_id(),
        timestamp=datetime.now(timezone.utc),
    )
    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json", exclude_none=True),
    )


async def text2sql_exception_handler(request: Request, exc: Text2SqlError) -> JSONResponse:
    """Map any Text2SqlError to its http_status and error_code."""
    log_level = "warning" if exc.http_status < 500 else "error"
    getattr(logger, log_level)(
        f"{exc.__class__.__name__}: {exc.message}",
        error_code=exc.error_code,
        http_status=exc.http_status,
        details=exc.details,
        path=request.url.path,
        method=request.method,
        trace_id=current_trace_id(),
    )

    return _create_error_response(
        status_code=exc.http_status,
        error_code=exc.error_code,
        message=exc.message,
        details=exc.details or None,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body validation failures become 422 with field-level details."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    logger.warning(
        "Request validation failed",
        error_count=len(errors),
        errors=errors,
        path=request.url.path,
        method=request.method,
        trace_id=current_trace_id(),
    )

    return _create_error_response(
        status_code=422,
        error_code="VALIDATION_ERROR",
        message="Request validation failed",
        details={"errors": errors},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    error_code_map = {
        400: "BAD_REQUEST",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        500: "INTERNAL_ERROR",
        503: "SERVICE_UNAVAILABLE",
    }
    error_code = error_code_map.get(exc.status_code, "HTTP_ERROR")

    log_level = "warning" if exc.status_code < 500 else "error"
    getattr(logger, log_level)(
        f"HTTP {exc.status_code}: {exc.detail}",
        error_code=error_code,
        path=request.url.path,
        method=request.method,
        trace_id=current_trace_id(),
    )

    return _create_error_response(
        status_code=exc.status_code,
        error_code=error_code,
        message=str(exc.detail) if exc.detail else f"HTTP {exc.status_code} error",
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Fallback for unhandled exceptions.

    Logs the stack trace; the client gets a generic 500 with the trace_id.
    """
    logger.error(
        "Unhandled exception occurred",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        trace_id=current_trace_id(),
        exc_info=True,
    )

    return _create_error_response(
        status_code=500,
        error_code="INTERNAL_ERROR",
        message="An internal server error occurred. Please try again later.",
    )


# =============================================================================
# Registration
# =============================================================================


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI application.

    Priority (most specific first):
    1. Text2SqlError subclasses
    2. RequestValidationError (pydantic)
    3. StarletteHTTPException
    4. Exception (fallback)
    """
    app.add_exception_handler(Text2SqlError, text2sql_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, general_exception_handler)  # type: ignore[arg-type]

    logger.info("Exception handlers registered")


def register_middleware(app: FastAPI) -> None:
    """
    Register HTTP middleware.

    Starlette runs the last registered middleware first, so tracing is
    added last to wrap request logging.
    """
    app.middleware("http")(logging_middleware)
    app.middleware("http")(trace_id_middleware)
