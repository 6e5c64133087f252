"""
Mapping of service errors to JSON error responses.

Every error body is {"error": "<message>"}; internals never leak.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from common.exceptions import QAHubError

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def handle_service_error(request: Request, exc: QAHubError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            f"{request.method} {request.url.path} failed: {exc.message}"
        )
    return error_response(exc.status_code, exc.message)


async def handle_request_validation_error(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    logger.debug(f"Invalid request body for {request.url.path}: {exc.errors()}")
    return error_response(400, "Invalid request body")


async def handle_http_exception(
    request: Request,
    exc: StarletteHTTPException
) -> JSONResponse:
    if exc.status_code == 404:
        return error_response(404, "Route not found")
    return error_response(exc.status_code, str(exc.detail))


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(500, "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    """Install the error handlers on app."""
    app.add_exception_handler(QAHubError, handle_service_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unexpected_error)
