"""
Error handling for the web app.

Maps the marketplace exception hierarchy onto HTTP status codes and renders
``MarketplaceError.to_dict()`` as the response body.

Usage:
    app = FastAPI()
    setup_error_handlers(app)
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..exceptions import (
    Forbidden,
    InvalidState,
    MarketplaceError,
    NotFound,
    SignatureInvalid,
    UpstreamUnavailable,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_CODES = [
    (ValidationError, 400),
    (SignatureInvalid, 400),
    (Forbidden, 403),
    (NotFound, 404),
    (InvalidState, 409),
    (UpstreamUnavailable, 502),
]


def status_code_for(exc: MarketplaceError) -> int:
    for exc_type, status_code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500


async def handle_marketplace_error(request: Request, exc: MarketplaceError) -> JSONResponse:
    status_code = status_code_for(exc)

    log_level = logging.WARNING if status_code < 500 else logging.ERROR
    logger.log(log_level, f"[{exc.code}] {request.method} {request.url.path}: {exc.message}")

    return JSONResponse(status_code=status_code, content=exc.to_dict())


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled exception in {request.url.path}: {type(exc).__name__}: {exc}",
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
        },
    )


def setup_error_handlers(app: FastAPI):
    app.add_exception_handler(MarketplaceError, handle_marketplace_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
