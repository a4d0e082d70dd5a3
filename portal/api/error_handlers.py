"""Error Handlers — global exception handlers for the portal API.

Invariants:
    - PortalError → structured JSON with error code, message, severity
    - RequestValidationError → 400 with field-level error details
    - Exception (catch-all) → 500; the exception text is included outside
      production only

Design Decisions:
    - Three-layer handler: domain (PortalError), validation (Pydantic), catch-all (Exception)
    - Extracted from main.py to keep the app module import fan-out small
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from portal.config import get_settings
from portal.core.errors import PortalError, ErrorSeverity

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_portal_error_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def _register_portal_error_handler(app: FastAPI) -> None:

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError):
        """Handle all portal domain/infrastructure errors."""
        log = logger.error if exc.http_status >= 500 else logger.warning
        log(
            f"PortalError: {exc.message}",
            extra={"error_code": exc.code, "path": request.url.path},
        )
        return JSONResponse(
            status_code=exc.http_status, content=exc.to_response(),
        )


def _register_validation_error_handler(app: FastAPI) -> None:

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError,
    ):
        logger.warning(
            f"Validation error on {request.url.path}: {exc.errors()}",
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_build_validation_error_response(exc),
        )


def _register_generic_error_handler(app: FastAPI) -> None:

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        """Catch-all — internal details only leave the process outside production."""
        logger.error(
            f"Unhandled exception on {request.url.path}: {exc}",
            exc_info=True,
            extra={"path": request.url.path},
        )
        error = {
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "category": "internal",
            "severity": ErrorSeverity.CRITICAL.value,
        }
        if not get_settings().is_production:
            error["message"] = str(exc) or error["message"]
            error["exception"] = type(exc).__name__
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": error},
        )


def _build_validation_error_response(exc: RequestValidationError) -> dict:
    """Build structured validation error response."""
    return {
        "error": {
            "code": "VALIDATION_ERROR",
            "message": "Invalid request data",
            "category": "validation",
            "severity": ErrorSeverity.ERROR.value,
            "details": [
                {
                    "field": ".".join(str(loc) for loc in e["loc"]),
                    "message": e["msg"],
                    "type": e["type"],
                }
                for e in exc.errors()
            ],
        },
    }
