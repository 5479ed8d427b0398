"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain-specific exception classes
    • Consistent JSON error response format
    • Automatic logging of unhandled errors
    • Request id in every error body, request line outside production
    • Schema errors from FastAPI wrapped in the same envelope

Only pre-dispatch failures are modelled as exceptions. Per-channel delivery
failures are recorded on DeliveryAttempt objects and never raised.

Usage:
    from backend.app.core.errors import (
        AlertServiceError,
        ValidationError,
        ContactsStoreError,
        register_error_handlers,
    )

    raise ValidationError("transcript must not be empty", field="transcript")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.app.core.config import settings
from backend.app.core.logging_config import get_request_context

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class AlertServiceError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class ValidationError(AlertServiceError):
    """Input validation failed (422)."""

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        d = {**details}
        if field:
            d["field"] = field
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details=d,
        )


class ContactsStoreError(AlertServiceError):
    """Emergency contacts could not be read (502)."""

    def __init__(self, message: str = "", *, caller_id: Optional[str] = None, **details: Any):
        d = {**details}
        if caller_id:
            d["caller_id"] = caller_id
        super().__init__(
            message=f"Contacts store failed: {message}",
            status_code=502,
            error_code="CONTACTS_STORE_ERROR",
            details=d,
        )


class AuthorizationError(AlertServiceError):
    """Actor lacks the role required for the operation (403)."""

    def __init__(self, message: str = "Forbidden", *, actor_id: Optional[str] = None):
        super().__init__(
            message=message,
            status_code=403,
            error_code="FORBIDDEN",
            details={"actor_id": actor_id} if actor_id else None,
        )


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """
    Build the error body shared by every handler:

        {"error": {"code", "message", "status", "details"?, "request_id"?,
                   "path"?, "method"?}}
    """
    error: Dict[str, Any] = {
        "code": error_code,
        "message": message,
        "status": status_code,
    }
    if details:
        error["details"] = details

    request_id = get_request_context().get("request_id")
    if request_id:
        error["request_id"] = request_id

    # Request line only outside production
    if request is not None and not settings.is_production:
        error["path"] = request.url.path
        error["method"] = request.method

    return JSONResponse(status_code=status_code, content={"error": error})


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(AlertServiceError)
    async def handle_service_error(request: Request, exc: AlertServiceError):
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log(
            level, "%s %s → %s: %s | details=%s",
            request.method, request.url.path, exc.error_code, exc.message, exc.details,
        )
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message, exc.details, request,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        # Body did not match the schema (e.g. unknown role); same envelope as ours.
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        logger.warning("Rejected request body on %s: %s", request.url.path, errors)
        return _build_error_response(
            422, "VALIDATION_ERROR", "Request body is invalid",
            {"errors": errors}, request,
        )

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        logger.warning("ValueError on %s: %s", request.url.path, exc)
        return _build_error_response(
            422, "VALIDATION_ERROR", str(exc), request=request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception on %s %s: %s\n%s",
            request.method, request.url.path, exc, traceback.format_exc(),
        )
        message = str(exc) if settings.DEBUG else "Internal server error"
        details = (
            {"traceback": traceback.format_exc().split("\n")}
            if settings.DEBUG else None
        )
        return _build_error_response(
            500, "INTERNAL_ERROR", message, details, request,
        )
