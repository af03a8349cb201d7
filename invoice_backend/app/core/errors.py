"""Typed API errors.

Every error carries a stable ``code`` and an HTTP status. Routers and services
raise these; ``register_exception_handlers`` renders them as
``{"error": <message>, "code": <code>, ...extra}``.
"""

from typing import Any, Dict, Iterable, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

LOGGER = structlog.get_logger(__name__)


class InvoiceAPIError(Exception):
    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal error"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.message
        self.extra: Dict[str, Any] = extra
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, **self.extra}


class ValidationFailed(InvoiceAPIError):
    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request"


class CommentRequired(ValidationFailed):
    code = "COMMENT_REQUIRED"
    message = "Comment is required for rejection"


class PartnerNotFound(ValidationFailed):
    code = "PARTNER_NOT_FOUND"
    message = "Partner not found"


class NoFieldsToUpdate(ValidationFailed):
    code = "NO_FIELDS"
    message = "No valid fields to update"


class Unauthenticated(InvoiceAPIError):
    code = "UNAUTHENTICATED"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Not authenticated"


class AccessDenied(InvoiceAPIError):
    code = "ACCESS_DENIED"
    status_code = status.HTTP_403_FORBIDDEN
    message = "Insufficient privileges"

    def __init__(self, required: Iterable[str], current: str):
        super().__init__(required=sorted(required), current=current)


class NotFound(InvoiceAPIError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Invoice not found"


class InvalidStatus(InvoiceAPIError):
    code = "INVALID_STATUS"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid status for this operation"

    def __init__(self, current_status: str, message: Optional[str] = None):
        super().__init__(message, current_status=current_status)
        self.current_status = current_status


class UpstreamFailure(InvoiceAPIError):
    code = "UPSTREAM_FAILURE"
    message = "Upstream service failed"


class PdfGenerationFailed(UpstreamFailure):
    code = "PDF_ERROR"
    message = "Failed to generate invoice PDF"


async def _handle_api_error(request: Request, exc: InvoiceAPIError) -> JSONResponse:
    if exc.status_code >= 500:
        LOGGER.error("request_failed", code=exc.code, error=exc.message, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"), "message": err.get("msg")}
        for err in exc.errors()
    ]
    error = ValidationFailed("Invalid request", details=details)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def _handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    LOGGER.error("database_error", error=str(exc), path=request.url.path)
    error = UpstreamFailure("Data store operation failed")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(InvoiceAPIError, _handle_api_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(SQLAlchemyError, _handle_database_error)
