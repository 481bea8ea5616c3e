"""
Domain exceptions and FastAPI exception handlers
Standardized error response format: { code, message, details?, request_id }
"""
import logging
from typing import Optional, Dict, Any, Iterable

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .logging_config import get_request_id

logger = logging.getLogger(__name__)


class ListingWizardError(Exception):
    """Base exception for wizard errors"""

    code = "WIZARD_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> Optional[Dict[str, Any]]:
        return None


class ValidationError(ListingWizardError):
    """Required field missing or invalid for the current step"""

    code = "VALIDATION_ERROR"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str, field: Optional[str] = None, step: Optional[str] = None):
        super().__init__(message)
        self.field = field
        self.step = step

    def details(self) -> Optional[Dict[str, Any]]:
        details = {}
        if self.field:
            details["field"] = self.field
        if self.step:
            details["step"] = self.step
        return details or None


class RemoteError(ListingWizardError):
    """Call to the AI or browser rendering service failed or timed out"""

    code = "REMOTE_ERROR"
    status_code = status.HTTP_502_BAD_GATEWAY


class LimitReached(ListingWizardError):
    """Monthly usage ceiling of the user's plan has been hit"""

    code = "PLAN_LIMIT_EXCEEDED"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, resource_type: str, used: int, limit: int, plan: str):
        super().__init__(
            f"You have reached your {resource_type} limit ({limit} per month) on the {plan} plan."
        )
        self.resource_type = resource_type
        self.used = used
        self.limit = limit
        self.plan = plan

    def details(self) -> Optional[Dict[str, Any]]:
        return {
            "resource_type": self.resource_type,
            "used": self.used,
            "limit": self.limit,
            "plan": self.plan,
        }


class NotFound(ListingWizardError):
    """Record does not exist in the store"""

    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, key: str):
        super().__init__(f"Record not found: {key}")
        self.key = key


class WizardStateError(ListingWizardError):
    """Illegal wizard transition (wrong step, call in flight, already done)"""

    code = "WIZARD_STATE_ERROR"
    status_code = status.HTTP_409_CONFLICT


class ErrorResponse:
    """
    Standard error response format

    Schema: { code, message, status_code, details?, request_id }
    """

    @staticmethod
    def create(
        message: str,
        code: str,
        status_code: int,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> dict:
        """
        Create standardized error response

        Args:
            message: Human-readable error message
            code: Error code (e.g., "VALIDATION_ERROR", "PLAN_LIMIT_EXCEEDED")
            status_code: HTTP status code
            request_id: Request ID from context (auto-fetched if None)
            details: Optional additional error details

        Returns:
            Dictionary with error details
        """
        if request_id is None:
            request_id = get_request_id()

        response = {
            "code": code,
            "message": message,
            "status_code": status_code,
        }
        if request_id:
            response["request_id"] = request_id
        if details:
            response["details"] = details
        return response


async def wizard_exception_handler(request: Request, exc: ListingWizardError) -> JSONResponse:
    """Handle domain exceptions with request ID"""
    logger.warning(
        f"{exc.code} on {request.url.path}: {exc.message}",
        extra={"path": request.url.path}
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse.create(
            message=exc.message,
            code=exc.code,
            status_code=exc.status_code,
            details=exc.details()
        )
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions in the proxy's { success, error } shape"""
    logger.error(
        f"Unhandled exception: {exc}",
        exc_info=True,
        extra={"path": request.url.path}
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": str(exc)}
    )


def describe_validation_errors(exc: RequestValidationError) -> str:
    """One-line summary of request validation errors, e.g. 'prompt: Field required'"""
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = error.get("msg", "Invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid request"


def make_request_validation_handler(envelope_paths: Iterable[str] = ()):
    """
    Handler for malformed request bodies and parameters

    Paths in envelope_paths answer in the proxy's { success, error } shape with
    a 500, like every other proxy failure; all other paths get the standard
    error response with 422.
    """
    envelope_paths = frozenset(envelope_paths)

    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        message = f"Invalid request: {describe_validation_errors(exc)}"
        logger.warning(f"{message} on {request.url.path}", extra={"path": request.url.path})
        if request.url.path in envelope_paths:
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"success": False, "error": message}
            )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=ErrorResponse.create(
                message=message,
                code=ValidationError.code,
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY
            )
        )

    return request_validation_handler


def register_exception_handlers(app: FastAPI, envelope_paths: Iterable[str] = ()) -> None:
    """
    Attach the domain, request validation and fallback exception handlers to an app

    Args:
        app: Application to configure
        envelope_paths: Paths whose validation failures use the { success, error } shape
    """
    app.add_exception_handler(ListingWizardError, wizard_exception_handler)
    app.add_exception_handler(RequestValidationError, make_request_validation_handler(envelope_paths))
    app.add_exception_handler(Exception, general_exception_handler)
