"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes, the booking/routing error taxonomy and
global exception handlers.
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 500,
        details: Dict[str, Any] = None,
        reason: str = "error"
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        self.reason = reason
        super().__init__(message)


class ValidationError(AppException):
    """Raised for missing or malformed booking input."""

    def __init__(self, message: str, reason: str = "invalid_request", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
            reason=reason
        )


class CapacityError(AppException):
    """Raised when a slot cannot take another booking (full or blocked)."""

    def __init__(self, message: str = "Time slot is fully booked", reason: str = "full"):
        super().__init__(
            message=message,
            error_code="ERR_CAPACITY_001",
            status_code=status.HTTP_409_CONFLICT,
            reason=reason
        )


class TimingError(AppException):
    """Raised for past slots, same-day cutoff and cancellation-window violations."""

    def __init__(self, message: str, reason: str):
        super().__init__(
            message=message,
            error_code="ERR_TIMING_001",
            status_code=status.HTTP_409_CONFLICT,
            reason=reason
        )


class EligibilityError(AppException):
    """Raised when distance or profit thresholds are not met."""

    def __init__(self, message: str, reason: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_ELIGIBILITY_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            reason=reason
        )


class ExternalServiceError(AppException):
    """Raised by the mapping provider client. Absorbed by the fallback chains."""

    def __init__(self, message: str, provider: str = "mapping", status: int = None):
        super().__init__(
            message=message,
            error_code="ERR_EXTERNAL_001",
            status_code=502,
            details={"provider": provider, "upstream_status": status},
            reason="provider_error"
        )


class ReferrerRestrictedError(ExternalServiceError):
    """Provider rejected the API key because of referrer/client restrictions."""

    def __init__(self, message: str = "Mapping API key is referrer-restricted", status: int = 403):
        super().__init__(message=message, status=status)
        self.reason = "referrer_restricted"


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id},
            reason="not_found"
        )


class InvalidTransitionError(ValidationError):
    """Raised when a status change is not a permitted forward transition."""

    def __init__(self, entity: str, from_state: Any, to_state: Any):
        from_value = getattr(from_state, "value", from_state)
        to_value = getattr(to_state, "value", to_state)
        super().__init__(
            message=f"Cannot move {entity} from {from_value} to {to_value}",
            reason="invalid_transition",
            details={"from": from_value, "to": to_value}
        )
        self.status_code = status.HTTP_409_CONFLICT


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "reason": exc.reason,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_encoder(exc.errors())
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s", type(exc).__name__)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
