"""
Error Handling Module for GroupLedger

This module provides centralized error handling with:
- Custom exception hierarchy for the consolidation engine
- Standardized error responses
- Error logging
- Database error mapping
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    DataError,
)
from starlette.exceptions import HTTPException as StarletteHTTPException

# Configure logging
logger = logging.getLogger("groupledger.errors")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    # Authorization Errors (401/403)
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    SCOPE_DENIED = "SCOPE_DENIED"

    # Resource Errors (404/409)
    NOT_FOUND = "NOT_FOUND"
    RUN_NOT_FOUND = "RUN_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    RUN_LOCKED = "RUN_LOCKED"
    INVALID_RUN_STATE = "INVALID_RUN_STATE"

    # Consolidation rules (422)
    FX_RATE_NOT_FOUND = "FX_RATE_NOT_FOUND"
    UNBALANCED_ENTRY = "UNBALANCED_ENTRY"
    NOT_ONE_SIDED = "NOT_ONE_SIDED"
    EMPTY_ENTRY = "EMPTY_ENTRY"

    # Execution / Database Errors (500)
    EXECUTION_FAILED = "EXECUTION_FAILED"
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

    # Internal Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """Base exception for all application exceptions"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        result = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationException(AppException):
    """Caller supplied malformed or inconsistent input"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        status_code: int = status.HTTP_422_UNPROCESSABLE_ENTITY,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status_code,
            details=details,
            field=field,
        )


# ============================================================================
# Authorization Exceptions
# ============================================================================

class AuthenticationException(AppException):
    """Caller identity could not be established"""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            code=ErrorCode.UNAUTHORIZED,
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


class AuthorizationException(AppException):
    """Authorization denied exception"""

    def __init__(
        self,
        message: str = "Permission denied",
        required_permission: Optional[str] = None,
        code: ErrorCode = ErrorCode.FORBIDDEN,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if required_permission:
            _details["required_permission"] = required_permission
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=_details,
        )


class InsufficientPermissionsException(AuthorizationException):
    """Insufficient permissions"""

    def __init__(self, required_permission: str):
        super().__init__(
            message=f"Insufficient permissions. Required: {required_permission}",
            required_permission=required_permission,
            code=ErrorCode.INSUFFICIENT_PERMISSIONS,
        )


class ScopeAccessDeniedException(AuthorizationException):
    """Actor is not granted the scope that owns the resource"""

    def __init__(self, scope_type: str, scope_id: Union[str, UUID], field: Optional[str] = None):
        super().__init__(
            message=f"Access denied to {scope_type} scope '{scope_id}'",
            code=ErrorCode.SCOPE_DENIED,
            details={"scope_type": scope_type, "scope_id": str(scope_id), "field": field},
        )


# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """Resource not found exception"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id else None},
        )


class RunNotFoundException(NotFoundException):
    """Consolidation run not found for the tenant"""

    def __init__(self, run_id: Union[str, UUID]):
        super().__init__(
            resource_type="Consolidation run",
            resource_id=run_id,
            code=ErrorCode.RUN_NOT_FOUND,
        )


class RunLockedException(ValidationException):
    """A write was attempted against a LOCKED run"""

    def __init__(self, run_id: Union[str, UUID]):
        super().__init__(
            message="Consolidation run is LOCKED; no further posting is allowed",
            code=ErrorCode.RUN_LOCKED,
            status_code=status.HTTP_409_CONFLICT,
            details={"run_id": str(run_id)},
        )


class InvalidRunStateException(ValidationException):
    """Run is not in a status that allows the requested transition"""

    def __init__(self, run_id: Union[str, UUID], current_status: str, expected: str):
        super().__init__(
            message=f"Consolidation run is {current_status}; expected {expected}",
            code=ErrorCode.INVALID_RUN_STATE,
            status_code=status.HTTP_409_CONFLICT,
            details={"run_id": str(run_id), "current_status": current_status, "expected": expected},
        )


# ============================================================================
# Consolidation Rule Exceptions
# ============================================================================

class BusinessRuleException(AppException):
    """Business rule violation exception"""

    def __init__(
        self,
        message: str,
        rule: Optional[str] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if rule:
            _details["violated_rule"] = rule
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=_details,
        )


class RateNotFoundException(BusinessRuleException):
    """No FX rate exists for the pair on or before the target date"""

    def __init__(self, from_currency: str, to_currency: str, rate_date: Any):
        super().__init__(
            message=f"FX rate not found for {from_currency}->{to_currency} on or before {rate_date}",
            rule="FX_RATE_REQUIRED",
            code=ErrorCode.FX_RATE_NOT_FOUND,
            details={
                "from_currency_code": from_currency,
                "to_currency_code": to_currency,
                "rate_date": str(rate_date),
            },
        )


class UnbalancedEntryException(BusinessRuleException):
    """Elimination debits and credits differ by more than the tolerance"""

    def __init__(self, debit_total: float, credit_total: float):
        super().__init__(
            message="Elimination entry is not balanced and cannot be posted",
            rule="DEBITS_EQUAL_CREDITS",
            code=ErrorCode.UNBALANCED_ENTRY,
            details={"debit_total": debit_total, "credit_total": credit_total},
        )


class NotOneSidedException(BusinessRuleException):
    """Adjustment carries both a debit and a credit, or neither"""

    def __init__(self, debit_amount: float, credit_amount: float):
        super().__init__(
            message="Adjustment must be one-sided and cannot be posted",
            rule="ONE_SIDED_ADJUSTMENT",
            code=ErrorCode.NOT_ONE_SIDED,
            details={"debit_amount": debit_amount, "credit_amount": credit_amount},
        )


class EmptyEntryException(BusinessRuleException):
    """Elimination entry has no lines"""

    def __init__(self, message: str = "Cannot post elimination entry with no lines"):
        super().__init__(
            message=message,
            rule="LINES_REQUIRED",
            code=ErrorCode.EMPTY_ENTRY,
        )


class ExecutionFailureException(AppException):
    """Unexpected failure while executing a consolidation run"""

    def __init__(self, run_id: Union[str, UUID], message: str, original_error: Optional[Exception] = None):
        super().__init__(
            code=ErrorCode.EXECUTION_FAILED,
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"run_id": str(run_id)},
            original_error=original_error,
        )


# ============================================================================
# Exception Handlers
# ============================================================================

def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
) -> JSONResponse:
    """Create a standardized error response"""
    content = {
        "detail": {
            "code": code.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    }
    if field:
        content["detail"]["field"] = field
    if details:
        content["detail"]["details"] = details

    return JSONResponse(status_code=status_code, content=content)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle AppException"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"AppException: {exc.code.value} - {exc.message}",
        extra={
            "code": exc.code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
        exc_info=exc.original_error,
    )

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        field=exc.field,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException"""
    code_map = {
        400: ErrorCode.INVALID_INPUT,
        401: ErrorCode.UNAUTHORIZED,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        500: ErrorCode.INTERNAL_ERROR,
    }

    error_code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    logger.warning(
        f"HTTPException: {exc.status_code} - {message}",
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=error_code,
        message=message,
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors"""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        f"ValidationError: {len(errors)} validation errors",
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy errors"""
    error_message = "A database error occurred"
    error_code = ErrorCode.DATABASE_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(exc, IntegrityError):
        error_message = "Data integrity constraint violated"
        error_code = ErrorCode.DATA_INTEGRITY_ERROR
        error_str = str(exc.orig).lower() if exc.orig else ""
        if "unique" in error_str or "duplicate" in error_str:
            error_message = "A record with this value already exists"
            error_code = ErrorCode.DUPLICATE_ENTRY
            status_code = status.HTTP_409_CONFLICT
        elif "foreign key" in error_str:
            error_message = "Referenced record does not exist"
            status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, OperationalError):
        error_message = "Database operation failed"
        error_code = ErrorCode.CONNECTION_ERROR
    elif isinstance(exc, DataError):
        error_message = "Invalid data format for database"
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    logger.error(
        f"SQLAlchemyError: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=error_code,
        message=error_message,
        status_code=status_code,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions"""
    logger.critical(
        f"UnhandledException: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
