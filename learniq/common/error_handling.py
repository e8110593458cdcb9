"""
Error Handling System for LearnIQ

This module provides the error framework shared by every service:
1. Exception hierarchy with stable error codes and HTTP statuses
2. Retry decorator with exponential backoff for transient failures
3. Structured error logging
4. Public error response generation (never includes stack traces)
"""

import time
import logging
import traceback
import asyncio
import random
import functools
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, TypeVar, Union, cast
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator

from learniq.common.logger import app_logger

F = TypeVar('F', bound=Callable)

logger = app_logger.getChild("errors")


class ErrorSeverity(Enum):
    """Severity levels for errors"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCode(Enum):
    """Standard error codes for LearnIQ"""
    # General errors
    UNKNOWN_ERROR = "unknown_error"
    VALIDATION_ERROR = "validation_error"
    AUTHENTICATION_ERROR = "authentication_error"
    NOT_FOUND_ERROR = "not_found_error"
    RATE_LIMIT_ERROR = "rate_limit_error"
    CONFLICT_ERROR = "conflict_error"

    # Learning errors
    ASSESSMENT_NOT_COMPLETED = "assessment_not_completed"

    # Infrastructure errors
    DATABASE_ERROR = "database_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class ErrorInfo(BaseModel):
    """Structured information about an error"""
    model_config = ConfigDict(use_enum_values=True)

    code: ErrorCode
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    severity: ErrorSeverity = ErrorSeverity.ERROR
    details: Optional[Dict[str, Any]] = None
    exception_type: Optional[str] = None
    stack_trace: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None

    @field_validator('stack_trace', mode='before')
    @classmethod
    def validate_stack_trace(cls, v):
        """Split a string stack trace into lines"""
        if isinstance(v, str):
            return v.splitlines()
        return v


class LearnIQError(Exception):
    """Base exception class for all LearnIQ errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.severity = severity
        self.details = details or {}
        self.cause = cause
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_error_info(self, include_stack_trace: bool = False) -> ErrorInfo:
        """Convert the exception to an ErrorInfo object"""
        details = dict(self.details)
        if self.cause is not None:
            details["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause)
            }

        return ErrorInfo(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            severity=self.severity,
            details=details,
            exception_type=type(self).__name__,
            stack_trace=traceback.format_exc() if include_stack_trace else None,
            context=self.context
        )

    def to_dict(self, include_stack_trace: bool = False) -> Dict[str, Any]:
        """Convert the exception to a dictionary"""
        return self.to_error_info(include_stack_trace).model_dump(mode="json")

    def __str__(self) -> str:
        base_str = f"{self.code.value}: {self.message}"
        if self.details:
            base_str += f" (details: {self.details})"
        if self.cause:
            base_str += f" caused by {type(self.cause).__name__}: {str(self.cause)}"
        return base_str


class ValidationError(LearnIQError):
    """Malformed subject, difficulty or request fields"""

    status_code = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause,
            context=context
        )


class AuthenticationError(LearnIQError):
    """No valid session or secret"""

    status_code = 401

    def __init__(
        self,
        message: str = "Unauthorized",
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=ErrorCode.AUTHENTICATION_ERROR,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause,
            context=context
        )


class NotFoundError(LearnIQError):
    """Error raised when a requested resource is not found"""

    status_code = 404

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND_ERROR
    ):
        super().__init__(
            message=message,
            code=code,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause,
            context=context
        )


class AssessmentNotCompletedError(NotFoundError):
    """The learner has no difficulty metrics yet for a subject"""

    def __init__(
        self,
        subject: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        if subject is not None:
            details["subject"] = subject
            message = f"Assessment not completed for subject {subject}"
        else:
            message = "Assessment not completed"

        super().__init__(
            message=message,
            details=details,
            cause=cause,
            context=context,
            code=ErrorCode.ASSESSMENT_NOT_COMPLETED
        )


class RateLimitError(LearnIQError):
    """Error raised when rate limits are exceeded"""

    status_code = 429

    def __init__(
        self,
        message: str,
        retry_after: Optional[int] = None,
        limit: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        if retry_after is not None:
            details["retry_after_seconds"] = retry_after
        self.retry_after = retry_after
        self.limit = limit

        super().__init__(
            message=message,
            code=ErrorCode.RATE_LIMIT_ERROR,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause,
            context=context
        )

    @property
    def headers(self) -> Dict[str, str]:
        headers = {}
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
            headers["X-RateLimit-Reset"] = str(self.retry_after)
        if self.limit is not None:
            headers["X-RateLimit-Limit"] = str(self.limit)
        return headers


class ConflictError(LearnIQError):
    """A compare-and-set update kept losing to concurrent writers"""

    status_code = 409

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=ErrorCode.CONFLICT_ERROR,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause,
            context=context
        )


class DatabaseError(LearnIQError):
    """Error raised when the store rejects or fails an operation"""

    def __init__(
        self,
        operation: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["operation"] = operation

        super().__init__(
            message=f"Database operation {operation} failed",
            code=ErrorCode.DATABASE_ERROR,
            severity=ErrorSeverity.ERROR,
            details=details,
            cause=cause,
            context=context
        )


class ExternalServiceError(LearnIQError):
    """Error raised when the tutoring collaborator fails or times out"""

    status_code = 502

    def __init__(
        self,
        service: str,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["service"] = service

        super().__init__(
            message=message or f"External service {service} failed",
            code=ErrorCode.EXTERNAL_SERVICE_ERROR,
            severity=ErrorSeverity.ERROR,
            details=details,
            cause=cause,
            context=context
        )


def convert_exception(
    exception: Exception,
    default_message: str = "An unexpected error occurred",
    default_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
    context: Optional[Dict[str, Any]] = None
) -> LearnIQError:
    """
    Convert a standard exception to a LearnIQError.

    Args:
        exception: The exception to convert
        default_message: Message used when the exception has none
        default_code: Error code for the wrapped error
        context: Optional additional context

    Returns:
        Converted LearnIQError
    """
    if isinstance(exception, LearnIQError):
        if context:
            exception.context.update(context)
        return exception

    return LearnIQError(
        message=str(exception) or default_message,
        code=default_code,
        cause=exception,
        context=context
    )


def retry(
    max_retries: int = 3,
    retry_delay: float = 1.0,
    backoff_factor: float = 2.0,
    jitter: float = 0.1,
    retry_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    ignore_exceptions: Tuple[Type[Exception], ...] = (),
    on_retry: Optional[Callable[[int, Exception, float], None]] = None
):
    """
    Decorator for retrying functions when exceptions occur.

    Args:
        max_retries: Maximum number of retries
        retry_delay: Initial delay between retries in seconds
        backoff_factor: Factor to increase delay with each retry
        jitter: Random jitter factor to add to delay
        retry_exceptions: Tuple of exception types to retry on
        ignore_exceptions: Tuple of exception types to re-raise immediately
        on_retry: Optional callback called before each retry

    Returns:
        Decorated function
    """
    def decorator(func: F) -> F:
        def _next_delay(retries: int, error: Exception, delay: float) -> float:
            actual_delay = delay * (1 + random.uniform(-jitter, jitter))
            if on_retry:
                on_retry(retries, error, actual_delay)
            logger.warning(
                f"Retry {retries}/{max_retries} for {func.__name__} "
                f"after {actual_delay:.2f}s due to {type(error).__name__}: {error}"
            )
            return actual_delay

        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                retries = 0
                delay = retry_delay

                while True:
                    try:
                        return await func(*args, **kwargs)
                    except ignore_exceptions:
                        raise
                    except retry_exceptions as e:
                        retries += 1
                        if retries > max_retries:
                            raise
                        await asyncio.sleep(_next_delay(retries, e, delay))
                        delay *= backoff_factor

            return cast(F, async_wrapper)

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            retries = 0
            delay = retry_delay

            while True:
                try:
                    return func(*args, **kwargs)
                except ignore_exceptions:
                    raise
                except retry_exceptions as e:
                    retries += 1
                    if retries > max_retries:
                        raise
                    time.sleep(_next_delay(retries, e, delay))
                    delay *= backoff_factor

        return cast(F, sync_wrapper)

    return decorator


def error_response(
    error: Union[LearnIQError, Exception],
    include_details: bool = True
) -> Dict[str, Any]:
    """
    Generate the public API error body.

    Unknown exceptions are reduced to a generic message so that internals
    never reach the client.
    """
    if not isinstance(error, LearnIQError):
        return {
            "status": "error",
            "code": ErrorCode.UNKNOWN_ERROR.value,
            "message": "Internal server error"
        }

    response = {
        "status": "error",
        "code": error.code.value,
        "message": error.message
    }

    if include_details and error.details and error.status_code < 500:
        response["details"] = error.details

    return response


def log_error(
    error: Union[LearnIQError, Exception],
    level: int = logging.ERROR,
    include_stack_trace: bool = True,
    context: Optional[Dict[str, Any]] = None,
    target: Optional[logging.Logger] = None
) -> None:
    """
    Log an error with standardized format.

    Args:
        error: The error to log
        level: Logging level
        include_stack_trace: Whether to attach exception info
        context: Additional context such as user_id and operation
        target: Logger to write to; defaults to the errors logger
    """
    error = convert_exception(error, context=context)

    message = f"ERROR [{error.code.value}]: {error.message}"
    if error.context:
        context_str = ", ".join(f"{k}={v}" for k, v in error.context.items())
        message += f" (context: {context_str})"
    if error.cause:
        message += f" caused by {type(error.cause).__name__}: {str(error.cause)}"

    (target or logger).log(
        level,
        message,
        exc_info=include_stack_trace,
        extra={"data": dict(error.context)}
    )
