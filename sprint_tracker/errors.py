"""
Sprint Tracker Errors

Exception types raised by the store, plus a structured AppError that carries
both a technical message and a user-facing one, with severity and recovery
hints for the request layer.
"""

import errno
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from .models import AppConfig, AppDocument
from .validation import ValidationResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorType(Enum):
    """Error category."""
    VALIDATION = "validation"
    FILE_SYSTEM = "file_system"
    DATA_CORRUPTION = "data_corruption"
    CALCULATION = "calculation"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SprintTrackerError(Exception):
    """Base class for errors raised by sprint_tracker."""


class DataValidationError(SprintTrackerError):
    """A document or record failed validation; nothing was written."""

    def __init__(self, validation: ValidationResult, prefix: str = "Data validation failed"):
        self.validation = validation
        super().__init__(f"{prefix}: {', '.join(validation.errors)}")


class DataCorruptionError(SprintTrackerError):
    """The stored document is structurally broken."""


class CalculationError(SprintTrackerError):
    """A calculation was given an invalid numeric state."""


class SprintNotFoundError(SprintTrackerError):
    def __init__(self, sprint_id: str):
        self.sprint_id = sprint_id
        super().__init__(f"Sprint with ID {sprint_id} not found")


class DuplicateSprintError(SprintTrackerError):
    def __init__(self, sprint_id: str):
        self.sprint_id = sprint_id
        super().__init__(f"Sprint with ID {sprint_id} already exists")


@dataclass
class AppError:
    """Structured, loggable description of a failure."""
    type: ErrorType
    severity: ErrorSeverity
    message: str
    user_message: str
    details: Any = None
    context: Optional[str] = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "userMessage": self.user_message,
            "details": self.details,
            "context": self.context,
            "timestamp": self.timestamp
        }


def handle_validation_error(validation: ValidationResult, context: str) -> AppError:
    if len(validation.errors) == 1:
        user_message = validation.errors[0]
    else:
        user_message = "Please fix the following issues:\n• " + "\n• ".join(validation.errors)

    return AppError(
        type=ErrorType.VALIDATION,
        severity=ErrorSeverity.MEDIUM,
        message=f"Validation failed in {context}",
        user_message=user_message,
        details=validation.field_errors,
        context=context
    )


# errno code -> (user message, severity)
_FILE_SYSTEM_MESSAGES = {
    "ENOENT": ("Data file not found. The application will create a new one.", ErrorSeverity.LOW),
    "EACCES": ("Permission denied. Please check file permissions.", ErrorSeverity.CRITICAL),
    "EPERM": ("Permission denied. Please check file permissions.", ErrorSeverity.CRITICAL),
    "ENOSPC": ("Not enough disk space. Please free up space and try again.", ErrorSeverity.CRITICAL),
    "EMFILE": (
        "Too many files open. Please close other applications and try again.",
        ErrorSeverity.HIGH
    ),
}


def handle_file_system_error(error: OSError, context: str) -> AppError:
    """Categorize an OSError by its errno."""
    code = errno.errorcode.get(error.errno) if error.errno is not None else None

    if code in _FILE_SYSTEM_MESSAGES:
        user_message, severity = _FILE_SYSTEM_MESSAGES[code]
    elif code:
        user_message = f"File system error ({code}). Please try again."
        severity = ErrorSeverity.HIGH
    else:
        user_message = "File system error occurred. Please try again."
        severity = ErrorSeverity.HIGH

    return AppError(
        type=ErrorType.FILE_SYSTEM,
        severity=severity,
        message=f"File system error in {context}: {error.strerror or error}",
        user_message=user_message,
        details={"code": code, "path": error.filename},
        context=context
    )


def handle_data_corruption_error(details: Any, context: str) -> AppError:
    return AppError(
        type=ErrorType.DATA_CORRUPTION,
        severity=ErrorSeverity.HIGH,
        message=f"Data corruption detected in {context}",
        user_message=(
            "Data file appears to be corrupted. "
            "The application will attempt to recover or create a backup."
        ),
        details=details,
        context=context
    )


def handle_calculation_error(error: Exception, context: str) -> AppError:
    return AppError(
        type=ErrorType.CALCULATION,
        severity=ErrorSeverity.MEDIUM,
        message=f"Calculation error in {context}: {error}",
        user_message="Calculation error occurred. Please check your input values.",
        details={"exception": type(error).__name__},
        context=context
    )


def handle_unknown_error(error: Exception, context: str) -> AppError:
    return AppError(
        type=ErrorType.UNKNOWN,
        severity=ErrorSeverity.HIGH,
        message=f"Unknown error in {context}: {error or 'No message'}",
        user_message="An unexpected error occurred. Please try again or contact support.",
        details={"exception": type(error).__name__},
        context=context
    )


def classify_exception(error: Exception, context: str) -> AppError:
    """Map an exception onto a structured AppError."""
    if isinstance(error, DataValidationError):
        return handle_validation_error(error.validation, context)
    if isinstance(error, DataCorruptionError):
        return handle_data_corruption_error({"reason": str(error)}, context)
    if isinstance(error, OSError):
        return handle_file_system_error(error, context)
    if isinstance(error, (CalculationError, ArithmeticError)):
        return handle_calculation_error(error, context)
    return handle_unknown_error(error, context)


@dataclass
class ErrorRecovery:
    can_recover: bool
    suggestions: list[str] = field(default_factory=list)
    fallback_data: Optional[dict] = None


def create_fallback_data(kind: str = "full", config: Optional[AppConfig] = None):
    """
    Default data to continue with after a failure.

    Args:
        kind: "sprints", "config" or "full"
        config: Default configuration to use (AppConfig() when omitted)
    """
    config = config or AppConfig()
    if kind == "sprints":
        return []
    if kind == "config":
        return config.to_dict()
    if kind == "full":
        return AppDocument(sprints=[], config=config).to_dict()
    raise ValueError(f"Unknown fallback kind: {kind}")


def get_error_recovery(error: AppError) -> ErrorRecovery:
    """Recovery suggestions for an error."""
    if error.type == ErrorType.VALIDATION:
        return ErrorRecovery(
            can_recover=True,
            suggestions=[
                "Please correct the highlighted fields",
                "Check that all required fields are filled",
                "Ensure numeric values are within valid ranges",
            ]
        )

    if error.type == ErrorType.FILE_SYSTEM:
        code = (error.details or {}).get("code")
        if code == "ENOENT":
            return ErrorRecovery(
                can_recover=True,
                suggestions=["The application will create a new data file"],
                fallback_data=create_fallback_data("full")
            )
        if code == "ENOSPC":
            return ErrorRecovery(
                can_recover=True,
                suggestions=["Free up disk space", "Try saving to a different location"]
            )
        return ErrorRecovery(
            can_recover=code not in ("EACCES", "EPERM"),
            suggestions=["Check file permissions", "Try restarting the application"]
        )

    if error.type == ErrorType.DATA_CORRUPTION:
        return ErrorRecovery(
            can_recover=True,
            suggestions=[
                "The application will attempt to recover your data",
                "A backup will be created before any changes",
                "You may need to re-enter some recent data",
            ],
            fallback_data=create_fallback_data("full")
        )

    if error.type == ErrorType.CALCULATION:
        return ErrorRecovery(
            can_recover=True,
            suggestions=[
                "Check that all numeric inputs are valid",
                "Ensure working hours are greater than zero",
                "Verify that carry-over values are consistent",
            ]
        )

    return ErrorRecovery(
        can_recover=True,
        suggestions=[
            "Try the operation again",
            "Check the server logs for more details",
            "Contact support if the problem persists",
        ]
    )


_SEVERITY_TITLES = {
    ErrorSeverity.LOW: "Notice",
    ErrorSeverity.MEDIUM: "Warning",
    ErrorSeverity.HIGH: "Error",
    ErrorSeverity.CRITICAL: "Critical Error",
}

_SEVERITY_LOG_LEVELS = {
    ErrorSeverity.LOW: logging.INFO,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.HIGH: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


def format_error_for_display(error: AppError) -> dict:
    recovery = get_error_recovery(error)
    return {
        "title": _SEVERITY_TITLES[error.severity],
        "message": error.user_message,
        "severity": error.severity.value,
        "suggestions": recovery.suggestions,
        "canRetry": recovery.can_recover
    }


def log_error(error: AppError) -> None:
    """Log an AppError at a level matching its severity."""
    logger.log(
        _SEVERITY_LOG_LEVELS[error.severity],
        "%s %s error: %s",
        error.severity.value.upper(),
        error.type.value,
        error.message,
        extra={"context": error.context, "details": error.details}
    )


@dataclass
class OperationResult(Generic[T]):
    """Outcome of an operation run through with_error_handling."""
    success: bool
    data: Optional[T] = None
    error: Optional[AppError] = None


async def with_error_handling(
    operation: Callable[[], Awaitable[T]],
    context: str,
    on_error: Optional[Callable[[AppError], None]] = None
) -> OperationResult[T]:
    """
    Await an operation, converting any failure into a logged AppError.

    Args:
        operation: Zero-argument coroutine function
        context: Name of the operation, used in messages
        on_error: Optional callback receiving the AppError
    """
    try:
        data = await operation()
    except Exception as e:
        error = classify_exception(e, context)
        log_error(error)
        if on_error:
            on_error(error)
        return OperationResult(success=False, error=error)

    return OperationResult(success=True, data=data)
