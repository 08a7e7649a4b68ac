"""Error definitions for the content cache."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """Categories of errors that can occur in the system."""

    VALIDATION_ERROR = "validation_error"
    GENERATION_ERROR = "generation_error"
    STORAGE_ERROR = "storage_error"
    SYSTEM_ERROR = "system_error"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class BaseError(Exception):
    """Base error class for all content cache errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        severity: ErrorSeverity,
        error_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize base error.

        Args:
            message: Error message
            category: Error category
            severity: Error severity
            error_id: Optional unique error ID
            details: Optional error details
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.error_id = error_id
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for logs and API responses."""
        return {
            "error": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "error_id": self.error_id,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class InvalidParametersError(BaseError):
    """Raised when a generation request is missing required fields."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.LOW,
        error_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize invalid parameters error."""
        super().__init__(
            message,
            ErrorCategory.VALIDATION_ERROR,
            severity,
            error_id,
            details,
        )


class GenerationError(BaseError):
    """Raised when the generator fails or returns unusable output."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.HIGH,
        error_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize generation error."""
        super().__init__(
            message,
            ErrorCategory.GENERATION_ERROR,
            severity,
            error_id,
            details,
        )


class PersistenceError(BaseError):
    """Raised when a cache store read or write fails."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.HIGH,
        error_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize persistence error."""
        super().__init__(
            message,
            ErrorCategory.STORAGE_ERROR,
            severity,
            error_id,
            details,
        )


class ConfigurationError(BaseError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.CRITICAL,
        error_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize configuration error."""
        super().__init__(
            message,
            ErrorCategory.SYSTEM_ERROR,
            severity,
            error_id,
            details,
        )
