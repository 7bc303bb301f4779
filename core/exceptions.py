"""
Custom exceptions for the import engine with structured error context.

This module provides the exception hierarchy used throughout the importer.
Each exception includes context information for debugging and for the
error trace persisted on the import run.

Exception Hierarchy:
    ETLException (base)
    ├── ConfigurationError
    │   └── UnknownCallbackError
    ├── TransformationError
    │   └── ScrubError
    │       └── UnknownColumnError
    ├── LoadError
    │   └── DatabaseError
    └── ImportAbortedError
"""

from typing import Optional, Dict, Any
from datetime import datetime


class ETLException(Exception):
    """
    Base exception for all ETL-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (model, column, offset, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        # Add timestamp to context
        self.context["error_timestamp"] = self.timestamp.isoformat()

        # Chain original exception if provided
        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(ETLException):
    """
    Exception raised when an importer is misconfigured.

    Always raised while building the configuration or during engine setup,
    never once batches are running.

    Context should include:
        - option: The offending option name
        - column: Destination column (for column instructions)
    """
    pass


class UnknownCallbackError(ConfigurationError):
    """
    Exception raised when registering a hook under an unrecognized name.

    Context should include:
        - callback: The rejected name
        - known_callbacks: The recognized names
    """
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(ETLException):
    """Base exception for record transformation failures."""
    pass


class ScrubError(TransformationError):
    """Base exception for PII scrubbing failures."""
    pass


class UnknownColumnError(ScrubError):
    """
    Exception raised when asked to scrub a column the destination table lacks.

    Context should include:
        - column: Name of the unknown column
        - table_name: Destination table
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(ETLException):
    """Base exception for data loading failures."""
    pass


class DatabaseError(LoadError):
    """
    Exception raised when database operations fail.

    Context should include:
        - operation: Type of database operation (SELECT, INSERT, UPDATE)
        - table_name: Name of the table
        - rows: Number of rows involved (for bulk operations)
    """
    pass


# ============================================================================
# Run Control
# ============================================================================

class ImportAbortedError(ETLException):
    """
    Exception raised when a hook asks for the whole run to stop.

    Context should include:
        - callback: The hook that returned Abort
        - reason: The reason it gave
    """
    pass
