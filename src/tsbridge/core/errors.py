"""
Error codes and exception classes for consistent error handling.
Every error carries a code, a message and a details dict.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standardized error codes."""

    # Arguments
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    INVALID_BUCKET = "INVALID_BUCKET"
    INVALID_DURATION = "INVALID_DURATION"
    INVALID_TIME_RANGE = "INVALID_TIME_RANGE"
    INVALID_SORT_DIRECTION = "INVALID_SORT_DIRECTION"
    INVALID_WRITE_SCHEMA = "INVALID_WRITE_SCHEMA"

    # Configuration
    CONFIG_MISSING_VALUE = "CONFIG_MISSING_VALUE"
    CONFIG_EXPORT_DISABLED = "CONFIG_EXPORT_DISABLED"

    # Export
    EXPORT_FAILED = "EXPORT_FAILED"

    # InfluxDB
    INFLUX_CONNECTION_ERROR = "INFLUX_CONNECTION_ERROR"
    INFLUX_QUERY_ERROR = "INFLUX_QUERY_ERROR"
    INFLUX_WRITE_FAILED = "INFLUX_WRITE_FAILED"

    # Files
    FILE_WRITE_FAILED = "FILE_WRITE_FAILED"
    JSON_SERIALIZATION_FAILED = "JSON_SERIALIZATION_FAILED"


class AppError(Exception):
    """Base application exception with error code and details."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}


class InvalidArgument(AppError, ValueError):
    """Programmer error detected before any I/O."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.INVALID_ARGUMENT,
        message: str = "Invalid argument",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(code, message, details=details)


class ConfigurationError(AppError):
    """Missing or invalid connection/export configuration."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.CONFIG_MISSING_VALUE,
        message: str = "Invalid configuration",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(code, message, details=details)


class ExportFailure(AppError):
    """Query execution failed for one bucket."""

    def __init__(
        self,
        bucket: str,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.bucket = bucket
        details = {"bucket": bucket, **(details or {})}
        super().__init__(
            ErrorCode.EXPORT_FAILED,
            message or f"Export failed for bucket: {bucket}",
            details=details,
        )


class InfluxError(AppError):
    """InfluxDB-related error."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.INFLUX_CONNECTION_ERROR,
        message: str = "InfluxDB error",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(code, message, details=details)


class FileWriteError(AppError):
    """Export file could not be serialized or written."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.FILE_WRITE_FAILED,
        message: str = "Failed to write export file",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(code, message, details=details)


def error_response(
    error: AppError,
    run_id: str | None = None,
) -> dict[str, Any]:
    """
    Build a standardized error payload.

    Returns:
        {
            "error": {"code": "...", "message": "...", "details": {...}},
            "run_id": "..."
        }
    """
    return {
        "error": {
            "code": error.code.value,
            "message": error.message,
            "details": error.details,
        },
        "run_id": run_id,
    }
