"""Centralized exception classes for sheet layout extraction.

This module provides a hierarchy of custom exceptions with error codes and
structured error details for consistent error handling throughout the
extraction pipeline.

Exception Hierarchy:
    SLEError (base)
    ├── PackageError
    │   ├── PackageNotFoundError
    │   └── PackageOpenError
    ├── SheetError
    │   ├── SheetNotFoundError
    │   └── MergeRangeError
    ├── DrawingError
    │   ├── DrawingParseError
    │   └── MediaResolutionError
    ├── LayoutAnalysisError
    └── ConfigurationError

Error Codes:
    All errors have a unique error code (e.g., "E1001") that can be used
    for programmatic error handling and documentation.

Only package errors and SheetNotFoundError escape the pipeline. Merge, drawing
and media errors are raised internally and recovered at the smallest enclosing
scope with a logged warning.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Enumeration of all error codes used in the package.

    Error codes are grouped by category:
    - E1xxx: Package (zip container) errors
    - E2xxx: Sheet and geometry errors
    - E3xxx: Drawing and media errors
    - E4xxx: Layout analysis errors
    - E9xxx: Internal/unexpected errors
    """

    # Package errors (E1xxx)
    PACKAGE_NOT_FOUND = "E1001"
    PACKAGE_OPEN_FAILED = "E1002"
    PACKAGE_ENTRY_MISSING = "E1003"

    # Sheet errors (E2xxx)
    SHEET_NOT_FOUND = "E2001"
    INVALID_MERGE_RANGE = "E2002"
    CELL_PROCESSING_FAILED = "E2003"

    # Drawing errors (E3xxx)
    DRAWING_PARSE_FAILED = "E3001"
    MEDIA_NOT_FOUND = "E3003"

    # Layout errors (E4xxx)
    LAYOUT_ANALYSIS_FAILED = "E4001"

    # Internal errors (E9xxx)
    INTERNAL_ERROR = "E9001"
    CONFIGURATION_ERROR = "E9002"


class SLEError(Exception):
    """Base exception for all sheet layout extraction errors.

    All custom exceptions in the package inherit from this class.
    It provides:
    - Unique error codes for programmatic handling
    - Structured error details for logging and debugging

    Attributes:
        message: Human-readable error message.
        error_code: Unique error code from ErrorCode enum.
        details: Optional dictionary with additional error details.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Error code from ErrorCode enum.
            details: Optional additional details about the error.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert the exception to a dictionary for reports.

        Returns:
            Dictionary with error information.
        """
        result: dict[str, Any] = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code.value}] {self.message}"


# =============================================================================
# Package Errors (E1xxx)
# =============================================================================


class PackageError(SLEError):
    """Base class for zip container errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.PACKAGE_OPEN_FAILED,
        package_path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with package path information.

        Args:
            message: Error message.
            error_code: Error code.
            package_path: Path to the problematic package.
            details: Additional details.
        """
        details = details or {}
        if package_path:
            details["package_path"] = package_path
        super().__init__(message, error_code, details)
        self.package_path = package_path


class PackageNotFoundError(PackageError):
    """Raised when the spreadsheet package does not exist."""

    def __init__(
        self,
        package_path: str,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with package path.

        Args:
            package_path: Path to the package that was not found.
            message: Optional custom message.
            details: Additional details.
        """
        message = message or f"Package not found: {package_path}"
        super().__init__(
            message=message,
            error_code=ErrorCode.PACKAGE_NOT_FOUND,
            package_path=package_path,
            details=details,
        )


class PackageOpenError(PackageError):
    """Raised when the package is not a readable zip container."""

    def __init__(
        self,
        package_path: str,
        reason: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the failure reason.

        Args:
            package_path: Path to the package.
            reason: Underlying failure description.
            details: Additional details.
        """
        details = details or {}
        if reason:
            details["reason"] = reason
        message = f"Cannot open spreadsheet package: {package_path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(
            message=message,
            error_code=ErrorCode.PACKAGE_OPEN_FAILED,
            package_path=package_path,
            details=details,
        )
        self.reason = reason


# =============================================================================
# Sheet Errors (E2xxx)
# =============================================================================


class SheetError(SLEError):
    """Base class for worksheet-level errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CELL_PROCESSING_FAILED,
        sheet_name: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with sheet name.

        Args:
            message: Error message.
            error_code: Error code.
            sheet_name: Name of the affected sheet.
            details: Additional details.
        """
        details = details or {}
        if sheet_name:
            details["sheet_name"] = sheet_name
        super().__init__(message, error_code, details)
        self.sheet_name = sheet_name


class SheetNotFoundError(SheetError):
    """Raised when the requested sheet is not in the workbook."""

    def __init__(
        self,
        sheet_name: str,
        available: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the available sheet names.

        Args:
            sheet_name: The sheet that was requested.
            available: Sheet names present in the workbook.
            details: Additional details.
        """
        details = details or {}
        if available is not None:
            details["available_sheets"] = available
        super().__init__(
            message=f"Sheet '{sheet_name}' not found in workbook",
            error_code=ErrorCode.SHEET_NOT_FOUND,
            sheet_name=sheet_name,
            details=details,
        )
        self.available = available or []


class MergeRangeError(SheetError):
    """Raised when a merge descriptor cannot be parsed or is invalid."""

    def __init__(
        self,
        descriptor: Any,
        reason: str,
        sheet_name: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the offending descriptor.

        Args:
            descriptor: The merge descriptor as found in the sheet.
            reason: Why the descriptor was rejected.
            sheet_name: Name of the affected sheet.
            details: Additional details.
        """
        details = details or {}
        details["descriptor"] = repr(descriptor)
        details["reason"] = reason
        super().__init__(
            message=f"Invalid merge range {descriptor!r}: {reason}",
            error_code=ErrorCode.INVALID_MERGE_RANGE,
            sheet_name=sheet_name,
            details=details,
        )
        self.descriptor = descriptor
        self.reason = reason


# =============================================================================
# Drawing Errors (E3xxx)
# =============================================================================


class DrawingError(SLEError):
    """Base class for drawing resource errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.DRAWING_PARSE_FAILED,
        drawing_path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the drawing part path.

        Args:
            message: Error message.
            error_code: Error code.
            drawing_path: Package path of the drawing part.
            details: Additional details.
        """
        details = details or {}
        if drawing_path:
            details["drawing_path"] = drawing_path
        super().__init__(message, error_code, details)
        self.drawing_path = drawing_path


class DrawingParseError(DrawingError):
    """Raised when a drawing fragment cannot be interpreted."""

    def __init__(
        self,
        message: str,
        drawing_path: str | None = None,
        element: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the failing element tag.

        Args:
            message: Error message.
            drawing_path: Package path of the drawing part.
            element: Local tag name of the failing element.
            details: Additional details.
        """
        details = details or {}
        if element:
            details["element"] = element
        super().__init__(
            message=message,
            error_code=ErrorCode.DRAWING_PARSE_FAILED,
            drawing_path=drawing_path,
            details=details,
        )
        self.element = element


class MediaResolutionError(DrawingError):
    """Raised when a media blob cannot be resolved for a relationship id."""

    def __init__(
        self,
        relationship_id: str,
        drawing_path: str | None = None,
        strategies: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the relationship id.

        Args:
            relationship_id: The rId that could not be resolved.
            drawing_path: Package path of the drawing part.
            strategies: Lookup strategies that were attempted.
            details: Additional details.
        """
        details = details or {}
        details["relationship_id"] = relationship_id
        if strategies:
            details["strategies"] = strategies
        super().__init__(
            message=f"Media not found for relationship {relationship_id}",
            error_code=ErrorCode.MEDIA_NOT_FOUND,
            drawing_path=drawing_path,
            details=details,
        )
        self.relationship_id = relationship_id


# =============================================================================
# Layout and Internal Errors
# =============================================================================


class LayoutAnalysisError(SLEError):
    """Raised when layout analysis cannot be completed."""

    def __init__(
        self,
        message: str,
        stage: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the analysis stage.

        Args:
            message: Error message.
            stage: Analysis stage where the error occurred.
            details: Additional details.
        """
        details = details or {}
        if stage:
            details["stage"] = stage
        super().__init__(message, ErrorCode.LAYOUT_ANALYSIS_FAILED, details)
        self.stage = stage


class ConfigurationError(SLEError):
    """Raised when settings are invalid for the requested operation."""

    def __init__(
        self,
        message: str,
        setting: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the offending setting name.

        Args:
            message: Error message.
            setting: Name of the setting.
            details: Additional details.
        """
        details = details or {}
        if setting:
            details["setting"] = setting
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)
        self.setting = setting
