"""Utilities package for sheet layout extraction.

This package provides:
- Centralized exception classes (exceptions.py)
- Structured logging utilities (logging.py)
"""

from sheet_layout_extraction.utils.exceptions import (
    ConfigurationError,
    DrawingError,
    DrawingParseError,
    ErrorCode,
    LayoutAnalysisError,
    MediaResolutionError,
    MergeRangeError,
    PackageError,
    PackageNotFoundError,
    PackageOpenError,
    SheetError,
    SheetNotFoundError,
    SLEError,
)
from sheet_layout_extraction.utils.logging import (
    LogContext,
    StructuredLogger,
    get_extraction_id,
    get_logger,
    set_extraction_id,
)

__all__ = [
    # Exceptions
    "ConfigurationError",
    "DrawingError",
    "DrawingParseError",
    "ErrorCode",
    "LayoutAnalysisError",
    "MediaResolutionError",
    "MergeRangeError",
    "PackageError",
    "PackageNotFoundError",
    "PackageOpenError",
    "SLEError",
    "SheetError",
    "SheetNotFoundError",
    # Logging
    "LogContext",
    "StructuredLogger",
    "get_extraction_id",
    "get_logger",
    "set_extraction_id",
]
