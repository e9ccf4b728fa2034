"""Structured logging utilities for sheet layout extraction.

This module provides:
- Extraction ID tracking using contextvars for correlation across a pass
- Structured logging with consistent format and metadata
- Performance metrics logging helpers
- Progress tracking for multi-sheet extractions

Usage:
    from sheet_layout_extraction.utils.logging import (
        get_logger,
        set_extraction_id,
        LogContext,
    )

    logger = get_logger(__name__)

    # Set extraction ID for correlation
    set_extraction_id("abc-123")

    # Log with context
    with LogContext(workbook="report.xlsx", sheet="Sheet1"):
        logger.info("Extracting texts")

    # Log performance metrics
    with timed_operation(logger, "extract_sheet") as metrics:
        metrics.texts_extracted = 12
"""

import logging
import time
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sheet_layout_extraction.utils.exceptions import ConfigurationError

# Context variables for extraction tracking
_extraction_id_var: ContextVar[str | None] = ContextVar("extraction_id", default=None)
_extra_context_var: ContextVar[dict[str, Any] | None] = ContextVar(
    "extra_context", default=None
)


def get_extraction_id() -> str | None:
    """Get the current extraction ID from context.

    Returns:
        The current extraction ID or None if not set.
    """
    return _extraction_id_var.get()


def set_extraction_id(extraction_id: str | None) -> None:
    """Set the extraction ID in context.

    Args:
        extraction_id: The extraction ID to set, or None to clear.
    """
    _extraction_id_var.set(extraction_id)


def get_extra_context() -> dict[str, Any]:
    """Get additional context from context vars.

    Returns:
        Dictionary of extra context values.
    """
    ctx = _extra_context_var.get()
    return ctx if ctx is not None else {}


def set_extra_context(context: dict[str, Any]) -> None:
    """Set additional context in context vars."""
    _extra_context_var.set(context)


def clear_context() -> None:
    """Clear all context variables."""
    _extraction_id_var.set(None)
    _extra_context_var.set(None)


@dataclass
class PerformanceMetrics:
    """Container for performance metrics during an extraction pass.

    Attributes:
        operation: Name of the operation being measured.
        start_time: When the operation started.
        end_time: When the operation ended.
        duration_seconds: Duration in seconds.
        cells_scanned: Number of populated cells visited.
        texts_extracted: Number of text elements emitted.
        images_extracted: Number of image elements emitted.
        merges_resolved: Number of valid merged ranges.
        custom_metrics: Additional custom metrics.
    """

    operation: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    duration_seconds: float = 0.0
    cells_scanned: int = 0
    texts_extracted: int = 0
    images_extracted: int = 0
    merges_resolved: int = 0
    custom_metrics: dict[str, Any] = field(default_factory=dict)

    def finish(self) -> None:
        """Mark the operation as complete and calculate duration."""
        self.end_time = datetime.now(UTC)
        self.duration_seconds = (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging.

        Returns:
            Dictionary with all non-zero metrics.
        """
        result: dict[str, Any] = {
            "operation": self.operation,
            "duration_seconds": self.duration_seconds,
        }
        if self.cells_scanned > 0:
            result["cells_scanned"] = self.cells_scanned
        if self.texts_extracted > 0:
            result["texts_extracted"] = self.texts_extracted
        if self.images_extracted > 0:
            result["images_extracted"] = self.images_extracted
        if self.merges_resolved > 0:
            result["merges_resolved"] = self.merges_resolved
        if self.custom_metrics:
            result["custom_metrics"] = self.custom_metrics
        return result


class StructuredLogFormatter(logging.Formatter):
    """Log formatter that prefixes records with context variables.

    The extraction id and any LogContext values are rendered as a
    ``[key=value ...]`` prefix in front of the message.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with context information.

        Args:
            record: The log record to format.

        Returns:
            Formatted log message string.
        """
        prefix_parts = []
        extraction_id = get_extraction_id()
        if extraction_id:
            prefix_parts.append(f"extraction_id={extraction_id}")

        for key, value in get_extra_context().items():
            prefix_parts.append(f"{key}={value}")

        prefix = f"[{' '.join(prefix_parts)}] " if prefix_parts else ""

        original_msg = record.msg
        record.msg = f"{prefix}{original_msg}"
        result = super().format(record)
        record.msg = original_msg

        return result


class StructuredLogger:
    """Logger wrapper with structured key-value formatting.

    Wraps a standard Python logger with additional methods for
    performance metrics and progress logging.
    """

    def __init__(self, name: str) -> None:
        """Initialize the structured logger.

        Args:
            name: Logger name (typically __name__ of the module).
        """
        self._logger = logging.getLogger(name)
        self._name = name

    @property
    def logger(self) -> logging.Logger:
        """Access the underlying Python logger."""
        return self._logger

    def _build_message(self, message: str, **kwargs: Any) -> str:
        if not kwargs:
            return message

        parts = [f"{k}={v}" for k, v in kwargs.items()]
        return f"{message} | {', '.join(parts)}"

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log a debug message."""
        self._logger.debug(self._build_message(message, **kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        """Log an info message."""
        self._logger.info(self._build_message(message, **kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log a warning message."""
        self._logger.warning(self._build_message(message, **kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        """Log an error message.

        Args:
            message: Log message.
            exc_info: Whether to include exception info.
            **kwargs: Additional structured data.
        """
        self._logger.error(self._build_message(message, **kwargs), exc_info=exc_info)

    def log_performance(self, metrics: PerformanceMetrics) -> None:
        """Log performance metrics.

        Args:
            metrics: Performance metrics to log.
        """
        self.info(f"Performance: {metrics.operation}", **metrics.to_dict())

    def log_progress(
        self,
        stage: str,
        current: int,
        total: int,
        details: str | None = None,
    ) -> None:
        """Log progress for multi-step operations.

        Args:
            stage: Current processing stage.
            current: Current progress count.
            total: Total items to process.
            details: Optional additional details.
        """
        percentage = (current / total * 100) if total > 0 else 0
        kwargs: dict[str, Any] = {
            "current": current,
            "total": total,
            "percentage": f"{percentage:.1f}%",
        }
        if details:
            kwargs["details"] = details
        self.info(f"Progress: {stage}", **kwargs)

    def log_extraction_result(
        self,
        sheet_name: str,
        texts: int,
        images: int,
        merges: int,
        skipped: int,
        duration_seconds: float,
    ) -> None:
        """Log completion of a single sheet extraction.

        Args:
            sheet_name: Name of the extracted sheet.
            texts: Number of text elements.
            images: Number of image elements.
            merges: Number of merged ranges.
            skipped: Number of drawing elements filtered out.
            duration_seconds: Total processing time.
        """
        self.info(
            "Sheet extraction completed",
            sheet=sheet_name,
            texts=texts,
            images=images,
            merges=merges,
            skipped=skipped,
            duration_seconds=f"{duration_seconds:.3f}",
        )


class LogContext:
    """Context manager for adding temporary context to logs.

    Usage:
        with LogContext(workbook="book.xlsx", sheet="Sheet1"):
            logger.info("Processing...")  # Will include workbook and sheet
    """

    def __init__(self, **kwargs: Any) -> None:
        """Initialize with context values.

        Args:
            **kwargs: Key-value pairs to add to log context. An
                ``extraction_id`` key sets the extraction ID instead.
        """
        self._new_context = kwargs
        self._old_context: dict[str, Any] = {}
        self._old_extraction_id: str | None = None

    def __enter__(self) -> "LogContext":
        """Enter the context, saving old values and setting new ones."""
        self._old_context = get_extra_context().copy()
        self._old_extraction_id = get_extraction_id()

        new_context = dict(self._new_context)
        extraction_id = new_context.pop("extraction_id", None)
        if extraction_id is not None:
            set_extraction_id(extraction_id)

        merged = self._old_context.copy()
        merged.update(new_context)
        set_extra_context(merged)

        return self

    def __exit__(self, *args: Any) -> None:
        """Exit the context, restoring old values."""
        set_extra_context(self._old_context)
        set_extraction_id(self._old_extraction_id)


@contextmanager
def timed_operation(
    logger: StructuredLogger,
    operation: str,
) -> Generator[PerformanceMetrics, None, None]:
    """Context manager for timing operations.

    Usage:
        with timed_operation(logger, "extract_sheet") as metrics:
            metrics.texts_extracted = len(texts)

        # Automatically logs: "Performance: extract_sheet | duration_seconds=..."

    Args:
        logger: Logger to use for output.
        operation: Name of the operation.

    Yields:
        PerformanceMetrics instance for tracking.
    """
    metrics = PerformanceMetrics(operation=operation)
    try:
        yield metrics
    finally:
        metrics.finish()
        logger.log_performance(metrics)


def configure_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
    use_structured_formatter: bool = True,
) -> None:
    """Configure logging for the application.

    Args:
        level: Log level (int or string like "INFO").
        format_string: Custom format string (uses default if None).
        use_structured_formatter: Whether to use the structured formatter.

    Raises:
        ConfigurationError: If ``level`` names no logging level.
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ConfigurationError(f"Unknown log level: {level}", setting="log_level")
        level = resolved

    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setLevel(level)

    formatter: logging.Formatter
    if use_structured_formatter:
        formatter = StructuredLogFormatter(format_string)
    else:
        formatter = logging.Formatter(format_string)

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module.

    Args:
        name: Logger name (typically __name__).

    Returns:
        StructuredLogger instance.

    Example:
        logger = get_logger(__name__)
        logger.info("Resolved drawing", sheet="Sheet1", path="xl/drawings/drawing1.xml")
    """
    return StructuredLogger(name)


class ProgressTracker:
    """Helper for tracking and logging progress of multi-sheet extractions.

    Usage:
        tracker = ProgressTracker(logger, "Extracting sheets", total=3)
        for name in sheet_names:
            extract(name)
            tracker.update(details=name)
        tracker.complete()
    """

    def __init__(
        self,
        logger: StructuredLogger,
        stage: str,
        total: int,
        log_interval: int = 1,
    ) -> None:
        self._logger = logger
        self._stage = stage
        self._total = total
        self._current = 0
        self._log_interval = log_interval
        self._start_time = time.time()

    @property
    def current(self) -> int:
        """Number of items completed so far."""
        return self._current

    def update(self, increment: int = 1, details: str | None = None) -> None:
        """Update progress.

        Args:
            increment: Number of items completed.
            details: Optional details about current item.
        """
        self._current += increment
        if self._current % self._log_interval == 0 or self._current == self._total:
            self._logger.log_progress(
                self._stage,
                self._current,
                self._total,
                details,
            )

    def complete(self) -> float:
        """Mark progress as complete.

        Returns:
            Total duration in seconds.
        """
        duration = time.time() - self._start_time
        self._logger.info(
            f"Completed: {self._stage}",
            total_items=self._total,
            duration_seconds=f"{duration:.2f}",
        )
        return duration
