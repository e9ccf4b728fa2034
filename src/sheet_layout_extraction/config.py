"""Configuration management for sheet layout extraction.

This module provides centralized configuration using pydantic-settings.
All configuration options can be set via environment variables with the
SLE_ prefix, or via a .env file in the project root.

Environment Variables:
    SLE_LOG_LEVEL: Logging level (default: INFO)
    SLE_DEBUG: Enable debug mode (default: false)
    SLE_DEFAULT_COLUMN_WIDTH: Column width in characters when unset (default: 8.43)
    SLE_DEFAULT_ROW_HEIGHT: Row height in points when unset (default: 15.0)
    SLE_FALLBACK_COLUMN_COUNT: Column extent when the sheet reports none (default: 50)
    SLE_FALLBACK_ROW_COUNT: Row extent when the sheet reports none (default: 100)
    SLE_ROW_TOLERANCE_PX: Row grouping tolerance in pixels (default: 50)
    SLE_COLUMN_TOLERANCE_PX: Column grouping tolerance in pixels (default: 50)
    SLE_CLUSTER_THRESHOLD_PX: Cluster distance threshold in pixels (default: 100)
    SLE_LARGE_DIMENSION_FACTOR: Multiple of the average that marks a large
        row or column (default: 1.5)
    SLE_SORT_ROW_MEMBERS_BY_X: Sort row members by x before measuring
        horizontal gaps (default: true)
    SLE_COLOR_MIN_SATURATION: Saturation below which colors are grey (default: 0.18)
    SLE_COLOR_LIGHTNESS_AS_WHITE: Lightness treated as white (default: 0.92)
    SLE_COLOR_LIGHTNESS_AS_BLACK: Lightness treated as black (default: 0.12)
    SLE_COLOR_FORCE_VERY_LIGHT_TO_GREY: Report very light colors as grey
        (default: true)
    SLE_MIN_PIXEL_SIZE: Drawing elements smaller than this are skipped (default: 1.0)
    SLE_INCLUDE_HIDDEN_SHAPES: Keep drawing elements marked hidden (default: false)
    SLE_OFF_CANVAS_LIMIT_PX: Coordinates beyond this are off-canvas (default: 10000)
    SLE_MAX_MEDIA_SIZE_MB: Largest media blob loaded into memory (default: 25)
"""

import logging
from typing import Any

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables prefixed with SLE_
    or via a .env file.

    Example .env file:
        SLE_LOG_LEVEL=DEBUG
        SLE_ROW_TOLERANCE_PX=30
        SLE_COLOR_FORCE_VERY_LIGHT_TO_GREY=false
    """

    model_config = SettingsConfigDict(
        env_prefix="SLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # =========================================================================
    # Logging Settings
    # =========================================================================

    log_level: str = "INFO"
    """Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL."""

    debug: bool = False
    """Enable debug mode with additional logging and error details."""

    # =========================================================================
    # Sheet Geometry Settings
    # =========================================================================

    default_column_width: float = 8.43
    """Column width in character units used when a column has no explicit width."""

    default_row_height: float = 15.0
    """Row height in points used when a row has no explicit height."""

    fallback_column_count: int = 50
    """Column extent of the offset tables when the sheet reports no dimension."""

    fallback_row_count: int = 100
    """Row extent of the offset tables when the sheet reports no dimension."""

    # =========================================================================
    # Layout Analysis Settings
    # =========================================================================

    row_tolerance_px: float = 50.0
    """Maximum vertical distance for an element to join a row group."""

    column_tolerance_px: float = 50.0
    """Maximum horizontal distance for an element to join a column group."""

    cluster_threshold_px: float = 100.0
    """Maximum origin distance between a cluster seed and its members."""

    large_dimension_factor: float = 1.5
    """Rows/columns larger than this multiple of the average are reported."""

    sort_row_members_by_x: bool = True
    """Sort row members by x before measuring horizontal gaps."""

    # =========================================================================
    # Color Classification Settings
    # =========================================================================

    color_min_saturation: float = 0.18
    """Saturation below which a color is classified as grey (0.0-1.0)."""

    color_lightness_as_white: float = 0.92
    """Lightness at or above which a color is treated as white (0.0-1.0)."""

    color_lightness_as_black: float = 0.12
    """Lightness at or below which a color is classified as black (0.0-1.0)."""

    color_force_very_light_to_grey: bool = True
    """Report very light colors as grey rather than white."""

    # =========================================================================
    # Drawing Settings
    # =========================================================================

    min_pixel_size: float = 1.0
    """Drawing elements narrower or shorter than this are skipped."""

    include_hidden_shapes: bool = False
    """Keep drawing elements whose non-visual properties mark them hidden."""

    off_canvas_limit_px: float = 10000.0
    """Drawing elements positioned beyond this distance are skipped."""

    max_media_size_mb: int = 25
    """Media entries larger than this are referenced but not loaded."""

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(valid_levels)}"
            )
        return upper_v

    @field_validator(
        "color_min_saturation",
        "color_lightness_as_white",
        "color_lightness_as_black",
    )
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        """Validate threshold is between 0.0 and 1.0."""
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"Threshold must be between 0.0 and 1.0, got {v}")
        return v

    @field_validator(
        "default_column_width",
        "default_row_height",
        "row_tolerance_px",
        "column_tolerance_px",
        "cluster_threshold_px",
        "off_canvas_limit_px",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Validate distances and sizes are positive."""
        if v <= 0:
            raise ValueError(f"Value must be positive, got {v}")
        return v

    @field_validator("fallback_column_count", "fallback_row_count", "max_media_size_mb")
    @classmethod
    def validate_count(cls, v: int) -> int:
        """Validate counts are at least 1."""
        if v < 1:
            raise ValueError(f"Value must be at least 1, got {v}")
        return v

    @field_validator("large_dimension_factor")
    @classmethod
    def validate_large_factor(cls, v: float) -> float:
        """Validate the large dimension factor exceeds 1."""
        if v <= 1.0:
            raise ValueError(f"large_dimension_factor must be greater than 1, got {v}")
        return v

    @field_validator("min_pixel_size")
    @classmethod
    def validate_min_pixel_size(cls, v: float) -> float:
        """Validate minimum pixel size is not negative."""
        if v < 0:
            raise ValueError(f"min_pixel_size must not be negative, got {v}")
        return v

    @model_validator(mode="after")
    def validate_lightness_bounds(self) -> "Settings":
        """Validate the black lightness bound is below the white one."""
        if self.color_lightness_as_black >= self.color_lightness_as_white:
            raise ValueError(
                f"color_lightness_as_black ({self.color_lightness_as_black}) must be "
                f"less than color_lightness_as_white ({self.color_lightness_as_white})"
            )
        return self

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def max_media_size_bytes(self) -> int:
        """Get max media size in bytes."""
        return self.max_media_size_mb * 1024 * 1024

    @property
    def log_level_int(self) -> int:
        """Get log level as integer for logging module."""
        level: int = getattr(logging, self.log_level)
        return level

    def to_safe_dict(self) -> dict[str, Any]:
        """Convert settings to a plain dictionary for reports and logging.

        Returns:
            Dictionary representation of all settings.
        """
        return self.model_dump()


def validate_settings_on_startup(s: Settings) -> None:
    """Validate settings on startup and log a configuration summary.

    Args:
        s: Settings instance to validate.
    """
    logger = logging.getLogger(__name__)

    if not s.color_force_very_light_to_grey and s.color_lightness_as_white < 0.5:
        logger.warning(
            "color_lightness_as_white is below 0.5; mid-tone colors will be "
            "classified as white."
        )

    if s.row_tolerance_px > s.cluster_threshold_px:
        logger.warning(
            "row_tolerance_px exceeds cluster_threshold_px; row groups may span "
            "several clusters."
        )

    logger.info(
        f"Configuration loaded: log_level={s.log_level}, debug={s.debug}, "
        f"row_tolerance_px={s.row_tolerance_px}, "
        f"cluster_threshold_px={s.cluster_threshold_px}, "
        f"min_pixel_size={s.min_pixel_size}"
    )


# Create the global settings instance
settings = Settings()
