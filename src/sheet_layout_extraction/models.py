"""Pydantic models for serialized extraction reports."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from sheet_layout_extraction import __version__
from sheet_layout_extraction.sheet_document import SheetExtraction
from sheet_layout_extraction.utils.exceptions import SLEError


class SheetReport(BaseModel):
    """Serialized extraction result of a single sheet."""

    sheet_name: str = Field(..., description="Name of the extracted sheet")
    drawing_path: str | None = Field(
        default=None, description="Package path of the sheet's drawing part"
    )
    texts: list[dict[str, Any]] = Field(
        default_factory=list, description="Positioned text elements"
    )
    images: list[dict[str, Any]] = Field(
        default_factory=list, description="Positioned image elements"
    )
    merged_cells: list[dict[str, Any]] = Field(
        default_factory=list, description="Merged ranges with pixel bounds"
    )
    skipped: list[dict[str, str]] = Field(
        default_factory=list,
        description="Drawing elements filtered out, with the reason",
    )
    warnings: list[str] = Field(
        default_factory=list, description="Recoverable problems met during extraction"
    )
    layout: dict[str, Any] | None = Field(
        default=None, description="Layout analysis, when requested"
    )

    @classmethod
    def from_extraction(
        cls, extraction: SheetExtraction, include_media: bool = False
    ) -> "SheetReport":
        """Build a report from an extraction result.

        Args:
            extraction: The sheet extraction.
            include_media: Whether to embed media bytes (hex encoded).

        Returns:
            SheetReport instance.
        """
        data = extraction.to_dict()
        if include_media:
            data["images"] = [
                {
                    **image.to_dict(),
                    "media": (
                        image.media_ref.to_dict(include_data=True)
                        if image.media_ref
                        else None
                    ),
                }
                for image in extraction.images
            ]
        return cls(**data)


class ErrorReport(BaseModel):
    """Error entry for a failed extraction."""

    error_code: str = Field(..., description="Machine-readable error code (e.g., 'E1001')")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(
        default=None, description="Additional error details for debugging"
    )

    @classmethod
    def from_exception(cls, error: SLEError) -> "ErrorReport":
        return cls(
            error_code=error.error_code.value,
            message=error.message,
            details=error.details or None,
        )


class ExtractionReport(BaseModel):
    """Top-level report written by the command line tool."""

    workbook: str = Field(..., description="File name of the workbook")
    generated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the report was generated",
    )
    version: str = Field(default=__version__, description="Extractor version")
    sheets: list[SheetReport] = Field(
        default_factory=list, description="Per-sheet results in workbook order"
    )
    error: ErrorReport | None = Field(
        default=None, description="Fatal error, when extraction failed"
    )

    @property
    def succeeded(self) -> bool:
        return self.error is None
