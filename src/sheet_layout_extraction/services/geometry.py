"""Pixel geometry of the worksheet grid.

Builds cumulative column/row offset tables for anchor conversion and computes
the pixel rectangle of individual cells.
"""

from __future__ import annotations

from sheet_layout_extraction.config import Settings
from sheet_layout_extraction.config import settings as app_settings
from sheet_layout_extraction.sheet_document import PixelRect, SheetData, SheetOffsets
from sheet_layout_extraction.services.units import (
    resolve_column_width_px,
    resolve_row_height_px,
)


def calculate_offsets(
    sheet: SheetData,
    column_count: int | None = None,
    row_count: int | None = None,
    settings: Settings | None = None,
) -> SheetOffsets:
    """Compute cumulative pixel offsets for every column and row.

    The tables cover the larger of the sheet's reported extent and the
    requested counts. A sheet reporting no extent uses the configured
    fallback (50 columns, 100 rows by default).

    Args:
        sheet: Sheet metadata.
        column_count: Minimum number of columns to cover.
        row_count: Minimum number of rows to cover.
        settings: Settings override; defaults to the global settings.

    Returns:
        SheetOffsets whose tables start at 0 and never decrease.
    """
    cfg = settings or app_settings
    columns = max(sheet.column_count or cfg.fallback_column_count, column_count or 0)
    rows = max(sheet.row_count or cfg.fallback_row_count, row_count or 0)

    col_offsets = [0.0]
    for col in range(1, columns + 1):
        col_offsets.append(
            col_offsets[-1]
            + resolve_column_width_px(sheet, col, cfg.default_column_width)
        )

    row_offsets = [0.0]
    for row in range(1, rows + 1):
        row_offsets.append(
            row_offsets[-1] + resolve_row_height_px(sheet, row, cfg.default_row_height)
        )

    return SheetOffsets(col_offsets=col_offsets, row_offsets=row_offsets)


def get_cell_pixel_bounds(
    row: int,
    col: int,
    sheet: SheetData,
    settings: Settings | None = None,
) -> PixelRect:
    """Return the pixel rectangle of the 1-based cell ``(row, col)``.

    The origin is recomputed by summing the widths/heights of all preceding
    columns/rows; the size is the cell's own converted width and height.
    Indices below 1 are treated as 1.
    """
    cfg = settings or app_settings
    row = max(row, 1)
    col = max(col, 1)

    x = sum(
        resolve_column_width_px(sheet, c, cfg.default_column_width)
        for c in range(1, col)
    )
    y = sum(
        resolve_row_height_px(sheet, r, cfg.default_row_height) for r in range(1, row)
    )
    return PixelRect(
        x=x,
        y=y,
        width=resolve_column_width_px(sheet, col, cfg.default_column_width),
        height=resolve_row_height_px(sheet, row, cfg.default_row_height),
    )


def extend_offsets(
    offsets: SheetOffsets,
    sheet: SheetData,
    column_count: int,
    row_count: int,
    settings: Settings | None = None,
) -> SheetOffsets:
    """Return offset tables covering at least the given counts.

    Existing entries are kept; missing ones are appended using the sheet's
    widths and heights. The input is returned unchanged when it already
    covers both counts.
    """
    if offsets.column_count >= column_count and offsets.row_count >= row_count:
        return offsets

    cfg = settings or app_settings
    col_offsets = list(offsets.col_offsets)
    for col in range(len(col_offsets), column_count + 1):
        col_offsets.append(
            col_offsets[-1]
            + resolve_column_width_px(sheet, col, cfg.default_column_width)
        )

    row_offsets = list(offsets.row_offsets)
    for row in range(len(row_offsets), row_count + 1):
        row_offsets.append(
            row_offsets[-1] + resolve_row_height_px(sheet, row, cfg.default_row_height)
        )

    return SheetOffsets(col_offsets=col_offsets, row_offsets=row_offsets)
