"""Unit conversion between spreadsheet measures and canvas pixels.

Spreadsheets store column widths in character units, row heights in points
and drawing offsets in EMU (English Metric Units). Everything downstream works
in 96 DPI pixels.
"""

from sheet_layout_extraction.sheet_document import SheetData

DEFAULT_COLUMN_WIDTH = 8.43
"""Column width in characters used when a column has no explicit width."""

DEFAULT_ROW_HEIGHT = 15.0
"""Row height in points used when a row has no explicit height."""

EMU_PER_PIXEL = 9525.0
POINTS_PER_INCH = 72.0
PIXELS_PER_INCH = 96.0
CHARACTER_WIDTH_PX = 7.0
CHARACTER_PADDING = 0.12


def points_to_px(points: float) -> float:
    """Convert a length in points to pixels (``points * 96 / 72``)."""
    return points * PIXELS_PER_INCH / POINTS_PER_INCH


def column_width_to_px(width: float) -> float:
    """Convert a column width in character units to pixels.

    Args:
        width: Width as stored in the worksheet (number of default-font
            characters).

    Returns:
        ``(width + 0.12) * 7`` pixels.
    """
    return (width + CHARACTER_PADDING) * CHARACTER_WIDTH_PX


def emu_to_px(emu: float) -> float:
    """Convert English Metric Units to pixels."""
    return emu / EMU_PER_PIXEL


def resolve_column_width_px(
    sheet: SheetData,
    col: int,
    default_width: float = DEFAULT_COLUMN_WIDTH,
) -> float:
    """Pixel width of a 1-based column, falling back to the default width.

    A missing, zero or negative explicit width counts as unset.
    """
    width = sheet.column_widths.get(col)
    if not width or width <= 0:
        width = default_width
    return column_width_to_px(width)


def resolve_row_height_px(
    sheet: SheetData,
    row: int,
    default_height: float = DEFAULT_ROW_HEIGHT,
) -> float:
    """Pixel height of a 1-based row, falling back to the default height."""
    height = sheet.row_heights.get(row)
    if not height or height <= 0:
        height = default_height
    return points_to_px(height)
