"""Text extraction from worksheet cells and drawing shapes.

Cell texts are emitted in row-major order. A merged range produces exactly one
element, positioned at the merge's pixel bounds and carrying the text of its
top-left cell; every other cell of the merge is consumed silently.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from sheet_layout_extraction.config import Settings
from sheet_layout_extraction.sheet_document import (
    CellData,
    DrawingElement,
    ElementSource,
    MergedRange,
    Shape,
    SheetData,
    TextBox,
    TextElement,
)
from sheet_layout_extraction.services.color_mapper import map_color
from sheet_layout_extraction.services.geometry import get_cell_pixel_bounds
from sheet_layout_extraction.services.merge_resolver import is_in_merged_cell
from sheet_layout_extraction.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_DRAWING_FONT_SIZE = 12.0
DEFAULT_DRAWING_FONT_FAMILY = "Arial"
DEFAULT_DRAWING_TEXT_COLOR = "#000000"


def format_cell_value(value: Any) -> str:
    """Render a cell value the way a spreadsheet displays it.

    Integral floats lose their trailing ``.0``, booleans become ``TRUE`` /
    ``FALSE`` and dates use ISO format. The result is stripped.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, Decimal):
        return format(value.normalize(), "f") if value == value.to_integral() else str(value)
    if isinstance(value, dt.datetime):
        if value.time() == dt.time(0, 0):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, (dt.date, dt.time)):
        return value.isoformat()
    return str(value).strip()


def extract_texts(
    sheet: SheetData,
    merged_cells: list[MergedRange],
    settings: Settings | None = None,
) -> list[TextElement]:
    """Extract positioned text elements from the populated cells of a sheet.

    Args:
        sheet: Sheet metadata with populated cells.
        merged_cells: Resolved merged ranges of the sheet.
        settings: Settings override for geometry defaults.

    Returns:
        Text elements in row-major order, at most one per merged range.
    """
    texts: list[TextElement] = []
    emitted_merges: set[tuple[int, int, int, int]] = set()

    for row, col in sorted(sheet.cells):
        try:
            merge = is_in_merged_cell(row, col, merged_cells)
            if merge is not None:
                bounds = (merge.top, merge.left, merge.bottom, merge.right)
                if bounds in emitted_merges:
                    continue
                emitted_merges.add(bounds)
                element = _merged_text(sheet, merge)
            else:
                element = _cell_text(sheet, row, col, settings)
        except (TypeError, ValueError, ArithmeticError) as e:
            logger.warning(
                "Skipping cell that could not be processed",
                sheet=sheet.name,
                row=row,
                col=col,
                error=str(e),
            )
            continue
        if element is not None:
            texts.append(element)

    logger.debug("Extracted cell texts", sheet=sheet.name, count=len(texts))
    return texts


def extract_text_from_drawings(
    elements: Iterable[DrawingElement],
) -> list[TextElement]:
    """Convert drawing shapes that carry text into text elements.

    Missing font attributes take the drawing defaults (12 pt Arial, black).
    Pictures and shapes without text are ignored.
    """
    texts: list[TextElement] = []
    for element in elements:
        if isinstance(element, TextBox):
            font_size = element.font_size
            font_family = element.font_family
            color = element.color.hex if element.color else None
            fill = element.fill
        elif isinstance(element, Shape) and element.text.strip():
            font_size = None
            font_family = None
            color = None
            fill = element.fill
        else:
            continue

        text = element.text.strip()
        if not text:
            continue
        color = color or DEFAULT_DRAWING_TEXT_COLOR
        texts.append(
            TextElement(
                text=text,
                x=element.anchor.x,
                y=element.anchor.y,
                width=element.anchor.width,
                height=element.anchor.height,
                source=ElementSource.DRAWING,
                font_size=font_size or DEFAULT_DRAWING_FONT_SIZE,
                font_family=font_family or DEFAULT_DRAWING_FONT_FAMILY,
                color=color,
                palette_color=map_color(color),
                fill_color=fill.hex if fill else None,
                fill_palette_color=fill.palette if fill else None,
            )
        )
    return texts


def _merged_text(sheet: SheetData, merge: MergedRange) -> TextElement | None:
    cell = sheet.get_cell(merge.top, merge.left)
    if cell is None:
        return None
    text = format_cell_value(cell.value)
    if not text:
        return None
    return _build_element(
        cell,
        text,
        x=merge.x,
        y=merge.y,
        width=merge.width,
        height=merge.height,
        row=merge.top,
        col=merge.left,
        merge=merge,
    )


def _cell_text(
    sheet: SheetData,
    row: int,
    col: int,
    settings: Settings | None,
) -> TextElement | None:
    cell = sheet.cells[(row, col)]
    text = format_cell_value(cell.value)
    if not text:
        return None
    bounds = get_cell_pixel_bounds(row, col, sheet, settings)
    return _build_element(
        cell,
        text,
        x=bounds.x,
        y=bounds.y,
        width=bounds.width,
        height=bounds.height,
        row=row,
        col=col,
        merge=None,
    )


def _build_element(
    cell: CellData,
    text: str,
    *,
    x: float,
    y: float,
    width: float,
    height: float,
    row: int,
    col: int,
    merge: MergedRange | None,
) -> TextElement:
    return TextElement(
        text=text,
        x=x,
        y=y,
        width=width,
        height=height,
        row=row,
        col=col,
        is_merged=merge is not None,
        merged_range=merge,
        source=ElementSource.CELL,
        font_size=cell.font_size,
        font_family=cell.font_name,
        color=cell.font_color,
        palette_color=map_color(cell.font_color) if cell.font_color else None,
        fill_color=cell.fill_color,
        fill_palette_color=map_color(cell.fill_color) if cell.fill_color else None,
    )
