"""Merged cell resolution.

Turns the merge descriptors of a sheet into validated MergedRange objects with
pixel bounds, and answers point-in-merge queries.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

from sheet_layout_extraction.config import Settings
from sheet_layout_extraction.sheet_document import MergedRange, SheetData
from sheet_layout_extraction.services.geometry import get_cell_pixel_bounds
from sheet_layout_extraction.utils.exceptions import MergeRangeError
from sheet_layout_extraction.utils.logging import get_logger

logger = get_logger(__name__)

RANGE_RE = re.compile(r"^\$?([A-Z]+)\$?(\d+):\$?([A-Z]+)\$?(\d+)$")


def column_letter_to_number(letters: str) -> int:
    """Decode a column label such as ``"AB"`` to its 1-based number (28).

    Raises:
        ValueError: If the label is empty or holds characters other than A-Z.
    """
    label = letters.strip().upper()
    if not label or not label.isascii() or not label.isalpha():
        raise ValueError(f"Invalid column label: {letters!r}")
    value = 0
    for char in label:
        value = value * 26 + (ord(char) - 64)
    return value


def parse_merge_descriptor(descriptor: Any) -> tuple[int, int, int, int]:
    """Parse one merge descriptor into ``(top, left, bottom, right)``.

    Accepts ``"A1:C3"`` style strings (``$`` anchors allowed), mappings with
    ``top``/``left``/``bottom``/``right`` keys, and MergedRange objects.

    Raises:
        MergeRangeError: If the descriptor cannot be parsed or describes an
            empty, inverted or non-positive range.
    """
    if isinstance(descriptor, MergedRange):
        bounds = (descriptor.top, descriptor.left, descriptor.bottom, descriptor.right)
    elif isinstance(descriptor, str):
        match = RANGE_RE.match(descriptor.strip().upper())
        if not match:
            raise MergeRangeError(descriptor, "unrecognised range reference")
        bounds = (
            int(match.group(2)),
            column_letter_to_number(match.group(1)),
            int(match.group(4)),
            column_letter_to_number(match.group(3)),
        )
    elif isinstance(descriptor, Mapping):
        try:
            bounds = tuple(
                int(descriptor[key]) for key in ("top", "left", "bottom", "right")
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MergeRangeError(
                descriptor, f"missing or non-integer bound: {e}"
            ) from e
    else:
        raise MergeRangeError(
            descriptor, f"unsupported descriptor type {type(descriptor).__name__}"
        )

    top, left, bottom, right = bounds
    if min(top, left, bottom, right) <= 0:
        raise MergeRangeError(descriptor, "bounds must be positive")
    if top > bottom or left > right:
        raise MergeRangeError(descriptor, "range is inverted")
    return top, left, bottom, right


def get_merged_cells(
    sheet: SheetData,
    settings: Settings | None = None,
) -> list[MergedRange]:
    """Resolve the merge descriptors of a sheet.

    Invalid descriptors are logged and skipped; they never abort extraction.
    Pixel bounds run from the origin of the top-left cell to the origin of
    the cell diagonally past the bottom-right corner.

    Args:
        sheet: Sheet metadata carrying ``merge_descriptors``.
        settings: Settings override for default widths and heights.

    Returns:
        Valid merged ranges in descriptor order.
    """
    merged: list[MergedRange] = []
    for descriptor in sheet.merge_descriptors:
        try:
            top, left, bottom, right = parse_merge_descriptor(descriptor)
        except MergeRangeError as e:
            logger.warning(
                "Skipping invalid merge range",
                sheet=sheet.name,
                descriptor=repr(descriptor),
                reason=e.reason,
            )
            continue

        origin = get_cell_pixel_bounds(top, left, sheet, settings)
        far_corner = get_cell_pixel_bounds(bottom + 1, right + 1, sheet, settings)
        merged.append(
            MergedRange(
                top=top,
                left=left,
                bottom=bottom,
                right=right,
                x=origin.x,
                y=origin.y,
                width=far_corner.x - origin.x,
                height=far_corner.y - origin.y,
            )
        )

    logger.debug("Resolved merged ranges", sheet=sheet.name, count=len(merged))
    return merged


def is_in_merged_cell(
    row: int,
    col: int,
    merged_cells: Iterable[MergedRange],
) -> MergedRange | None:
    """Return the first merged range containing ``(row, col)``, if any."""
    for merge in merged_cells:
        if merge.contains(row, col):
            return merge
    return None
