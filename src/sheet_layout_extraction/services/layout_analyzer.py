"""Heuristic layout analysis over positioned text and image elements.

This module groups elements into visual rows and columns, measures the gaps
between them, detects spatial clusters and relates element sizes to the
sheet's average cell size. Downstream renderers use the result to decide
whether an element keeps its native size or is scaled to fit a template slot.

Row and column groups keep a running height/width average updated as
``(old + new) / 2``. The recurrence is order dependent and is kept as is so
that outputs stay comparable across versions.
"""

from __future__ import annotations

import dataclasses
import math
from collections.abc import Mapping, Sequence
from typing import Any

from sheet_layout_extraction.config import Settings
from sheet_layout_extraction.config import settings as app_settings
from sheet_layout_extraction.sheet_document import (
    AnchorRect,
    Cluster,
    ColumnGroup,
    ImageElement,
    LayoutInfo,
    PixelRect,
    RowGroup,
    ScaleFactors,
    SheetData,
    SpacingInfo,
    element_rect,
)
from sheet_layout_extraction.services.units import (
    resolve_column_width_px,
    resolve_row_height_px,
)
from sheet_layout_extraction.utils.exceptions import LayoutAnalysisError
from sheet_layout_extraction.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TOLERANCE_PX = 50.0
DEFAULT_CLUSTER_THRESHOLD_PX = 100.0


def group_elements_by_row(
    elements: Sequence[Any],
    tolerance: float = DEFAULT_TOLERANCE_PX,
) -> list[RowGroup]:
    """Group elements whose top edges lie within ``tolerance`` pixels.

    Elements are visited in input order and join the first existing group
    whose representative ``y`` is within the tolerance (inclusive).

    Args:
        elements: Positioned elements (see ``element_rect``).
        tolerance: Maximum vertical distance to a group's ``y``.

    Returns:
        Row groups sorted by ``y`` ascending.
    """
    rows: list[RowGroup] = []
    for element in elements:
        rect = element_rect(element)
        for row in rows:
            if abs(rect.y - row.y) <= tolerance:
                row.members.append(element)
                row.avg_height = (row.avg_height + rect.height) / 2
                break
        else:
            rows.append(RowGroup(y=rect.y, avg_height=rect.height, members=[element]))

    rows.sort(key=lambda group: group.y)
    return rows


def group_elements_by_column(
    elements: Sequence[Any],
    tolerance: float = DEFAULT_TOLERANCE_PX,
) -> list[ColumnGroup]:
    """Group elements whose left edges lie within ``tolerance`` pixels."""
    cols: list[ColumnGroup] = []
    for element in elements:
        rect = element_rect(element)
        for col in cols:
            if abs(rect.x - col.x) <= tolerance:
                col.members.append(element)
                col.avg_width = (col.avg_width + rect.width) / 2
                break
        else:
            cols.append(ColumnGroup(x=rect.x, avg_width=rect.width, members=[element]))

    cols.sort(key=lambda group: group.x)
    return cols


def calculate_element_spacing(
    rows: Sequence[RowGroup],
    sort_by_x: bool = True,
) -> SpacingInfo:
    """Measure horizontal gaps inside rows and vertical gaps between rows.

    Horizontal gaps are taken between consecutive members of each row,
    ordered by ``x`` unless ``sort_by_x`` is False (insertion order).
    Vertical gaps are ``next.y - (current.y + current.avg_height)`` between
    consecutive rows sorted by ``y``. Gaps that are zero or negative are
    overlaps and are left out.
    """
    horizontal: list[float] = []
    for row in rows:
        rects = [element_rect(member) for member in row.members]
        if sort_by_x:
            rects.sort(key=lambda rect: rect.x)
        for current, following in zip(rects, rects[1:]):
            gap = following.x - current.right
            if gap > 0:
                horizontal.append(gap)

    vertical: list[float] = []
    ordered = sorted(rows, key=lambda group: group.y)
    for current, following in zip(ordered, ordered[1:]):
        gap = following.y - (current.y + current.avg_height)
        if gap > 0:
            vertical.append(gap)

    return SpacingInfo(
        horizontal=horizontal,
        vertical=vertical,
        avg_horizontal=_mean(horizontal),
        avg_vertical=_mean(vertical),
    )


def identify_element_clusters(
    elements: Sequence[Any],
    threshold: float = DEFAULT_CLUSTER_THRESHOLD_PX,
) -> list[Cluster]:
    """Find groups of elements whose origins lie near a seed element.

    Each unvisited element seeds a cluster and claims every later unvisited
    element whose origin is within ``threshold`` pixels (Euclidean) of the
    seed's origin. Only clusters with two or more members are returned;
    singletons still appear in row and column groupings.
    """
    rects = [element_rect(element) for element in elements]
    visited: set[int] = set()
    clusters: list[Cluster] = []

    for i, seed in enumerate(rects):
        if i in visited:
            continue
        visited.add(i)
        member_indices = [i]
        for j in range(i + 1, len(rects)):
            if j in visited:
                continue
            other = rects[j]
            if math.hypot(seed.x - other.x, seed.y - other.y) <= threshold:
                member_indices.append(j)
                visited.add(j)

        if len(member_indices) < 2:
            continue
        members = [rects[k] for k in member_indices]
        clusters.append(
            Cluster(
                members=[elements[k] for k in member_indices],
                center_x=sum(rect.x for rect in members) / len(members),
                center_y=sum(rect.y for rect in members) / len(members),
                avg_size=sum(rect.width * rect.height for rect in members) / len(members),
            )
        )

    return clusters


def calculate_scale_factors(
    elements: Sequence[Any],
    avg_row_height: float,
    avg_col_width: float,
) -> ScaleFactors:
    """Express element sizes as multiples of the average cell size.

    Returns unit ratios when there are no elements. A non-positive average
    dimension yields ratios of 0 for that axis.
    """
    if not elements:
        return ScaleFactors()

    rects = [element_rect(element) for element in elements]
    width_ratios = [_ratio(rect.width, avg_col_width) for rect in rects]
    height_ratios = [_ratio(rect.height, avg_row_height) for rect in rects]
    return ScaleFactors(
        width_ratios=width_ratios,
        height_ratios=height_ratios,
        avg_width_ratio=sum(width_ratios) / len(width_ratios),
        avg_height_ratio=sum(height_ratios) / len(height_ratios),
    )


def analyze_layout_structure(
    sheet: SheetData,
    elements: Sequence[Any],
    settings: Settings | None = None,
) -> LayoutInfo:
    """Analyze sheet dimensions and the spatial structure of its elements.

    Args:
        sheet: Sheet metadata providing column widths and row heights.
        elements: Combined text and image elements with pixel positions.
        settings: Settings override for tolerances and defaults.

    Returns:
        Layout information for the sheet.

    Raises:
        LayoutAnalysisError: If an element cannot be measured.
    """
    cfg = settings or app_settings

    row_count = sheet.row_count if sheet.row_count > 0 else cfg.fallback_row_count
    col_count = sheet.column_count if sheet.column_count > 0 else cfg.fallback_column_count

    row_heights = [
        resolve_row_height_px(sheet, row, cfg.default_row_height)
        for row in range(1, row_count + 1)
    ]
    col_widths = [
        resolve_column_width_px(sheet, col, cfg.default_column_width)
        for col in range(1, col_count + 1)
    ]
    avg_row_height = sum(row_heights) / len(row_heights)
    avg_col_width = sum(col_widths) / len(col_widths)

    factor = cfg.large_dimension_factor
    large_rows = [
        row for row, height in enumerate(row_heights, start=1)
        if height > avg_row_height * factor
    ]
    large_cols = [
        col for col, width in enumerate(col_widths, start=1)
        if width > avg_col_width * factor
    ]

    layout = LayoutInfo(
        row_count=row_count,
        col_count=col_count,
        avg_row_height=avg_row_height,
        avg_col_width=avg_col_width,
        large_rows=large_rows,
        large_cols=large_cols,
    )
    if not elements:
        return layout

    try:
        layout.image_positions = [
            _copy_rect(element)
            for element in elements
            if isinstance(element, ImageElement)
        ]
        layout.rows = group_elements_by_row(elements, cfg.row_tolerance_px)
        layout.cols = group_elements_by_column(elements, cfg.column_tolerance_px)
        layout.spacing = calculate_element_spacing(
            layout.rows, sort_by_x=cfg.sort_row_members_by_x
        )
        layout.clusters = identify_element_clusters(elements, cfg.cluster_threshold_px)
        layout.scale_factors = calculate_scale_factors(
            elements, avg_row_height, avg_col_width
        )
    except (TypeError, ValueError) as e:
        raise LayoutAnalysisError(
            f"Could not analyze element positions: {e}", stage="grouping"
        ) from e

    logger.debug(
        "Layout analysis complete",
        sheet=sheet.name,
        rows=len(layout.rows),
        cols=len(layout.cols),
        clusters=len(layout.clusters),
    )
    return layout


def apply_layout_analysis(elements: Sequence[Any], layout: LayoutInfo) -> list[Any]:
    """Shift elements by the average spacing of their row and column groups.

    An element in the n-th column group moves right by ``n * avg_horizontal``
    and an element in the m-th row group moves down by ``m * avg_vertical``.
    Elements are copied; the inputs are left untouched. Elements that belong
    to no group, or axes without a measured spacing, are not shifted.
    """
    if not layout.rows or not layout.cols:
        return list(elements)

    row_index = {id(member): i for i, row in enumerate(layout.rows) for member in row.members}
    col_index = {id(member): i for i, col in enumerate(layout.cols) for member in col.members}
    avg_h = layout.spacing.avg_horizontal or 0.0
    avg_v = layout.spacing.avg_vertical or 0.0

    adjusted: list[Any] = []
    for element in elements:
        dx = avg_h * col_index.get(id(element), 0)
        dy = avg_v * row_index.get(id(element), 0)
        adjusted.append(_shifted(element, dx, dy))
    return adjusted


# ---- helpers ---- #


def _mean(values: Sequence[float]) -> float | None:
    if not values:
        return None
    return sum(values) / len(values)


def _ratio(size: float, reference: float) -> float:
    if reference <= 0:
        return 0.0
    return size / reference


def _copy_rect(element: Any) -> PixelRect:
    rect = element_rect(element)
    return PixelRect(rect.x, rect.y, rect.width, rect.height)


def _shifted(element: Any, dx: float, dy: float) -> Any:
    if isinstance(element, Mapping):
        copy = dict(element)
        copy["x"] = float(copy.get("x") or 0) + dx
        copy["y"] = float(copy.get("y") or 0) + dy
        return copy
    anchor = getattr(element, "anchor", None)
    if isinstance(anchor, AnchorRect) and dataclasses.is_dataclass(element):
        moved = dataclasses.replace(anchor, x=anchor.x + dx, y=anchor.y + dy)
        return dataclasses.replace(element, anchor=moved)
    if dataclasses.is_dataclass(element):
        return dataclasses.replace(element, x=element.x + dx, y=element.y + dy)
    return element
