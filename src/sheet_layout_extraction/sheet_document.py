"""Dataclasses representing sheet geometry and extracted layout elements.

All entities are created fresh per extraction call and hold no references back
to the package they were read from. Coordinates are pixels measured from the
top-left corner of the sheet canvas; row and column numbers are 1-based unless
noted otherwise.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ElementSource(str, Enum):
    """Origin of an extracted text element."""

    CELL = "cell"
    """Text read from a worksheet cell or merged range."""

    DRAWING = "drawing"
    """Text read from a drawing shape or text box."""


class AnchorType(str, Enum):
    """DrawingML anchor variants that position a drawing object."""

    TWO_CELL = "twoCellAnchor"
    ONE_CELL = "oneCellAnchor"
    ABSOLUTE = "absoluteAnchor"


class PaletteColor(str, Enum):
    """Fixed palette that arbitrary color encodings are classified into."""

    BLACK = "black"
    GREY = "grey"
    WHITE = "white"
    RED = "red"
    ORANGE = "orange"
    YELLOW = "yellow"
    GREEN = "green"
    BLUE = "blue"
    VIOLET = "violet"


# =============================================================================
# Sheet metadata
# =============================================================================


@dataclass
class CellData:
    """Value and display style of a single populated cell."""

    value: Any
    """Raw cell value as read from the workbook."""

    font_color: str | None = None
    """Font color as ``#RRGGBB`` when explicitly set."""

    fill_color: str | None = None
    """Solid fill color as ``#RRGGBB`` when explicitly set."""

    font_size: float | None = None
    """Font size in points."""

    font_name: str | None = None
    """Font family name."""


@dataclass
class SheetData:
    """Sheet metadata needed to compute pixel geometry.

    Only explicitly set column widths and row heights are stored; everything
    else falls back to the configured defaults during conversion.
    """

    name: str
    """Sheet name as shown on its tab."""

    index: int = 1
    """1-based position of the sheet in the workbook."""

    part_path: str | None = None
    """Package path of the worksheet part, e.g. ``xl/worksheets/sheet1.xml``."""

    row_count: int = 0
    """Number of rows the sheet reports as used (0 when empty)."""

    column_count: int = 0
    """Number of columns the sheet reports as used (0 when empty)."""

    column_widths: dict[int, float] = field(default_factory=dict)
    """Explicit column widths in character units keyed by 1-based column."""

    row_heights: dict[int, float] = field(default_factory=dict)
    """Explicit row heights in points keyed by 1-based row."""

    merge_descriptors: list[Any] = field(default_factory=list)
    """Raw merge descriptors: ``"A1:C3"`` strings or bound mappings."""

    cells: dict[tuple[int, int], CellData] = field(default_factory=dict)
    """Populated cells keyed by ``(row, col)``."""

    def get_cell(self, row: int, col: int) -> CellData | None:
        """Return the populated cell at ``(row, col)`` if any."""
        return self.cells.get((row, col))


@dataclass
class PixelRect:
    """Axis-aligned rectangle in canvas pixels."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        """Right edge x-coordinate."""
        return self.x + self.width

    @property
    def bottom(self) -> float:
        """Bottom edge y-coordinate."""
        return self.y + self.height

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass
class SheetOffsets:
    """Cumulative pixel offsets of the sheet grid.

    ``col_offsets[i]`` is the left edge of the column with 0-based index ``i``
    (the sum of the widths of the ``i`` preceding columns), so
    ``col_offsets[0] == 0``. ``row_offsets`` follows the same convention.
    Both tables hold one more entry than the number of columns/rows they cover.
    """

    col_offsets: list[float]
    row_offsets: list[float]

    @property
    def column_count(self) -> int:
        """Number of columns covered by the table."""
        return len(self.col_offsets) - 1

    @property
    def row_count(self) -> int:
        """Number of rows covered by the table."""
        return len(self.row_offsets) - 1


@dataclass
class MergedRange:
    """Rectangular merged cell range with its pixel bounds."""

    top: int
    left: int
    bottom: int
    right: int
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    def contains(self, row: int, col: int) -> bool:
        """Whether the 1-based cell ``(row, col)`` lies inside the range."""
        return self.top <= row <= self.bottom and self.left <= col <= self.right

    def bounds_dict(self) -> dict[str, int]:
        return {
            "top": self.top,
            "left": self.left,
            "bottom": self.bottom,
            "right": self.right,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.bounds_dict(),
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }


# =============================================================================
# Extracted elements
# =============================================================================


@dataclass
class MediaRef:
    """Embedded media blob resolved for an image element."""

    path: str
    """Package path of the media entry, e.g. ``xl/media/image1.png``."""

    content_type: str | None = None
    """MIME type from the content-type manifest or file extension."""

    data: bytes | None = None
    """Raw bytes of the media entry, omitted for oversized entries."""

    natural_width: int | None = None
    """Intrinsic pixel width of the image when it could be decoded."""

    natural_height: int | None = None
    """Intrinsic pixel height of the image when it could be decoded."""

    strategy: str = "relationships"
    """Lookup strategy that produced this reference."""

    def to_dict(self, include_data: bool = False) -> dict[str, Any]:
        result: dict[str, Any] = {
            "path": self.path,
            "content_type": self.content_type,
            "natural_width": self.natural_width,
            "natural_height": self.natural_height,
            "strategy": self.strategy,
            "size_bytes": len(self.data) if self.data is not None else None,
        }
        if include_data and self.data is not None:
            result["data"] = self.data.hex()
        return result


@dataclass
class TextElement:
    """A piece of text positioned on the sheet canvas.

    Cell texts carry their grid position; drawing texts have ``row`` and
    ``col`` set to ``None``.
    """

    text: str
    x: float
    y: float
    width: float
    height: float
    row: int | None = None
    col: int | None = None
    is_merged: bool = False
    merged_range: MergedRange | None = None
    source: ElementSource = ElementSource.CELL
    font_size: float | None = None
    font_family: str | None = None
    color: str | None = None
    palette_color: PaletteColor | None = None
    fill_color: str | None = None
    fill_palette_color: PaletteColor | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "row": self.row,
            "col": self.col,
            "is_merged": self.is_merged,
            "merged_range": (
                self.merged_range.bounds_dict() if self.merged_range else None
            ),
            "source": self.source.value,
            "font_size": self.font_size,
            "font_family": self.font_family,
            "color": self.color,
            "palette_color": self.palette_color.value if self.palette_color else None,
            "fill_color": self.fill_color,
            "fill_palette_color": (
                self.fill_palette_color.value if self.fill_palette_color else None
            ),
        }


@dataclass
class ImageElement:
    """A picture anchored on the sheet canvas."""

    x: float
    y: float
    width: float
    height: float
    relationship_id: str | None = None
    media_ref: MediaRef | None = None
    name: str | None = None
    anchor_type: AnchorType | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "relationship_id": self.relationship_id,
            "media": self.media_ref.to_dict() if self.media_ref else None,
            "name": self.name,
            "anchor_type": self.anchor_type.value if self.anchor_type else None,
        }


# =============================================================================
# Drawing elements
# =============================================================================


@dataclass
class AnchorRect:
    """Pixel rectangle resolved from a drawing anchor."""

    x: float
    y: float
    width: float
    height: float
    anchor_type: AnchorType

    def to_rect(self) -> PixelRect:
        return PixelRect(self.x, self.y, self.width, self.height)


@dataclass
class DrawingColor:
    """A color resolved from a DrawingML color element."""

    hex: str
    """Color as ``#RRGGBB``."""

    alpha: float = 1.0
    """Opacity between 0 (transparent) and 1 (opaque)."""

    source: str = "srgbClr"
    """Local tag name of the color element it came from."""

    palette: PaletteColor | None = None
    """Palette classification of the color."""


@dataclass
class TextBox:
    """Shape carrying text."""

    anchor: AnchorRect
    text: str
    element_id: str = ""
    name: str = ""
    font_size: float | None = None
    font_family: str | None = None
    color: DrawingColor | None = None
    fill: DrawingColor | None = None

    kind = "textbox"


@dataclass
class Shape:
    """Shape without text, described by its fill and outline."""

    anchor: AnchorRect
    element_id: str = ""
    name: str = ""
    geometry: str | None = None
    fill: DrawingColor | None = None
    stroke: DrawingColor | None = None
    text: str = ""

    kind = "shape"


@dataclass
class Picture:
    """Picture referencing an embedded media blob."""

    anchor: AnchorRect
    relationship_id: str | None = None
    element_id: str = ""
    name: str = ""

    kind = "picture"


DrawingElement = TextBox | Shape | Picture


@dataclass
class SkippedElement:
    """A drawing element filtered out during parsing."""

    kind: str
    reason: str
    element_id: str = ""
    name: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "kind": self.kind,
            "reason": self.reason,
            "element_id": self.element_id,
            "name": self.name,
        }


# =============================================================================
# Layout analysis
# =============================================================================


@dataclass
class RowGroup:
    """Elements sharing approximately the same vertical position."""

    y: float
    """Representative y-coordinate (the first member's)."""

    avg_height: float
    """Running average height of the members."""

    members: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"y": self.y, "avg_height": self.avg_height, "size": len(self.members)}


@dataclass
class ColumnGroup:
    """Elements sharing approximately the same horizontal position."""

    x: float
    """Representative x-coordinate (the first member's)."""

    avg_width: float
    """Running average width of the members."""

    members: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"x": self.x, "avg_width": self.avg_width, "size": len(self.members)}


@dataclass
class SpacingInfo:
    """Gaps measured between neighbouring elements and row groups."""

    horizontal: list[float] = field(default_factory=list)
    vertical: list[float] = field(default_factory=list)
    avg_horizontal: float | None = None
    avg_vertical: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "horizontal": self.horizontal,
            "vertical": self.vertical,
            "avg_horizontal": self.avg_horizontal,
            "avg_vertical": self.avg_vertical,
        }


@dataclass
class Cluster:
    """Two or more elements whose origins lie close to a seed element."""

    members: list[Any]
    center_x: float
    center_y: float
    avg_size: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "size": len(self.members),
            "center_x": self.center_x,
            "center_y": self.center_y,
            "avg_size": self.avg_size,
        }


@dataclass
class ScaleFactors:
    """Element sizes expressed as ratios of the average row/column size."""

    width_ratios: list[float] = field(default_factory=list)
    height_ratios: list[float] = field(default_factory=list)
    avg_width_ratio: float = 1.0
    avg_height_ratio: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "width_ratios": self.width_ratios,
            "height_ratios": self.height_ratios,
            "avg_width_ratio": self.avg_width_ratio,
            "avg_height_ratio": self.avg_height_ratio,
        }


@dataclass
class LayoutInfo:
    """Result of heuristic layout analysis for one sheet."""

    row_count: int
    col_count: int
    avg_row_height: float
    avg_col_width: float
    large_rows: list[int] = field(default_factory=list)
    large_cols: list[int] = field(default_factory=list)
    image_positions: list[PixelRect] = field(default_factory=list)
    rows: list[RowGroup] = field(default_factory=list)
    cols: list[ColumnGroup] = field(default_factory=list)
    spacing: SpacingInfo = field(default_factory=SpacingInfo)
    clusters: list[Cluster] = field(default_factory=list)
    scale_factors: ScaleFactors = field(default_factory=ScaleFactors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_count": self.row_count,
            "col_count": self.col_count,
            "avg_row_height": self.avg_row_height,
            "avg_col_width": self.avg_col_width,
            "large_rows": self.large_rows,
            "large_cols": self.large_cols,
            "image_positions": [rect.to_dict() for rect in self.image_positions],
            "rows": [row.to_dict() for row in self.rows],
            "cols": [col.to_dict() for col in self.cols],
            "spacing": self.spacing.to_dict(),
            "clusters": [cluster.to_dict() for cluster in self.clusters],
            "scale_factors": self.scale_factors.to_dict(),
        }


@dataclass
class SheetExtraction:
    """Everything extracted from a single sheet."""

    sheet_name: str
    texts: list[TextElement] = field(default_factory=list)
    images: list[ImageElement] = field(default_factory=list)
    merged_cells: list[MergedRange] = field(default_factory=list)
    drawing_path: str | None = None
    skipped: list[SkippedElement] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    layout: LayoutInfo | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sheet_name": self.sheet_name,
            "texts": [text.to_dict() for text in self.texts],
            "images": [image.to_dict() for image in self.images],
            "merged_cells": [merge.to_dict() for merge in self.merged_cells],
            "drawing_path": self.drawing_path,
            "skipped": [item.to_dict() for item in self.skipped],
            "warnings": self.warnings,
            "layout": self.layout.to_dict() if self.layout else None,
        }


def element_rect(element: Any) -> PixelRect:
    """Read the pixel rectangle of any positioned element.

    Accepts the element dataclasses above, drawing elements (via their anchor)
    and plain mappings with ``x``/``y``/``width``/``height`` keys. Missing
    values read as 0.
    """
    if isinstance(element, PixelRect):
        return element
    anchor = getattr(element, "anchor", None)
    if isinstance(anchor, AnchorRect):
        return anchor.to_rect()
    if isinstance(element, Mapping):
        return PixelRect(
            float(element.get("x") or 0),
            float(element.get("y") or 0),
            float(element.get("width") or 0),
            float(element.get("height") or 0),
        )
    return PixelRect(
        float(getattr(element, "x", 0) or 0),
        float(getattr(element, "y", 0) or 0),
        float(getattr(element, "width", 0) or 0),
        float(getattr(element, "height", 0) or 0),
    )
