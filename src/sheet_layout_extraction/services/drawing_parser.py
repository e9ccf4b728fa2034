"""DrawingML parsing for worksheet drawings.

This module reads a drawing part (``xl/drawings/drawingN.xml``) and turns each
anchored object into a tagged element positioned in canvas pixels:

- TextBox: a shape carrying text, with font size, family and color
- Shape: a shape without text, with fill and outline colors
- Picture: an image referencing embedded media by relationship id

Anchors are converted through the sheet's column/row offset tables, which are
extended to cover every anchor index found in the drawing. Group shapes are
flattened into their children, which inherit the group's anchor.

Ghost elements are filtered out and reported with a reason: hidden objects,
objects smaller than the minimum pixel size, objects far off the canvas and
transparent shapes with no fill, outline or text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from xml.etree import ElementTree as ET

from sheet_layout_extraction.config import Settings
from sheet_layout_extraction.config import settings as app_settings
from sheet_layout_extraction.sheet_document import (
    AnchorRect,
    AnchorType,
    DrawingColor,
    DrawingElement,
    Picture,
    Shape,
    SheetData,
    SheetOffsets,
    SkippedElement,
    TextBox,
)
from sheet_layout_extraction.services.color_mapper import map_color
from sheet_layout_extraction.services.geometry import calculate_offsets, extend_offsets
from sheet_layout_extraction.services.package_reader import (
    DOCUMENT_REL_NS,
    PackageReader,
    local_name,
)
from sheet_layout_extraction.services.units import emu_to_px
from sheet_layout_extraction.utils.exceptions import DrawingParseError
from sheet_layout_extraction.utils.logging import get_logger

logger = get_logger(__name__)

DRAWING_MAIN_NS = "http://schemas.openxmlformats.org/drawingml/2006/main"
SHEET_DRAWING_NS = "http://schemas.openxmlformats.org/drawingml/2006/spreadsheetDrawing"

XDR = f"{{{SHEET_DRAWING_NS}}}"
A = f"{{{DRAWING_MAIN_NS}}}"

ANCHOR_TAGS = {tag.value: tag for tag in AnchorType}
OBJECT_TAGS = {"sp", "cxnSp", "pic", "grpSp", "graphicFrame"}

NON_VISUAL_PATHS = {
    "sp": f"{XDR}nvSpPr/{XDR}cNvPr",
    "cxnSp": f"{XDR}nvCxnSpPr/{XDR}cNvPr",
    "pic": f"{XDR}nvPicPr/{XDR}cNvPr",
    "grpSp": f"{XDR}nvGrpSpPr/{XDR}cNvPr",
    "graphicFrame": f"{XDR}nvGraphicFramePr/{XDR}cNvPr",
}

# Default Office theme
DEFAULT_THEME_COLORS = {
    "accent1": "#5B9BD5",
    "accent2": "#ED7D31",
    "accent3": "#A5A5A5",
    "accent4": "#FFC000",
    "accent5": "#4472C4",
    "accent6": "#70AD47",
    "dk1": "#000000",
    "lt1": "#FFFFFF",
    "dk2": "#44546A",
    "lt2": "#E7E6E6",
    "tx1": "#000000",
    "tx2": "#44546A",
    "bg1": "#FFFFFF",
    "bg2": "#E7E6E6",
    "hlink": "#0563C1",
    "folHlink": "#954F72",
}

PRESET_COLORS = {
    "black": "#000000",
    "white": "#FFFFFF",
    "red": "#FF0000",
    "green": "#008000",
    "lime": "#00FF00",
    "blue": "#0000FF",
    "yellow": "#FFFF00",
    "orange": "#FFA500",
    "purple": "#800080",
    "violet": "#EE82EE",
    "gray": "#808080",
    "grey": "#808080",
    "ltGray": "#D3D3D3",
    "dkGray": "#A9A9A9",
    "navy": "#000080",
    "brown": "#A52A2A",
    "tan": "#D2B48C",
}

SYSTEM_COLORS = {
    "windowText": "#000000",
    "window": "#FFFFFF",
    "btnFace": "#F0F0F0",
    "btnText": "#000000",
}

BLIP_FILL_COLOR = "#F0F0F0"
DEFAULT_LINE_COLOR = "#000000"
OFF_CANVAS_NEGATIVE_RATIO = 0.1


@dataclass
class ParsedDrawing:
    """Elements of one drawing part.

    ``texts`` and ``images`` expose the flat views consumed by the text
    extractor and the image pipeline; ``elements`` keeps the tagged variants.
    """

    drawing_path: str | None = None
    elements: list[DrawingElement] = field(default_factory=list)
    skipped: list[SkippedElement] = field(default_factory=list)

    @property
    def textboxes(self) -> list[TextBox]:
        return [element for element in self.elements if isinstance(element, TextBox)]

    @property
    def shapes(self) -> list[Shape]:
        return [element for element in self.elements if isinstance(element, Shape)]

    @property
    def pictures(self) -> list[Picture]:
        return [element for element in self.elements if isinstance(element, Picture)]

    @property
    def texts(self) -> list[dict[str, Any]]:
        """Text entries: text, x, y, width, height, font_size, font_family, color."""
        return [
            {
                "text": box.text,
                "x": box.anchor.x,
                "y": box.anchor.y,
                "width": box.anchor.width,
                "height": box.anchor.height,
                "font_size": box.font_size,
                "font_family": box.font_family,
                "color": box.color.hex if box.color else None,
            }
            for box in self.textboxes
        ]

    @property
    def images(self) -> list[dict[str, Any]]:
        """Image entries: x, y, width, height, relationship_id."""
        return [
            {
                "x": picture.anchor.x,
                "y": picture.anchor.y,
                "width": picture.anchor.width,
                "height": picture.anchor.height,
                "relationship_id": picture.relationship_id,
            }
            for picture in self.pictures
        ]


class DrawingMLParser:
    """Parse drawing parts into positioned, tagged drawing elements."""

    def __init__(self, reader: PackageReader, settings: Settings | None = None) -> None:
        """Initialize the parser.

        Args:
            reader: Open package the drawing parts are read from.
            settings: Settings override; defaults to the global settings.
        """
        self.reader = reader
        self.settings = settings or app_settings

    def parse(
        self,
        drawing_path: str,
        sheet: SheetData,
        offsets: SheetOffsets | None = None,
    ) -> ParsedDrawing:
        """Parse a drawing part.

        A missing or unparseable drawing yields an empty result; a malformed
        element is logged and skipped.

        Args:
            drawing_path: Package path of the drawing part.
            sheet: Sheet the drawing belongs to, for anchor conversion.
            offsets: Precomputed offset tables; extended as needed.

        Returns:
            ParsedDrawing with kept and skipped elements in document order.
        """
        result = ParsedDrawing(drawing_path=drawing_path)
        if not self.reader.has_entry(drawing_path):
            logger.debug("Drawing part not present", drawing=drawing_path)
            return result

        try:
            root = ET.fromstring(self.reader.read_entry(drawing_path))
        except ET.ParseError as e:
            logger.warning(
                "Drawing part is malformed", drawing=drawing_path, error=str(e)
            )
            return result

        max_col, max_row = _max_marker_indices(root)
        if offsets is None:
            offsets = calculate_offsets(sheet, max_col, max_row, self.settings)
        else:
            offsets = extend_offsets(offsets, sheet, max_col, max_row, self.settings)

        for anchor in list(root):
            anchor_tag = local_name(anchor.tag)
            anchor_type = ANCHOR_TAGS.get(anchor_tag)
            if anchor_type is None:
                logger.debug("Ignoring non-anchor element", tag=anchor_tag)
                continue
            try:
                rect = self._anchor_rect(anchor, anchor_type, offsets)
            except DrawingParseError as e:
                logger.warning(
                    "Skipping drawing anchor",
                    drawing=drawing_path,
                    error=e.message,
                )
                continue

            for child in list(anchor):
                if local_name(child.tag) in OBJECT_TAGS:
                    self._walk(child, rect, result)

        logger.debug(
            "Parsed drawing",
            drawing=drawing_path,
            elements=len(result.elements),
            skipped=len(result.skipped),
        )
        return result

    def picture_relationship_ids(self, drawing_path: str) -> list[str]:
        """Media relationship ids of the drawing's pictures, in document order."""
        if not self.reader.has_entry(drawing_path):
            return []
        try:
            root = ET.fromstring(self.reader.read_entry(drawing_path))
        except ET.ParseError:
            return []
        ids: list[str] = []
        for blip in root.iter(f"{A}blip"):
            rel_id = blip.attrib.get(f"{{{DOCUMENT_REL_NS}}}embed")
            if rel_id and rel_id not in ids:
                ids.append(rel_id)
        return ids

    # ------------------------------------------------------------------ #
    # Anchors
    # ------------------------------------------------------------------ #

    def _anchor_rect(
        self,
        anchor: ET.Element,
        anchor_type: AnchorType,
        offsets: SheetOffsets,
    ) -> AnchorRect:
        if anchor_type is AnchorType.TWO_CELL:
            x1, y1 = _marker_to_px(anchor.find(f"{XDR}from"), offsets, "from")
            x2, y2 = _marker_to_px(anchor.find(f"{XDR}to"), offsets, "to")
            return AnchorRect(
                x=min(x1, x2),
                y=min(y1, y2),
                width=abs(x2 - x1),
                height=abs(y2 - y1),
                anchor_type=anchor_type,
            )

        width, height = _extent_to_px(anchor.find(f"{XDR}ext"))
        if anchor_type is AnchorType.ONE_CELL:
            x, y = _marker_to_px(anchor.find(f"{XDR}from"), offsets, "from")
        else:
            pos = anchor.find(f"{XDR}pos")
            if pos is None:
                raise DrawingParseError("absoluteAnchor without pos", element="pos")
            x = emu_to_px(_int_attr(pos, "x"))
            y = emu_to_px(_int_attr(pos, "y"))
        return AnchorRect(x=x, y=y, width=width, height=height, anchor_type=anchor_type)

    # ------------------------------------------------------------------ #
    # Objects
    # ------------------------------------------------------------------ #

    def _walk(self, element: ET.Element, rect: AnchorRect, result: ParsedDrawing) -> None:
        kind = local_name(element.tag)
        element_id, name, hidden = _identity(element, kind)

        if hidden and not self.settings.include_hidden_shapes:
            result.skipped.append(SkippedElement(kind, "hidden", element_id, name))
            return

        if kind == "grpSp":
            for child in list(element):
                if local_name(child.tag) in OBJECT_TAGS:
                    self._walk(child, rect, result)
            return

        if kind == "graphicFrame":
            result.skipped.append(SkippedElement(kind, "unsupported", element_id, name))
            return

        try:
            built = self._build_element(element, kind, rect, element_id, name)
        except (DrawingParseError, ValueError) as e:
            logger.warning(
                "Skipping malformed drawing element",
                kind=kind,
                element_id=element_id,
                error=str(e),
            )
            result.skipped.append(SkippedElement(kind, "malformed", element_id, name))
            return

        reason = self._skip_reason(built, element)
        if reason:
            result.skipped.append(SkippedElement(kind, reason, element_id, name))
            return
        result.elements.append(built)

    def _build_element(
        self,
        element: ET.Element,
        kind: str,
        rect: AnchorRect,
        element_id: str,
        name: str,
    ) -> DrawingElement:
        if kind == "pic":
            blip = element.find(f".//{A}blip")
            relationship_id = None
            if blip is not None:
                relationship_id = blip.attrib.get(
                    f"{{{DOCUMENT_REL_NS}}}embed"
                ) or blip.attrib.get(f"{{{DOCUMENT_REL_NS}}}link")
            return Picture(
                anchor=rect,
                relationship_id=relationship_id,
                element_id=element_id,
                name=name,
            )

        sp_pr = element.find(f"{XDR}spPr")
        fill = parse_fill(sp_pr)
        text = extract_text(element)
        if text:
            font_size, font_family, color = _text_style(element)
            return TextBox(
                anchor=rect,
                text=text,
                element_id=element_id,
                name=name,
                font_size=font_size,
                font_family=font_family,
                color=color,
                fill=fill,
            )

        geometry = None
        if sp_pr is not None:
            prst_geom = sp_pr.find(f"{A}prstGeom")
            if prst_geom is not None:
                geometry = prst_geom.attrib.get("prst")
        return Shape(
            anchor=rect,
            element_id=element_id,
            name=name,
            geometry=geometry or ("line" if kind == "cxnSp" else None),
            fill=fill,
            stroke=parse_stroke(sp_pr),
        )

    def _skip_reason(self, built: DrawingElement, element: ET.Element) -> str | None:
        rect = built.anchor
        min_size = self.settings.min_pixel_size
        if rect.width < min_size or rect.height < min_size:
            return "too_small"

        limit = self.settings.off_canvas_limit_px
        negative_limit = -limit * OFF_CANVAS_NEGATIVE_RATIO
        if (
            rect.x > limit
            or rect.y > limit
            or rect.x < negative_limit
            or rect.y < negative_limit
        ):
            return "off_canvas"

        if isinstance(built, Shape):
            sp_pr = element.find(f"{XDR}spPr")
            if sp_pr is not None and not _has_visible_fill(sp_pr):
                if sp_pr.find(f"{A}ln") is None:
                    return "transparent"
        return None


# ---------------------------------------------------------------------- #
# Colors
# ---------------------------------------------------------------------- #


def parse_color(container: ET.Element | None) -> DrawingColor | None:
    """Resolve the first DrawingML color element inside ``container``."""
    if container is None:
        return None
    for child in list(container):
        tag = local_name(child.tag)
        base: str | None = None
        if tag == "srgbClr":
            base = _normalize_hex(child.attrib.get("val"))
        elif tag == "sysClr":
            base = _normalize_hex(child.attrib.get("lastClr")) or SYSTEM_COLORS.get(
                child.attrib.get("val", "")
            )
        elif tag == "schemeClr":
            base = DEFAULT_THEME_COLORS.get(child.attrib.get("val", ""))
        elif tag == "prstClr":
            base = PRESET_COLORS.get(child.attrib.get("val", ""))
        else:
            continue

        if base is None:
            return None
        return _drawing_color(_apply_transforms(base, child), tag, _alpha(child))
    return None


def parse_fill(sp_pr: ET.Element | None) -> DrawingColor | None:
    """Resolve the fill of a shape; None for no fill or unknown fills."""
    if sp_pr is None or sp_pr.find(f"{A}noFill") is not None:
        return None
    solid = sp_pr.find(f"{A}solidFill")
    if solid is not None:
        return parse_color(solid)
    gradient_stop = sp_pr.find(f"{A}gradFill/{A}gsLst/{A}gs")
    if gradient_stop is not None:
        return parse_color(gradient_stop)
    if sp_pr.find(f"{A}blipFill") is not None:
        return _drawing_color(BLIP_FILL_COLOR, "blipFill")
    return None


def parse_stroke(sp_pr: ET.Element | None) -> DrawingColor | None:
    """Resolve the outline color of a shape; None when it has no outline."""
    if sp_pr is None:
        return None
    line = sp_pr.find(f"{A}ln")
    if line is None or line.find(f"{A}noFill") is not None:
        return None
    solid = line.find(f"{A}solidFill")
    if solid is not None:
        return parse_color(solid)
    return _drawing_color(DEFAULT_LINE_COLOR, "ln")


def blend_colors(color: str, target: str, ratio: float) -> str:
    """Move ``color`` towards ``target`` by ``ratio`` (0 keeps, 1 replaces)."""
    ratio = max(0.0, min(1.0, ratio))
    start = _hex_channels(color)
    end = _hex_channels(target)
    mixed = [round(a + (b - a) * ratio) for a, b in zip(start, end, strict=True)]
    return "#" + "".join(f"{channel:02X}" for channel in mixed)


def _drawing_color(hex_color: str, source: str, alpha: float = 1.0) -> DrawingColor:
    return DrawingColor(
        hex=hex_color,
        alpha=alpha,
        source=source,
        palette=map_color(hex_color),
    )


def _apply_transforms(base: str, color_element: ET.Element) -> str:
    color = base
    tint = color_element.find(f"{A}tint")
    if tint is not None:
        color = blend_colors(color, "#FFFFFF", _int_attr(tint, "val") / 100000)
    shade = color_element.find(f"{A}shade")
    if shade is not None:
        color = blend_colors(color, "#000000", _int_attr(shade, "val") / 100000)
    return color


def _alpha(color_element: ET.Element) -> float:
    alpha = color_element.find(f"{A}alpha")
    if alpha is None:
        return 1.0
    return max(0.0, min(1.0, _int_attr(alpha, "val", 100000) / 100000))


def _has_visible_fill(sp_pr: ET.Element) -> bool:
    return any(
        sp_pr.find(f"{A}{tag}") is not None
        for tag in ("solidFill", "gradFill", "pattFill", "blipFill")
    )


def _normalize_hex(value: str | None) -> str | None:
    if not value or len(value) != 6:
        return None
    try:
        int(value, 16)
    except ValueError:
        return None
    return f"#{value.upper()}"


def _hex_channels(color: str) -> tuple[int, int, int]:
    digits = color.lstrip("#")
    return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)


# ---------------------------------------------------------------------- #
# Text
# ---------------------------------------------------------------------- #


def extract_text(element: ET.Element) -> str:
    """Concatenate the runs of a shape's text body, one line per paragraph."""
    tx_body = element.find(f"{XDR}txBody")
    if tx_body is None:
        return ""
    lines: list[str] = []
    for paragraph in tx_body.findall(f"{A}p"):
        fragments = [run.text for run in paragraph.iter(f"{A}t") if run.text]
        lines.append("".join(fragments))
    return "\n".join(lines).strip()


def _text_style(
    element: ET.Element,
) -> tuple[float | None, str | None, DrawingColor | None]:
    font_size: float | None = None
    font_family: str | None = None
    color: DrawingColor | None = None
    tx_body = element.find(f"{XDR}txBody")
    if tx_body is None:
        return font_size, font_family, color

    for properties in tx_body.iter():
        if local_name(properties.tag) not in {"rPr", "defRPr", "endParaRPr"}:
            continue
        if font_size is None and properties.attrib.get("sz"):
            try:
                font_size = int(properties.attrib["sz"]) / 100
            except ValueError:
                logger.debug("Ignoring invalid font size", value=properties.attrib["sz"])
        if font_family is None:
            latin = properties.find(f"{A}latin")
            if latin is not None and latin.attrib.get("typeface"):
                font_family = latin.attrib["typeface"]
        if color is None:
            color = parse_color(properties.find(f"{A}solidFill"))
        if font_size is not None and font_family is not None and color is not None:
            break
    return font_size, font_family, color


# ---------------------------------------------------------------------- #
# Markers
# ---------------------------------------------------------------------- #


def _identity(element: ET.Element, kind: str) -> tuple[str, str, bool]:
    c_nv_pr = element.find(NON_VISUAL_PATHS.get(kind, ""))
    if c_nv_pr is None:
        return "", "", False
    hidden = c_nv_pr.attrib.get("hidden", "").lower() in {"1", "true"}
    return c_nv_pr.attrib.get("id", ""), c_nv_pr.attrib.get("name", ""), hidden


def _max_marker_indices(root: ET.Element) -> tuple[int, int]:
    max_col = 0
    max_row = 0
    for marker in root.iter():
        if local_name(marker.tag) not in {"from", "to"}:
            continue
        try:
            max_col = max(max_col, int(marker.findtext(f"{XDR}col", default="0")))
            max_row = max(max_row, int(marker.findtext(f"{XDR}row", default="0")))
        except ValueError:
            continue
    return max_col, max_row


def _marker_to_px(
    marker: ET.Element | None,
    offsets: SheetOffsets,
    label: str,
) -> tuple[float, float]:
    if marker is None:
        raise DrawingParseError(f"anchor without {label} marker", element=label)
    try:
        col = int(marker.findtext(f"{XDR}col", default="0"))
        row = int(marker.findtext(f"{XDR}row", default="0"))
        col_off = int(marker.findtext(f"{XDR}colOff", default="0"))
        row_off = int(marker.findtext(f"{XDR}rowOff", default="0"))
    except ValueError as e:
        raise DrawingParseError(
            f"non-integer {label} marker: {e}", element=label
        ) from e
    if col < 0 or row < 0:
        raise DrawingParseError(f"negative {label} marker index", element=label)
    if col >= len(offsets.col_offsets) or row >= len(offsets.row_offsets):
        raise DrawingParseError(f"{label} marker beyond offset table", element=label)
    return (
        offsets.col_offsets[col] + emu_to_px(col_off),
        offsets.row_offsets[row] + emu_to_px(row_off),
    )


def _extent_to_px(ext: ET.Element | None) -> tuple[float, float]:
    if ext is None:
        raise DrawingParseError("anchor without ext", element="ext")
    return emu_to_px(_int_attr(ext, "cx")), emu_to_px(_int_attr(ext, "cy"))


def _int_attr(element: ET.Element, name: str, default: int = 0) -> int:
    raw = element.attrib.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise DrawingParseError(
            f"non-integer attribute {name}={raw!r}", element=local_name(element.tag)
        ) from e
