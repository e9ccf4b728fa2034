from __future__ import annotations

import io
import os
import zipfile
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest
from openpyxl import Workbook
from PIL import Image

from sheet_layout_extraction.config import Settings
from sheet_layout_extraction.sheet_document import CellData, SheetData

XDR_NS = "http://schemas.openxmlformats.org/drawingml/2006/spreadsheetDrawing"
A_NS = "http://schemas.openxmlformats.org/drawingml/2006/main"
R_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
PKG_REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
DRAWING_REL_TYPE = f"{R_NS}/drawing"
IMAGE_REL_TYPE = f"{R_NS}/image"
DRAWING_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.drawing+xml"

EMU_PER_PX = 9525


class DrawingXml:
    """Builders for DrawingML fragments used in package fixtures."""

    @staticmethod
    def marker(tag: str, col: int, row: int, col_off_px: int = 0, row_off_px: int = 0) -> str:
        return (
            f"<xdr:{tag}><xdr:col>{col}</xdr:col>"
            f"<xdr:colOff>{col_off_px * EMU_PER_PX}</xdr:colOff>"
            f"<xdr:row>{row}</xdr:row>"
            f"<xdr:rowOff>{row_off_px * EMU_PER_PX}</xdr:rowOff></xdr:{tag}>"
        )

    @classmethod
    def two_cell(
        cls,
        content: str,
        start: tuple[int, int] = (0, 0),
        end: tuple[int, int] = (2, 3),
        start_off_px: tuple[int, int] = (0, 0),
        end_off_px: tuple[int, int] = (0, 0),
    ) -> str:
        """Anchor spanning from ``start`` to ``end`` given as 0-based ``(col, row)``."""
        return (
            '<xdr:twoCellAnchor editAs="oneCell">'
            f"{cls.marker('from', start[0], start[1], *start_off_px)}"
            f"{cls.marker('to', end[0], end[1], *end_off_px)}"
            f"{content}<xdr:clientData/></xdr:twoCellAnchor>"
        )

    @classmethod
    def one_cell(
        cls,
        content: str,
        start: tuple[int, int] = (0, 0),
        size_px: tuple[int, int] = (100, 50),
    ) -> str:
        return (
            "<xdr:oneCellAnchor>"
            f"{cls.marker('from', start[0], start[1])}"
            f'<xdr:ext cx="{size_px[0] * EMU_PER_PX}" cy="{size_px[1] * EMU_PER_PX}"/>'
            f"{content}<xdr:clientData/></xdr:oneCellAnchor>"
        )

    @staticmethod
    def absolute(
        content: str,
        pos_px: tuple[int, int] = (0, 0),
        size_px: tuple[int, int] = (100, 50),
    ) -> str:
        return (
            "<xdr:absoluteAnchor>"
            f'<xdr:pos x="{pos_px[0] * EMU_PER_PX}" y="{pos_px[1] * EMU_PER_PX}"/>'
            f'<xdr:ext cx="{size_px[0] * EMU_PER_PX}" cy="{size_px[1] * EMU_PER_PX}"/>'
            f"{content}<xdr:clientData/></xdr:absoluteAnchor>"
        )

    @staticmethod
    def textbox(
        text: str,
        shape_id: int = 2,
        name: str = "TextBox 1",
        size_pt: float | None = None,
        color: str | None = None,
        font: str | None = None,
        fill: str | None = None,
        hidden: bool = False,
    ) -> str:
        hidden_attr = ' hidden="1"' if hidden else ""
        fill_xml = (
            f'<a:solidFill><a:srgbClr val="{fill}"/></a:solidFill>' if fill else "<a:noFill/>"
        )
        size_attr = f' sz="{int(size_pt * 100)}"' if size_pt else ""
        color_xml = (
            f'<a:solidFill><a:srgbClr val="{color}"/></a:solidFill>' if color else ""
        )
        font_xml = f'<a:latin typeface="{font}"/>' if font else ""
        paragraphs = "".join(
            f'<a:p><a:r><a:rPr lang="en-US"{size_attr}>{color_xml}{font_xml}</a:rPr>'
            f"<a:t>{line}</a:t></a:r></a:p>"
            for line in text.split("\n")
        )
        return (
            '<xdr:sp macro="" textlink="">'
            f'<xdr:nvSpPr><xdr:cNvPr id="{shape_id}" name="{name}"{hidden_attr}/>'
            '<xdr:cNvSpPr txBox="1"/></xdr:nvSpPr>'
            '<xdr:spPr><a:prstGeom prst="rect"><a:avLst/></a:prstGeom>'
            f"{fill_xml}</xdr:spPr>"
            f'<xdr:txBody><a:bodyPr/><a:lstStyle/>{paragraphs}</xdr:txBody>'
            "</xdr:sp>"
        )

    @staticmethod
    def shape(
        shape_id: int = 3,
        name: str = "Rectangle 1",
        fill: str | None = "4472C4",
        line: str | None = None,
        prst: str = "rect",
    ) -> str:
        fill_xml = (
            f'<a:solidFill><a:srgbClr val="{fill}"/></a:solidFill>' if fill else "<a:noFill/>"
        )
        line_xml = (
            f'<a:ln><a:solidFill><a:srgbClr val="{line}"/></a:solidFill></a:ln>'
            if line
            else ""
        )
        return (
            '<xdr:sp macro="" textlink="">'
            f'<xdr:nvSpPr><xdr:cNvPr id="{shape_id}" name="{name}"/><xdr:cNvSpPr/></xdr:nvSpPr>'
            f'<xdr:spPr><a:prstGeom prst="{prst}"><a:avLst/></a:prstGeom>'
            f"{fill_xml}{line_xml}</xdr:spPr>"
            "</xdr:sp>"
        )

    @staticmethod
    def picture(rel_id: str = "rId1", pic_id: int = 4, name: str = "Picture 1") -> str:
        return (
            "<xdr:pic>"
            f'<xdr:nvPicPr><xdr:cNvPr id="{pic_id}" name="{name}"/>'
            '<xdr:cNvPicPr><a:picLocks noChangeAspect="1"/></xdr:cNvPicPr></xdr:nvPicPr>'
            f'<xdr:blipFill><a:blip r:embed="{rel_id}"/>'
            "<a:stretch><a:fillRect/></a:stretch></xdr:blipFill>"
            '<xdr:spPr><a:prstGeom prst="rect"><a:avLst/></a:prstGeom></xdr:spPr>'
            "</xdr:pic>"
        )

    @staticmethod
    def graphic_frame(frame_id: int = 5, name: str = "Chart 1") -> str:
        return (
            '<xdr:graphicFrame macro="">'
            f'<xdr:nvGraphicFramePr><xdr:cNvPr id="{frame_id}" name="{name}"/>'
            "<xdr:cNvGraphicFramePr/></xdr:nvGraphicFramePr>"
            "</xdr:graphicFrame>"
        )

    @staticmethod
    def group(*children: str, group_id: int = 10, name: str = "Group 1") -> str:
        return (
            "<xdr:grpSp>"
            f'<xdr:nvGrpSpPr><xdr:cNvPr id="{group_id}" name="{name}"/>'
            "<xdr:cNvGrpSpPr/></xdr:nvGrpSpPr><xdr:grpSpPr/>"
            f"{''.join(children)}</xdr:grpSp>"
        )

    @staticmethod
    def drawing(*anchors: str) -> str:
        return (
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            f'<xdr:wsDr xmlns:xdr="{XDR_NS}" xmlns:a="{A_NS}" xmlns:r="{R_NS}">'
            f"{''.join(anchors)}</xdr:wsDr>"
        )

    @staticmethod
    def relationships(*rels: tuple[str, str, str]) -> str:
        """Relationship manifest from ``(id, type, target)`` triples."""
        entries = "".join(
            f'<Relationship Id="{rel_id}" Type="{rel_type}" Target="{target}"/>'
            for rel_id, rel_type, target in rels
        )
        return (
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            f'<Relationships xmlns="{PKG_REL_NS}">{entries}</Relationships>'
        )


def png_bytes(width: int = 4, height: int = 3, color: tuple[int, int, int] = (255, 0, 0)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def drawing_xml() -> type[DrawingXml]:
    return DrawingXml


@pytest.fixture
def png() -> Callable[..., bytes]:
    return png_bytes


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults only, isolated from the environment."""
    with patch.dict(os.environ, {}, clear=True):
        return Settings(_env_file=None)


@pytest.fixture
def make_sheet() -> Callable[..., SheetData]:
    """Factory for SheetData; ``values`` maps ``(row, col)`` to raw values."""

    def _make(
        name: str = "Sheet1",
        values: dict[tuple[int, int], Any] | None = None,
        **kwargs: Any,
    ) -> SheetData:
        cells = kwargs.pop("cells", {})
        for key, value in (values or {}).items():
            cells[key] = CellData(value=value)
        return SheetData(name=name, cells=cells, **kwargs)

    return _make


@pytest.fixture
def write_package(tmp_path: Path) -> Callable[..., Path]:
    """Write a hand-built zip package from ``{entry: str | bytes}``."""

    def _write(entries: dict[str, str | bytes], name: str = "package.xlsx") -> Path:
        path = tmp_path / name
        with zipfile.ZipFile(path, "w") as archive:
            for entry, data in entries.items():
                archive.writestr(entry, data)
        return path

    return _write


@pytest.fixture
def build_workbook(tmp_path: Path) -> Callable[..., Path]:
    """Save an openpyxl workbook and attach drawing parts to its sheets.

    ``drawings`` maps the 1-based sheet number to drawing XML, ``drawing_rels``
    maps it to the drawing's relationship triples and ``media`` adds entries
    under ``xl/media/``.
    """

    def _build(
        workbook: Workbook,
        drawings: dict[int, str] | None = None,
        drawing_rels: dict[int, list[tuple[str, str, str]]] | None = None,
        media: dict[str, bytes] | None = None,
        name: str = "book.xlsx",
    ) -> Path:
        buffer = io.BytesIO()
        workbook.save(buffer)
        buffer.seek(0)

        extra: dict[str, str | bytes] = {}
        overrides = []
        for number, xml in (drawings or {}).items():
            extra[f"xl/worksheets/_rels/sheet{number}.xml.rels"] = DrawingXml.relationships(
                ("rId1", DRAWING_REL_TYPE, f"../drawings/drawing{number}.xml")
            )
            extra[f"xl/drawings/drawing{number}.xml"] = xml
            overrides.append(
                f'<Override PartName="/xl/drawings/drawing{number}.xml" '
                f'ContentType="{DRAWING_CONTENT_TYPE}"/>'
            )
        for number, rels in (drawing_rels or {}).items():
            extra[f"xl/drawings/_rels/drawing{number}.xml.rels"] = DrawingXml.relationships(
                *rels
            )
        for file_name, data in (media or {}).items():
            extra[f"xl/media/{file_name}"] = data

        path = tmp_path / name
        with zipfile.ZipFile(buffer) as source, zipfile.ZipFile(path, "w") as target:
            for item in source.infolist():
                data = source.read(item.filename)
                if item.filename == "[Content_Types].xml":
                    types = data.decode("utf-8")
                    if media and 'Extension="png"' not in types:
                        overrides.insert(
                            0, '<Default Extension="png" ContentType="image/png"/>'
                        )
                    data = types.replace(
                        "</Types>", "".join(overrides) + "</Types>"
                    ).encode("utf-8")
                if item.filename in extra:
                    continue
                target.writestr(item, data)
            for entry, data in extra.items():
                target.writestr(entry, data)
        return path

    return _build
