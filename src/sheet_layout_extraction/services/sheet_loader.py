"""Sheet metadata loader backed by openpyxl.

Reads the parts of a worksheet that drive geometry (explicit column widths and
row heights, used extent, merged ranges) together with populated cell values
and their display style into a SheetData snapshot. Column widths are read from
the raw worksheet part through the PackageReader.
"""

from __future__ import annotations

import zipfile
from pathlib import Path
from typing import Any

from openpyxl import load_workbook
from openpyxl.cell import Cell
from openpyxl.styles.colors import COLOR_INDEX, Color
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from sheet_layout_extraction.sheet_document import CellData, SheetData
from sheet_layout_extraction.services.drawing_parser import (
    DEFAULT_THEME_COLORS,
    blend_colors,
)
from sheet_layout_extraction.services.package_reader import PackageReader
from sheet_layout_extraction.utils.exceptions import (
    PackageNotFoundError,
    PackageOpenError,
    SheetNotFoundError,
)
from sheet_layout_extraction.utils.logging import get_logger

logger = get_logger(__name__)


# SpreadsheetML theme indices list light before dark, unlike the clrScheme order
THEME_INDEX_SLOTS = (
    "lt1",
    "dk1",
    "lt2",
    "dk2",
    "accent1",
    "accent2",
    "accent3",
    "accent4",
    "accent5",
    "accent6",
    "hlink",
    "folHlink",
)


def color_to_hex(color: Color | None) -> str | None:
    """Convert an openpyxl color to ``#RRGGBB``.

    Explicit ARGB, indexed and theme colors are converted. Theme colors
    resolve through the default Office theme, with their tint applied.
    Automatic colors yield None.
    """
    if color is None:
        return None
    color_type = getattr(color, "type", None)
    value: Any = None
    if color_type == "rgb":
        value = color.rgb
    elif color_type == "indexed":
        index = color.indexed
        if isinstance(index, int) and 0 <= index < len(COLOR_INDEX):
            value = COLOR_INDEX[index]
    elif color_type == "theme":
        return _theme_to_hex(color.theme, color.tint or 0.0)
    if not isinstance(value, str) or len(value) not in (6, 8):
        return None
    return f"#{value[-6:].upper()}"


def _theme_to_hex(index: Any, tint: float) -> str | None:
    if not isinstance(index, int) or not 0 <= index < len(THEME_INDEX_SLOTS):
        return None
    base = DEFAULT_THEME_COLORS[THEME_INDEX_SLOTS[index]]
    if tint > 0:
        return blend_colors(base, "#FFFFFF", tint)
    if tint < 0:
        return blend_colors(base, "#000000", -tint)
    return base


class SheetLoader:
    """Load SheetData snapshots from a workbook using openpyxl."""

    def __init__(self, file_path: Path | str, reader: PackageReader | None = None) -> None:
        """Open the workbook.

        Args:
            file_path: Path to the ``.xlsx`` package.
            reader: Open package reader for the same file, used for the raw
                worksheet parts openpyxl does not expose faithfully. One is
                opened (and closed with the loader) when omitted.

        Raises:
            PackageNotFoundError: If the file does not exist.
            PackageOpenError: If openpyxl cannot read the workbook.
        """
        self.file_path = Path(file_path)
        if not self.file_path.exists():
            raise PackageNotFoundError(str(self.file_path))
        try:
            self._workbook: Workbook = load_workbook(
                filename=self.file_path, data_only=True, read_only=False
            )
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
            raise PackageOpenError(str(self.file_path), reason=str(e)) from e

        self._owns_reader = reader is None
        self.reader = reader or PackageReader(self.file_path)

    @property
    def sheet_names(self) -> list[str]:
        """Sheet names in workbook order."""
        return list(self._workbook.sheetnames)

    def close(self) -> None:
        self._workbook.close()
        if self._owns_reader:
            self.reader.close()

    def __enter__(self) -> SheetLoader:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def load_sheet(
        self,
        sheet_name: str | None = None,
        part_path: str | None = None,
    ) -> SheetData:
        """Read one worksheet into a SheetData snapshot.

        Args:
            sheet_name: Sheet to load; defaults to the first sheet.
            part_path: Package path of the worksheet part; looked up in the
                workbook part when omitted.

        Returns:
            Sheet metadata with populated cells.

        Raises:
            SheetNotFoundError: If the sheet is not in the workbook.
        """
        names = self.sheet_names
        name = sheet_name if sheet_name is not None else names[0]
        if name not in names:
            raise SheetNotFoundError(name, available=names)

        worksheet: Worksheet = self._workbook[name]
        cells = self._read_cells(worksheet)
        part_path = part_path or self._part_path_for(name)

        sheet = SheetData(
            name=name,
            index=names.index(name) + 1,
            part_path=part_path,
            row_count=worksheet.max_row if cells else 0,
            column_count=worksheet.max_column if cells else 0,
            column_widths=self._read_column_widths(part_path),
            row_heights=self._read_row_heights(worksheet),
            merge_descriptors=[str(rng) for rng in worksheet.merged_cells.ranges],
            cells=cells,
        )
        logger.debug(
            "Loaded sheet metadata",
            sheet=name,
            rows=sheet.row_count,
            columns=sheet.column_count,
            cells=len(cells),
            merges=len(sheet.merge_descriptors),
        )
        return sheet

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _part_path_for(self, name: str) -> str | None:
        for ref in self.reader.list_sheets():
            if ref.name == name:
                return ref.part_path
        return None

    def _read_column_widths(self, part_path: str | None) -> dict[int, float]:
        # openpyxl gives a <col> without a width attribute its own default
        # width of 13, so widths come from the raw worksheet part
        if part_path is None:
            return {}
        return self.reader.read_column_widths(part_path) or {}

    @staticmethod
    def _read_row_heights(worksheet: Worksheet) -> dict[int, float]:
        heights: dict[int, float] = {}
        for row, dimension in worksheet.row_dimensions.items():
            if dimension.height is not None and dimension.height > 0:
                heights[int(row)] = float(dimension.height)
        return heights

    def _read_cells(self, worksheet: Worksheet) -> dict[tuple[int, int], CellData]:
        cells: dict[tuple[int, int], CellData] = {}
        for row in worksheet.iter_rows():
            for cell in row:
                if cell.value is None or not isinstance(cell, Cell):
                    continue
                cells[(cell.row, cell.column)] = self._build_cell(cell)
        return cells

    @staticmethod
    def _build_cell(cell: Cell) -> CellData:
        font = cell.font
        fill = cell.fill
        fill_color = None
        if getattr(fill, "fill_type", None) == "solid":
            fill_color = color_to_hex(fill.fgColor)
        return CellData(
            value=cell.value,
            font_color=color_to_hex(font.color) if font is not None else None,
            fill_color=fill_color,
            font_size=float(font.sz) if font is not None and font.sz else None,
            font_name=font.name if font is not None else None,
        )
