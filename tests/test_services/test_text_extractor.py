"""Tests for cell and drawing text extraction."""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from decimal import Decimal

import pytest

from sheet_layout_extraction.sheet_document import (
    AnchorRect,
    AnchorType,
    CellData,
    DrawingColor,
    ElementSource,
    MergedRange,
    PaletteColor,
    Picture,
    Shape,
    TextBox,
)
from sheet_layout_extraction.services.merge_resolver import get_merged_cells
from sheet_layout_extraction.services.text_extractor import (
    DEFAULT_DRAWING_FONT_FAMILY,
    DEFAULT_DRAWING_FONT_SIZE,
    extract_text_from_drawings,
    extract_texts,
    format_cell_value,
)

COL_PX = 59.85
ROW_PX = 20.0


def _anchor(x: float = 10, y: float = 20, width: float = 100, height: float = 40) -> AnchorRect:
    return AnchorRect(x=x, y=y, width=width, height=height, anchor_type=AnchorType.TWO_CELL)


class TestFormatCellValue:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, ""),
            ("  padded  ", "padded"),
            (42, "42"),
            (42.0, "42"),
            (3.25, "3.25"),
            (True, "TRUE"),
            (False, "FALSE"),
            (Decimal("7.50"), "7.50"),
            (Decimal("8.00"), "8"),
            (datetime(2024, 1, 15), "2024-01-15"),
            (datetime(2024, 1, 15, 9, 30), "2024-01-15T09:30:00"),
            (date(2024, 2, 1), "2024-02-01"),
            (time(14, 5), "14:05:00"),
        ],
    )
    def test_formats(self, value: object, expected: str) -> None:
        assert format_cell_value(value) == expected


class TestExtractTexts:
    def test_plain_cells_in_row_major_order(self, make_sheet, settings) -> None:
        sheet = make_sheet(values={(2, 1): "second", (1, 2): "first-b", (1, 1): "first-a"})

        texts = extract_texts(sheet, [], settings)

        assert [text.text for text in texts] == ["first-a", "first-b", "second"]
        assert [(text.row, text.col) for text in texts] == [(1, 1), (1, 2), (2, 1)]

    def test_cell_geometry(self, make_sheet, settings) -> None:
        sheet = make_sheet(values={(2, 3): "Price"}, column_widths={1: 10.0})

        [text] = extract_texts(sheet, [], settings)

        assert text.x == pytest.approx(70.84 + COL_PX)
        assert text.y == pytest.approx(ROW_PX)
        assert text.width == pytest.approx(COL_PX)
        assert text.height == pytest.approx(ROW_PX)
        assert text.source is ElementSource.CELL
        assert text.is_merged is False
        assert text.merged_range is None

    def test_empty_values_are_dropped(self, make_sheet, settings) -> None:
        sheet = make_sheet(values={(1, 1): "   ", (1, 2): "", (1, 3): "kept"})

        texts = extract_texts(sheet, [], settings)

        assert [text.text for text in texts] == ["kept"]

    def test_merged_range_yields_one_element(self, make_sheet, settings) -> None:
        sheet = make_sheet(
            values={(1, 1): "Banner", (1, 2): "hidden", (2, 1): "also hidden", (3, 1): "after"},
            merge_descriptors=["A1:C2"],
        )
        merged = get_merged_cells(sheet, settings)

        texts = extract_texts(sheet, merged, settings)

        assert [text.text for text in texts] == ["Banner", "after"]
        banner = texts[0]
        assert banner.is_merged is True
        assert banner.merged_range is merged[0]
        assert banner.width == pytest.approx(3 * COL_PX)
        assert banner.height == pytest.approx(2 * ROW_PX)
        assert (banner.row, banner.col) == (1, 1)

    def test_merge_with_empty_top_left_yields_nothing(self, make_sheet, settings) -> None:
        sheet = make_sheet(values={(1, 2): "orphan"}, merge_descriptors=["A1:B1"])
        merged = get_merged_cells(sheet, settings)

        assert extract_texts(sheet, merged, settings) == []

    def test_sheet_wide_merge_emits_once(self, make_sheet, settings) -> None:
        sheet = make_sheet(
            values={(1, 1): "Everything", (500000, 9000): "inside", (1048576, 16384): "corner"}
        )
        merge = MergedRange(top=1, left=1, bottom=1048576, right=16384, width=900, height=600)

        texts = extract_texts(sheet, [merge], settings)

        assert [text.text for text in texts] == ["Everything"]
        assert texts[0].merged_range is merge
        assert texts[0].width == 900

    def test_styles_are_carried(self, make_sheet, settings) -> None:
        sheet = make_sheet(
            cells={
                (1, 1): CellData(
                    value="Sale",
                    font_color="#FF0000",
                    fill_color="#FFFF00",
                    font_size=18.0,
                    font_name="Calibri",
                )
            }
        )

        [text] = extract_texts(sheet, [], settings)

        assert text.color == "#FF0000"
        assert text.palette_color is PaletteColor.RED
        assert text.fill_color == "#FFFF00"
        assert text.fill_palette_color is PaletteColor.YELLOW
        assert text.font_size == 18.0
        assert text.font_family == "Calibri"

    def test_unstyled_cells_have_no_palette(self, make_sheet, settings) -> None:
        [text] = extract_texts(make_sheet(values={(1, 1): "x"}), [], settings)

        assert text.color is None
        assert text.palette_color is None
        assert text.fill_palette_color is None

    def test_unprocessable_cell_is_skipped(
        self, make_sheet, settings, caplog: pytest.LogCaptureFixture
    ) -> None:
        class Unprintable:
            def __str__(self) -> str:
                raise ValueError("cannot render")

        sheet = make_sheet(values={(1, 1): Unprintable(), (1, 2): "ok"})

        with caplog.at_level(logging.WARNING):
            texts = extract_texts(sheet, [], settings)

        assert [text.text for text in texts] == ["ok"]
        assert "Skipping cell that could not be processed" in caplog.text

    def test_empty_sheet(self, make_sheet, settings) -> None:
        assert extract_texts(make_sheet(), [], settings) == []


class TestExtractTextFromDrawings:
    def test_textbox_with_style(self) -> None:
        box = TextBox(
            anchor=_anchor(),
            text="Headline",
            font_size=24.0,
            font_family="Georgia",
            color=DrawingColor("#0000FF", palette=PaletteColor.BLUE),
            fill=DrawingColor("#FFFF00", palette=PaletteColor.YELLOW),
        )

        [text] = extract_text_from_drawings([box])

        assert text.text == "Headline"
        assert (text.x, text.y, text.width, text.height) == (10, 20, 100, 40)
        assert text.row is None
        assert text.col is None
        assert text.source is ElementSource.DRAWING
        assert text.font_size == 24.0
        assert text.font_family == "Georgia"
        assert text.color == "#0000FF"
        assert text.palette_color is PaletteColor.BLUE
        assert text.fill_color == "#FFFF00"
        assert text.fill_palette_color is PaletteColor.YELLOW

    def test_defaults_applied(self) -> None:
        [text] = extract_text_from_drawings([TextBox(anchor=_anchor(), text=" Note ")])

        assert text.text == "Note"
        assert text.font_size == DEFAULT_DRAWING_FONT_SIZE
        assert text.font_family == DEFAULT_DRAWING_FONT_FAMILY
        assert text.color == "#000000"
        assert text.palette_color is PaletteColor.BLACK
        assert text.fill_color is None

    def test_pictures_and_plain_shapes_ignored(self) -> None:
        elements = [
            Picture(anchor=_anchor(), relationship_id="rId1"),
            Shape(anchor=_anchor(), fill=DrawingColor("#FF0000")),
            TextBox(anchor=_anchor(), text="   "),
        ]

        assert extract_text_from_drawings(elements) == []

    def test_shape_with_text(self) -> None:
        shape = Shape(anchor=_anchor(x=5), text="Label", fill=DrawingColor("#00FF00"))

        [text] = extract_text_from_drawings([shape])

        assert text.text == "Label"
        assert text.x == 5
        assert text.fill_color == "#00FF00"
