"""Tests for the command line entry point."""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from openpyxl import Workbook

from sheet_layout_extraction.cli import build_parser, main

IMAGE_REL_TYPE = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/image"


@pytest.fixture(autouse=True)
def no_logging_setup() -> Iterator[MagicMock]:
    """Keep the root logger untouched while main() runs."""
    with patch("sheet_layout_extraction.cli.configure_logging") as mock_configure:
        yield mock_configure


@pytest.fixture
def workbook_path(build_workbook, drawing_xml, png) -> Path:
    wb = Workbook()
    ws = wb.active
    ws.title = "Cover"
    ws["A1"] = "Title"
    wb.create_sheet("Back")["B2"] = "Credits"

    drawing = drawing_xml.drawing(drawing_xml.two_cell(drawing_xml.picture("rId1")))
    return build_workbook(
        wb,
        drawings={1: drawing},
        drawing_rels={1: [("rId1", IMAGE_REL_TYPE, "../media/image1.png")]},
        media={"image1.png": png(2, 2)},
    )


def _run(argv: list[str], capsys: pytest.CaptureFixture[str]) -> tuple[int, dict]:
    code = main(argv)
    return code, json.loads(capsys.readouterr().out)


class TestParser:
    def test_defaults(self) -> None:
        args = build_parser().parse_args(["book.xlsx"])

        assert args.input == Path("book.xlsx")
        assert args.sheet is None
        assert args.all is False
        assert args.relationship_index is None
        assert args.no_layout is False
        assert args.output is None

    def test_sheet_and_all_are_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["book.xlsx", "--sheet", "Cover", "--all"])


class TestMain:
    def test_first_sheet_to_stdout(
        self, workbook_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        code, report = _run([str(workbook_path)], capsys)

        assert code == 0
        assert report["workbook"] == workbook_path.name
        assert report["error"] is None
        [sheet] = report["sheets"]
        assert sheet["sheet_name"] == "Cover"
        assert sheet["texts"][0]["text"] == "Title"
        assert sheet["images"][0]["media"]["path"] == "xl/media/image1.png"
        assert "data" not in sheet["images"][0]["media"]
        assert sheet["layout"] is not None

    def test_named_sheet_without_layout(
        self, workbook_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        code, report = _run([str(workbook_path), "--sheet", "Back", "--no-layout"], capsys)

        assert code == 0
        [sheet] = report["sheets"]
        assert sheet["sheet_name"] == "Back"
        assert sheet["layout"] is None

    def test_all_sheets(self, workbook_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        code, report = _run([str(workbook_path), "--all"], capsys)

        assert code == 0
        assert [sheet["sheet_name"] for sheet in report["sheets"]] == ["Cover", "Back"]

    def test_include_media(self, workbook_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _, report = _run([str(workbook_path), "--include-media"], capsys)

        media = report["sheets"][0]["images"][0]["media"]
        assert media["data"].startswith("89504e47")

    def test_output_file(self, workbook_path: Path, tmp_path: Path) -> None:
        output = tmp_path / "report.json"

        code = main([str(workbook_path), "-o", str(output)])

        assert code == 0
        report = json.loads(output.read_text(encoding="utf-8"))
        assert report["sheets"][0]["sheet_name"] == "Cover"

    def test_unknown_sheet(self, workbook_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        code, report = _run([str(workbook_path), "--sheet", "Missing"], capsys)

        assert code == 1
        assert report["sheets"] == []
        assert report["error"]["error_code"] == "E2001"
        assert report["error"]["details"]["available_sheets"] == ["Cover", "Back"]

    def test_missing_workbook(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        code, report = _run([str(tmp_path / "absent.xlsx")], capsys)

        assert code == 1
        assert report["error"]["error_code"] == "E1001"

    def test_log_level_argument(
        self,
        workbook_path: Path,
        no_logging_setup: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        _run([str(workbook_path), "--log-level", "DEBUG"], capsys)

        no_logging_setup.assert_called_once_with("DEBUG")
