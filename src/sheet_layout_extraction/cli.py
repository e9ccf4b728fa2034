"""Command line entry point: ``sheet-layout <file.xlsx>``."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from sheet_layout_extraction.config import settings, validate_settings_on_startup
from sheet_layout_extraction.models import ErrorReport, ExtractionReport, SheetReport
from sheet_layout_extraction.services.sheet_extractor import SheetLayoutExtractor
from sheet_layout_extraction.utils.exceptions import SLEError
from sheet_layout_extraction.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sheet-layout",
        description="Extract positioned texts and images from an .xlsx workbook",
    )
    parser.add_argument("input", type=Path, help="Input .xlsx file")
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--sheet", help="Sheet to extract (default: first sheet)")
    target.add_argument("--all", action="store_true", help="Extract every sheet")
    parser.add_argument(
        "--relationship-index",
        type=int,
        default=None,
        help="N of the worksheet's sheetN.xml.rels manifest (default: derived)",
    )
    parser.add_argument(
        "--no-layout", action="store_true", help="Skip layout analysis"
    )
    parser.add_argument(
        "--include-media",
        action="store_true",
        help="Embed media bytes (hex) in the report",
    )
    parser.add_argument(
        "-o", "--output", type=Path, default=None, help="Output path (default: stdout)"
    )
    parser.add_argument(
        "--log-level", default=None, help="Log level (default: from settings)"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the extraction and write the JSON report.

    Returns:
        0 on success, 1 when the workbook or sheet cannot be extracted.
    """
    args = build_parser().parse_args(argv)

    configure_logging(args.log_level or settings.log_level)
    validate_settings_on_startup(settings)

    extractor = SheetLayoutExtractor(args.input)
    report = ExtractionReport(workbook=args.input.name)
    analyze = not args.no_layout
    try:
        if args.all:
            extractions = extractor.extract_all(analyze_layout=analyze)
        else:
            extractions = [
                extractor.extract_sheet(
                    args.sheet,
                    relationship_index=args.relationship_index,
                    analyze_layout=analyze,
                )
            ]
    except SLEError as e:
        logger.error("Extraction failed", error_code=e.error_code.value, error=e.message)
        report.error = ErrorReport.from_exception(e)
    else:
        report.sheets = [
            SheetReport.from_extraction(extraction, include_media=args.include_media)
            for extraction in extractions
        ]

    payload = report.model_dump_json(indent=2)
    if args.output is None:
        sys.stdout.write(payload + "\n")
    else:
        args.output.write_text(payload, encoding="utf-8")
        logger.info("Report written", path=str(args.output), sheets=len(report.sheets))

    return 0 if report.succeeded else 1


if __name__ == "__main__":
    raise SystemExit(main())
