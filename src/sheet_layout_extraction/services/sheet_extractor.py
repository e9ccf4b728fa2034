"""End-to-end extraction of positioned texts and images from worksheets.

The pipeline for one sheet runs in a fixed order:

1. Open the package and load the sheet metadata (openpyxl)
2. Resolve merged ranges to pixel bounds
3. Resolve the worksheet's drawing part from its relationship manifest
4. Parse the drawing and resolve each picture's media
5. Extract cell and drawing texts
6. Optionally analyze the layout of the combined elements

Only an unreadable package or an unknown sheet name is fatal. Everything else
is skipped, logged and reported in ``SheetExtraction.warnings``.
"""

from __future__ import annotations

import asyncio
import re
import uuid
from pathlib import Path

from sheet_layout_extraction.config import Settings
from sheet_layout_extraction.config import settings as app_settings
from sheet_layout_extraction.sheet_document import (
    ImageElement,
    SheetData,
    SheetExtraction,
)
from sheet_layout_extraction.services.drawing_parser import DrawingMLParser, ParsedDrawing
from sheet_layout_extraction.services.geometry import calculate_offsets
from sheet_layout_extraction.services.layout_analyzer import analyze_layout_structure
from sheet_layout_extraction.services.merge_resolver import get_merged_cells
from sheet_layout_extraction.services.package_reader import (
    MediaAccessor,
    PackageReader,
    SheetRef,
    rels_path_for,
)
from sheet_layout_extraction.services.sheet_loader import SheetLoader
from sheet_layout_extraction.services.text_extractor import (
    extract_text_from_drawings,
    extract_texts,
)
from sheet_layout_extraction.utils.exceptions import (
    LayoutAnalysisError,
    MediaResolutionError,
    SheetNotFoundError,
)
from sheet_layout_extraction.utils.logging import (
    LogContext,
    ProgressTracker,
    get_logger,
    timed_operation,
)

logger = get_logger(__name__)

_SHEET_PART_RE = re.compile(r"sheet(\d+)\.xml$", re.IGNORECASE)


def relationship_index_for(sheet_ref: SheetRef | None, default: int = 1) -> int:
    """Derive the ``N`` of ``sheetN.xml`` for a worksheet.

    The number in the worksheet part name wins; the sheet's workbook position
    is used when the part name carries no number.
    """
    if sheet_ref is None:
        return default
    match = _SHEET_PART_RE.search(sheet_ref.part_path)
    if match:
        return int(match.group(1))
    return sheet_ref.index


class SheetLayoutExtractor:
    """Extract positioned texts and images from the sheets of a workbook.

    Example:
        extractor = SheetLayoutExtractor("brief.xlsx")
        result = extractor.extract_sheet("Banner")
        for text in result.texts:
            print(text.text, text.x, text.y)
    """

    def __init__(
        self,
        path: Path | str,
        settings: Settings | None = None,
        media_accessor: MediaAccessor | None = None,
    ) -> None:
        """Initialize the extractor.

        Args:
            path: Path to the ``.xlsx`` package.
            settings: Settings override; defaults to the global settings.
            media_accessor: Optional lookup tried first when resolving
                picture media by relationship id.
        """
        self.path = Path(path)
        self.settings = settings or app_settings
        self.media_accessor = media_accessor

    def sheet_names(self) -> list[str]:
        """Sheet names in workbook order.

        Raises:
            PackageNotFoundError: If the file does not exist.
            PackageOpenError: If the package cannot be opened.
        """
        with PackageReader(self.path, self.settings) as reader:
            refs = reader.list_sheets()
        if refs:
            return [ref.name for ref in refs]
        with SheetLoader(self.path) as loader:
            return loader.sheet_names

    def extract_sheet(
        self,
        sheet_name: str | None = None,
        relationship_index: int | None = None,
        analyze_layout: bool = True,
    ) -> SheetExtraction:
        """Extract one sheet.

        Args:
            sheet_name: Sheet to extract; defaults to the first sheet.
            relationship_index: The ``N`` of the worksheet's
                ``sheetN.xml.rels`` manifest. Derived from the worksheet part
                name when omitted.
            analyze_layout: Whether to run layout analysis.

        Returns:
            SheetExtraction with texts, images, merges and layout.

        Raises:
            PackageNotFoundError: If the file does not exist.
            PackageOpenError: If the package cannot be opened.
            SheetNotFoundError: If the sheet is not in the workbook.
        """
        with (
            PackageReader(self.path, self.settings) as reader,
            SheetLoader(self.path, reader) as loader,
        ):
            return self._extract(reader, loader, sheet_name, relationship_index, analyze_layout)

    async def extract_sheet_async(
        self,
        sheet_name: str | None = None,
        relationship_index: int | None = None,
        analyze_layout: bool = True,
    ) -> SheetExtraction:
        """Extract one sheet, awaiting its package reads.

        The worksheet's relationship manifest, the drawing part (with its own
        manifest) and each picture's media are read in that order without
        blocking the event loop. The sheet is then processed from those bytes
        in a worker thread.
        """
        with PackageReader(self.path, self.settings) as reader:
            loader = await asyncio.to_thread(SheetLoader, self.path, reader)
            with loader:
                sheet_ref = self._find_sheet_ref(reader, loader, sheet_name)
                rel_index = relationship_index or relationship_index_for(sheet_ref)
                await self._prefetch_sheet_parts(
                    reader, rel_index, sheet_ref.part_path if sheet_ref else None
                )
                return await asyncio.to_thread(
                    self._extract, reader, loader, sheet_name, rel_index, analyze_layout
                )

    def extract_all(self, analyze_layout: bool = True) -> list[SheetExtraction]:
        """Extract every sheet in workbook order, sharing one package handle."""
        with (
            PackageReader(self.path, self.settings) as reader,
            SheetLoader(self.path, reader) as loader,
        ):
            names = loader.sheet_names
            tracker = ProgressTracker(logger, "Extracting sheets", total=len(names))
            results: list[SheetExtraction] = []
            for name in names:
                results.append(self._extract(reader, loader, name, None, analyze_layout))
                tracker.update(details=name)
            tracker.complete()
        return results

    async def extract_all_async(self, analyze_layout: bool = True) -> list[SheetExtraction]:
        """Extract every sheet concurrently.

        Each sheet gets its own package handle. The result list follows
        workbook order.
        """
        names = await asyncio.to_thread(self.sheet_names)
        logger.info("Extracting sheets concurrently", workbook=self.path.name, sheets=len(names))
        return list(
            await asyncio.gather(
                *(self.extract_sheet_async(name, None, analyze_layout) for name in names)
            )
        )

    # ---- pipeline ---- #

    async def _prefetch_sheet_parts(
        self,
        reader: PackageReader,
        relationship_index: int,
        part_path: str | None,
    ) -> None:
        sheet_part = part_path or f"xl/worksheets/sheet{relationship_index}.xml"
        await reader.prefetch(rels_path_for(sheet_part))

        drawing_path = reader.resolve_drawing_path(relationship_index, part_path)
        await reader.prefetch(drawing_path, rels_path_for(drawing_path))

        parser = DrawingMLParser(reader, self.settings)
        for rel_id in parser.picture_relationship_ids(drawing_path):
            media_path = reader.media_path_for(rel_id, drawing_path)
            if media_path is not None:
                await reader.prefetch(media_path)

    def _extract(
        self,
        reader: PackageReader,
        loader: SheetLoader,
        sheet_name: str | None,
        relationship_index: int | None,
        analyze_layout: bool,
    ) -> SheetExtraction:
        sheet_ref = self._find_sheet_ref(reader, loader, sheet_name)
        name = sheet_ref.name if sheet_ref else sheet_name
        rel_index = relationship_index or relationship_index_for(sheet_ref)

        with LogContext(
            extraction_id=uuid.uuid4().hex[:12],
            workbook=self.path.name,
            sheet=name,
        ), timed_operation(logger, "extract_sheet") as metrics:
            sheet = loader.load_sheet(name, sheet_ref.part_path if sheet_ref else None)
            result = SheetExtraction(sheet_name=sheet.name)

            result.merged_cells = get_merged_cells(sheet, self.settings)
            offsets = calculate_offsets(sheet, settings=self.settings)

            drawing_path = reader.resolve_drawing_path(
                rel_index, sheet_ref.part_path if sheet_ref else None
            )
            drawing = DrawingMLParser(reader, self.settings).parse(drawing_path, sheet, offsets)
            if reader.has_entry(drawing_path):
                result.drawing_path = drawing_path
            result.skipped = list(drawing.skipped)

            result.texts = extract_texts(sheet, result.merged_cells, self.settings)
            result.texts.extend(extract_text_from_drawings(drawing.elements))
            result.images = self._build_images(reader, drawing, result)

            if analyze_layout:
                self._analyze(sheet, result)

            metrics.cells_scanned = len(sheet.cells)
            metrics.texts_extracted = len(result.texts)
            metrics.images_extracted = len(result.images)
            metrics.merges_resolved = len(result.merged_cells)

        logger.log_extraction_result(
            sheet_name=result.sheet_name,
            texts=len(result.texts),
            images=len(result.images),
            merges=len(result.merged_cells),
            skipped=len(result.skipped),
            duration_seconds=metrics.duration_seconds or 0.0,
        )
        return result

    def _find_sheet_ref(
        self,
        reader: PackageReader,
        loader: SheetLoader,
        sheet_name: str | None,
    ) -> SheetRef | None:
        refs = reader.list_sheets()
        if not refs:
            return None
        if sheet_name is None:
            return refs[0]
        for ref in refs:
            if ref.name == sheet_name:
                return ref
        raise SheetNotFoundError(sheet_name, available=loader.sheet_names)

    def _build_images(
        self,
        reader: PackageReader,
        drawing: ParsedDrawing,
        result: SheetExtraction,
    ) -> list[ImageElement]:
        images: list[ImageElement] = []
        for picture in drawing.pictures:
            media = None
            if picture.relationship_id and drawing.drawing_path:
                media = reader.resolve_media(
                    picture.relationship_id,
                    drawing.drawing_path,
                    self.media_accessor,
                )
            if media is None:
                error = MediaResolutionError(
                    picture.relationship_id or "",
                    drawing_path=drawing.drawing_path,
                    strategies=self._media_strategies(),
                )
                result.warnings.append(str(error))
            images.append(
                ImageElement(
                    x=picture.anchor.x,
                    y=picture.anchor.y,
                    width=picture.anchor.width,
                    height=picture.anchor.height,
                    relationship_id=picture.relationship_id,
                    media_ref=media,
                    name=picture.name,
                    anchor_type=picture.anchor.anchor_type,
                )
            )
        return images

    def _media_strategies(self) -> list[str]:
        strategies = ["relationships", "media_map"]
        if self.media_accessor is not None:
            strategies.insert(0, "accessor")
        return strategies

    def _analyze(self, sheet: SheetData, result: SheetExtraction) -> None:
        try:
            result.layout = analyze_layout_structure(
                sheet, [*result.texts, *result.images], self.settings
            )
        except LayoutAnalysisError as e:
            logger.warning("Layout analysis failed", error=e.message)
            result.warnings.append(str(e))
