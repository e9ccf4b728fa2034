"""Services for sheet layout extraction."""

from sheet_layout_extraction.services.color_mapper import ColorMapperOptions, map_color
from sheet_layout_extraction.services.drawing_parser import DrawingMLParser, ParsedDrawing
from sheet_layout_extraction.services.layout_analyzer import (
    analyze_layout_structure,
    apply_layout_analysis,
)
from sheet_layout_extraction.services.package_reader import PackageReader
from sheet_layout_extraction.services.sheet_extractor import SheetLayoutExtractor
from sheet_layout_extraction.services.sheet_loader import SheetLoader
from sheet_layout_extraction.services.text_extractor import (
    extract_text_from_drawings,
    extract_texts,
)

__all__ = [
    "ColorMapperOptions",
    "DrawingMLParser",
    "PackageReader",
    "ParsedDrawing",
    "SheetLayoutExtractor",
    "SheetLoader",
    "analyze_layout_structure",
    "apply_layout_analysis",
    "extract_text_from_drawings",
    "extract_texts",
    "map_color",
]
