"""Sheet Layout Extraction - pixel geometry for spreadsheet design briefs."""

__version__ = "0.1.0"

from sheet_layout_extraction.services.color_mapper import map_color  # noqa: E402
from sheet_layout_extraction.services.sheet_extractor import (  # noqa: E402
    SheetLayoutExtractor,
)

__all__ = ["SheetLayoutExtractor", "map_color", "__version__"]
