"""Zip container access for spreadsheet packages.

This module provides the PackageReader, which opens an ``.xlsx`` package and
resolves the relationship manifests that link worksheets to drawings and
drawings to embedded media.

Lookup of media for a picture relationship id tries, in order:
1. An explicit accessor supplied by the caller
2. The drawing's relationship manifest (rId -> target -> zip entry)
3. The internal media map (``xl/media/*`` indexed by the number in the rId)

The first strategy that yields data wins. A failing strategy is logged and
the next one is tried; when all fail the image keeps no media reference.
"""

from __future__ import annotations

import asyncio
import io
import mimetypes
import posixpath
import re
import zipfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from xml.etree import ElementTree as ET

from PIL import Image, UnidentifiedImageError

from sheet_layout_extraction.config import Settings
from sheet_layout_extraction.config import settings as app_settings
from sheet_layout_extraction.sheet_document import MediaRef
from sheet_layout_extraction.utils.exceptions import (
    ErrorCode,
    PackageError,
    PackageNotFoundError,
    PackageOpenError,
)
from sheet_layout_extraction.utils.logging import get_logger

logger = get_logger(__name__)

SPREADSHEET_NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"
DOCUMENT_REL_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
PACKAGE_REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"

WORKBOOK_PATH = "xl/workbook.xml"
CONTENT_TYPES_PATH = "[Content_Types].xml"
DRAWING_REL_SUFFIX = "/drawing"
MAX_COLUMN_INDEX = 16384

MediaAccessor = Callable[[str], bytes | MediaRef | None]
"""Caller-supplied lookup from relationship id to media bytes or a MediaRef."""

_TRAILING_NUMBER_RE = re.compile(r"(\d+)$")


def local_name(tag: str) -> str:
    """Strip the ``{namespace}`` prefix from an element tag."""
    if "}" in tag:
        return tag.rsplit("}", 1)[1]
    return tag


def resolve_target(base_path: str, target: str) -> str:
    """Resolve a relationship target against the part that declares it.

    Absolute targets (leading ``/``) are package-rooted; relative targets are
    resolved against the directory of ``base_path``. The result never starts
    with ``/``.
    """
    if target.startswith("/"):
        joined = posixpath.normpath(target)
    else:
        joined = posixpath.normpath(
            posixpath.join(posixpath.dirname(base_path), target)
        )
    return joined.lstrip("/")


def rels_path_for(part_path: str) -> str:
    """Return the relationship manifest path of a package part."""
    prefix, _, file_name = part_path.rpartition("/")
    if not prefix:
        return f"_rels/{file_name}.rels"
    return f"{prefix}/_rels/{file_name}.rels"


@dataclass
class Relationship:
    """One entry of a relationship manifest."""

    id: str
    type: str
    target: str
    target_mode: str | None = None

    @property
    def is_external(self) -> bool:
        return (self.target_mode or "").lower() == "external"


@dataclass
class SheetRef:
    """A worksheet as declared in the workbook part."""

    index: int
    """1-based position in the workbook."""

    name: str
    state: str
    part_path: str
    relationship_id: str = ""


class PackageReader:
    """Read-only access to the parts of a spreadsheet package."""

    def __init__(
        self,
        file_path: Path | str,
        settings: Settings | None = None,
    ) -> None:
        """Open the zip container.

        Args:
            file_path: Path to the ``.xlsx`` package.
            settings: Settings override; defaults to the global settings.

        Raises:
            PackageNotFoundError: If the file does not exist.
            PackageOpenError: If the file is not a readable zip container.
        """
        self.file_path = Path(file_path)
        self.settings = settings or app_settings
        if not self.file_path.exists():
            raise PackageNotFoundError(str(self.file_path))
        try:
            self._zip = zipfile.ZipFile(self.file_path)
        except (zipfile.BadZipFile, OSError) as e:
            raise PackageOpenError(str(self.file_path), reason=str(e)) from e

        self._names = set(self._zip.namelist())
        self._content_types: dict[str, str] | None = None
        self._relationship_cache: dict[str, list[Relationship]] = {}
        self._prefetched: dict[str, bytes] = {}

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> PackageReader:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Entry access
    # ------------------------------------------------------------------ #

    @property
    def names(self) -> list[str]:
        """All entry names in archive order."""
        return self._zip.namelist()

    def has_entry(self, path: str) -> bool:
        return path.lstrip("/") in self._names

    def read_entry(self, path: str) -> bytes:
        """Read the raw bytes of a package entry.

        Raises:
            PackageError: If the entry does not exist.
        """
        name = path.lstrip("/")
        if name in self._prefetched:
            return self._prefetched[name]
        if name not in self._names:
            raise PackageError(
                f"Package entry not found: {name}",
                error_code=ErrorCode.PACKAGE_ENTRY_MISSING,
                package_path=str(self.file_path),
                details={"entry": name},
            )
        return self._zip.read(name)

    async def read_entry_async(self, path: str) -> bytes:
        """Read a package entry without blocking the event loop."""
        return await asyncio.to_thread(self.read_entry, path)

    async def prefetch(self, *paths: str) -> list[str]:
        """Read entries ahead of synchronous parsing, one after another.

        Fetched bytes are kept and served by ``read_entry``. Missing entries,
        entries already fetched and entries above the media size limit are
        skipped.

        Returns:
            The entry names actually fetched, in order.
        """
        fetched: list[str] = []
        for path in paths:
            name = path.lstrip("/")
            if name in self._prefetched or name not in self._names:
                continue
            if self.entry_size(name) > self.settings.max_media_size_bytes:
                continue
            self._prefetched[name] = await self.read_entry_async(name)
            fetched.append(name)
        return fetched

    def entry_size(self, path: str) -> int:
        return self._zip.getinfo(path.lstrip("/")).file_size

    # ------------------------------------------------------------------ #
    # Workbook structure
    # ------------------------------------------------------------------ #

    def list_sheets(self) -> list[SheetRef]:
        """List worksheets declared in the workbook part, in workbook order.

        Returns:
            SheetRef entries; empty when the workbook part is missing or
            cannot be parsed.
        """
        if not self.has_entry(WORKBOOK_PATH):
            logger.warning("Workbook part missing", package=self.file_path.name)
            return []
        try:
            root = ET.fromstring(self.read_entry(WORKBOOK_PATH))
        except ET.ParseError as e:
            logger.warning("Workbook part is malformed", error=str(e))
            return []

        targets = self.load_relationships(rels_path_for(WORKBOOK_PATH))
        sheet_refs: list[SheetRef] = []
        sheets = root.findall(f"{{{SPREADSHEET_NS}}}sheets/{{{SPREADSHEET_NS}}}sheet")
        for position, sheet in enumerate(sheets, start=1):
            rid = sheet.attrib.get(f"{{{DOCUMENT_REL_NS}}}id", "")
            target = targets.get(rid)
            part_path = (
                resolve_target(WORKBOOK_PATH, target)
                if target
                else f"xl/worksheets/sheet{position}.xml"
            )
            sheet_refs.append(
                SheetRef(
                    index=position,
                    name=sheet.attrib.get("name", f"Sheet{position}"),
                    state=sheet.attrib.get("state", "visible"),
                    part_path=part_path,
                    relationship_id=rid,
                )
            )
        return sheet_refs

    def read_column_widths(self, part_path: str) -> dict[int, float] | None:
        """Explicit column widths declared by a worksheet's ``<cols>`` element.

        Only ``<col>`` entries carrying a positive ``width`` count. A ``<col>``
        that just sets a style or hides a column leaves its columns at the
        default width. Parsing stops at ``<sheetData>``.

        Returns:
            ``{column: width}`` in character units (1-based columns), or None
            when the worksheet part is missing or malformed.
        """
        if not self.has_entry(part_path):
            return None

        widths: dict[int, float] = {}
        try:
            for event, element in ET.iterparse(
                io.BytesIO(self.read_entry(part_path)), events=("start", "end")
            ):
                tag = local_name(element.tag)
                if event == "start":
                    if tag == "sheetData":
                        break
                    continue
                if tag != "col":
                    continue
                try:
                    start = int(element.attrib["min"])
                    end = int(element.attrib.get("max", start))
                    width = float(element.attrib["width"])
                except (KeyError, ValueError):
                    continue
                if width <= 0 or start < 1:
                    continue
                for col in range(start, min(end, MAX_COLUMN_INDEX) + 1):
                    widths[col] = width
        except ET.ParseError as e:
            logger.warning("Worksheet part is malformed", path=part_path, error=str(e))
            return None
        return widths

    def load_relationship_entries(self, rels_path: str) -> list[Relationship]:
        """Parse a relationship manifest.

        A missing manifest yields an empty list; a malformed one is logged
        and also yields an empty list.
        """
        if rels_path in self._relationship_cache:
            return self._relationship_cache[rels_path]

        entries: list[Relationship] = []
        if self.has_entry(rels_path):
            try:
                root = ET.fromstring(self.read_entry(rels_path))
            except ET.ParseError as e:
                logger.warning(
                    "Relationship manifest is malformed",
                    path=rels_path,
                    error=str(e),
                )
            else:
                for rel in root.findall(f"{{{PACKAGE_REL_NS}}}Relationship"):
                    rel_id = rel.attrib.get("Id")
                    target = rel.attrib.get("Target")
                    if not rel_id or not target:
                        continue
                    entries.append(
                        Relationship(
                            id=rel_id,
                            type=rel.attrib.get("Type", ""),
                            target=target,
                            target_mode=rel.attrib.get("TargetMode"),
                        )
                    )

        self._relationship_cache[rels_path] = entries
        return entries

    def load_relationships(self, rels_path: str) -> dict[str, str]:
        """Return the ``rId -> target`` map of a relationship manifest."""
        return {rel.id: rel.target for rel in self.load_relationship_entries(rels_path)}

    def resolve_drawing_path(
        self,
        relationship_index: int,
        part_path: str | None = None,
    ) -> str:
        """Locate the drawing part attached to a worksheet.

        Reads ``xl/worksheets/_rels/sheet{N}.xml.rels`` and resolves the first
        relationship whose type ends in ``/drawing`` against the worksheet
        part. Without a manifest or drawing relationship the conventional
        ``xl/drawings/drawing{N}.xml`` path is returned; callers check for its
        existence.

        Args:
            relationship_index: The ``N`` used in worksheet and drawing part
                names.
            part_path: Worksheet part path; defaults to
                ``xl/worksheets/sheet{N}.xml``.

        Returns:
            Package-relative drawing part path.
        """
        sheet_part = part_path or f"xl/worksheets/sheet{relationship_index}.xml"
        for rel in self.load_relationship_entries(rels_path_for(sheet_part)):
            if rel.type.endswith(DRAWING_REL_SUFFIX) and not rel.is_external:
                drawing_path = resolve_target(sheet_part, rel.target)
                logger.debug(
                    "Resolved drawing relationship",
                    sheet_part=sheet_part,
                    drawing=drawing_path,
                )
                return drawing_path

        fallback = f"xl/drawings/drawing{relationship_index}.xml"
        logger.debug(
            "No drawing relationship; using conventional path",
            sheet_part=sheet_part,
            drawing=fallback,
        )
        return fallback

    # ------------------------------------------------------------------ #
    # Media
    # ------------------------------------------------------------------ #

    def resolve_media(
        self,
        relationship_id: str,
        drawing_path: str,
        accessor: MediaAccessor | None = None,
    ) -> MediaRef | None:
        """Resolve the media blob referenced by a picture relationship id.

        Args:
            relationship_id: The ``r:embed`` id of the picture.
            drawing_path: Package path of the drawing part declaring the id.
            accessor: Optional caller-supplied lookup tried first.

        Returns:
            The first MediaRef any strategy produces, or None.
        """
        if accessor is not None:
            try:
                supplied = accessor(relationship_id)
            except Exception as e:
                logger.warning(
                    "Media accessor failed",
                    relationship_id=relationship_id,
                    error=str(e),
                )
            else:
                if isinstance(supplied, MediaRef):
                    return supplied
                if isinstance(supplied, (bytes, bytearray)):
                    return self._build_media_ref(
                        f"accessor:{relationship_id}", bytes(supplied), "accessor"
                    )

        for strategy, lookup in (
            ("relationships", self._media_path_from_relationships),
            ("media_map", self._media_path_from_media_map),
        ):
            try:
                path = lookup(relationship_id, drawing_path)
                if path is None:
                    continue
                return self._load_media(path, strategy)
            except (PackageError, KeyError, OSError, zipfile.BadZipFile) as e:
                logger.warning(
                    "Media lookup strategy failed",
                    strategy=strategy,
                    relationship_id=relationship_id,
                    error=str(e),
                )

        logger.warning(
            "Media not found",
            relationship_id=relationship_id,
            drawing=drawing_path,
        )
        return None

    def media_path_for(self, relationship_id: str, drawing_path: str) -> str | None:
        """Package path a picture's media resolves to, without reading it.

        Uses the relationship and media-map strategies of ``resolve_media``.
        """
        return self._media_path_from_relationships(
            relationship_id, drawing_path
        ) or self._media_path_from_media_map(relationship_id, drawing_path)

    def content_type_for(self, path: str) -> str | None:
        """Content type of an entry from the manifest, else by extension."""
        if self._content_types is None:
            self._content_types = self._parse_content_types()
        name = "/" + path.lstrip("/")
        if name in self._content_types:
            return self._content_types[name]
        return mimetypes.guess_type(path)[0]

    def _media_path_from_relationships(
        self, relationship_id: str, drawing_path: str
    ) -> str | None:
        targets = self.load_relationships(rels_path_for(drawing_path))
        target = targets.get(relationship_id)
        if target is None:
            return None
        path = resolve_target(drawing_path, target)
        return path if self.has_entry(path) else None

    def _media_path_from_media_map(
        self, relationship_id: str, drawing_path: str
    ) -> str | None:
        match = _TRAILING_NUMBER_RE.search(relationship_id)
        if not match:
            return None
        stem = f"xl/media/image{int(match.group(1))}"
        for name in sorted(self._names):
            if posixpath.splitext(name)[0] == stem:
                return name
        return None

    def _load_media(self, path: str, strategy: str) -> MediaRef:
        size = self.entry_size(path)
        if size > self.settings.max_media_size_bytes:
            logger.warning(
                "Media entry exceeds size limit; data not loaded",
                path=path,
                size_bytes=size,
            )
            return MediaRef(
                path=path,
                content_type=self.content_type_for(path),
                strategy=strategy,
            )
        return self._build_media_ref(path, self.read_entry(path), strategy)

    def _build_media_ref(self, path: str, data: bytes, strategy: str) -> MediaRef:
        width, height = _natural_image_size(data)
        content_type = None
        if strategy != "accessor":
            content_type = self.content_type_for(path)
        elif width is not None:
            content_type = _sniff_mime_type(data)
        return MediaRef(
            path=path,
            content_type=content_type,
            data=data,
            natural_width=width,
            natural_height=height,
            strategy=strategy,
        )

    def _parse_content_types(self) -> dict[str, str]:
        if not self.has_entry(CONTENT_TYPES_PATH):
            return {}
        try:
            root = ET.fromstring(self.read_entry(CONTENT_TYPES_PATH))
        except ET.ParseError as e:
            logger.warning("Content type manifest is malformed", error=str(e))
            return {}

        types: dict[str, str] = {}
        defaults: dict[str, str] = {}
        for child in list(root):
            tag = local_name(child.tag)
            if tag == "Default":
                ext = child.attrib.get("Extension", "").lower()
                ctype = child.attrib.get("ContentType", "")
                if ext and ctype:
                    defaults[ext] = ctype
            elif tag == "Override":
                part_name = child.attrib.get("PartName", "")
                ctype = child.attrib.get("ContentType", "")
                if part_name and ctype:
                    types[part_name] = ctype

        for name in self._names:
            with_slash = "/" + name
            if with_slash in types:
                continue
            ext = posixpath.splitext(name)[1].lower().lstrip(".")
            if ext in defaults:
                types[with_slash] = defaults[ext]
        return types


def _natural_image_size(data: bytes) -> tuple[int | None, int | None]:
    try:
        with Image.open(io.BytesIO(data)) as image:
            return image.size
    except (UnidentifiedImageError, OSError, ValueError):
        return None, None


def _sniff_mime_type(data: bytes) -> str | None:
    try:
        with Image.open(io.BytesIO(data)) as image:
            return Image.MIME.get(image.format or "")
    except (UnidentifiedImageError, OSError, ValueError):
        return None
