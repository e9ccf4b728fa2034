"""Classification of arbitrary color encodings into a fixed palette.

Spreadsheet colors arrive in many shapes: ``#RRGGBB`` and ``#RGB`` hex
strings, ``rgb(r, g, b)`` strings, objects or JSON strings carrying an ``rgb``
field, and OLE_COLOR integers in BGR byte order. Every input is reduced to RGB,
converted to HSL and classified in this order:

1. Very light colors become grey (or white when ``force_very_light_to_grey``
   is off), so that nothing pale disappears on a white canvas
2. Very dark colors become black
3. Tan, khaki, wheat and similar muted warm colors become orange
4. Remaining low-saturation colors become grey
5. Everything else goes to the nearest hue bucket

The mapper is total: unparseable input yields grey and nothing raises.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from sheet_layout_extraction.config import Settings
from sheet_layout_extraction.config import settings as app_settings
from sheet_layout_extraction.sheet_document import PaletteColor

_RGB_FUNC_RE = re.compile(
    r"rgb\s*\(\s*([0-9]+)\s*,\s*([0-9]+)\s*,\s*([0-9]+)\s*\)", re.IGNORECASE
)
_HEX_RE = re.compile(r"#*\s*([0-9a-fA-F]{6}|[0-9a-fA-F]{3})")

HUE_BUCKETS: tuple[tuple[PaletteColor, float], ...] = (
    (PaletteColor.RED, 0.0),
    (PaletteColor.ORANGE, 30.0),
    (PaletteColor.YELLOW, 55.0),
    (PaletteColor.GREEN, 120.0),
    (PaletteColor.BLUE, 210.0),
    (PaletteColor.VIOLET, 275.0),
    (PaletteColor.RED, 360.0),
)

_OPTION_ALIASES = {
    "min_saturation": "min_saturation",
    "minSaturation": "min_saturation",
    "lightness_as_white": "lightness_as_white",
    "lightnessAsWhite": "lightness_as_white",
    "lightness_as_black": "lightness_as_black",
    "lightnessAsBlack": "lightness_as_black",
    "force_very_light_to_grey": "force_very_light_to_grey",
    "forceVeryLightToGrey": "force_very_light_to_grey",
}


@dataclass(frozen=True)
class ColorMapperOptions:
    """Thresholds that steer palette classification."""

    min_saturation: float = 0.18
    lightness_as_white: float = 0.92
    lightness_as_black: float = 0.12
    force_very_light_to_grey: bool = True

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ColorMapperOptions:
        cfg = settings or app_settings
        return cls(
            min_saturation=cfg.color_min_saturation,
            lightness_as_white=cfg.color_lightness_as_white,
            lightness_as_black=cfg.color_lightness_as_black,
            force_very_light_to_grey=cfg.color_force_very_light_to_grey,
        )

    @classmethod
    def coerce(
        cls, options: ColorMapperOptions | Mapping[str, Any] | None
    ) -> ColorMapperOptions:
        """Build options from None, an instance, or a mapping.

        Mapping keys may use ``snake_case`` or ``camelCase`` spellings;
        unknown keys are ignored and missing keys take configured defaults.
        """
        if isinstance(options, ColorMapperOptions):
            return options
        base = _default_options()
        if not options:
            return base
        values = {
            "min_saturation": base.min_saturation,
            "lightness_as_white": base.lightness_as_white,
            "lightness_as_black": base.lightness_as_black,
            "force_very_light_to_grey": base.force_very_light_to_grey,
        }
        for key, value in options.items():
            field_name = _OPTION_ALIASES.get(key)
            if field_name is None or value is None:
                continue
            if field_name == "force_very_light_to_grey":
                values[field_name] = bool(value)
            else:
                values[field_name] = float(value)
        return cls(**values)


def map_color(
    color_input: Any,
    options: ColorMapperOptions | Mapping[str, Any] | None = None,
) -> PaletteColor:
    """Classify a color value into the fixed palette.

    Args:
        color_input: Hex string, ``rgb()`` string, mapping or JSON string with
            an ``rgb`` field, or an OLE_COLOR integer / digit string.
        options: Classification thresholds; configured defaults when omitted.

    Returns:
        The palette color. Unparseable input yields ``PaletteColor.GREY``.

    Example:
        >>> map_color("#D2B48C")
        <PaletteColor.ORANGE: 'orange'>
        >>> map_color(255)
        <PaletteColor.RED: 'red'>
    """
    rgb = parse_color(color_input)
    if rgb is None:
        return PaletteColor.GREY
    if options is None:
        return _classify_rgb(rgb, _default_options())
    return _classify_rgb(rgb, ColorMapperOptions.coerce(options))


def parse_color(color_input: Any) -> tuple[int, int, int] | None:
    """Reduce any supported color encoding to an ``(r, g, b)`` tuple."""
    if isinstance(color_input, str):
        return _parse_text(color_input)

    if color_input is None or isinstance(color_input, bool):
        return None

    if isinstance(color_input, int):
        return _ole_to_rgb(color_input)

    if isinstance(color_input, float):
        # is_integer() is False for inf and nan
        return _ole_to_rgb(int(color_input)) if color_input.is_integer() else None

    if isinstance(color_input, Mapping):
        value = color_input.get("rgb")
        return _hex_to_rgb(value) if isinstance(value, str) else None

    return None


def rgb_to_hsl(r: int, g: int, b: int) -> tuple[float, float, float]:
    """Convert 0-255 RGB to hue in degrees and saturation/lightness in 0-1."""
    red, green, blue = r / 255, g / 255, b / 255
    high = max(red, green, blue)
    low = min(red, green, blue)
    lightness = (high + low) / 2
    delta = high - low
    if delta == 0:
        return 0.0, 0.0, lightness

    saturation = delta / (1 - abs(2 * lightness - 1))
    if high == red:
        hue = 60 * (((green - blue) / delta) % 6)
    elif high == green:
        hue = 60 * (((blue - red) / delta) + 2)
    else:
        hue = 60 * (((red - green) / delta) + 4)
    if hue < 0:
        hue += 360
    return hue, saturation, lightness


def is_tan_like(hue: float, saturation: float, lightness: float) -> bool:
    """Whether a color falls in the tan/khaki/wheat family reported as orange.

    Pure yellow (hue within 5 degrees of 60) is never tan.
    """
    hue = (hue + 360) % 360
    if abs(hue - 60) < 5:
        return False
    warm_hue = 15 <= hue <= 55 or 65 <= hue <= 75
    mid_lightness = 0.20 <= lightness <= 0.90
    saturated_yellow = saturation > 0.5 and 40 <= hue <= 70 and abs(hue - 60) > 5
    return (warm_hue and mid_lightness) or saturated_yellow


def nearest_hue_bucket(hue: float) -> PaletteColor:
    """Return the palette color whose bucket angle is closest to ``hue``."""
    hue = (hue + 360) % 360
    best = PaletteColor.GREY
    best_distance = float("inf")
    for name, angle in HUE_BUCKETS:
        distance = min(abs(hue - angle), 360 - abs(hue - angle))
        if distance < best_distance:
            best_distance = distance
            best = name
    return best


@lru_cache(maxsize=1)
def _default_options() -> ColorMapperOptions:
    return ColorMapperOptions.from_settings()


def _classify_rgb(
    rgb: tuple[int, int, int], options: ColorMapperOptions
) -> PaletteColor:
    hue, saturation, lightness = rgb_to_hsl(*rgb)

    if lightness >= options.lightness_as_white:
        if options.force_very_light_to_grey:
            return PaletteColor.GREY
        return PaletteColor.WHITE
    if lightness <= options.lightness_as_black:
        return PaletteColor.BLACK
    if is_tan_like(hue, saturation, lightness):
        return PaletteColor.ORANGE
    if saturation < options.min_saturation:
        return PaletteColor.GREY
    return nearest_hue_bucket(hue)


def _parse_text(value: str) -> tuple[int, int, int] | None:
    text = value.strip()
    if not text:
        return None

    first = text[0]
    if first == "#":
        return _hex_to_rgb(text)

    if first == "{":
        try:
            payload = json.loads(text)
        except ValueError:
            return None
        if isinstance(payload, Mapping) and isinstance(payload.get("rgb"), str):
            return _hex_to_rgb(payload["rgb"])
        return None

    if first in "rR":
        match = _RGB_FUNC_RE.fullmatch(text)
        if not match:
            return None
        r, g, b = (_channel(part) for part in match.groups())
        return r, g, b

    # str.isdigit() also accepts non-ASCII digits that int() rejects
    if text.isascii() and text.isdigit():
        try:
            return _ole_to_rgb(int(text))
        except ValueError:
            # beyond the interpreter's int conversion limit
            return None

    return None


def _channel(digits: str) -> int:
    significant = digits.lstrip("0")
    if len(significant) > 3:
        return 255
    return min(255, int(significant or "0"))


def _hex_to_rgb(value: str) -> tuple[int, int, int] | None:
    match = _HEX_RE.fullmatch(value.strip())
    if not match:
        return None
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(char * 2 for char in digits)
    number = int(digits, 16)
    return number >> 16, (number >> 8) & 0xFF, number & 0xFF


def _ole_to_rgb(value: int) -> tuple[int, int, int] | None:
    # OLE_COLOR stores 0x00BBGGRR
    if value < 0:
        return None
    value &= 0xFFFFFF
    return value & 0xFF, (value >> 8) & 0xFF, (value >> 16) & 0xFF
