"""
CSS length parsing.

Lengths arrive either as bare JSON numbers (pixels) or as strings with a
two-character unit suffix. Everything is normalized to inches, which is what
the print-to-PDF call expects.
"""

import math
import re
from typing import Any, Tuple

from .errors import ParseError, ParseErrorKind

# Pixels per unit at 96 DPI
UNIT_TO_PIXELS = {
    "px": 1.0,
    "in": 96.0,
    "cm": 37.8,
    "mm": 3.78,
}

PIXELS_PER_INCH = 96

_TRAILING_LETTERS = re.compile(r"[a-zA-Z]+$")

Margins = Tuple[float, float, float, float]


def pixel_to_inch(pixels: float) -> float:
    """Convert pixels to inches, rounded to two decimals."""
    return round(pixels * 100 / PIXELS_PER_INCH) / 100


def string_to_inch(raw: str) -> float:
    """
    Convert a length string such as "10px", "2.5cm" or "1IN" to inches.

    An unknown or missing suffix falls back to pixels.

    Raises:
        ValueError: If the numeric part cannot be parsed or is not finite
    """
    if len(raw) < 2:
        raise ValueError(f"invalid unit: {raw!r}")

    unit = raw[-2:].lower()
    if unit in UNIT_TO_PIXELS:
        value_text = raw[:-2]
    else:
        unit = "px"
        value_text = raw

    value_text = _TRAILING_LETTERS.sub("", value_text)
    pixels = float(value_text) * UNIT_TO_PIXELS[unit]
    if not math.isfinite(pixels):
        raise ValueError(f"invalid unit: {raw!r}")
    return pixel_to_inch(pixels)


def parse_unit(value: Any, key: str = "unit") -> float:
    """
    Parse a length given as a bare number (pixels) or a unit string.

    Examples:
        >>> parse_unit("96px")
        1.0
        >>> parse_unit(192)
        2.0
    """
    if not _is_number(value) and not isinstance(value, str):
        raise ParseError(key, value, ParseErrorKind.TYPE_MISMATCH)

    try:
        if _is_number(value):
            if not math.isfinite(value):
                raise ValueError(f"invalid length: {value!r}")
            return pixel_to_inch(value)
        return string_to_inch(value)
    except (ValueError, OverflowError):
        raise ParseError(key, value, ParseErrorKind.INVALID_UNIT)


def parse_margin_shorthand(raw: str) -> Margins:
    """
    Expand a CSS margin shorthand into (top, right, bottom, left) inches.

    1 token applies to all sides, 2 tokens are vertical/horizontal,
    3 tokens are top/horizontal/bottom, 4 tokens are top/right/bottom/left.
    """
    tokens = raw.split()
    if not tokens or len(tokens) > 4:
        raise ParseError("margin", raw, ParseErrorKind.INVALID_UNIT)

    try:
        values = [string_to_inch(token) for token in tokens]
    except (ValueError, OverflowError):
        raise ParseError("margin", raw, ParseErrorKind.INVALID_UNIT)

    if len(values) == 1:
        top = right = bottom = left = values[0]
    elif len(values) == 2:
        top, right = values
        bottom, left = top, right
    elif len(values) == 3:
        top, right, bottom = values
        left = right
    else:
        top, right, bottom, left = values

    return top, right, bottom, left


def _is_number(value: Any) -> bool:
    # bool is an int subclass but is never a valid length
    return isinstance(value, (int, float)) and not isinstance(value, bool)
