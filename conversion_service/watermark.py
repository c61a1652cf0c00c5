"""
Watermark stamp descriptors and page selection.

A stamp descriptor is a comma-separated string. The first bare token is the
stamp text; the rest are key:value pairs:

    "CONFIDENTIAL, points:60, rotation:30, opacity:0.25, color:#cc0000"

Supported keys (short forms in brackets): font [f], points [p],
rotation [r], opacity [o], color [c], diagonal [d].
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from .errors import WatermarkError

CORE_FONTS = ("helvetica", "times", "courier")

_KEY_ALIASES = {
    "text": "text",
    "t": "text",
    "font": "font",
    "f": "font",
    "points": "points",
    "p": "points",
    "rotation": "rotation",
    "r": "rotation",
    "opacity": "opacity",
    "o": "opacity",
    "color": "color",
    "c": "color",
    "diagonal": "diagonal",
    "d": "diagonal",
}

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6})$")
_RANGE = re.compile(r"^(\d*)-(\d*)$")

Color = Tuple[float, float, float]


@dataclass(frozen=True)
class Stamp:
    """Parsed text stamp."""

    text: str
    font: str = "helvetica"
    points: int = 48
    rotation: float = 45.0
    opacity: float = 0.5
    color: Color = (0.5, 0.5, 0.5)


def _parse_color(raw: str) -> Color:
    match = _HEX_COLOR.match(raw)
    if match:
        value = match.group(1)
        return tuple(int(value[i:i + 2], 16) / 255 for i in (0, 2, 4))

    parts = raw.split()
    if len(parts) != 3:
        raise WatermarkError(f"invalid color: {raw!r}")
    try:
        color = tuple(float(part) for part in parts)
    except ValueError:
        raise WatermarkError(f"invalid color: {raw!r}")
    if any(not 0 <= c <= 1 for c in color):
        raise WatermarkError(f"color components must be between 0 and 1: {raw!r}")
    return color


def parse_stamp(descriptor: str) -> Stamp:
    """
    Parse a stamp descriptor.

    Raises:
        WatermarkError: On empty text, unknown keys or out-of-range values
    """
    values = {}
    for index, token in enumerate(part.strip() for part in descriptor.split(",")):
        if not token:
            continue
        if ":" not in token:
            if index != 0:
                raise WatermarkError(f"unexpected token in watermark: {token!r}")
            values["text"] = token
            continue

        key, _, value = token.partition(":")
        name = _KEY_ALIASES.get(key.strip().lower())
        if name is None:
            raise WatermarkError(f"unknown watermark parameter: {key.strip()!r}")
        values[name] = value.strip()

    text = values.pop("text", "")
    if not text:
        raise WatermarkError("watermark text is required")

    stamp = {"text": text}
    try:
        if "font" in values:
            font = values["font"].lower()
            if font not in CORE_FONTS:
                raise WatermarkError(f"unsupported font: {values['font']!r}")
            stamp["font"] = font
        if "points" in values:
            stamp["points"] = int(values["points"])
            if stamp["points"] <= 0:
                raise WatermarkError("points must be positive")
        if "diagonal" in values:
            if values["diagonal"] not in ("1", "2"):
                raise WatermarkError("diagonal must be 1 or 2")
            stamp["rotation"] = 45.0 if values["diagonal"] == "1" else -45.0
        if "rotation" in values:
            stamp["rotation"] = float(values["rotation"])
            if not -180 <= stamp["rotation"] <= 180:
                raise WatermarkError("rotation must be between -180 and 180")
        if "opacity" in values:
            stamp["opacity"] = float(values["opacity"])
            if not 0 <= stamp["opacity"] <= 1:
                raise WatermarkError("opacity must be between 0 and 1")
        if "color" in values:
            stamp["color"] = _parse_color(values["color"])
    except ValueError as e:
        raise WatermarkError(f"invalid watermark value: {e}")

    return Stamp(**stamp)


def select_pages(selection: Iterable[str], total_pages: int) -> List[int]:
    """
    Resolve page selection expressions to sorted 1-based page numbers.

    Each entry may hold several comma-separated expressions: "3", "2-5",
    "4-" (to the end), "-2" (from the start), "even" or "odd". An empty
    selection means every page. Numbers past the last page are ignored.
    """
    expressions = [
        part.strip()
        for entry in selection
        for part in entry.split(",")
        if part.strip()
    ]
    if not expressions:
        return list(range(1, total_pages + 1))

    pages = set()
    for expression in expressions:
        lowered = expression.lower()
        if lowered == "even":
            pages.update(range(2, total_pages + 1, 2))
        elif lowered == "odd":
            pages.update(range(1, total_pages + 1, 2))
        elif expression.isdigit():
            pages.add(int(expression))
        else:
            match = _RANGE.match(expression)
            if not match or expression == "-":
                raise WatermarkError(f"invalid page selection: {expression!r}")
            start = int(match.group(1)) if match.group(1) else 1
            end = int(match.group(2)) if match.group(2) else total_pages
            pages.update(range(start, end + 1))

    return sorted(page for page in pages if 1 <= page <= total_pages)
