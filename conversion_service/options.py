"""
Option resolution for conversion and merge requests.

Turns a loosely typed request payload (decoded JSON) into an immutable,
validated ConversionSpec or MergeSpec. Resolution is pure: no I/O and the
same input always yields the same spec or the same ParseError.
"""

import json
import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import InvalidJSONError, NoSourceError, ParseError, ParseErrorKind
from .units import Margins, parse_margin_shorthand, parse_unit

# Paper formats in inches (width, height)
PAPER_FORMATS: Dict[str, Tuple[float, float]] = {
    "letter": (8.5, 11.0),
    "legal": (8.5, 14.0),
    "tabloid": (11.0, 17.0),
    "ledger": (17.0, 11.0),
    "a0": (33.1, 46.8),
    "a1": (23.4, 33.1),
    "a2": (16.54, 23.4),
    "a3": (11.7, 16.54),
    "a4": (8.27, 11.7),
    "a5": (5.83, 8.27),
    "a6": (4.13, 5.83),
}

WAIT_UNTIL_MODES = ("load", "dom")
MEDIA_TYPES = ("screen", "print")

DEFAULT_MARGIN = 0.4
# Sides that resolve to exactly zero are nudged to this value so an explicit
# zero margin stays distinguishable from "no margin configured".
ZERO_MARGIN = 0.00000001

_MISSING = object()


@dataclass(frozen=True)
class WatermarkConfig:
    """Stamp descriptor plus layering and page selection."""

    query: str
    on_top: bool = False
    pages: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ConversionSpec:
    """Fully resolved parameters for rendering one document."""

    html: str = ""
    url: str = ""

    # Print parameters (lengths in inches)
    paper_width: float = 8.5
    paper_height: float = 11.0
    margin_top: float = DEFAULT_MARGIN
    margin_right: float = DEFAULT_MARGIN
    margin_bottom: float = DEFAULT_MARGIN
    margin_left: float = DEFAULT_MARGIN
    scale: float = 1.0
    landscape: bool = False
    display_header_footer: bool = False
    print_background: bool = True
    prefer_css_page_size: bool = False
    page_ranges: str = ""
    header_template: str = ""
    footer_template: str = ""

    # Page setup
    viewport_width: int = 1920
    viewport_height: int = 1080
    block_ads: bool = False
    headers: Mapping[str, Any] = field(default_factory=dict)
    emulate_media: str = "screen"

    # Waiting (durations in milliseconds)
    selector: str = ""
    wait_for_selector: str = ""
    wait_for_selector_timeout: int = 0
    wait_until: str = "load"
    wait_until_timeout: int = 0
    delay: int = 0
    timeout: int = 0

    # Post-processing
    owner_password: str = ""
    user_password: str = ""
    watermark: Optional[WatermarkConfig] = None

    @property
    def margins(self) -> Margins:
        return self.margin_top, self.margin_right, self.margin_bottom, self.margin_left

    @property
    def is_url(self) -> bool:
        return bool(self.url)

    def without_passwords(self) -> "ConversionSpec":
        return replace(self, owner_password="", user_password="")


@dataclass(frozen=True)
class MergeSpec:
    """Ordered documents plus merge-level security and watermark settings."""

    documents: Tuple[ConversionSpec, ...] = ()
    owner_password: str = ""
    user_password: str = ""
    watermark: Optional[WatermarkConfig] = None
    timeout: int = 0


# ============================================================================
# Scalar getters
# ============================================================================

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_finite(value: Any) -> bool:
    try:
        return math.isfinite(value)
    except OverflowError:
        # Integers too large for a float
        return False


def get_string(raw: Mapping[str, Any], key: str, default: str = "") -> str:
    value = raw.get(key, _MISSING)
    if value is _MISSING:
        return default
    if not isinstance(value, str):
        raise ParseError(key, value, ParseErrorKind.TYPE_MISMATCH)
    return value


def get_bool(raw: Mapping[str, Any], key: str, default: bool = False) -> bool:
    value = raw.get(key, _MISSING)
    if value is _MISSING:
        return default
    if not isinstance(value, bool):
        raise ParseError(key, value, ParseErrorKind.TYPE_MISMATCH)
    return value


def get_float(raw: Mapping[str, Any], key: str, default: float = 0.0) -> float:
    value = raw.get(key, _MISSING)
    if value is _MISSING:
        return default
    if not _is_number(value) or not _is_finite(value):
        raise ParseError(key, value, ParseErrorKind.TYPE_MISMATCH)
    return float(value)


def get_int(raw: Mapping[str, Any], key: str, default: int = 0) -> int:
    value = raw.get(key, _MISSING)
    if value is _MISSING:
        return default
    if not _is_number(value) or not _is_finite(value):
        raise ParseError(key, value, ParseErrorKind.TYPE_MISMATCH)
    return int(value)


def get_duration(raw: Mapping[str, Any], key: str, default: int = 0) -> int:
    """Milliseconds; negative values clamp to zero."""
    return max(get_int(raw, key, default), 0)


def get_unit(raw: Mapping[str, Any], key: str, default: float) -> float:
    value = raw.get(key, _MISSING)
    if value is _MISSING:
        return default
    return parse_unit(value, key)


def get_choice(raw: Mapping[str, Any], key: str, default: str, allowed: Tuple[str, ...]) -> str:
    value = get_string(raw, key, default)
    if value not in allowed:
        raise ParseError(key, value, ParseErrorKind.INVALID_ENUM)
    return value


def get_strings(raw: Mapping[str, Any], key: str, default: Tuple[str, ...] = ()) -> Tuple[str, ...]:
    """Accept either a single string or an array of strings."""
    value = raw.get(key, _MISSING)
    if value is _MISSING:
        return default
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list):
        raise ParseError(key, value, ParseErrorKind.TYPE_MISMATCH)
    for item in value:
        if not isinstance(item, str):
            raise ParseError(key, item, ParseErrorKind.TYPE_MISMATCH)
    return tuple(value)


def get_object(raw: Mapping[str, Any], key: str) -> Optional[Dict[str, Any]]:
    value = raw.get(key, _MISSING)
    if value is _MISSING:
        return None
    if not isinstance(value, dict):
        raise ParseError(key, value, ParseErrorKind.TYPE_MISMATCH)
    return value


# ============================================================================
# Composite fields
# ============================================================================

def resolve_paper_size(raw: Mapping[str, Any]) -> Tuple[float, float]:
    """Explicit width/height, overridden by a known named format."""
    width = get_unit(raw, "paperWidth", ConversionSpec.paper_width)
    height = get_unit(raw, "paperHeight", ConversionSpec.paper_height)

    paper_format = get_string(raw, "format", "").lower()
    if paper_format in PAPER_FORMATS:
        width, height = PAPER_FORMATS[paper_format]

    return width, height


def resolve_margins(raw: Mapping[str, Any]) -> Margins:
    """
    Resolve the four margins in inches.

    A numeric "margin" (pixels) wins, then a string "margin" shorthand, then
    the individual marginTop/Right/Bottom/Left keys. Sides that end up exactly
    zero are nudged to ZERO_MARGIN.
    """
    margin = raw.get("margin", _MISSING)

    if _is_number(margin) and not _is_finite(margin):
        raise ParseError("margin", margin, ParseErrorKind.INVALID_UNIT)

    if _is_number(margin) and margin >= 0:
        value = parse_unit(margin, "margin")
        margins = (value, value, value, value)
    elif isinstance(margin, str) and margin.strip():
        margins = parse_margin_shorthand(margin)
    else:
        margins = (
            get_unit(raw, "marginTop", DEFAULT_MARGIN),
            get_unit(raw, "marginRight", DEFAULT_MARGIN),
            get_unit(raw, "marginBottom", DEFAULT_MARGIN),
            get_unit(raw, "marginLeft", DEFAULT_MARGIN),
        )

    return tuple(ZERO_MARGIN if side == 0 else side for side in margins)


def resolve_headers(raw: Mapping[str, Any]) -> Dict[str, Any]:
    headers = get_object(raw, "headers")
    return dict(headers) if headers is not None else {}


def resolve_watermark(raw: Mapping[str, Any]) -> Optional[WatermarkConfig]:
    data = get_object(raw, "watermark")
    if data is None:
        return None

    if "query" not in data:
        raise ParseError("watermark.query", None, ParseErrorKind.MISSING_REQUIRED)

    try:
        return WatermarkConfig(
            query=get_string(data, "query"),
            on_top=get_bool(data, "onTop", False),
            pages=get_strings(data, "pages"),
        )
    except ParseError as exc:
        raise ParseError(f"watermark.{exc.key}", exc.value, exc.kind) from exc


# ============================================================================
# Public API
# ============================================================================

def resolve_conversion(raw: Mapping[str, Any]) -> ConversionSpec:
    """
    Resolve a decoded conversion payload into a ConversionSpec.

    Raises:
        ParseError: For type, enum, unit or missing-field faults
        NoSourceError: If neither html nor url is given
    """
    if not isinstance(raw, Mapping):
        raise InvalidJSONError(raw)

    html = get_string(raw, "html")
    url = get_string(raw, "url")
    paper_width, paper_height = resolve_paper_size(raw)
    margin_top, margin_right, margin_bottom, margin_left = resolve_margins(raw)

    spec = ConversionSpec(
        html=html,
        url=url,
        paper_width=paper_width,
        paper_height=paper_height,
        margin_top=margin_top,
        margin_right=margin_right,
        margin_bottom=margin_bottom,
        margin_left=margin_left,
        scale=get_float(raw, "scale", 1.0),
        landscape=get_bool(raw, "landscape", False),
        display_header_footer=get_bool(raw, "displayHeaderFooter", False),
        print_background=get_bool(raw, "printBackground", True),
        prefer_css_page_size=get_bool(raw, "preferCSSPageSize", False),
        page_ranges=get_string(raw, "pageRanges"),
        header_template=get_string(raw, "headerTemplate"),
        footer_template=get_string(raw, "footerTemplate"),
        viewport_width=get_int(raw, "viewportWidth", 1920),
        viewport_height=get_int(raw, "viewportHeight", 1080),
        block_ads=get_bool(raw, "blockAds", False),
        headers=resolve_headers(raw),
        emulate_media=get_choice(raw, "emulateMedia", "screen", MEDIA_TYPES),
        selector=get_string(raw, "selector"),
        wait_for_selector=get_string(raw, "waitForSelector"),
        wait_for_selector_timeout=get_duration(raw, "waitForSelectorTimeout"),
        wait_until=get_choice(raw, "waitUntil", "load", WAIT_UNTIL_MODES),
        wait_until_timeout=get_duration(raw, "waitUntilTimeout"),
        delay=get_duration(raw, "delay"),
        timeout=get_duration(raw, "timeout"),
        owner_password=get_string(raw, "ownerPassword"),
        user_password=get_string(raw, "userPassword"),
        watermark=resolve_watermark(raw),
    )

    if not html and not url:
        raise NoSourceError()

    return spec


def resolve_merge(raw: Mapping[str, Any]) -> MergeSpec:
    """
    Resolve a decoded merge payload into a MergeSpec.

    Each entry of "documents" goes through resolve_conversion; the first
    invalid document aborts resolution with its own error.
    """
    if not isinstance(raw, Mapping):
        raise InvalidJSONError(raw)

    if "documents" not in raw:
        raise ParseError("documents", None, ParseErrorKind.MISSING_REQUIRED)

    documents = raw["documents"]
    if not isinstance(documents, list):
        raise ParseError("documents", documents, ParseErrorKind.TYPE_MISMATCH)
    if not documents:
        raise ParseError("documents", documents, ParseErrorKind.MISSING_REQUIRED)

    resolved: List[ConversionSpec] = []
    for document in documents:
        if not isinstance(document, dict):
            raise ParseError("documents", document, ParseErrorKind.TYPE_MISMATCH)
        resolved.append(resolve_conversion(document).without_passwords())

    return MergeSpec(
        documents=tuple(resolved),
        owner_password=get_string(raw, "ownerPassword"),
        user_password=get_string(raw, "userPassword"),
        watermark=resolve_watermark(raw),
        timeout=get_duration(raw, "timeout"),
    )


def decode_payload(body: Union[str, bytes]) -> Dict[str, Any]:
    """Decode a request body into a JSON object."""
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        raise InvalidJSONError(body)
    if not isinstance(data, dict):
        raise InvalidJSONError(data)
    return data


def resolve_conversion_json(body: Union[str, bytes]) -> ConversionSpec:
    return resolve_conversion(decode_payload(body))


def resolve_merge_json(body: Union[str, bytes]) -> MergeSpec:
    return resolve_merge(decode_payload(body))
