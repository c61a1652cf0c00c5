"""
Unit tests for option resolution.

Tests defaults, scalar type checks, paper formats, margin precedence,
enums, headers, watermark parsing and merge resolution.
"""

import json

import pytest

from conversion_service.errors import (
    InvalidJSONError,
    NoSourceError,
    ParseError,
    ParseErrorKind,
)
from conversion_service.options import (
    ZERO_MARGIN,
    ConversionSpec,
    WatermarkConfig,
    resolve_conversion,
    resolve_conversion_json,
    resolve_merge,
    resolve_merge_json,
)


FULL_PAYLOAD = {
    "html": "<p>This is a text.</p>",
    "url": "http://localhost:3000/test",
    "landscape": True,
    "displayHeaderFooter": True,
    "printBackground": True,
    "scale": 1.4,
    "paperWidth": "10.5in",
    "paperHeight": "12in",
    "marginTop": "0.5in",
    "marginBottom": "0.4in",
    "marginLeft": "0.3in",
    "marginRight": "0.7in",
    "pageRanges": "1-3",
    "headerTemplate": "<p>HEADER</p>",
    "footerTemplate": "<p>FOOTER</p>",
    "preferCSSPageSize": True,
    "viewportWidth": 1280,
    "viewportHeight": 720,
    "blockAds": True,
    "selector": "#pdf",
    "waitForSelector": "#wait-selector",
    "waitForSelectorTimeout": 3000,
    "waitUntil": "dom",
    "waitUntilTimeout": 10000,
    "delay": 2000,
    "timeout": 60000,
    "headers": {
        "test-header-key1": "test-header-value1",
        "test-header-key2": "test-header-value2",
    },
    "emulateMedia": "print",
    "ownerPassword": "ownerpw",
    "userPassword": "userpw",
}


class TestDefaults:
    """Resolution of a payload that only names a source."""

    def test_defaults(self):
        spec = resolve_conversion({"html": "<p>Hi</p>"})

        assert spec.html == "<p>Hi</p>"
        assert spec.url == ""
        assert spec.landscape is False
        assert spec.display_header_footer is False
        assert spec.print_background is True
        assert spec.scale == 1.0
        assert spec.paper_width == 8.5
        assert spec.paper_height == 11.0
        assert spec.margins == (0.4, 0.4, 0.4, 0.4)
        assert spec.page_ranges == ""
        assert spec.header_template == ""
        assert spec.footer_template == ""
        assert spec.prefer_css_page_size is False
        assert spec.viewport_width == 1920
        assert spec.viewport_height == 1080
        assert spec.block_ads is False
        assert spec.selector == ""
        assert spec.wait_for_selector == ""
        assert spec.wait_for_selector_timeout == 0
        assert spec.wait_until == "load"
        assert spec.wait_until_timeout == 0
        assert spec.delay == 0
        assert spec.timeout == 0
        assert spec.headers == {}
        assert spec.emulate_media == "screen"
        assert spec.owner_password == ""
        assert spec.user_password == ""
        assert spec.watermark is None

    def test_no_source_raises(self):
        with pytest.raises(NoSourceError) as exc_info:
            resolve_conversion({})
        assert str(exc_info.value) == "no url or html provided"

    def test_empty_sources_raise(self):
        with pytest.raises(NoSourceError):
            resolve_conversion({"html": "", "url": ""})

    def test_spec_is_immutable(self):
        spec = resolve_conversion({"url": "https://example.com"})
        with pytest.raises(Exception):
            spec.url = "https://other.example.com"


class TestFullPayload:
    """Resolution of a payload that sets every option."""

    def test_every_option(self):
        spec = resolve_conversion(FULL_PAYLOAD)

        assert spec.html == "<p>This is a text.</p>"
        assert spec.url == "http://localhost:3000/test"
        assert spec.is_url is True
        assert spec.landscape is True
        assert spec.display_header_footer is True
        assert spec.print_background is True
        assert spec.scale == 1.4
        assert spec.paper_width == 10.5
        assert spec.paper_height == 12.0
        assert spec.margin_top == 0.5
        assert spec.margin_bottom == 0.4
        assert spec.margin_left == 0.3
        assert spec.margin_right == 0.7
        assert spec.page_ranges == "1-3"
        assert spec.header_template == "<p>HEADER</p>"
        assert spec.footer_template == "<p>FOOTER</p>"
        assert spec.prefer_css_page_size is True
        assert spec.viewport_width == 1280
        assert spec.viewport_height == 720
        assert spec.block_ads is True
        assert spec.selector == "#pdf"
        assert spec.wait_for_selector == "#wait-selector"
        assert spec.wait_for_selector_timeout == 3000
        assert spec.wait_until == "dom"
        assert spec.wait_until_timeout == 10000
        assert spec.delay == 2000
        assert spec.timeout == 60000
        assert spec.headers["test-header-key1"] == "test-header-value1"
        assert spec.headers["test-header-key2"] == "test-header-value2"
        assert spec.emulate_media == "print"
        assert spec.owner_password == "ownerpw"
        assert spec.user_password == "userpw"

    def test_json_entry_point(self):
        spec = resolve_conversion_json(json.dumps(FULL_PAYLOAD))
        assert spec == resolve_conversion(FULL_PAYLOAD)


class TestScalarTypes:
    """Wrong JSON types are reported with the offending key and value."""

    @pytest.mark.parametrize("key,value", [
        ("html", 42),
        ("landscape", "yes"),
        ("scale", "large"),
        ("viewportWidth", "wide"),
        ("viewportHeight", True),
        ("pageRanges", 3),
        ("delay", "soon"),
        ("headers", ["x-token"]),
        ("ownerPassword", 1234),
    ])
    def test_type_mismatch(self, key, value):
        with pytest.raises(ParseError) as exc_info:
            resolve_conversion({"html": "<p>x</p>", key: value})

        assert exc_info.value.kind == ParseErrorKind.TYPE_MISMATCH
        assert exc_info.value.key == key
        assert exc_info.value.value == value

    def test_error_message(self):
        with pytest.raises(ParseError) as exc_info:
            resolve_conversion({"html": "<p>x</p>", "landscape": "yes"})
        assert str(exc_info.value) == 'Could not parse param "landscape" (yes).'

    def test_integer_fields_truncate_floats(self):
        spec = resolve_conversion({"html": "<p>x</p>", "viewportWidth": 800.9})
        assert spec.viewport_width == 800

    def test_negative_durations_clamp_to_zero(self):
        spec = resolve_conversion({
            "html": "<p>x</p>",
            "delay": -500,
            "timeout": -1,
            "waitUntilTimeout": -10,
            "waitForSelectorTimeout": -3,
        })
        assert spec.delay == 0
        assert spec.timeout == 0
        assert spec.wait_until_timeout == 0
        assert spec.wait_for_selector_timeout == 0

    def test_invalid_unit(self):
        with pytest.raises(ParseError) as exc_info:
            resolve_conversion({"html": "<p>x</p>", "paperWidth": "wide"})
        assert exc_info.value.kind == ParseErrorKind.INVALID_UNIT
        assert exc_info.value.key == "paperWidth"


class TestPaperFormat:
    """Named paper formats."""

    @pytest.mark.parametrize("name", ["A4", "a4"])
    def test_a4_any_case(self, name):
        spec = resolve_conversion({"html": "<p>x</p>", "format": name})
        assert (spec.paper_width, spec.paper_height) == (8.27, 11.7)

    def test_format_overrides_explicit_size(self):
        spec = resolve_conversion({
            "html": "<p>x</p>",
            "format": "Letter",
            "paperWidth": "20in",
            "paperHeight": "30in",
        })
        assert (spec.paper_width, spec.paper_height) == (8.5, 11.0)

    def test_ledger(self):
        spec = resolve_conversion({"html": "<p>x</p>", "format": "ledger"})
        assert (spec.paper_width, spec.paper_height) == (17.0, 11.0)

    def test_unknown_format_keeps_explicit_size(self):
        spec = resolve_conversion({"html": "<p>x</p>", "format": "b5", "paperWidth": 192})
        assert spec.paper_width == 2.0
        assert spec.paper_height == 11.0


class TestMargins:
    """Margin precedence and the zero-margin nudge."""

    def test_numeric_margin_applies_to_all_sides(self):
        spec = resolve_conversion({"html": "<p>x</p>", "margin": 96})
        assert spec.margins == (1.0, 1.0, 1.0, 1.0)

    def test_numeric_margin_beats_individual_sides(self):
        spec = resolve_conversion({"html": "<p>x</p>", "margin": 96, "marginTop": "3in"})
        assert spec.margin_top == 1.0

    def test_shorthand_single(self):
        spec = resolve_conversion({"html": "<p>x</p>", "margin": "10px"})
        assert spec.margins == (0.1, 0.1, 0.1, 0.1)

    def test_shorthand_two(self):
        spec = resolve_conversion({"html": "<p>x</p>", "margin": "10px 20px"})
        assert spec.margin_top == spec.margin_bottom == 0.1
        assert spec.margin_left == spec.margin_right == 0.21

    def test_shorthand_three(self):
        spec = resolve_conversion({"html": "<p>x</p>", "margin": "1in 2in 3in"})
        assert spec.margins == (1.0, 2.0, 3.0, 2.0)

    def test_shorthand_four(self):
        spec = resolve_conversion({"html": "<p>x</p>", "margin": "1in 2in 3in 4in"})
        assert spec.margins == (1.0, 2.0, 3.0, 4.0)

    def test_shorthand_beats_individual_sides(self):
        spec = resolve_conversion({"html": "<p>x</p>", "margin": "1in", "marginLeft": "3in"})
        assert spec.margin_left == 1.0

    def test_individual_sides(self):
        spec = resolve_conversion({
            "html": "<p>x</p>",
            "marginTop": "1in",
            "marginRight": 192,
            "marginBottom": "2.54cm",
        })
        assert spec.margins == (1.0, 2.0, 1.0, 0.4)

    def test_zero_margin_is_nudged(self):
        spec = resolve_conversion({"html": "<p>x</p>", "margin": 0})
        assert spec.margins == (ZERO_MARGIN,) * 4
        assert all(side > 0 for side in spec.margins)

    def test_zero_side_is_nudged(self):
        spec = resolve_conversion({"html": "<p>x</p>", "marginLeft": "0px"})
        assert spec.margin_left == ZERO_MARGIN
        assert spec.margin_top == 0.4

    def test_sub_rounding_margin_is_nudged(self):
        """1px rounds to 0.01in, 0.4px rounds to zero."""
        spec = resolve_conversion({"html": "<p>x</p>", "margin": "0.4px 1px"})
        assert spec.margin_top == ZERO_MARGIN
        assert spec.margin_right == 0.01

    def test_invalid_shorthand(self):
        with pytest.raises(ParseError) as exc_info:
            resolve_conversion({"html": "<p>x</p>", "margin": "1in nope"})
        assert exc_info.value.key == "margin"
        assert exc_info.value.kind == ParseErrorKind.INVALID_UNIT


class TestEnums:
    """waitUntil and emulateMedia allow-lists."""

    def test_wait_until_rejects_unknown(self):
        with pytest.raises(ParseError) as exc_info:
            resolve_conversion({"html": "<p>x</p>", "waitUntil": "never"})
        assert exc_info.value.key == "waitUntil"
        assert exc_info.value.kind == ParseErrorKind.INVALID_ENUM

    def test_wait_until_dom(self):
        assert resolve_conversion({"html": "<p>x</p>", "waitUntil": "dom"}).wait_until == "dom"

    def test_emulate_media_rejects_unknown(self):
        with pytest.raises(ParseError) as exc_info:
            resolve_conversion({"html": "<p>x</p>", "emulateMedia": "tv"})
        assert exc_info.value.key == "emulateMedia"
        assert exc_info.value.kind == ParseErrorKind.INVALID_ENUM

    def test_emulate_media_print(self):
        spec = resolve_conversion({"html": "<p>x</p>", "emulateMedia": "print"})
        assert spec.emulate_media == "print"


class TestHeaders:
    """Extra request headers are kept opaque."""

    def test_non_string_values_kept(self):
        spec = resolve_conversion({
            "url": "https://example.com",
            "headers": {"X-Count": 3, "X-Flags": {"a": True}},
        })
        assert spec.headers == {"X-Count": 3, "X-Flags": {"a": True}}


class TestWatermark:
    """Watermark block parsing."""

    def test_full_watermark(self):
        spec = resolve_conversion({
            "html": "<p>x</p>",
            "watermark": {"query": "DRAFT, opacity:0.3", "onTop": True, "pages": ["1-2", "odd"]},
        })
        assert spec.watermark == WatermarkConfig(
            query="DRAFT, opacity:0.3",
            on_top=True,
            pages=("1-2", "odd"),
        )

    def test_pages_as_single_string(self):
        spec = resolve_conversion({"html": "<p>x</p>", "watermark": {"query": "DRAFT", "pages": "3"}})
        assert spec.watermark.pages == ("3",)
        assert spec.watermark.on_top is False

    def test_missing_query(self):
        with pytest.raises(ParseError) as exc_info:
            resolve_conversion({"html": "<p>x</p>", "watermark": {"onTop": True}})
        assert exc_info.value.kind == ParseErrorKind.MISSING_REQUIRED
        assert exc_info.value.key == "watermark.query"

    def test_invalid_pages(self):
        with pytest.raises(ParseError) as exc_info:
            resolve_conversion({"html": "<p>x</p>", "watermark": {"query": "DRAFT", "pages": [1, 2]}})
        assert exc_info.value.key == "watermark.pages"

    def test_watermark_must_be_object(self):
        with pytest.raises(ParseError) as exc_info:
            resolve_conversion({"html": "<p>x</p>", "watermark": "DRAFT"})
        assert exc_info.value.key == "watermark"


class TestNonFiniteNumbers:
    """NaN, Infinity and overflowing literals in the request body."""

    @pytest.mark.parametrize("body,key", [
        ('{"html": "x", "paperWidth": NaN}', "paperWidth"),
        ('{"html": "x", "paperWidth": 1e999}', "paperWidth"),
        ('{"html": "x", "marginTop": "1e999px"}', "marginTop"),
        ('{"html": "x", "margin": "infpx"}', "margin"),
        ('{"html": "x", "margin": NaN}', "margin"),
        ('{"html": "x", "margin": -Infinity}', "margin"),
    ])
    def test_lengths_are_invalid_units(self, body, key):
        with pytest.raises(ParseError) as exc_info:
            resolve_conversion_json(body)
        assert exc_info.value.kind == ParseErrorKind.INVALID_UNIT
        assert exc_info.value.key == key

    @pytest.mark.parametrize("body,key", [
        ('{"html": "x", "viewportWidth": 1e999}', "viewportWidth"),
        ('{"html": "x", "viewportHeight": NaN}', "viewportHeight"),
        ('{"html": "x", "scale": Infinity}', "scale"),
        ('{"html": "x", "delay": 1e999}', "delay"),
        ('{"html": "x", "timeout": -Infinity}', "timeout"),
    ])
    def test_numbers_are_type_mismatches(self, body, key):
        with pytest.raises(ParseError) as exc_info:
            resolve_conversion_json(body)
        assert exc_info.value.kind == ParseErrorKind.TYPE_MISMATCH
        assert exc_info.value.key == key

    def test_overflowing_length_is_reported_to_the_caller(self):
        with pytest.raises(ParseError) as exc_info:
            resolve_conversion_json('{"html": "x", "paperWidth": 1e999}')
        assert str(exc_info.value) == 'Could not parse param "paperWidth" (inf).'


class TestInvalidJSON:
    """Payload decoding."""

    def test_malformed_json(self):
        with pytest.raises(InvalidJSONError) as exc_info:
            resolve_conversion_json("{not json")
        assert exc_info.value.kind == ParseErrorKind.INVALID_JSON
        assert str(exc_info.value) == "the json request is malformed"

    def test_non_object_json(self):
        with pytest.raises(InvalidJSONError):
            resolve_conversion_json("[1, 2, 3]")

    def test_bytes_body(self):
        spec = resolve_conversion_json(b'{"url": "https://example.com"}')
        assert spec.url == "https://example.com"

    def test_invalid_json_is_a_parse_error(self):
        with pytest.raises(ParseError):
            resolve_merge_json("")


class TestMergeResolution:
    """Merge payload resolution."""

    def test_documents_in_order_without_passwords(self):
        spec = resolve_merge({
            "documents": [
                {"html": "<p>Page 1</p>", "ownerPassword": "doc-owner"},
                {"html": "<p>Page 2</p>", "userPassword": "doc-user"},
                {"html": "<p>Page 3</p>"},
            ],
            "ownerPassword": "owner-pw",
            "userPassword": "user-pw",
        })

        assert [doc.html for doc in spec.documents] == ["<p>Page 1</p>", "<p>Page 2</p>", "<p>Page 3</p>"]
        assert all(doc.owner_password == "" and doc.user_password == "" for doc in spec.documents)
        assert spec.owner_password == "owner-pw"
        assert spec.user_password == "user-pw"
        assert spec.watermark is None
        assert spec.timeout == 0

    def test_shared_watermark_and_timeout(self):
        spec = resolve_merge({
            "documents": [{"url": "https://example.com"}],
            "watermark": {"query": "COPY"},
            "timeout": 30000,
        })
        assert spec.watermark.query == "COPY"
        assert spec.timeout == 30000

    def test_missing_documents(self):
        with pytest.raises(ParseError) as exc_info:
            resolve_merge({"ownerPassword": "x"})
        assert exc_info.value.key == "documents"
        assert exc_info.value.kind == ParseErrorKind.MISSING_REQUIRED

    def test_documents_not_a_list(self):
        with pytest.raises(ParseError) as exc_info:
            resolve_merge({"documents": {"html": "<p>x</p>"}})
        assert exc_info.value.key == "documents"
        assert exc_info.value.kind == ParseErrorKind.TYPE_MISMATCH

    def test_empty_documents(self):
        with pytest.raises(ParseError) as exc_info:
            resolve_merge({"documents": []})
        assert exc_info.value.key == "documents"

    def test_first_invalid_document_wins(self):
        with pytest.raises(ParseError) as exc_info:
            resolve_merge({
                "documents": [
                    {"html": "<p>ok</p>"},
                    {"html": "<p>bad</p>", "waitUntil": "never"},
                    {"html": "<p>also bad</p>", "scale": "big"},
                ],
            })
        assert exc_info.value.key == "waitUntil"

    def test_document_without_source(self):
        with pytest.raises(NoSourceError):
            resolve_merge({"documents": [{"html": "<p>ok</p>"}, {}]})

    def test_merge_json_entry_point(self):
        spec = resolve_merge_json(json.dumps({"documents": [{"url": "https://example.com"}]}))
        assert len(spec.documents) == 1
        assert isinstance(spec.documents[0], ConversionSpec)
