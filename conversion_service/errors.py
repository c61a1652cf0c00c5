"""
Error types for the conversion service.

Everything raised by option resolution and by the conversion pipeline derives
from ConversionError so the HTTP layer can translate it in one place.
Collaborator failures (Playwright, pypdf) are not wrapped and propagate as-is.
"""

from enum import Enum
from typing import Any


class ConversionError(Exception):
    """Base exception for conversion service errors."""
    pass


class ParseErrorKind(str, Enum):
    """Categories of request parsing faults."""
    INVALID_JSON = "InvalidJSON"
    TYPE_MISMATCH = "TypeMismatch"
    MISSING_REQUIRED = "MissingRequired"
    INVALID_ENUM = "InvalidEnum"
    INVALID_UNIT = "InvalidUnit"


class ParseError(ConversionError):
    """
    Raised when a request parameter cannot be parsed.

    Always a client input fault and never worth retrying.
    """

    def __init__(
        self,
        key: str,
        value: Any = None,
        kind: ParseErrorKind = ParseErrorKind.TYPE_MISMATCH,
    ):
        self.key = key
        self.value = value
        self.kind = kind
        super().__init__(f'Could not parse param "{key}" ({value}).')


class InvalidJSONError(ParseError):
    """Raised when the request body is not a JSON object."""

    def __init__(self, value: Any = None):
        self.key = ""
        self.value = value
        self.kind = ParseErrorKind.INVALID_JSON
        ConversionError.__init__(self, "the json request is malformed")


class NoSourceError(ConversionError):
    """Raised when neither html nor url is provided."""

    def __init__(self):
        super().__init__("no url or html provided")


class ConversionTimeoutError(ConversionError):
    """
    Raised when a conversion deadline is exceeded.

    phase names the wait that expired when it was not the overall deadline.
    """

    def __init__(self, phase: str = ""):
        self.phase = phase
        message = "conversion timed out"
        if phase:
            message = f"{message} ({phase})"
        super().__init__(message)


class WaitUntilTimeoutError(ConversionError):
    """Raised when the readiness signal does not fire within waitUntilTimeout."""

    def __init__(self):
        super().__init__("WaitUntil timed out")


class NoBodyError(ConversionError):
    """Raised when selector extraction finds no body element to replace."""

    def __init__(self):
        super().__init__("page has no 'body' element")


class WatermarkError(ConversionError):
    """Raised when a stamp descriptor or page selection cannot be parsed."""
    pass
