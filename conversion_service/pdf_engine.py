"""
PDF engine - merge, watermark and encrypt PDF byte streams.

The pypdf implementation handles document structure, fpdf2 draws watermark
overlays, and AES-256 encryption goes through pypdf's cryptography backend.
All methods are synchronous and CPU bound; async callers should run them in
a worker thread.
"""

import logging
from io import BytesIO
from typing import Dict, Protocol, Sequence, Tuple

from fpdf import FPDF
from pypdf import PageObject, PdfReader, PdfWriter

from .watermark import Stamp, parse_stamp, select_pages

logger = logging.getLogger(__name__)


class PdfEngine(Protocol):
    """Capabilities the coordinator and post-processor need."""

    def merge(self, documents: Sequence[bytes]) -> bytes: ...

    def watermark(self, data: bytes, descriptor: str, on_top: bool, pages: Sequence[str]) -> bytes: ...

    def encrypt(self, data: bytes, owner_password: str, user_password: str) -> bytes: ...


def _write(writer: PdfWriter) -> bytes:
    output = BytesIO()
    writer.write(output)
    return output.getvalue()


def build_stamp_page(stamp: Stamp, width: float, height: float) -> PageObject:
    """
    Render a stamp centred on a transparent page of the given size (points).

    Returns:
        A single page suitable for PageObject.merge_page
    """
    pdf = FPDF(orientation="P", unit="pt", format=(width, height))
    pdf.set_margins(0, 0, 0)
    pdf.set_auto_page_break(auto=False)
    pdf.add_page()
    pdf.set_font(stamp.font, size=stamp.points)
    pdf.set_text_color(*(round(component * 255) for component in stamp.color))

    center_x, center_y = width / 2, height / 2
    text_width = pdf.get_string_width(stamp.text)
    with pdf.local_context(fill_opacity=stamp.opacity):
        with pdf.rotation(stamp.rotation, x=center_x, y=center_y):
            # Baseline offset keeps the glyphs visually centred
            pdf.text(center_x - text_width / 2, center_y + stamp.points / 3, stamp.text)

    overlay = PdfReader(BytesIO(bytes(pdf.output())))
    return overlay.pages[0]


class PypdfEngine:
    """PdfEngine backed by pypdf and fpdf2."""

    def merge(self, documents: Sequence[bytes]) -> bytes:
        writer = PdfWriter()
        for data in documents:
            writer.append(PdfReader(BytesIO(data)))
        merged = _write(writer)
        logger.info(f"Merged {len(documents)} documents ({len(merged)} bytes)")
        return merged

    def watermark(self, data: bytes, descriptor: str, on_top: bool, pages: Sequence[str]) -> bytes:
        stamp = parse_stamp(descriptor)
        writer = PdfWriter()
        writer.append(PdfReader(BytesIO(data)))

        targets = select_pages(pages, len(writer.pages))
        overlays: Dict[Tuple[float, float], PageObject] = {}
        for number in targets:
            page = writer.pages[number - 1]
            size = (float(page.mediabox.width), float(page.mediabox.height))
            if size not in overlays:
                overlays[size] = build_stamp_page(stamp, *size)
            page.merge_page(overlays[size], over=on_top)

        logger.info(f"Watermarked {len(targets)} of {len(writer.pages)} pages")
        return _write(writer)

    def encrypt(self, data: bytes, owner_password: str, user_password: str) -> bytes:
        writer = PdfWriter()
        writer.append(PdfReader(BytesIO(data)))
        writer.encrypt(
            user_password=user_password,
            owner_password=owner_password or None,
            algorithm="AES-256",
        )
        return _write(writer)
