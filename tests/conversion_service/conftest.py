"""
Shared fakes and fixtures for conversion service tests.

FakePage and FakeBrowser stand in for Playwright so render sessions can be
driven deterministically; pdf_factory builds small real PDFs with fpdf2 for
the pypdf engine tests.
"""

import asyncio
from contextlib import asynccontextmanager
from io import BytesIO
from pathlib import Path
from urllib.parse import urlparse

import pytest
from fpdf import FPDF

from conversion_service.storage import TempStorage


class FakePage:
    """Scriptable BrowserPage that records every call."""

    def __init__(
        self,
        pdf: bytes = b"%PDF-1.4 fake pdf content",
        fire_ready: bool = True,
        ready_delay: float = 0,
        has_body: bool = True,
        element_html: str = '<div id="pdf">Only this</div>',
        selector_delay: float = 0,
        pdf_delay: float = 0,
        navigate_error: Exception = None,
    ):
        self.pdf = pdf
        self.fire_ready = fire_ready
        self.ready_delay = ready_delay
        self.has_body = has_body
        self.element_html = element_html
        self.selector_delay = selector_delay
        self.pdf_delay = pdf_delay
        self.navigate_error = navigate_error

        self.calls = []
        self.configured = None
        self.ready_mode = None
        self.navigated_to = None
        self.source_html = None
        self.source_path = None
        self.replaced_body = None
        self.print_options = None
        self._pending = []

    async def configure(self, **kwargs):
        self.calls.append("configure")
        self.configured = kwargs

    def subscribe_ready(self, mode):
        self.calls.append("subscribe_ready")
        self.ready_mode = mode
        ready = asyncio.get_running_loop().create_future()
        self._pending.append(ready)
        return ready

    async def navigate(self, url):
        self.calls.append("navigate")
        self.navigated_to = url
        if url.startswith("file://"):
            self.source_path = Path(urlparse(url).path)
            self.source_html = self.source_path.read_text(encoding="utf-8")
        if self.navigate_error is not None:
            raise self.navigate_error
        if self.fire_ready:
            if self.ready_delay:
                asyncio.get_running_loop().call_later(self.ready_delay, self._fire)
            else:
                # Fires before navigate() returns, like a fast local page
                self._fire()

    def _fire(self):
        # Shared by concurrent sessions in merge tests, so release every waiter
        for ready in self._pending:
            if not ready.done():
                ready.set_result(None)
        self._pending.clear()

    async def wait_for_selector(self, selector):
        self.calls.append("wait_for_selector")
        await asyncio.sleep(self.selector_delay)

    async def outer_html(self, selector):
        self.calls.append("outer_html")
        return self.element_html

    async def replace_body(self, html):
        self.calls.append("replace_body")
        self.replaced_body = html
        return self.has_body

    async def print_pdf(self, options):
        self.calls.append("print_pdf")
        self.print_options = options
        if self.pdf_delay:
            await asyncio.sleep(self.pdf_delay)
        return self.pdf


class FakeBrowser:
    """BrowserEngine handing out the same FakePage every time."""

    def __init__(self, page: FakePage):
        self.page = page
        self.opened = 0
        self.closed = 0

    @asynccontextmanager
    async def open_page(self):
        self.opened += 1
        try:
            yield self.page
        finally:
            self.closed += 1


@pytest.fixture
def fake_page():
    """Fake page that fires readiness immediately and renders fake bytes."""
    return FakePage()


@pytest.fixture
def make_page():
    """Factory for FakePage instances with custom behaviour."""
    return FakePage


@pytest.fixture
def fake_browser(fake_page):
    """Fake browser engine wrapping fake_page."""
    return FakeBrowser(fake_page)


@pytest.fixture
def make_browser():
    """Factory for FakeBrowser instances."""
    return FakeBrowser


@pytest.fixture
def storage(tmp_path):
    """Temp storage rooted in pytest's tmp_path."""
    store = TempStorage(base_dir=str(tmp_path))
    yield store
    store.cleanup()


@pytest.fixture
def pdf_factory():
    """Build a real PDF with one labelled page per label."""

    def _build(*labels: str, width: float = 612, height: float = 792) -> bytes:
        pdf = FPDF(orientation="P", unit="pt", format=(width, height))
        pdf.set_font("helvetica", size=24)
        for label in labels or ("Page",):
            pdf.add_page()
            pdf.text(72, 72, label)
        return bytes(pdf.output())

    return _build


@pytest.fixture
def read_pdf_text():
    """Extract the text of every page of a PDF."""
    from pypdf import PdfReader

    def _read(data: bytes, password: str = None):
        reader = PdfReader(BytesIO(data))
        if password is not None:
            reader.decrypt(password)
        return [page.extract_text() for page in reader.pages]

    return _read
