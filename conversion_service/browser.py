"""
Browser engine adapter.

RenderSession talks to a BrowserPage, never to Playwright directly. The
Playwright implementation below drives a shared headless Chromium; each
session gets its own browser context so cookies, headers and viewport never
leak between conversions.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncContextManager, AsyncIterator, Mapping, Protocol

from .options import ConversionSpec

logger = logging.getLogger(__name__)

# Readiness mode -> Playwright page event
READY_EVENTS = {
    "load": "load",
    "dom": "domcontentloaded",
}

_REPLACE_BODY_JS = """
html => {
    const body = document.body;
    if (!body) {
        return false;
    }
    const parsed = new DOMParser().parseFromString(html, "text/html");
    document.documentElement.replaceChild(document.adoptNode(parsed.body), body);
    return true;
}
"""


@dataclass(frozen=True)
class PrintOptions:
    """Print-to-PDF parameters, lengths in inches."""

    paper_width: float
    paper_height: float
    margin_top: float
    margin_right: float
    margin_bottom: float
    margin_left: float
    scale: float = 1.0
    landscape: bool = False
    display_header_footer: bool = False
    print_background: bool = True
    prefer_css_page_size: bool = False
    page_ranges: str = ""
    header_template: str = ""
    footer_template: str = ""

    @classmethod
    def from_spec(cls, spec: ConversionSpec) -> "PrintOptions":
        return cls(
            paper_width=spec.paper_width,
            paper_height=spec.paper_height,
            margin_top=spec.margin_top,
            margin_right=spec.margin_right,
            margin_bottom=spec.margin_bottom,
            margin_left=spec.margin_left,
            scale=spec.scale,
            landscape=spec.landscape,
            display_header_footer=spec.display_header_footer,
            print_background=spec.print_background,
            prefer_css_page_size=spec.prefer_css_page_size,
            page_ranges=spec.page_ranges,
            header_template=spec.header_template,
            footer_template=spec.footer_template,
        )


class BrowserPage(Protocol):
    """Capabilities a render session needs from a browser tab."""

    async def configure(
        self,
        viewport_width: int,
        viewport_height: int,
        block_ads: bool,
        headers: Mapping[str, Any],
        emulate_media: str,
    ) -> None: ...

    def subscribe_ready(self, mode: str) -> "asyncio.Future[None]": ...

    async def navigate(self, url: str) -> None: ...

    async def wait_for_selector(self, selector: str) -> None: ...

    async def outer_html(self, selector: str) -> str: ...

    async def replace_body(self, html: str) -> bool: ...

    async def print_pdf(self, options: PrintOptions) -> bytes: ...


class BrowserEngine(Protocol):
    """Hands out isolated pages."""

    def open_page(self) -> AsyncContextManager[BrowserPage]: ...


def _header_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _inches(value: float) -> str:
    return f"{value}in"


class PlaywrightPage:
    """BrowserPage backed by a Playwright page."""

    def __init__(self, context, page):
        self._context = context
        self._page = page

    async def configure(
        self,
        viewport_width: int,
        viewport_height: int,
        block_ads: bool,
        headers: Mapping[str, Any],
        emulate_media: str,
    ) -> None:
        await self._page.set_viewport_size({"width": viewport_width, "height": viewport_height})

        if block_ads:
            # Chromium only; there is no Playwright-level API for ad blocking
            cdp = await self._context.new_cdp_session(self._page)
            await cdp.send("Page.setAdBlockingEnabled", {"enabled": True})

        if headers:
            await self._page.set_extra_http_headers(
                {key: _header_value(value) for key, value in headers.items()}
            )

        await self._page.emulate_media(media=emulate_media)

    def subscribe_ready(self, mode: str) -> "asyncio.Future[None]":
        future = asyncio.get_running_loop().create_future()

        def _fired(*_args) -> None:
            if not future.done():
                future.set_result(None)

        self._page.once(READY_EVENTS[mode], _fired)
        return future

    async def navigate(self, url: str) -> None:
        # Readiness is awaited separately, so only wait for the response here
        await self._page.goto(url, wait_until="commit", timeout=0)

    async def wait_for_selector(self, selector: str) -> None:
        await self._page.wait_for_selector(selector, state="attached", timeout=0)

    async def outer_html(self, selector: str) -> str:
        return await self._page.eval_on_selector(selector, "el => el.outerHTML")

    async def replace_body(self, html: str) -> bool:
        return await self._page.evaluate(_REPLACE_BODY_JS, html)

    async def print_pdf(self, options: PrintOptions) -> bytes:
        return await self._page.pdf(
            width=_inches(options.paper_width),
            height=_inches(options.paper_height),
            margin={
                "top": _inches(options.margin_top),
                "right": _inches(options.margin_right),
                "bottom": _inches(options.margin_bottom),
                "left": _inches(options.margin_left),
            },
            scale=options.scale,
            landscape=options.landscape,
            display_header_footer=options.display_header_footer,
            print_background=options.print_background,
            prefer_css_page_size=options.prefer_css_page_size,
            page_ranges=options.page_ranges or None,
            header_template=options.header_template or None,
            footer_template=options.footer_template or None,
        )


class PlaywrightBrowserEngine:
    """
    Shared headless Chromium.

    start() must be awaited before open_page(); the FastAPI lifespan takes
    care of that for the HTTP service.
    """

    def __init__(self, headless: bool = True):
        self.headless = headless
        self._playwright = None
        self._browser = None

    async def start(self) -> None:
        # Import here to avoid loading Playwright when only resolving options
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self.headless)
        logger.info(f"Chromium launched (headless={self.headless})")

    async def stop(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    @asynccontextmanager
    async def open_page(self) -> AsyncIterator[PlaywrightPage]:
        if self._browser is None:
            raise RuntimeError("Browser engine is not started")

        context = await self._browser.new_context()
        try:
            page = await context.new_page()
            # Deadlines are enforced by the render session, not Playwright
            page.set_default_timeout(0)
            page.set_default_navigation_timeout(0)
            yield PlaywrightPage(context, page)
        finally:
            await context.close()
