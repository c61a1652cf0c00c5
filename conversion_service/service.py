"""
Conversion service - wires sessions, merging and post-processing together.
"""

import asyncio
import logging
from dataclasses import replace

from .browser import BrowserEngine
from .merge import MergeCoordinator
from .options import ConversionSpec, MergeSpec
from .pdf_engine import PdfEngine
from .postprocess import PostProcessor
from .session import RenderSession
from .storage import TempStorage

logger = logging.getLogger(__name__)


class ConversionService:
    """
    Entry point for single conversions and merges.

    All render sessions, whether standalone or part of a merge, share one
    capacity limit of max_concurrent_renders.
    """

    def __init__(
        self,
        browser: BrowserEngine,
        pdf_engine: PdfEngine,
        storage: TempStorage,
        max_concurrent_renders: int = 5,
        default_timeout_ms: int = 0,
    ):
        self.browser = browser
        self.storage = storage
        self.max_concurrent_renders = max_concurrent_renders
        self.default_timeout_ms = default_timeout_ms
        self.active_renders = 0

        self._render_slots = asyncio.Semaphore(max_concurrent_renders)
        self.postprocessor = PostProcessor(pdf_engine)
        self.coordinator = MergeCoordinator(
            self.render,
            pdf_engine,
            self.postprocessor,
            max_concurrency=max_concurrent_renders,
        )

    async def render(self, spec: ConversionSpec) -> bytes:
        """Run one render session and return the raw, unprocessed PDF."""
        if spec.timeout == 0 and self.default_timeout_ms > 0:
            spec = replace(spec, timeout=self.default_timeout_ms)

        async with self._render_slots:
            self.active_renders += 1
            try:
                return await RenderSession(spec, self.browser, self.storage).run()
            finally:
                self.active_renders -= 1

    async def convert(self, spec: ConversionSpec) -> bytes:
        """Render one document, then watermark and encrypt it as requested."""
        data = await self.render(spec)
        return await self.postprocessor.apostprocess(
            data,
            spec.owner_password,
            spec.user_password,
            spec.watermark,
        )

    async def merge(self, spec: MergeSpec) -> bytes:
        """Render every document of spec and merge them in order."""
        return await self.coordinator.merge(spec)
