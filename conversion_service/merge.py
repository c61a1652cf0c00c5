"""
Merge coordinator - concurrent fan-out, ordered fan-in.

Every document of a MergeSpec is rendered as its own task, and a document
that carries its own watermark is stamped before it is merged. Tasks report an
index-tagged RenderResult (or their error) on a queue sized to the document
count, so no task ever blocks on reporting. The coordinator fills result
slots by index, which keeps the merged document in input order no matter
which renders finish first.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Union

from .errors import ConversionTimeoutError
from .options import ConversionSpec, MergeSpec
from .pdf_engine import PdfEngine
from .postprocess import PostProcessor

logger = logging.getLogger(__name__)

Renderer = Callable[[ConversionSpec], Awaitable[bytes]]


@dataclass(frozen=True)
class RenderResult:
    """Rendered bytes tagged with the document's position in the merge."""

    index: int
    data: bytes


class MergeCoordinator:
    """
    Renders documents concurrently and merges them in input order.

    Args:
        render: Coroutine function turning one ConversionSpec into PDF bytes
        pdf_engine: Engine used for the final merge
        postprocessor: Applies merge-level watermark and encryption
        max_concurrency: Renders allowed in flight per merge
    """

    def __init__(
        self,
        render: Renderer,
        pdf_engine: PdfEngine,
        postprocessor: PostProcessor,
        max_concurrency: int = 5,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.render = render
        self.pdf_engine = pdf_engine
        self.postprocessor = postprocessor
        self.max_concurrency = max_concurrency

    async def merge(self, spec: MergeSpec) -> bytes:
        """
        Render, merge and post-process every document of spec.

        Raises:
            ConversionTimeoutError: If spec.timeout elapses before the final bytes exist
            Exception: The first error reported by any document render
        """
        # A part encrypted on its own could not be merged; security is applied
        # once to the assembled document.
        documents = [document.without_passwords() for document in spec.documents]
        deadline = spec.timeout / 1000 if spec.timeout > 0 else None

        logger.info(f"Merging {len(documents)} documents (concurrency={self.max_concurrency})")

        try:
            async with asyncio.timeout(deadline):
                parts = await self._render_all(documents)
                merged = await asyncio.to_thread(self.pdf_engine.merge, parts)
                return await self.postprocessor.apostprocess(
                    merged,
                    spec.owner_password,
                    spec.user_password,
                    spec.watermark,
                )
        except TimeoutError:
            logger.warning(f"Merge of {len(documents)} documents timed out after {spec.timeout}ms")
            raise ConversionTimeoutError() from None

    async def _render_all(self, documents: Sequence[ConversionSpec]) -> List[bytes]:
        results: asyncio.Queue = asyncio.Queue(maxsize=len(documents))
        pool = asyncio.Semaphore(self.max_concurrency)
        tasks = [
            asyncio.create_task(self._render_one(index, document, pool, results))
            for index, document in enumerate(documents)
        ]

        try:
            slots: List[Optional[bytes]] = [None] * len(documents)
            for _ in range(len(documents)):
                outcome: Union[RenderResult, Exception] = await results.get()
                if isinstance(outcome, Exception):
                    raise outcome
                slots[outcome.index] = outcome.data
            return slots
        finally:
            # Siblings still rendering after an error or timeout are abandoned
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _render_one(
        self,
        index: int,
        document: ConversionSpec,
        pool: asyncio.Semaphore,
        results: asyncio.Queue,
    ) -> None:
        try:
            async with pool:
                data = await self.render(document)
                if document.watermark is not None:
                    # Part watermark only; security applies to the merged document
                    data = await self.postprocessor.apostprocess(data, watermark=document.watermark)
        except Exception as e:
            logger.error(f"Merge document {index} failed: {e}")
            results.put_nowait(e)
            return
        results.put_nowait(RenderResult(index=index, data=data))
