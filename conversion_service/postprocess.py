"""Post-processing: watermark first, then encryption."""

import asyncio
import logging
from typing import Optional

from .options import WatermarkConfig
from .pdf_engine import PdfEngine

logger = logging.getLogger(__name__)


class PostProcessor:
    """Applies the optional watermark and AES-256 encryption to finished PDFs."""

    def __init__(self, engine: PdfEngine):
        self.engine = engine

    def postprocess(
        self,
        data: bytes,
        owner_password: str = "",
        user_password: str = "",
        watermark: Optional[WatermarkConfig] = None,
    ) -> bytes:
        """
        Watermark, then encrypt if either password is set.

        With no watermark and no passwords the input is returned untouched.
        Engine errors propagate unchanged.
        """
        if watermark is not None:
            data = self.engine.watermark(data, watermark.query, watermark.on_top, watermark.pages)

        if owner_password or user_password:
            logger.info("Encrypting PDF with AES-256")
            data = self.engine.encrypt(data, owner_password, user_password)

        return data

    async def apostprocess(
        self,
        data: bytes,
        owner_password: str = "",
        user_password: str = "",
        watermark: Optional[WatermarkConfig] = None,
    ) -> bytes:
        """postprocess() in a worker thread."""
        if watermark is None and not owner_password and not user_password:
            return data
        return await asyncio.to_thread(
            self.postprocess, data, owner_password, user_password, watermark
        )
