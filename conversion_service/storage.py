"""
Scoped temporary storage for HTML sources.

HTML conversions are rendered from a file:// URL so relative resources and
large documents behave the same way they would in a browser. Each file lives
inside a storage-owned directory and is removed when its scope exits, on
success and failure alike.
"""

import logging
import shutil
import tempfile
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

logger = logging.getLogger(__name__)


class TempStorage:
    """Owns one temporary directory and hands out uniquely named HTML files."""

    def __init__(self, base_dir: Optional[str] = None, prefix: str = "conversion_html_"):
        if base_dir:
            Path(base_dir).mkdir(parents=True, exist_ok=True)
        self.root = Path(tempfile.mkdtemp(prefix=prefix, dir=base_dir))

    @contextmanager
    def html_file(self, html: str) -> Iterator[Path]:
        """
        Write html to a fresh file and yield its path.

        The file is removed when the block exits. A failed removal is logged
        and never masks the outcome of the block.
        """
        path = self.root / f"{uuid.uuid4()}.html"
        path.write_text(html, encoding="utf-8")
        try:
            yield path
        finally:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove temporary file {path}: {e}")

    def cleanup(self) -> None:
        """Remove the storage directory and anything left in it."""
        shutil.rmtree(self.root, ignore_errors=True)
