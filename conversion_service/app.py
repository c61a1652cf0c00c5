"""
Conversion Service - FastAPI application for HTML/URL to PDF conversion.

Provides endpoints for converting a single HTML document or URL to PDF and
for rendering several documents into one merged PDF, using Playwright/Chromium.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__
from .browser import PlaywrightBrowserEngine
from .config import get_settings
from .options import resolve_conversion_json, resolve_merge_json
from .pdf_engine import PypdfEngine
from .service import ConversionService
from .storage import TempStorage

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

# Set during startup; tests may assign a service wired to fakes
_service: Optional[ConversionService] = None
_browser_error: Optional[str] = None


# ============================================================================
# Lifespan - launch Chromium once for the whole process
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the shared browser on startup and release it on shutdown."""
    global _service, _browser_error

    logger.info("Conversion service starting - launching Chromium...")
    browser = PlaywrightBrowserEngine(headless=settings.browser_headless)
    storage = TempStorage(base_dir=settings.temp_dir)

    try:
        await browser.start()
        _service = ConversionService(
            browser,
            PypdfEngine(),
            storage,
            max_concurrent_renders=settings.max_concurrent_renders,
            default_timeout_ms=settings.default_timeout_ms,
        )
        _browser_error = None
        logger.info(f"Conversion service ready (max_concurrent_renders={settings.max_concurrent_renders})")
    except Exception as e:
        _browser_error = str(e)
        logger.error(f"Chromium launch failed: {_browser_error}")
        logger.error("Conversions will not work until this is resolved.")

    try:
        yield
    finally:
        logger.info("Conversion service shutting down")
        await browser.stop()
        storage.cleanup()


app = FastAPI(
    title="Conversion Service",
    version=__version__,
    description="HTML and URL to PDF conversion with merging, watermarking and encryption",
    lifespan=lifespan,
    # Interactive docs are for local development only
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
)


# ============================================================================
# Response Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    timestamp: datetime
    active_renders: int
    max_concurrent: int
    browser_ready: bool = True
    browser_error: Optional[str] = None


# ============================================================================
# Helpers
# ============================================================================

def get_service() -> ConversionService:
    """Return the running service or fail with 503 if the browser is down."""
    if _service is None:
        raise HTTPException(
            status_code=503,
            detail=f"Conversion service unavailable: {_browser_error or 'browser not started'}"
        )
    return _service


def _error_response(error: Exception) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(error)})


def _pdf_response(data: bytes) -> Response:
    return Response(content=data, status_code=201, media_type="application/pdf")


# ============================================================================
# Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health check endpoint for container orchestration.

    Returns HTTP 503 if Chromium could not be launched on startup.
    """
    if _service is None:
        raise HTTPException(
            status_code=503,
            detail={
                "status": "unhealthy",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "browser_ready": False,
                "browser_error": _browser_error,
                "message": "Conversion service is unhealthy - Chromium not available"
            }
        )

    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        active_renders=_service.active_renders,
        max_concurrent=_service.max_concurrent_renders,
        browser_ready=True,
        browser_error=None
    )


@app.post("/conversions")
async def create_conversion(request: Request) -> Response:
    """
    Convert one HTML document or URL to PDF.

    Returns:
        201 with the PDF body, or 400 with {"error": message}
    """
    service = get_service()
    body = await request.body()

    try:
        spec = resolve_conversion_json(body)
        data = await service.convert(spec)
    except Exception as e:
        logger.error(f"Conversion failed: {e}")
        return _error_response(e)

    logger.info(f"Conversion completed ({len(data)} bytes)")
    return _pdf_response(data)


@app.post("/merges")
async def create_merge(request: Request) -> Response:
    """
    Convert several documents and merge them, in request order, into one PDF.

    Returns:
        201 with the PDF body, or 400 with {"error": message}
    """
    service = get_service()
    body = await request.body()

    try:
        spec = resolve_merge_json(body)
        data = await service.merge(spec)
    except Exception as e:
        logger.error(f"Merge failed: {e}")
        return _error_response(e)

    logger.info(f"Merge of {len(spec.documents)} documents completed ({len(data)} bytes)")
    return _pdf_response(data)


def main() -> None:
    """Run the conversion service with uvicorn."""
    uvicorn.run(
        "conversion_service.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
