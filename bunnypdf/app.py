"""
bunnypdf - FastAPI application for HTML to PDF rendering.

POST /pdf takes {"html": "..."} and returns the rendered PDF. A single
Chromium instance is launched at startup and shared by every request; at most
MAX_CONCURRENT_JOBS renders run at once and anything beyond that is rejected
with 429 rather than queued.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from . import __version__
from .admission import AdmissionController, AdmissionToken
from .auth import verify_api_key
from .config import ServiceSettings, get_settings, validate_config_on_startup
from .engine import RenderEngine
from .errors import (
    FailureCategory,
    InternalRenderError,
    PayloadTooLargeError,
    RenderError,
    RenderTimeoutError,
    RenderValidationError,
)
from .models import ErrorResponse, HealthResponse, RenderRequest, ServiceInfoResponse
from .pipeline import RenderPipeline
from .rate_limit import FixedWindowRateLimiter, rate_limit_middleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
    "X-DNS-Prefetch-Control": "off",
}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing or invalid body"},
    401: {"model": ErrorResponse, "description": "Bad or missing x-rapidapi-key"},
    413: {"model": ErrorResponse, "description": "Body exceeds BODY_SIZE_LIMIT"},
    429: {"model": ErrorResponse, "description": "Concurrency ceiling or rate limit reached"},
    500: {"model": ErrorResponse, "description": "Rendering failed"},
    504: {"model": ErrorResponse, "description": "Rendering exceeded PDF_TIMEOUT_MS"},
}

router = APIRouter()


# ============================================================================
# Lifespan - launch Chromium before accepting traffic, close it on shutdown
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Launch the shared browser at startup and close it on shutdown.

    A launch failure here propagates and stops the server from starting, so
    the service never accepts requests without a usable engine. uvicorn runs
    the shutdown half on SIGINT/SIGTERM.
    """
    settings: ServiceSettings = app.state.settings
    engine: RenderEngine = app.state.engine

    validate_config_on_startup(settings)
    try:
        await engine.acquire()
    except Exception:
        logger.exception("Failed to start server: Chromium could not be launched")
        raise
    logger.info(f"bunnypdf API ready (max_concurrent_jobs={settings.max_concurrent_jobs})")

    try:
        yield
    finally:
        logger.info("Shutting down, closing Chromium...")
        await engine.shutdown()


# ============================================================================
# Helpers
# ============================================================================

async def _read_html(request: Request, limit: int) -> str:
    """
    Read and validate the JSON body, enforcing the size cap while streaming.

    Raises:
        PayloadTooLargeError: Body is larger than limit
        RenderValidationError: Body is not {"html": <non-empty string>}
    """
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > limit:
        raise PayloadTooLargeError()

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise PayloadTooLargeError()

    try:
        payload = RenderRequest.model_validate_json(bytes(body))
    except ValidationError:
        raise RenderValidationError() from None

    return RenderPipeline.validate_html(payload.html)


def _start_render(
    pipeline: RenderPipeline,
    admission: AdmissionController,
    token: AdmissionToken,
    html: str,
) -> "asyncio.Task[bytes]":
    """Run the render as a task that gives its admission slot back when it ends."""
    task = asyncio.ensure_future(pipeline.render(html, pipeline.deadline_from_now()))
    # Done callbacks fire exactly once, even if the task is cancelled before it starts
    task.add_done_callback(lambda _: admission.release(token))
    return task


def _discard_result(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error(f"Abandoned render finished with error: {task.exception()}")


# ============================================================================
# Routes
# ============================================================================

@router.get("/", response_model=ServiceInfoResponse)
async def root() -> ServiceInfoResponse:
    """Liveness/identity probe."""
    return ServiceInfoResponse()


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health probe for uptime monitors and load balancers."""
    return HealthResponse()


@router.post(
    "/pdf",
    dependencies=[Depends(verify_api_key)],
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}}}, **ERROR_RESPONSES},
)
async def render_pdf(request: Request) -> Response:
    """
    Render the posted HTML to an A4 PDF.

    Expects JSON like {"html": "<html>...</html>"} and returns the PDF bytes
    with Content-Type: application/pdf.
    """
    state = request.app.state
    settings: ServiceSettings = state.settings

    html = await _read_html(request, settings.body_size_limit_bytes)

    token = state.admission.try_acquire()
    task = _start_render(state.pipeline, state.admission, token, html)

    try:
        # Backstop in case cancellation inside the pipeline does not land in time
        pdf_bytes = await asyncio.wait_for(
            asyncio.shield(task), timeout=settings.response_cutoff_seconds
        )
    except asyncio.TimeoutError:
        logger.error("Response timed out while generating PDF")
        task.cancel()
        task.add_done_callback(_discard_result)
        raise RenderTimeoutError() from None
    except asyncio.CancelledError:
        task.cancel()
        raise

    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": "inline; filename=bunnypdf.pdf"},
    )


# ============================================================================
# App factory
# ============================================================================

def create_app(
    settings: Optional[ServiceSettings] = None,
    engine: Optional[RenderEngine] = None,
) -> FastAPI:
    """
    Build the FastAPI application and its render components.

    The engine, admission controller and pipeline live on app.state so each
    app instance owns exactly one browser handle.
    """
    settings = settings or get_settings()
    engine = engine or RenderEngine(headless=settings.playwright_headless)

    app = FastAPI(
        title="bunnypdf",
        version=__version__,
        description="HTML to PDF rendering service using Playwright/Chromium",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.admission = AdmissionController(ceiling=settings.max_concurrent_jobs)
    app.state.pipeline = RenderPipeline(
        engine,
        timeout_ms=settings.pdf_timeout_ms,
        wait_until=settings.render_wait_until,
    )

    if settings.rate_limit_per_minute > 0:
        app.state.rate_limiter = FixedWindowRateLimiter(limit=settings.rate_limit_per_minute)
        app.middleware("http")(
            rate_limit_middleware(
                app.state.rate_limiter,
                trust_proxy=settings.trust_proxy,
                exempt_paths=("/health",),
            )
        )
    else:
        app.state.rate_limiter = None

    # Registered last so it wraps the rate limiter and covers its 429s too
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    @app.exception_handler(RenderError)
    async def render_error_handler(request: Request, exc: RenderError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                f"{request.method} {request.url.path} failed ({exc.category.value}): {exc!r}"
            )
        elif exc.category is FailureCategory.CAPACITY:
            logger.warning(
                f"{request.method} {request.url.path} rejected ({exc.category.value}): {exc}"
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.public_message},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"{request.method} {request.url.path} failed "
            f"({FailureCategory.INTERNAL.value}): unhandled {exc!r}",
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"error": InternalRenderError.public_message},
        )

    app.include_router(router)
    return app


app = create_app()
