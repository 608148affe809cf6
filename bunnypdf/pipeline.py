"""
Render pipeline: HTML in, PDF bytes out.

Each render gets its own browser context (cookies, cache and storage are not
shared between requests), loads the HTML, waits for the page to settle and
prints it to an A4 PDF. The context is closed on every exit path, including
deadline cancellation, so a failed render never leaks browser state.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional

from playwright.async_api import BrowserContext, Page, Route
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .engine import RenderEngine
from .errors import (
    InternalRenderError,
    RenderError,
    RenderTimeoutError,
    RenderValidationError,
)

logger = logging.getLogger(__name__)

PDF_FORMAT = "A4"
PDF_MARGINS = {
    "top": "10mm",
    "bottom": "10mm",
    "left": "10mm",
    "right": "10mm",
}

RouteHandler = Callable[[Route], Awaitable[None]]


async def allow_all_subresources(route: Route) -> None:
    """Let every image, font and stylesheet request through."""
    await route.continue_()


class SessionState(str, Enum):
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass
class PageSession:
    """One isolated browser context and its page, owned by a single render."""
    context: BrowserContext
    page: Optional[Page] = None
    state: SessionState = SessionState.LOADING


class RenderPipeline:
    """Turns HTML into PDF bytes using the shared render engine."""

    def __init__(
        self,
        engine: RenderEngine,
        timeout_ms: int = 25000,
        wait_until: str = "networkidle",
        route_handler: RouteHandler = allow_all_subresources,
    ):
        self.engine = engine
        self.timeout_ms = timeout_ms
        self.wait_until = wait_until
        self.route_handler = route_handler
        self.live_sessions = 0
        self._closing = set()

    @staticmethod
    def validate_html(html) -> str:
        """
        Check the HTML is a non-empty string once whitespace is trimmed.

        Raises:
            RenderValidationError: If it is not
        """
        if not isinstance(html, str) or not html.strip():
            raise RenderValidationError()
        return html

    def deadline_from_now(self) -> float:
        """Absolute event loop time at which a render started now must finish."""
        return asyncio.get_running_loop().time() + self.timeout_ms / 1000

    @asynccontextmanager
    async def page_session(self) -> AsyncIterator[PageSession]:
        """Open a fresh browser context and page; always close it afterwards."""
        browser = await self.engine.acquire()
        self.live_sessions += 1
        opening = asyncio.ensure_future(browser.new_context())
        try:
            context = await asyncio.shield(opening)
        except asyncio.CancelledError:
            # The context may still arrive after we stop waiting for it
            opening.add_done_callback(self._close_abandoned_context)
            raise
        except BaseException:
            self.live_sessions -= 1
            raise

        session = PageSession(context=context)
        try:
            session.page = await context.new_page()
            yield session
        except BaseException:
            session.state = SessionState.FAILED
            raise
        finally:
            try:
                await context.close()
            except Exception as e:
                logger.error(f"Error while closing page session: {e}")
            finally:
                self.live_sessions -= 1

    def _close_abandoned_context(self, opening: asyncio.Future) -> None:
        if opening.cancelled() or opening.exception() is not None:
            self.live_sessions -= 1
            return
        closing = asyncio.ensure_future(self._close_context(opening.result()))
        self._closing.add(closing)
        closing.add_done_callback(self._closing.discard)

    async def _close_context(self, context) -> None:
        try:
            await context.close()
        except Exception as e:
            logger.error(f"Error while closing abandoned context: {e}")
        finally:
            self.live_sessions -= 1

    async def render(self, html: str, deadline: Optional[float] = None) -> bytes:
        """
        Render HTML to PDF bytes before the deadline.

        Args:
            html: Raw HTML document or fragment
            deadline: Absolute event loop time (defaults to now + timeout_ms)

        Returns:
            Raw PDF bytes

        Raises:
            RenderValidationError: HTML is empty, before anything is acquired
            RenderTimeoutError: Load or export did not finish before the deadline
            EngineStartError: Chromium could not be launched
            InternalRenderError: Any other rendering failure
        """
        self.validate_html(html)

        if deadline is None:
            deadline = self.deadline_from_now()
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise RenderTimeoutError()

        try:
            return await asyncio.wait_for(self._render_in_session(html, deadline), timeout=remaining)
        except (asyncio.TimeoutError, PlaywrightTimeoutError):
            logger.error(f"PDF render exceeded {self.timeout_ms}ms deadline")
            raise RenderTimeoutError() from None
        except RenderError:
            raise
        except Exception as e:
            logger.exception("PDF render failed")
            raise InternalRenderError(str(e)) from e

    async def _render_in_session(self, html: str, deadline: float) -> bytes:
        async with self.page_session() as session:
            page = session.page
            await page.route("**/*", self.route_handler)

            await page.set_content(
                html,
                wait_until=self.wait_until,
                timeout=self._remaining_ms(deadline),
            )
            session.state = SessionState.LOADED

            pdf_bytes = await page.pdf(
                format=PDF_FORMAT,
                print_background=True,
                margin=PDF_MARGINS,
            )
            logger.info(f"Rendered PDF ({len(pdf_bytes)} bytes)")
            return pdf_bytes

    @staticmethod
    def _remaining_ms(deadline: float) -> float:
        # Playwright treats 0 as "no timeout"
        return max(1.0, (deadline - asyncio.get_running_loop().time()) * 1000)
