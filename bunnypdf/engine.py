"""
Render engine handle.

Owns the one headless Chromium process shared by every render. The browser is
launched lazily (or eagerly at startup), reused across requests and closed
once on shutdown. Only acquire() and shutdown() touch the handle; both run
under a lock so overlapping first requests launch a single browser.
"""

import asyncio
import logging
from typing import List, Optional

from playwright.async_api import Browser, Playwright, async_playwright

from .errors import EngineStartError

logger = logging.getLogger(__name__)

# Chromium's sandbox cannot start inside most containers
DEFAULT_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]


class RenderEngine:
    """Lazily started, shared Chromium browser."""

    def __init__(self, headless: bool = True, launch_args: Optional[List[str]] = None):
        self.headless = headless
        self.launch_args = list(launch_args if launch_args is not None else DEFAULT_LAUNCH_ARGS)
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()
        self.launch_count = 0
        self._closed = False

    @property
    def is_running(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def acquire(self) -> Browser:
        """
        Return the shared browser, launching it if needed.

        Raises:
            EngineStartError: If Chromium cannot be launched (the handle stays
                empty so the next call tries again) or shutdown() has run.
        """
        if self.is_running:
            return self._browser

        async with self._lock:
            # Another coroutine may have launched it while we waited
            if self.is_running:
                return self._browser

            if self._closed:
                raise EngineStartError("Render engine has been shut down")

            if self._browser is not None:
                logger.warning("Chromium is disconnected, relaunching")
                await self._close_internal()

            await self._launch_internal()
            return self._browser

    async def _launch_internal(self) -> None:
        logger.info("Launching Chromium via Playwright...")
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=self.launch_args,
            )
        except Exception as e:
            logger.error(f"Failed to launch Chromium: {e}")
            await self._close_internal()
            raise EngineStartError(f"Failed to launch Chromium: {e}") from e

        self.launch_count += 1
        logger.info("Chromium started")

    async def shutdown(self) -> None:
        """Close the browser if it is running. Safe to call repeatedly."""
        async with self._lock:
            self._closed = True
            if self._browser is None and self._playwright is None:
                return
            logger.info("Closing Chromium...")
            await self._close_internal()
            logger.info("Chromium closed")

    async def _close_internal(self) -> None:
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None

        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.error(f"Error while closing browser: {e}")
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as e:
                logger.error(f"Error while stopping Playwright: {e}")
