"""
Unit tests for the shared render engine handle.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from bunnypdf.engine import DEFAULT_LAUNCH_ARGS, RenderEngine
from bunnypdf.errors import EngineStartError, InternalRenderError


class TestAcquire:
    """Tests for lazy launch and reuse."""

    @pytest.mark.asyncio
    async def test_acquire_launches_once_and_reuses(self, chromium):
        """Test that the browser is launched once and then reused."""
        engine = RenderEngine()

        first = await engine.acquire()
        second = await engine.acquire()

        assert first is chromium.browser
        assert second is chromium.browser
        assert chromium.launch.await_count == 1
        assert engine.is_running

    @pytest.mark.asyncio
    async def test_launch_disables_sandbox(self, chromium):
        """Test Chromium launch arguments."""
        await RenderEngine().acquire()

        kwargs = chromium.launch.call_args.kwargs
        assert kwargs["headless"] is True
        assert "--no-sandbox" in kwargs["args"]
        assert "--disable-setuid-sandbox" in kwargs["args"]
        assert kwargs["args"] == DEFAULT_LAUNCH_ARGS

    @pytest.mark.asyncio
    async def test_overlapping_first_acquires_launch_single_browser(self, chromium):
        """Test that concurrent first acquires share one launch."""
        async def slow_launch(**kwargs):
            await asyncio.sleep(0.05)
            return chromium.browser

        chromium.launch.side_effect = slow_launch
        engine = RenderEngine()

        browsers = await asyncio.gather(*(engine.acquire() for _ in range(5)))

        assert all(b is chromium.browser for b in browsers)
        assert chromium.launch.await_count == 1
        assert engine.launch_count == 1

    @pytest.mark.asyncio
    async def test_disconnected_browser_is_relaunched(self, chromium):
        """Test that a crashed browser is replaced on the next acquire."""
        crashed = MagicMock(name="crashed")
        crashed.is_connected.return_value = True
        crashed.close = AsyncMock()
        chromium.launch.side_effect = [crashed, chromium.browser]
        engine = RenderEngine()

        assert await engine.acquire() is crashed
        crashed.is_connected.return_value = False

        assert await engine.acquire() is chromium.browser
        assert chromium.launch.await_count == 2
        crashed.close.assert_awaited_once()


class TestStartFailure:
    """Tests for launch failures."""

    @pytest.mark.asyncio
    async def test_launch_failure_raises_engine_start_error(self, chromium):
        """Test that a launch failure raises EngineStartError and stops the driver."""
        chromium.launch.side_effect = Exception("Executable doesn't exist")
        engine = RenderEngine()

        with pytest.raises(EngineStartError) as exc_info:
            await engine.acquire()

        assert isinstance(exc_info.value, InternalRenderError)
        assert not engine.is_running
        # The driver that did start is stopped again
        chromium.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_handle_stays_retryable_after_failure(self, chromium):
        """Test that acquire retries the launch after a failure."""
        chromium.launch.side_effect = [Exception("boom"), chromium.browser]
        engine = RenderEngine()

        with pytest.raises(EngineStartError):
            await engine.acquire()

        assert await engine.acquire() is chromium.browser
        assert engine.is_running


class TestShutdown:
    """Tests for shutdown()."""

    @pytest.mark.asyncio
    async def test_shutdown_closes_browser_and_driver(self, chromium):
        """Test that shutdown closes the browser and stops Playwright."""
        engine = RenderEngine()
        await engine.acquire()

        await engine.shutdown()

        chromium.browser.close.assert_awaited_once()
        chromium.stop.assert_awaited_once()
        assert not engine.is_running

    @pytest.mark.asyncio
    async def test_shutdown_is_idempotent(self, chromium):
        """Test that a second shutdown does nothing."""
        engine = RenderEngine()
        await engine.acquire()

        await engine.shutdown()
        await engine.shutdown()

        chromium.browser.close.assert_awaited_once()
        chromium.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_shutdown_without_engine_is_noop(self, chromium):
        """Test shutdown before any launch."""
        engine = RenderEngine()
        await engine.shutdown()
        chromium.async_playwright.assert_not_called()

    @pytest.mark.asyncio
    async def test_shutdown_clears_handle_even_if_close_fails(self, chromium):
        """Test that shutdown clears the handle when browser.close fails."""
        chromium.browser.close.side_effect = Exception("Target closed")
        engine = RenderEngine()
        await engine.acquire()

        await engine.shutdown()

        assert not engine.is_running
        chromium.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_acquire_after_shutdown_is_refused(self, chromium):
        """Test that a shut down engine never launches a second browser."""
        engine = RenderEngine()
        await engine.acquire()
        await engine.shutdown()

        with pytest.raises(EngineStartError, match="shut down"):
            await engine.acquire()

        assert chromium.launch.await_count == 1
        assert not engine.is_running
