"""
Pytest fixtures for bunnypdf tests.

Playwright is never launched: bunnypdf.engine.async_playwright is patched with
mocks that hand out a fake browser, context and page.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

FAKE_PDF = b"%PDF-1.7\n% fake pdf content\n%%EOF"

SETTINGS_ENV_VARS = (
    "PORT",
    "HOST",
    "MAX_CONCURRENT_JOBS",
    "BODY_SIZE_LIMIT",
    "PDF_TIMEOUT_MS",
    "RESPONSE_GRACE_MS",
    "RAPIDAPI_KEY",
    "RATE_LIMIT_PER_MINUTE",
    "RENDER_WAIT_UNTIL",
    "PLAYWRIGHT_HEADLESS",
    "TRUST_PROXY",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """Keep real service configuration out of the tests."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def make_browser(pdf_bytes: bytes = FAKE_PDF) -> SimpleNamespace:
    """Build a fake Chromium browser with one reusable context and page."""
    page = MagicMock(name="page")
    page.route = AsyncMock()
    page.set_content = AsyncMock()
    page.pdf = AsyncMock(return_value=pdf_bytes)

    context = MagicMock(name="context")
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()

    browser = MagicMock(name="browser")
    browser.is_connected.return_value = True
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()

    return SimpleNamespace(browser=browser, context=context, page=page)


@pytest.fixture
def chromium():
    """
    Patch Playwright so RenderEngine launches a fake browser.

    Exposes the fake browser/context/page plus the launch and stop mocks.
    """
    fake = make_browser()
    playwright = MagicMock(name="playwright")
    playwright.chromium.launch = AsyncMock(return_value=fake.browser)
    playwright.stop = AsyncMock()

    with patch("bunnypdf.engine.async_playwright") as mock_async_playwright:
        mock_async_playwright.return_value.start = AsyncMock(return_value=playwright)
        yield SimpleNamespace(
            browser=fake.browser,
            context=fake.context,
            page=fake.page,
            launch=playwright.chromium.launch,
            stop=playwright.stop,
            async_playwright=mock_async_playwright,
        )


@pytest.fixture
def settings():
    from bunnypdf.config import ServiceSettings
    return ServiceSettings(
        max_concurrent_jobs=2,
        pdf_timeout_ms=2000,
        response_grace_ms=1000,
        rate_limit_per_minute=0,
    )


@pytest.fixture
def app(settings, chromium):
    from bunnypdf.app import create_app
    return create_app(settings)


@pytest.fixture
def client(app):
    """Test client without lifespan; the engine starts lazily on first render."""
    return TestClient(app)
