"""
bunnypdf - HTML to PDF rendering service.

Accepts raw HTML over HTTP and returns a PDF rendered by a single, long-lived
headless Chromium instance driven through Playwright. Concurrent renders are
capped by a non-blocking admission gate and bounded by a per-request deadline.
"""

__version__ = "0.1.0"
