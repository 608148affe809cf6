"""
Run the service with uvicorn: ``python -m bunnypdf`` or ``bunnypdf``.

uvicorn handles SIGINT/SIGTERM and runs the app lifespan shutdown, which
closes Chromium before the process exits.
"""

import logging

import uvicorn

from .config import get_settings


def main() -> None:
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    uvicorn.run(
        "bunnypdf.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        proxy_headers=settings.trust_proxy,
        forwarded_allow_ips="*" if settings.trust_proxy else None,
    )


if __name__ == "__main__":
    main()
