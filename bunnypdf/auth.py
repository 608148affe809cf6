"""
Authentication Module

Checks the x-rapidapi-key header against the configured secret. When no
secret is configured the check is skipped (local development).
"""

import logging
import secrets
from typing import Optional

from fastapi import Header, Request

from .errors import AuthError


logger = logging.getLogger(__name__)


async def verify_api_key(
    request: Request,
    x_rapidapi_key: Optional[str] = Header(default=None),
) -> None:
    """
    Verify the RapidAPI key header.

    Raises:
        AuthError: 401 if the header is missing or does not match
    """
    expected = request.app.state.settings.rapidapi_key
    if expected is None:
        return

    if not x_rapidapi_key or not secrets.compare_digest(
        x_rapidapi_key.encode("utf-8"), expected.encode("utf-8")
    ):
        logger.warning("Rejected request with invalid or missing x-rapidapi-key")
        raise AuthError()
