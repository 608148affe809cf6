"""
Service Configuration Module

Centralized configuration management with Pydantic validation.
All environment variables are validated at startup to catch misconfigurations early.
"""

import logging
import re
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)

WAIT_UNTIL_STRATEGIES = ("networkidle", "load", "domcontentloaded", "commit")

_SIZE_UNITS = {
    "": 1, "b": 1,
    "k": 1024, "kb": 1024,
    "m": 1024 ** 2, "mb": 1024 ** 2,
    "g": 1024 ** 3, "gb": 1024 ** 3,
}
_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kmg]?b?)\s*$", re.IGNORECASE)


def parse_size(value: str) -> int:
    """
    Convert a human readable size ("1mb", "512kb", "2048") to bytes.

    Raises:
        ValueError: If the value is not a recognised size
    """
    match = _SIZE_PATTERN.match(str(value))
    if not match:
        raise ValueError(f"Invalid size: {value!r}")
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[unit.lower()])


class ServiceSettings(BaseSettings):
    """
    Render service configuration with validation.

    All settings can be overridden via environment variables.
    Validation happens at startup to fail fast on misconfiguration.
    """

    # === Server ===
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=3000, ge=1, le=65535, description="Listening port")
    log_level: str = Field(default="INFO", description="Root log level")
    trust_proxy: bool = Field(
        default=True,
        description="Use the first X-Forwarded-For hop as the client address"
    )

    # === Concurrency & Limits ===
    max_concurrent_jobs: int = Field(
        default=2,
        ge=1,
        le=50,
        description="Maximum concurrent PDF renders (1-50)"
    )
    body_size_limit: str = Field(
        default="1mb",
        description="Maximum JSON body size, e.g. '1mb', '500kb' or a byte count"
    )
    pdf_timeout_ms: int = Field(
        default=25000,
        ge=100,
        le=600000,
        description="Deadline for content load plus PDF export in milliseconds"
    )
    response_grace_ms: int = Field(
        default=5000,
        ge=0,
        le=60000,
        description="Extra time the endpoint waits past the render deadline"
    )
    rate_limit_per_minute: int = Field(
        default=30,
        ge=0,
        description="Requests per client address per minute (0 disables)"
    )

    # === Rendering ===
    render_wait_until: str = Field(
        default="networkidle",
        description="Load completion strategy: networkidle, load, domcontentloaded, commit"
    )
    playwright_headless: bool = Field(default=True, description="Launch Chromium headless")

    # === Security ===
    rapidapi_key: Optional[str] = Field(
        default=None,
        description="Expected x-rapidapi-key header value (unset disables the check)"
    )

    model_config = SettingsConfigDict(
        env_prefix="",  # No prefix, use exact env var names
        case_sensitive=False,  # RAPIDAPI_KEY = rapidapi_key
    )

    @field_validator("body_size_limit")
    @classmethod
    def validate_body_size_limit(cls, v: str) -> str:
        """Reject sizes that cannot be parsed or are zero."""
        if parse_size(v) <= 0:
            raise ValueError("body_size_limit must be greater than zero")
        return v

    @field_validator("render_wait_until")
    @classmethod
    def validate_wait_until(cls, v: str) -> str:
        """Validate the load strategy is one Playwright understands."""
        v_lower = v.lower()
        if v_lower not in WAIT_UNTIL_STRATEGIES:
            raise ValueError(
                f"render_wait_until must be one of: {', '.join(WAIT_UNTIL_STRATEGIES)}"
            )
        return v_lower

    @field_validator("rapidapi_key")
    @classmethod
    def empty_key_disables_auth(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty RAPIDAPI_KEY the same as an unset one."""
        return v or None

    @property
    def body_size_limit_bytes(self) -> int:
        return parse_size(self.body_size_limit)

    @property
    def response_cutoff_seconds(self) -> float:
        """Wall-clock limit for a whole /pdf request."""
        return (self.pdf_timeout_ms + self.response_grace_ms) / 1000

    @property
    def auth_required(self) -> bool:
        return self.rapidapi_key is not None


@lru_cache()
def get_settings() -> ServiceSettings:
    """
    Get cached settings instance.

    Settings are loaded once and cached for performance.
    """
    return ServiceSettings()


def validate_config_on_startup(settings: ServiceSettings) -> None:
    """Log the loaded configuration (secrets redacted)."""
    logger.info("Configuration loaded:")
    logger.info(f"  port={settings.port}")
    logger.info(f"  max_concurrent_jobs={settings.max_concurrent_jobs}")
    logger.info(f"  body_size_limit={settings.body_size_limit}")
    logger.info(f"  pdf_timeout_ms={settings.pdf_timeout_ms}")
    logger.info(f"  render_wait_until={settings.render_wait_until}")
    logger.info(f"  rate_limit_per_minute={settings.rate_limit_per_minute}")
    logger.info(f"  rapidapi_key={'*****' if settings.rapidapi_key else None}")
    logger.info(f"  auth_required={settings.auth_required}")

    if not settings.auth_required:
        logger.warning("RAPIDAPI_KEY not set - x-rapidapi-key check is disabled")
