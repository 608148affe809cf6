"""
Pydantic models for the render service API.
"""

from pydantic import BaseModel, ConfigDict, Field


class RenderRequest(BaseModel):
    """Body of POST /pdf."""

    model_config = ConfigDict(strict=True)

    html: str = Field(..., description="Raw HTML to render")


class ErrorResponse(BaseModel):
    """Body of every failed response."""
    error: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "ok"


class ServiceInfoResponse(BaseModel):
    """Liveness/identity probe response."""
    name: str = "bunnypdf"
    status: str = "running"
