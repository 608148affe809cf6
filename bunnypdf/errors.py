"""
Error taxonomy for the render service.

Every failure a request can hit is a RenderError subclass carrying the HTTP
status it maps to and a short message that is safe to return to callers.
Internal details stay in the logs.
"""

from enum import Enum


class FailureCategory(str, Enum):
    """Tag attached to a failed render result."""
    VALIDATION = "validation"
    AUTH = "auth"
    CAPACITY = "capacity"
    TIMEOUT = "timeout"
    INTERNAL = "internal"


class RenderError(Exception):
    """Base exception for render service failures."""

    status_code: int = 500
    category: FailureCategory = FailureCategory.INTERNAL
    public_message: str = "Failed to generate PDF"

    def __init__(self, message: str = None):
        super().__init__(message or self.public_message)


class RenderValidationError(RenderError):
    """Raised when the request body or HTML input is unusable."""
    status_code = 400
    category = FailureCategory.VALIDATION
    public_message = 'Request body must be JSON with a non-empty "html" string field'


class PayloadTooLargeError(RenderValidationError):
    """Raised when the request body exceeds the configured size cap."""
    status_code = 413
    public_message = "Request body too large"


class AuthError(RenderError):
    """Raised when the x-rapidapi-key header is missing or wrong."""
    status_code = 401
    category = FailureCategory.AUTH
    public_message = "Invalid or missing x-rapidapi-key header"


class CapacityExceededError(RenderError):
    """Raised when the admission ceiling is reached."""
    status_code = 429
    category = FailureCategory.CAPACITY
    public_message = "Too many concurrent PDF requests. Please try again shortly."


class RenderTimeoutError(RenderError):
    """Raised when content load or PDF export overruns the deadline."""
    status_code = 504
    category = FailureCategory.TIMEOUT
    public_message = "PDF generation timed out"


class InternalRenderError(RenderError):
    """Raised for any other failure inside the render engine."""
    pass


class EngineStartError(InternalRenderError):
    """Raised when the Chromium process cannot be launched."""
    pass
