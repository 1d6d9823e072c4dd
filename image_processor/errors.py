"""
Error types raised by the enhancement engine, the AI gateway relay
and the processing orchestrator
"""
from typing import Optional


class ImageProcessorError(Exception):
    """Base class for all processing errors"""

    kind = "error"


class InvalidInput(ImageProcessorError, ValueError):
    """Supplied resource is not an image (detected before decoding)"""

    kind = "invalid_input"


class DecodeError(ImageProcessorError):
    """Resource bytes could not be read as a raster image, or loading failed"""

    kind = "decode_error"


class ResampleError(ImageProcessorError):
    """Computed target dimensions are not positive"""

    kind = "resample_error"


class EncodeError(ImageProcessorError):
    """Serialization of a raster surface failed"""

    kind = "encode_error"


class ConcurrentRunError(ImageProcessorError):
    """A run was requested while another one is still outstanding"""

    kind = "concurrent_run"


class GatewayError(ImageProcessorError):
    """AI gateway call failed; status_code is the HTTP status to report"""

    kind = "gateway_error"

    def __init__(self, message: str, status_code: int = 500, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.detail = detail


class RateLimitError(GatewayError):
    kind = "rate_limited"

    def __init__(self, detail: Optional[str] = None):
        super().__init__("Rate limit exceeded. Please try again in a moment.", 429, detail)


class CreditsExhaustedError(GatewayError):
    kind = "credits_exhausted"

    def __init__(self, detail: Optional[str] = None):
        super().__init__("AI credits depleted. Please add credits to continue.", 402, detail)


class GatewayNotConfiguredError(GatewayError):
    kind = "not_configured"

    def __init__(self):
        super().__init__("AI_GATEWAY_API_KEY is not configured", 500)
