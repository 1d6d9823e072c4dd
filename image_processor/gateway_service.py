"""
AI gateway service for image transformation
Relays chat-completion requests to a multimodal image-generation gateway
"""
import time
import logging
from typing import Optional, Dict, Any
from dataclasses import dataclass

import httpx

from .config import get_config, GatewayConfig, Operation
from .errors import (
    GatewayError,
    RateLimitError,
    CreditsExhaustedError,
    GatewayNotConfiguredError,
)
from .resources import ImageResource

logger = logging.getLogger(__name__)


OPERATION_PROMPTS: Dict[Operation, str] = {
    Operation.ENHANCE: (
        "Enhance this image to maximum quality and clarity. Make it sharper, increase resolution, "
        "improve colors and contrast, reduce noise and blur. The goal is to make the image look "
        "professional and crystal clear."
    ),
    Operation.COLORIZE: (
        "Colorize this black and white image. Add natural, realistic colors that match the scene "
        "and time period. Make it look like a naturally colored photograph with vibrant but "
        "realistic tones. Pay attention to skin tones, sky colors, and environmental details."
    ),
    Operation.REMOVE_BG: (
        "Remove the background from this image completely. Keep only the main subject in perfect "
        "focus and make the background completely transparent or white. Maintain all details of "
        "the subject."
    ),
    Operation.UPSCALE: (
        "Upscale this image to higher resolution with maximum quality. Add realistic details, "
        "improve texture definition, enhance sharpness and clarity. Make it look naturally "
        "high-resolution."
    ),
    Operation.DENOISE: (
        "Remove all noise, grain, and artifacts from this image. Make it clean and smooth while "
        "preserving important details, edges, and sharpness. The result should look naturally clean."
    ),
    Operation.SHARPEN: (
        "Sharpen this image significantly. Enhance edges, increase definition throughout, and "
        "improve overall clarity and crispness. Make details pop without creating artifacts."
    ),
    Operation.BRIGHTEN: (
        "Brighten and improve the lighting of this image. Enhance brightness, contrast, and "
        "exposure to make it more vibrant, clear and well-lit. Maintain natural color balance."
    ),
    Operation.REMOVE_CRACK: (
        "Remove all cracks, scratches, tears, and damage from this image. Restore the image to "
        "perfect condition by intelligently filling in damaged areas. Preserve all original "
        "details while making the image look completely repaired and flawless."
    ),
}


def get_prompt(operation) -> str:
    """Prompt for an operation name or Operation; unknown names get the enhance prompt"""
    return OPERATION_PROMPTS[Operation.parse(operation)]


@dataclass
class GatewayCallResult:
    """Result from a gateway call"""
    success: bool
    image: Optional[ImageResource] = None
    operation: str = ""
    model: str = ""
    latency_ms: int = 0
    status_code: int = 200
    error: Optional[str] = None
    error_kind: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "operation": self.operation,
            "model": self.model,
            "latency_ms": self.latency_ms,
            "status_code": self.status_code,
            "error": self.error,
            "error_kind": self.error_kind,
        }


class AIGatewayService:
    """Service for calling the multimodal AI gateway"""

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize gateway service

        Args:
            config: Gateway settings. Defaults to the global config (AI_GATEWAY_* env vars)
            transport: Optional httpx transport, used to stub the gateway
        """
        self.config = config or get_config().gateway
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def build_payload(self, image: ImageResource, operation: Operation) -> Dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": get_prompt(operation)},
                        {"type": "image_url", "image_url": {"url": image.uri}},
                    ],
                }
            ],
            "modalities": ["image", "text"],
        }

    async def transform(self, image: ImageResource, operation: Operation = Operation.ENHANCE) -> ImageResource:
        """
        Transform an image through the gateway.

        Raises:
            GatewayNotConfiguredError: no API key configured
            RateLimitError: gateway answered 429
            CreditsExhaustedError: gateway answered 402
            GatewayError: any other failure (status_code 500)
        """
        if not self.enabled:
            raise GatewayNotConfiguredError()

        operation = Operation.parse(operation)
        logger.info(f"Processing image with operation: {operation.value}")

        try:
            async with httpx.AsyncClient(timeout=self.config.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.config.url,
                    json=self.build_payload(image, operation),
                    headers={
                        "Authorization": f"Bearer {self.config.api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"AI gateway request failed: {e}")
            raise GatewayError(f"AI gateway request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimitError(response.text)
        if response.status_code == 402:
            raise CreditsExhaustedError(response.text)
        if response.status_code >= 400:
            logger.error(f"AI gateway error: {response.status_code} {response.text}")
            raise GatewayError("Failed to enhance image", 500, response.text)

        try:
            data = response.json()
            url = data["choices"][0]["message"]["images"][0]["image_url"]["url"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.debug(f"Response body: {response.text[:500]}")
            raise GatewayError("No enhanced image returned from AI") from e
        if not url:
            raise GatewayError("No enhanced image returned from AI")

        return ImageResource(url)

    async def call(self, image: ImageResource, operation: Operation = Operation.ENHANCE) -> GatewayCallResult:
        """Same as transform() but reports failures in the result instead of raising"""
        start_time = time.time()
        try:
            result = await self.transform(image, operation)
            return GatewayCallResult(
                success=True,
                image=result,
                operation=Operation.parse(operation).value,
                model=self.config.model,
                latency_ms=int((time.time() - start_time) * 1000),
            )
        except GatewayError as e:
            return GatewayCallResult(
                success=False,
                operation=Operation.parse(operation).value,
                model=self.config.model,
                latency_ms=int((time.time() - start_time) * 1000),
                status_code=e.status_code,
                error=e.message,
                error_kind=e.kind,
            )


def create_gateway_service(**kwargs) -> AIGatewayService:
    """Factory function to create a gateway service"""
    return AIGatewayService(**kwargs)
