"""
Shared fixtures for the image processor tests.
"""

import io
import os
import json

os.environ["LOG_TO_FILE"] = "false"
os.environ.pop("AI_GATEWAY_API_KEY", None)
os.environ.pop("DECODE_TIMEOUT_SECONDS", None)
os.environ.pop("ALLOW_REMOTE_MODELS", None)
os.environ.pop("CACHE_RESULTS", None)

import httpx
import pytest
from PIL import Image

from image_processor.config import reset_config, GatewayConfig
from image_processor.gateway_service import AIGatewayService
from image_processor.resources import ImageResource

reset_config()

GATEWAY_URL = "https://gateway.test/v1/chat/completions"
RESULT_URL = "https://cdn.test/enhanced.png"


def make_image_bytes(width=40, height=30, color=(128, 64, 32, 255), fmt="PNG", mode="RGBA"):
    """Return encoded bytes of a solid-color image."""
    if mode == "RGB":
        color = color[:3]
    img = Image.new(mode, (width, height), color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def make_resource(width=40, height=30, color=(128, 64, 32, 255), fmt="PNG", mode="RGBA"):
    """Return a data-URI resource of a solid-color image."""
    mime = {"PNG": "image/png", "JPEG": "image/jpeg"}[fmt]
    return ImageResource.from_bytes(make_image_bytes(width, height, color, fmt, mode), mime)


def decode_resource(resource):
    """Decode a data-URI resource to a PIL image."""
    return Image.open(io.BytesIO(resource.payload()))


def gateway_success_response(url=RESULT_URL):
    return httpx.Response(
        200,
        json={"choices": [{"message": {"role": "assistant", "images": [{"image_url": {"url": url}}]}}]},
    )


class GatewayStub:
    """Records gateway requests and answers with a fixed response."""

    def __init__(self, response=None):
        self.response = response if response is not None else gateway_success_response()
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        # fresh response per request so the stub can answer repeatedly
        return httpx.Response(
            self.response.status_code,
            headers=self.response.headers,
            content=self.response.content,
        )

    @property
    def last_payload(self):
        return json.loads(self.requests[-1].content)

    def service(self, api_key="test-key"):
        config = GatewayConfig(api_key=api_key, url=GATEWAY_URL, model="test/image-model", timeout=5)
        return AIGatewayService(config, transport=httpx.MockTransport(self))


@pytest.fixture
def gateway_stub():
    return GatewayStub()


@pytest.fixture
def red_image():
    return make_resource(500, 300, color=(255, 0, 0, 255))
