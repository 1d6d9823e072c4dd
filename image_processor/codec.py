"""
Decoder and Encoder between image resources and raster surfaces
"""
import io
import asyncio
import logging
from typing import Optional

import httpx
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import InvalidInput, DecodeError, EncodeError
from .raster import RasterSurface
from .resources import ImageResource, FORMAT_MIME_TYPES, sniff_image_mime

logger = logging.getLogger(__name__)


async def fetch_image_bytes(
    url: str,
    timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> bytes:
    """Fetch image bytes from a remote URL with content validation"""
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True, transport=transport) as client:
            response = await client.get(url)
            response.raise_for_status()
    except httpx.HTTPError as e:
        raise DecodeError(f"Failed to load image from {url}: {e}") from e

    content_type = response.headers.get('content-type', '').lower()
    if content_type and not content_type.startswith('image/'):
        raise InvalidInput(f"URL did not return an image. Content-Type: {content_type}")

    content = response.content
    if sniff_image_mime(content) is None:
        preview = content[:20].decode('utf-8', errors='ignore')
        raise InvalidInput(f"Invalid image data. Content preview: '{preview}'")
    return content


def validate(resource: ImageResource) -> None:
    """Reject resources that cannot describe an image, without loading anything"""
    if resource.is_data_uri:
        mime_type = resource.mime_type
        if not mime_type or not mime_type.startswith("image/"):
            raise InvalidInput(f"Resource is not an image (declared type: {mime_type})")
    elif not resource.is_remote:
        raise InvalidInput("Resource must be a data URI or an http(s) URL")


async def load_image_bytes(
    resource: ImageResource,
    fetch_timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> bytes:
    """
    Resolve a resource to its encoded bytes.

    Raises InvalidInput when the resource does not describe an image at all;
    nothing is decoded at this point.
    """
    validate(resource)
    if resource.is_data_uri:
        data = resource.payload()
    else:
        data = await fetch_image_bytes(resource.uri, fetch_timeout, transport)

    if not data:
        raise InvalidInput("Image data is empty")
    return data


WIDE_INTEGER_MODES = ("I", "I;16", "I;16L", "I;16B", "I;16N")


def _to_8bit(img: Image.Image) -> Image.Image:
    """Scale single-channel 16-bit and float images down to 8-bit grayscale"""
    if img.mode in WIDE_INTEGER_MODES:
        samples = np.clip(np.asarray(img, dtype=np.int64), 0, 65535) >> 8
        return Image.fromarray(samples.astype(np.uint8))
    if img.mode == "F":
        samples = np.clip(np.rint(np.asarray(img, dtype=np.float64)), 0, 255)
        return Image.fromarray(samples.astype(np.uint8))
    return img


def decode_bytes(data: bytes) -> RasterSurface:
    """Decode encoded image bytes to an RGBA surface at natural dimensions"""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            img = ImageOps.exif_transpose(img)
            return RasterSurface.from_pil(_to_8bit(img))
    except (UnidentifiedImageError, Image.DecompressionBombError) as e:
        raise DecodeError(f"Could not decode image ({len(data)} bytes): {e}") from e
    except (OSError, ValueError, SyntaxError) as e:
        raise DecodeError(f"Corrupt or truncated image ({len(data)} bytes): {e}") from e


async def decode(
    resource: ImageResource,
    timeout: Optional[float] = None,
    fetch_timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> RasterSurface:
    """
    Decode a resource to a raster surface.

    Suspends until loading completes or fails. With timeout=None the wait is
    unbounded; otherwise a load that does not finish in time raises DecodeError.
    """
    async def _load() -> RasterSurface:
        data = await load_image_bytes(resource, fetch_timeout, transport)
        return await asyncio.to_thread(decode_bytes, data)

    if timeout is None:
        surface = await _load()
    else:
        try:
            surface = await asyncio.wait_for(_load(), timeout)
        except asyncio.TimeoutError as e:
            raise DecodeError(f"Image did not load within {timeout}s") from e

    logger.debug(f"Decoded {resource!r} -> {surface.width}x{surface.height}")
    return surface


def encode(
    surface: RasterSurface,
    format: str = "PNG",
    quality: int = 90,
    png_compression: int = 6
) -> ImageResource:
    """Serialize a surface to a data-URI resource (PNG lossless, JPEG/WEBP lossy)"""
    format = format.upper()
    if format not in FORMAT_MIME_TYPES:
        raise EncodeError(f"Unsupported output format: {format}")

    buffer = io.BytesIO()
    try:
        img = surface.to_pil()
        if format == "JPEG":
            img.convert("RGB").save(buffer, format="JPEG", quality=quality, optimize=True)
        elif format == "WEBP":
            img.save(buffer, format="WEBP", quality=quality, method=4)
        else:
            img.save(buffer, format="PNG", compress_level=png_compression)
    except (OSError, ValueError, MemoryError) as e:
        raise EncodeError(f"Failed to encode {surface.width}x{surface.height} surface as {format}: {e}") from e

    return ImageResource.from_bytes(buffer.getvalue(), FORMAT_MIME_TYPES[format])
