"""
Local Image Enhancement Engine

Pipeline Flow:
1. INPUT → Decode (ImageResource → RasterSurface)
2. Decode → Resize (only when larger than max_dimension, re-encoded lossy and re-decoded)
3. Resize → Pixel Transform (2x bilinear upscale + brightness/contrast on RGB)
4. Pixel Transform → Encode (lossless PNG)
5. Encode → OUTPUT

Runs entirely in-process: no model, no network beyond fetching a remote source.
"""
import time
import logging
from fractions import Fraction
from typing import List, Optional, Tuple
from dataclasses import dataclass, field

import cv2
import numpy as np
import httpx

from .config import get_config, EnhancementParams
from .errors import ResampleError
from .raster import RasterSurface
from .resources import ImageResource
from . import codec

logger = logging.getLogger(__name__)


@dataclass
class ProcessingStep:
    """Record of a single processing step"""
    name: str
    method: str  # "local", "ai" or "passthrough"
    success: bool
    latency_ms: int
    details: str = ""


@dataclass
class EngineOutput:
    """Result of one local enhancement run"""
    image: ImageResource
    original_dimensions: Tuple[int, int]
    resized_dimensions: Tuple[int, int]
    enhanced_dimensions: Tuple[int, int]
    resized: bool = False
    steps: List[ProcessingStep] = field(default_factory=list)


def fit_within(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    """
    Scale (width, height) so the longer side equals max_dimension.

    Each side is rounded half-up in exact integer arithmetic, so the longer
    side lands on max_dimension exactly; the shorter side may drift by one
    pixel from the true aspect ratio.
    """
    longest = max(width, height)
    new_width = (2 * width * max_dimension + longest) // (2 * longest)
    new_height = (2 * height * max_dimension + longest) // (2 * longest)
    return new_width, new_height


def resample(surface: RasterSurface, width: int, height: int, interpolation: int) -> RasterSurface:
    """Resample a surface to (width, height) with the given OpenCV interpolation"""
    if width <= 0 or height <= 0:
        raise ResampleError(f"Target dimensions must be positive, got {width}x{height}")
    samples = cv2.resize(
        np.ascontiguousarray(surface.samples), (width, height), interpolation=interpolation
    )
    return RasterSurface(width, height, samples)


def build_brightness_lut(gain: float, offset: int) -> np.ndarray:
    """
    256-entry table for c' = clamp(round_half_up(c * gain) + offset, 0, 255).

    gain is taken at its decimal value (1.1 is exactly 11/10), so ties such
    as 5 * 1.1 = 5.5 round up regardless of binary float error.
    """
    exact_gain = Fraction(str(gain))
    half = Fraction(1, 2)
    table = [
        min(255, max(0, int((c * exact_gain + half) // 1) + offset))
        for c in range(256)
    ]
    return np.array(table, dtype=np.uint8)


class LocalEnhancer:
    """
    Local enhancement engine: bounded resize, 2x upscale, brightness/contrast lift.

    Stateless between runs; every run allocates its own surfaces.
    """

    def __init__(
        self,
        params: Optional[EnhancementParams] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.params = params or get_config().enhancement
        self._transport = transport
        self._lut = build_brightness_lut(self.params.brightness_gain, self.params.brightness_offset)

    async def decode(self, image: ImageResource) -> RasterSurface:
        return await codec.decode(
            image,
            timeout=self.params.decode_timeout_seconds,
            fetch_timeout=self.params.fetch_timeout_seconds,
            transport=self._transport,
        )

    def resize(self, surface: RasterSurface) -> Tuple[RasterSurface, Optional[ImageResource]]:
        """
        Constrain a surface to max_dimension.

        Returns (surface, None) untouched when it already fits, otherwise the
        resampled surface and its lossy re-encoding.
        """
        max_dim = self.params.max_dimension
        if max(surface.width, surface.height) <= max_dim:
            return surface, None

        new_w, new_h = fit_within(surface.width, surface.height, max_dim)
        resized = resample(surface, new_w, new_h, cv2.INTER_AREA)

        # WEBP keeps transparency that JPEG would drop
        format = "JPEG" if resized.is_opaque else "WEBP"
        resource = codec.encode(resized, format=format, quality=self.params.resize_quality)
        logger.info(f"   📐 Resized {surface.width}x{surface.height} → {new_w}x{new_h} ({format} q{self.params.resize_quality})")
        return resized, resource

    def transform(self, surface: RasterSurface) -> RasterSurface:
        """Upscale by upscale_factor and apply the brightness/contrast table to R, G, B"""
        factor = self.params.upscale_factor
        upscaled = resample(
            surface, surface.width * factor, surface.height * factor, cv2.INTER_LINEAR
        )
        samples = upscaled.samples
        samples[:, :, :3] = self._lut[samples[:, :, :3]]
        return RasterSurface(upscaled.width, upscaled.height, samples)

    async def run(self, image: ImageResource) -> EngineOutput:
        """Run the full pipeline and report each stage"""
        steps = []

        logger.info("=" * 70)
        logger.info(f"🖼️ LOCAL ENHANCEMENT START | {image!r}")
        logger.info("=" * 70)

        # ========== STEP 1: DECODE ==========
        step_start = time.time()
        surface = await self.decode(image)
        original_dims = surface.size
        steps.append(self._step("decode", step_start, f"{surface.width}x{surface.height}"))
        logger.info(f"📥 STEP 1: Decoded | Dims: {original_dims} | Time: {steps[-1].latency_ms}ms")

        # ========== STEP 2: RESIZE ==========
        step_start = time.time()
        _, resized_resource = self.resize(surface)
        if resized_resource is not None:
            surface = await self.decode(resized_resource)
            steps.append(self._step("resize", step_start, f"{surface.width}x{surface.height}"))
            logger.info(f"📐 STEP 2: Resized and re-decoded | Dims: {surface.size} | Time: {steps[-1].latency_ms}ms")
        else:
            logger.info(f"📐 STEP 2: Within {self.params.max_dimension}px, no resize")
        resized_dims = surface.size

        # ========== STEP 3: PIXEL TRANSFORM ==========
        step_start = time.time()
        surface = self.transform(surface)
        steps.append(self._step("transform", step_start, f"{surface.width}x{surface.height}"))
        logger.info(f"✨ STEP 3: Transformed | Dims: {surface.size} | Time: {steps[-1].latency_ms}ms")

        # ========== STEP 4: ENCODE ==========
        step_start = time.time()
        result = codec.encode(
            surface,
            format=self.params.output_format,
            png_compression=self.params.png_compression,
        )
        steps.append(self._step("encode", step_start, self.params.output_format))
        logger.info(f"📤 STEP 4: Encoded {self.params.output_format} | Time: {steps[-1].latency_ms}ms")

        return EngineOutput(
            image=result,
            original_dimensions=original_dims,
            resized_dimensions=resized_dims,
            enhanced_dimensions=surface.size,
            resized=resized_resource is not None,
            steps=steps,
        )

    async def enhance(self, image: ImageResource) -> ImageResource:
        """Enhance an image; raises InvalidInput, DecodeError, ResampleError or EncodeError"""
        output = await self.run(image)
        return output.image

    @staticmethod
    def _step(name: str, started: float, details: str) -> ProcessingStep:
        return ProcessingStep(
            name=name,
            method="local",
            success=True,
            latency_ms=int((time.time() - started) * 1000),
            details=details,
        )


async def enhance_image(image: ImageResource) -> ImageResource:
    """Quick function to enhance an image with default parameters"""
    return await LocalEnhancer().enhance(image)
