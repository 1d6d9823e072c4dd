"""
Raster surfaces: decoded, pixel-addressable RGBA buffers
"""
from dataclasses import dataclass

import numpy as np
from PIL import Image

CHANNELS = 4


@dataclass(frozen=True, eq=False)
class RasterSurface:
    """
    Decoded RGBA image, 8 bits per channel, row-major with origin top-left.

    samples has shape (height, width, 4) and dtype uint8, so
    samples.size == width * height * 4 always holds.
    """
    width: int
    height: int
    samples: np.ndarray

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Surface dimensions must be positive, got {self.width}x{self.height}")
        if self.samples.dtype != np.uint8:
            raise ValueError(f"Surface samples must be uint8, got {self.samples.dtype}")
        if self.samples.shape != (self.height, self.width, CHANNELS):
            raise ValueError(
                f"Surface samples shape {self.samples.shape} does not match "
                f"{self.width}x{self.height} RGBA"
            )

    @classmethod
    def blank(cls, width: int, height: int) -> "RasterSurface":
        return cls(width, height, np.zeros((height, width, CHANNELS), dtype=np.uint8))

    @classmethod
    def from_pil(cls, img: Image.Image) -> "RasterSurface":
        """Build a surface from a PIL image, converting to RGBA"""
        if img.mode != "RGBA":
            img = img.convert("RGBA")
        samples = np.array(img, dtype=np.uint8)
        return cls(img.width, img.height, samples)

    def to_pil(self) -> Image.Image:
        return Image.fromarray(self.samples)

    @property
    def size(self) -> tuple:
        return (self.width, self.height)

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def is_opaque(self) -> bool:
        return bool(np.all(self.samples[:, :, 3] == 255))

    def pixel(self, x: int, y: int) -> tuple:
        """(r, g, b, a) at column x, row y"""
        return tuple(int(v) for v in self.samples[y, x])

    def __eq__(self, other) -> bool:
        if not isinstance(other, RasterSurface):
            return NotImplemented
        return self.size == other.size and np.array_equal(self.samples, other.samples)
