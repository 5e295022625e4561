"""
In-memory page raster shared by the pixel-level stages.
"""

from __future__ import annotations

import base64
import io
from dataclasses import dataclass
from functools import cached_property

import numpy as np
from PIL import Image


@dataclass(frozen=True)
class PageRaster:
    """
    One decoded page as an H x W x 3 uint8 RGB array.

    The pixel buffer is read-only; stages that change pixels build a new raster
    with with_pixels().
    """

    pixels: np.ndarray
    page_index: int = 0

    def __post_init__(self):
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 3:
            raise ValueError(f"PageRaster expects an HxWx3 array, got shape {self.pixels.shape}")
        if self.pixels.dtype != np.uint8:
            raise ValueError(f"PageRaster expects uint8 pixels, got {self.pixels.dtype}")
        pixels = np.array(self.pixels, copy=True)
        pixels.flags.writeable = False
        object.__setattr__(self, "pixels", pixels)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @cached_property
    def luminance(self) -> np.ndarray:
        """Per-pixel mean of the three channels (0 = black, 255 = white)."""
        lum = self.pixels.astype(np.float64).mean(axis=2)
        lum.flags.writeable = False
        return lum

    def with_pixels(self, pixels: np.ndarray) -> "PageRaster":
        return PageRaster(pixels=np.ascontiguousarray(pixels, dtype=np.uint8), page_index=self.page_index)

    @classmethod
    def from_image(cls, image: Image.Image, page_index: int = 0) -> "PageRaster":
        # 16-bit and float greyscale would clip to white in convert("RGB")
        if image.mode.startswith("I") or image.mode == "F":
            scale = 257.0 if image.mode.startswith("I") else 1.0
            values = np.asarray(image, dtype=np.float64) / scale
            image = Image.fromarray(np.clip(np.rint(values), 0, 255).astype(np.uint8), "L")
        # Transparent regions are composited onto white paper
        if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
            rgba = image.convert("RGBA")
            background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
            image = Image.alpha_composite(background, rgba)
        rgb = image.convert("RGB")
        return cls(pixels=np.array(rgb, dtype=np.uint8), page_index=page_index)

    @classmethod
    def from_luminance(cls, values: np.ndarray, page_index: int = 0) -> "PageRaster":
        """Build a grey page from a 2-D array of brightness values."""
        grey = np.clip(np.asarray(values, dtype=np.float64), 0, 255).astype(np.uint8)
        return cls(pixels=np.repeat(grey[:, :, np.newaxis], 3, axis=2), page_index=page_index)

    def to_image(self) -> Image.Image:
        return Image.fromarray(np.array(self.pixels))

    def to_jpeg_bytes(self, quality: int = 90) -> bytes:
        buf = io.BytesIO()
        self.to_image().save(buf, format="JPEG", quality=quality)
        return buf.getvalue()

    def to_data_url(self, quality: int = 80) -> str:
        encoded = base64.b64encode(self.to_jpeg_bytes(quality=quality)).decode("ascii")
        return f"data:image/jpeg;base64,{encoded}"
