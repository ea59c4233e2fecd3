"""Immutable RGBA raster used between pipeline stages.

Every stage of the pipeline receives a :class:`RasterImage` and produces a new
one; buffers are never mutated after construction.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from PIL import Image

CHANNELS = 4


@dataclass(frozen=True)
class RasterImage:
    """Width, height and a packed RGBA byte buffer (row-major, 4 bytes/pixel).

    Fields:
        width: Width, px.
        height: Height, px.
        data: ``width * height * 4`` bytes.
    """

    width: int
    height: int
    data: bytes

    def __post_init__(self) -> None:
        if self.width < 1 or self.height < 1:
            raise ValueError(f"Invalid raster size: {self.width}x{self.height}")
        expected = self.width * self.height * CHANNELS
        if len(self.data) != expected:
            raise ValueError(
                f"RGBA buffer has {len(self.data)} bytes, expected {expected}"
            )

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @classmethod
    def from_array(cls, array: np.ndarray) -> "RasterImage":
        """Build a raster from an ``(h, w, 4)`` array; values are clipped to 0..255."""
        if array.ndim != 3 or array.shape[2] != CHANNELS:
            raise ValueError(f"Expected an (h, w, 4) array, got shape {array.shape}")
        if array.dtype != np.uint8:
            array = np.clip(np.rint(array), 0, 255).astype(np.uint8)
        height, width = array.shape[:2]
        return cls(width=width, height=height, data=np.ascontiguousarray(array).tobytes())

    def to_array(self) -> np.ndarray:
        """Return a read-only ``(h, w, 4)`` uint8 view of the buffer."""
        return np.frombuffer(self.data, dtype=np.uint8).reshape(
            self.height, self.width, CHANNELS
        )

    @classmethod
    def from_pil(cls, image: Image.Image) -> "RasterImage":
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        return cls(width=image.width, height=image.height, data=image.tobytes())

    def to_pil(self) -> Image.Image:
        return Image.frombytes("RGBA", self.size, self.data)

    def crop(self, left: int, top: int, width: int, height: int) -> "RasterImage":
        """Copy a sub-rectangle at 1:1 scale.

        The box is clipped to the raster and kept at least 1x1.
        """
        left = min(max(0, int(left)), self.width - 1)
        top = min(max(0, int(top)), self.height - 1)
        width = min(max(1, int(width)), self.width - left)
        height = min(max(1, int(height)), self.height - top)
        if (left, top, width, height) == (0, 0, self.width, self.height):
            return self
        region = self.to_array()[top : top + height, left : left + width]
        return RasterImage.from_array(region)
