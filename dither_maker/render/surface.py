"""Drawable RGBA output target written by the presentation backends."""

from __future__ import annotations

import numpy as np
from PIL import Image, ImageDraw

# Pixel layout of the surface, in the texture-format vocabulary of wgpu.
NATIVE_FORMAT = "rgba8unorm"


class OutputSurface:
    """An off-screen RGBA image that backends draw into.

    Where it ends up (terminal preview, file export) is up to the caller.
    """

    native_format = NATIVE_FORMAT

    def __init__(self, width: int = 1, height: int = 1) -> None:
        self._image = Image.new("RGBA", (max(1, width), max(1, height)), (0, 0, 0, 0))
        self.revision = 0

    @property
    def width(self) -> int:
        return self._image.width

    @property
    def height(self) -> int:
        return self._image.height

    @property
    def size(self) -> tuple[int, int]:
        return self._image.size

    @property
    def image(self) -> Image.Image:
        return self._image

    def resize(self, width: int, height: int) -> bool:
        """Resize to (width, height), discarding contents. Returns True if it changed."""
        width, height = max(1, int(width)), max(1, int(height))
        if (width, height) == self._image.size:
            return False
        self._image = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        self.revision += 1
        return True

    def context(self) -> ImageDraw.ImageDraw:
        """2-D drawing context bound to the current image."""
        return ImageDraw.Draw(self._image)

    def clear(self) -> None:
        self.context().rectangle((0, 0, self.width, self.height), fill=(0, 0, 0, 0))

    def blit(self, pixels: np.ndarray) -> None:
        """Copy an (H, W, 4) uint8 buffer to the top-left corner."""
        self._image.paste(Image.fromarray(np.ascontiguousarray(pixels)), (0, 0))
        self.revision += 1

    def write_pixels(self, data: bytes | memoryview) -> None:
        """Replace the whole surface with raw RGBA bytes of the current size."""
        self._image = Image.frombuffer(
            "RGBA", self._image.size, bytes(data), "raw", "RGBA", 0, 1
        ).copy()
        self.revision += 1

    def to_array(self) -> np.ndarray:
        return np.array(self._image, dtype=np.uint8)
