"""Output surface preview widget for the TUI."""

from __future__ import annotations

import numpy as np
from PIL import Image
from rich.style import Style
from rich.text import Text
from textual.app import ComposeResult
from textual.widget import Widget
from textual.widgets import Static

from dither_maker.utils.terminal import fit_half_blocks

UPPER_HALF = "▀"


def image_to_half_blocks(image: Image.Image, columns: int, rows: int) -> Text:
    """Downscale an image to fit columns x rows cells and draw it with '▀'.

    The foreground colour is the upper pixel and the background the lower one.
    """
    pixel_w, pixel_h = fit_half_blocks(image.width, image.height, columns, rows)
    # Nearest keeps the dither pattern crisp instead of blurring it to gray.
    small = image.convert("RGB").resize((pixel_w, pixel_h), Image.Resampling.NEAREST)
    pixels = np.asarray(small, dtype=np.uint8)

    text = Text()
    style_cache: dict[tuple[int, ...], Style] = {}
    for y in range(0, pixel_h, 2):
        if y > 0:
            text.append("\n")
        top_row = pixels[y]
        bottom_row = pixels[y + 1] if y + 1 < pixel_h else pixels[y]
        for x in range(pixel_w):
            key = (*top_row[x].tolist(), *bottom_row[x].tolist())
            style = style_cache.get(key)
            if style is None:
                style = style_cache[key] = Style(
                    color=f"rgb({key[0]},{key[1]},{key[2]})",
                    bgcolor=f"rgb({key[3]},{key[4]},{key[5]})",
                )
            text.append(UPPER_HALF, style=style)
    return text


class SurfacePreview(Widget):
    """Widget that mirrors the renderer's output surface."""

    DEFAULT_CSS = """
    SurfacePreview {
        width: 1fr;
        height: 1fr;
        overflow: hidden;
        background: $surface;
        align: center middle;
    }

    SurfacePreview #preview-content {
        width: auto;
        height: auto;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._revision = -1

    def compose(self) -> ComposeResult:
        yield Static("No source loaded.", id="preview-content")

    def show(self, image: Image.Image, revision: int) -> None:
        """Redraw from `image` unless this revision is already on screen."""
        if revision == self._revision:
            return
        self._revision = revision
        columns = max(1, self.size.width or 80)
        rows = max(1, self.size.height or 24)
        content = self.query_one("#preview-content", Static)
        content.update(image_to_half_blocks(image, columns, rows))
