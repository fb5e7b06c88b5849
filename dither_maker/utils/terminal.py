"""Terminal size detection utilities."""

from __future__ import annotations

import shutil


def get_terminal_size(
    fallback_width: int = 80,
    fallback_height: int = 24,
) -> tuple[int, int]:
    """Get current terminal size in columns and rows.

    Returns (width, height). Falls back to provided defaults
    if terminal size cannot be determined.
    """
    try:
        size = shutil.get_terminal_size(fallback=(fallback_width, fallback_height))
        return size.columns, size.lines
    except (ValueError, OSError):
        return fallback_width, fallback_height


def fit_half_blocks(
    img_width: int,
    img_height: int,
    max_columns: int | None = None,
    max_rows: int | None = None,
) -> tuple[int, int]:
    """Pixel size that fits a terminal area drawn with upper-half blocks.

    Every cell shows two vertically stacked pixels, and cells are about
    twice as tall as wide, so pixels come out roughly square.

    Returns:
        (pixel_width, pixel_height); pixel_height is always even.
    """
    if max_columns is None or max_rows is None:
        tw, th = get_terminal_size()
        if max_columns is None:
            max_columns = tw
        if max_rows is None:
            max_rows = max(th - 4, 5)  # Leave room for UI chrome

    max_w = max(1, max_columns)
    max_h = max(2, max_rows * 2)
    img_width = max(1, img_width)
    img_height = max(1, img_height)
    scale = min(max_w / img_width, max_h / img_height)
    pixel_w = max(1, int(img_width * scale))
    pixel_h = max(2, int(img_height * scale))
    return pixel_w, pixel_h + (pixel_h % 2)
