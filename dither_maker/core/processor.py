"""Error-diffusion processing.

Sample one pixel per block → contrast/brightness → add carried error →
snap to the two-colour palette → fill block → push error to neighbours.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

import numpy as np

from dither_maker.core.palette import RGB, nearest, parse_hex_color, to_rgb8
from dither_maker.core.patterns import PatternName, UnknownPatternError, get_kernel
from dither_maker.core.reader import Frame

_LOG = logging.getLogger("dither_maker.core")


@dataclass(frozen=True)
class DitherSettings:
    """Settings for one render call."""

    pattern: PatternName | str = PatternName.FLOYD_STEINBERG
    color1: str = "#050505"
    color2: str = "#fafafa"
    pixelation: float = 2  # block size in source pixels, floored to >= 1
    contrast: float = 1.0  # multiplied around the 0.5 midpoint
    brightness: float = 1.0  # multiplier applied after contrast
    threshold: float = 1.0  # scale on propagated error, not clamped

    @property
    def block_size(self) -> int:
        try:
            return max(1, math.floor(self.pixelation))
        except (TypeError, ValueError, OverflowError):
            return 1

    @property
    def palette(self) -> tuple[RGB, RGB]:
        return parse_hex_color(self.color1), parse_hex_color(self.color2)


DEFAULT_SETTINGS = DitherSettings()


def build_settings(
    values: Mapping[str, Any],
    base: DitherSettings = DEFAULT_SETTINGS,
) -> DitherSettings:
    """Merge loosely typed control values over `base`.

    Numbers must be real numbers and colours/patterns strings; anything else
    keeps the base value.
    """
    changes: dict[str, Any] = {}
    pattern = values.get("pattern")
    if isinstance(pattern, (str, PatternName)):
        changes["pattern"] = pattern
    for key in ("color1", "color2"):
        value = values.get(key)
        if isinstance(value, str):
            changes[key] = value
    for key in ("pixelation", "contrast", "brightness", "threshold"):
        value = values.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            changes[key] = value
    return replace(base, **changes)


@dataclass
class ProcessedFrame:
    """Result of processing a single frame."""

    pixels: np.ndarray  # (height, width, 4) uint8
    width: int
    height: int
    index: int = 0
    duration_ms: int = 0
    dithered: bool = field(default=True)


def _clamp(value: float) -> float:
    if value < 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return value


def _adjust_contrast_brightness(
    samples: np.ndarray, contrast: float, brightness: float
) -> np.ndarray:
    """Normalize uint8 samples to [0, 1], scale contrast around 0.5, then brightness."""
    result = samples.astype(np.float64) / 255.0
    result = ((result - 0.5) * float(contrast) + 0.5) * float(brightness)
    return np.clip(result, 0.0, 1.0)


def _readable(pixels: Any, width: int, height: int) -> bool:
    if width <= 0 or height <= 0:
        return False
    if not isinstance(pixels, np.ndarray) or pixels.size == 0:
        return False
    return pixels.ndim == 3 and pixels.shape[:2] == (height, width) and pixels.shape[2] in (3, 4)


def diffuse(
    pixels: np.ndarray,
    width: int,
    height: int,
    settings: DitherSettings,
) -> np.ndarray:
    """Dither an RGBA (or RGB) uint8 buffer of shape (height, width, C).

    Returns a new RGBA buffer. When there is nothing usable to work on
    (zero size, no pixel data, unknown pattern) the input is returned as is,
    so the caller always has something to display.
    """
    if not _readable(pixels, width, height):
        _LOG.debug("diffuse_skipped reason=unreadable width=%s height=%s", width, height)
        return pixels
    try:
        kernel = get_kernel(settings.pattern)
    except UnknownPatternError:
        _LOG.warning("diffuse_skipped reason=unknown_pattern pattern=%r", settings.pattern)
        return pixels

    if pixels.shape[2] == 3:
        out = np.empty((height, width, 4), dtype=np.uint8)
        out[:, :, :3] = pixels
        out[:, :, 3] = 255
    else:
        out = pixels.astype(np.uint8, copy=True)

    palette = settings.palette
    block = settings.block_size
    spread = [
        (dx * block, dy * block, weight * settings.threshold)
        for dx, dy, weight in kernel.weights()
    ]
    fill_cache: dict[RGB, tuple[int, int, int]] = {}

    origins_y = range(0, height, block)
    origins_x = range(0, width, block)
    sample_y = np.minimum(np.arange(0, height, block) + block // 2, height - 1)
    sample_x = np.minimum(np.arange(0, width, block) + block // 2, width - 1)
    adjusted = _adjust_contrast_brightness(
        pixels[sample_y[:, None], sample_x[None, :], :3],
        settings.contrast,
        settings.brightness,
    ).tolist()

    # Fresh buffer for every pass; never carried over between frames.
    error = np.zeros((height, width, 3), dtype=np.float32)

    for row, y in enumerate(origins_y):
        sy = int(sample_y[row])
        row_colors = adjusted[row]
        for col, x in enumerate(origins_x):
            sx = int(sample_x[col])
            r, g, b = row_colors[col]
            err = error[sy, sx]

            r = _clamp(r + float(err[0]))
            g = _clamp(g + float(err[1]))
            b = _clamp(b + float(err[2]))

            quantized = nearest((r, g, b), palette)
            rgb8 = fill_cache.get(quantized)
            if rgb8 is None:
                rgb8 = fill_cache[quantized] = to_rgb8(quantized)
            # Slicing truncates edge blocks at the frame border.
            out[y : y + block, x : x + block, :3] = rgb8

            er = r - quantized[0]
            eg = g - quantized[1]
            eb = b - quantized[2]
            if er == 0.0 and eg == 0.0 and eb == 0.0:
                continue
            for ox, oy, scale in spread:
                tx = sx + ox
                ty = sy + oy
                if tx < 0 or tx >= width or ty >= height:
                    continue
                target = error[ty, tx]
                target[0] += er * scale
                target[1] += eg * scale
                target[2] += eb * scale

    return out


def process_frame(frame: Frame, settings: DitherSettings) -> ProcessedFrame:
    """Dither a single frame."""
    pixels = diffuse(frame.pixels, frame.width, frame.height, settings)
    return ProcessedFrame(
        pixels=pixels,
        width=frame.width,
        height=frame.height,
        index=frame.index,
        duration_ms=frame.duration_ms,
        dithered=pixels is not frame.pixels,
    )
