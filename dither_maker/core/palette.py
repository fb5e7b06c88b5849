"""Two-colour palette parsing and nearest-colour lookup."""

from __future__ import annotations

import re
from typing import Sequence

RGB = tuple[float, float, float]

BLACK: RGB = (0.0, 0.0, 0.0)

_HEX_RE = re.compile(r"^#?([0-9a-f]{2})([0-9a-f]{2})([0-9a-f]{2})$", re.IGNORECASE)


def parse_hex_color(value: str) -> RGB:
    """Parse '#rrggbb' (leading '#' optional) into channels in [0.0, 1.0].

    Anything that does not match is treated as black rather than an error,
    so a half-typed colour from a control never stops rendering.
    """
    match = _HEX_RE.fullmatch(value) if isinstance(value, str) else None
    if match is None:
        return BLACK
    return tuple(int(part, 16) / 255 for part in match.groups())  # type: ignore[return-value]


def nearest(color: RGB, palette: Sequence[RGB]) -> RGB:
    """Return the palette entry closest to `color` by squared distance.

    Entries are checked in order and only a strictly smaller distance
    replaces the current best, so ties go to the first entry.
    """
    r, g, b = color
    best = palette[0]
    best_distance = float("inf")
    for entry in palette:
        dr = r - entry[0]
        dg = g - entry[1]
        db = b - entry[2]
        distance = dr * dr + dg * dg + db * db
        if distance < best_distance:
            best_distance = distance
            best = entry
    return best


def to_rgb8(color: RGB) -> tuple[int, int, int]:
    """Convert a normalized colour to 8-bit channels."""
    return (
        int(round(color[0] * 255)),
        int(round(color[1] * 255)),
        int(round(color[2] * 255)),
    )
