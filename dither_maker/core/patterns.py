"""Error diffusion kernels.

Each kernel lists (dx, dy, weight) offsets relative to the pixel being
quantized, in units of blocks. Error is spread as weight / divisor.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PatternName(str, Enum):
    FLOYD_STEINBERG = "floyd-steinberg"
    JARVIS_JUDICE_NINKE = "jarvis-judice-ninke"
    STUCKI = "stucki"
    ATKINSON = "atkinson"
    BURKES = "burkes"
    SIERRA = "sierra"
    TWO_ROW_SIERRA = "two-row-sierra"
    SIERRA_LITE = "sierra-lite"


class UnknownPatternError(KeyError):
    """Raised when a pattern name has no registered kernel."""


@dataclass(frozen=True)
class DiffusionKernel:
    """Error-propagation offsets plus a normalizing divisor."""

    offsets: tuple[tuple[int, int, int], ...]
    divisor: int

    @property
    def coverage(self) -> float:
        """Fraction of the quantization error this kernel passes on."""
        return sum(w for _, _, w in self.offsets) / self.divisor

    def weights(self) -> list[tuple[int, int, float]]:
        """Offsets with weights already divided by the divisor."""
        return [(dx, dy, w / self.divisor) for dx, dy, w in self.offsets]


KERNELS: dict[PatternName, DiffusionKernel] = {
    PatternName.FLOYD_STEINBERG: DiffusionKernel(
        offsets=((1, 0, 7), (-1, 1, 3), (0, 1, 5), (1, 1, 1)),
        divisor=16,
    ),
    PatternName.JARVIS_JUDICE_NINKE: DiffusionKernel(
        offsets=(
            (1, 0, 7), (2, 0, 5),
            (-2, 1, 3), (-1, 1, 5), (0, 1, 7), (1, 1, 5), (2, 1, 3),
            (-2, 2, 1), (-1, 2, 3), (0, 2, 5), (1, 2, 3), (2, 2, 1),
        ),
        divisor=48,
    ),
    PatternName.STUCKI: DiffusionKernel(
        offsets=(
            (1, 0, 8), (2, 0, 4),
            (-2, 1, 2), (-1, 1, 4), (0, 1, 8), (1, 1, 4), (2, 1, 2),
            (-2, 2, 1), (-1, 2, 2), (0, 2, 4), (1, 2, 2), (2, 2, 1),
        ),
        divisor=42,
    ),
    # Only 6/8 of the error is passed on; the rest is dropped.
    PatternName.ATKINSON: DiffusionKernel(
        offsets=(
            (1, 0, 1), (2, 0, 1),
            (-1, 1, 1), (0, 1, 1), (1, 1, 1),
            (0, 2, 1),
        ),
        divisor=8,
    ),
    PatternName.BURKES: DiffusionKernel(
        offsets=(
            (1, 0, 8), (2, 0, 4),
            (-2, 1, 2), (-1, 1, 4), (0, 1, 8), (1, 1, 4), (2, 1, 2),
        ),
        divisor=32,
    ),
    PatternName.SIERRA: DiffusionKernel(
        offsets=(
            (1, 0, 5), (2, 0, 3),
            (-2, 1, 2), (-1, 1, 4), (0, 1, 5), (1, 1, 4), (2, 1, 2),
            (-1, 2, 2), (0, 2, 3), (1, 2, 2),
        ),
        divisor=32,
    ),
    PatternName.TWO_ROW_SIERRA: DiffusionKernel(
        offsets=(
            (1, 0, 4), (2, 0, 3),
            (-2, 1, 1), (-1, 1, 2), (0, 1, 3), (1, 1, 2), (2, 1, 1),
        ),
        divisor=16,
    ),
    PatternName.SIERRA_LITE: DiffusionKernel(
        offsets=((1, 0, 2), (-1, 1, 1), (0, 1, 1)),
        divisor=4,
    ),
}

# camelCase spellings used by the web controls
_ALIASES: dict[str, PatternName] = {
    "floydSteinberg": PatternName.FLOYD_STEINBERG,
    "jarvisJudiceNinke": PatternName.JARVIS_JUDICE_NINKE,
    "twoRowSierra": PatternName.TWO_ROW_SIERRA,
    "sierraLite": PatternName.SIERRA_LITE,
}


def _check_forward_only(kernel: DiffusionKernel) -> None:
    for dx, dy, _ in kernel.offsets:
        if dy < 0 or (dy == 0 and dx <= 0):
            raise ValueError(f"Offset ({dx}, {dy}) reaches an already visited pixel")


for _kernel in KERNELS.values():
    _check_forward_only(_kernel)


def resolve_pattern(name: PatternName | str) -> PatternName:
    """Normalize a pattern name, accepting enum values and camelCase aliases."""
    if isinstance(name, PatternName):
        return name
    if name in _ALIASES:
        return _ALIASES[name]
    try:
        return PatternName(str(name).strip().lower())
    except ValueError:
        raise UnknownPatternError(f"Unknown pattern: {name!r}") from None


def get_kernel(name: PatternName | str) -> DiffusionKernel:
    """Return the kernel for a pattern name or raise UnknownPatternError."""
    return KERNELS[resolve_pattern(name)]


def is_known_pattern(name: PatternName | str) -> bool:
    try:
        resolve_pattern(name)
    except UnknownPatternError:
        return False
    return True
