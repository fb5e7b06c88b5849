"""Wall-clock throttle for re-running the diffusion pass."""

from __future__ import annotations

DEFAULT_INTERVAL_MS = 50.0


class FrameRateGovernor:
    """Allows a recompute at most once per `interval_ms`.

    `should_recompute` commits the timestamp whenever it says yes, so the
    caller must actually recompute on a True answer.
    """

    def __init__(self, interval_ms: float = DEFAULT_INTERVAL_MS) -> None:
        self.interval_ms = float(interval_ms)
        self._last_ms: float | None = None

    def should_recompute(self, now_ms: float) -> bool:
        if self._last_ms is not None and now_ms - self._last_ms < self.interval_ms:
            return False
        self._last_ms = now_ms
        return True

    def reset(self) -> None:
        """Forget the last recompute so the next call is allowed through."""
        self._last_ms = None

    @property
    def last_ms(self) -> float | None:
        return self._last_ms
