"""Presentation backend selection.

Two variants share the `PresentationBackend` contract: the wgpu path in
`dither_maker.render.accelerated` and the Pillow path below. The negotiator
probes once and keeps the answer for the life of the engine instance.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Protocol

from dither_maker.core.processor import ProcessedFrame
from dither_maker.render.surface import OutputSurface

_LOG = logging.getLogger("dither_maker.render")


class BackendKind(str, Enum):
    PROBING = "probing"
    ACCELERATED = "accelerated"
    FALLBACK = "fallback"


class BackendMode(str, Enum):
    """Which path the negotiator is allowed to pick."""

    AUTO = "auto"
    ACCELERATED = "accelerated"
    FALLBACK = "fallback"


class PresentationBackend(Protocol):
    """Private contract shared by both presentation paths."""

    kind: BackendKind

    def present(self, frame: ProcessedFrame, surface: OutputSurface) -> None:
        """Put the frame on the surface."""

    def release(self) -> None:
        """Release owned resources. Safe to call more than once."""


class BackendError(RuntimeError):
    """A backend failed to allocate or use one of its resources."""


class FallbackBackend:
    """Direct copy into the surface through a Pillow drawing context."""

    kind = BackendKind.FALLBACK

    def __init__(self) -> None:
        self._released = False

    def present(self, frame: ProcessedFrame, surface: OutputSurface) -> None:
        if self._released:
            return
        if surface.size != (frame.width, frame.height):
            surface.resize(frame.width, frame.height)
        surface.clear()
        surface.blit(frame.pixels)

    def release(self) -> None:
        self._released = True


@dataclass(frozen=True)
class ProbeResult:
    """Tagged outcome of the accelerated probe."""

    kind: BackendKind
    backend: PresentationBackend | None = None
    reason: str = ""

    @classmethod
    def fallback(cls, reason: str) -> "ProbeResult":
        return cls(kind=BackendKind.FALLBACK, reason=reason)


Prober = Callable[[OutputSurface], Awaitable[ProbeResult]]


def resolve_backend_mode(value: str | None = None) -> BackendMode:
    """Read the backend mode from `value` or DITHER_MAKER_BACKEND."""
    raw = value if value is not None else os.getenv("DITHER_MAKER_BACKEND", "auto")
    normalized = str(raw).strip().lower()
    if normalized in {"gpu", "wgpu", "accelerated"}:
        return BackendMode.ACCELERATED
    if normalized in {"cpu", "pillow", "software", "fallback"}:
        return BackendMode.FALLBACK
    if normalized not in {"", "auto"}:
        _LOG.warning("backend_mode_unknown value=%r using=auto", raw)
    return BackendMode.AUTO


async def _default_prober(surface: OutputSurface) -> ProbeResult:
    from dither_maker.render.accelerated import probe_accelerated

    return await probe_accelerated(surface)


class BackendNegotiator:
    """Owns the active backend and its lifetime.

    States: PROBING until `negotiate()` settles, then ACCELERATED or
    FALLBACK for good. Frames presented while probing go through the
    fallback path. An accelerated backend that fails mid-stream is
    released and replaced by the fallback; it is never probed again.
    """

    def __init__(
        self,
        surface: OutputSurface,
        mode: BackendMode | str | None = None,
        prober: Prober | None = None,
    ) -> None:
        self._surface = surface
        self._mode = mode if isinstance(mode, BackendMode) else resolve_backend_mode(mode)
        self._prober = prober or _default_prober
        self._fallback = FallbackBackend()
        self._accelerated: PresentationBackend | None = None
        self._state = BackendKind.PROBING
        self._released = False
        # (frame, backend, surface revision) of the last successful present.
        self._shown: tuple[object, object, int] = (None, None, -1)
        self.last_reason = ""

    @property
    def state(self) -> BackendKind:
        return self._state

    @property
    def released(self) -> bool:
        return self._released

    @property
    def active(self) -> PresentationBackend | None:
        if self._released:
            return None
        if self._state == BackendKind.ACCELERATED and self._accelerated is not None:
            return self._accelerated
        return self._fallback

    async def negotiate(self) -> BackendKind:
        """Run the probe once and settle on a backend."""
        if self._released or self._state != BackendKind.PROBING:
            return self._state
        if self._mode == BackendMode.FALLBACK:
            result = ProbeResult.fallback("forced by backend mode")
        else:
            try:
                result = await self._prober(self._surface)
            except Exception as exc:
                result = ProbeResult.fallback(f"{exc.__class__.__name__}: {exc}")

        if self._released:
            # The engine went away while the probe was in flight.
            if result.backend is not None:
                result.backend.release()
            _LOG.debug("backend_probe_discarded kind=%s", result.kind.value)
            return self._state

        self.last_reason = result.reason
        if result.kind == BackendKind.ACCELERATED and result.backend is not None:
            self._accelerated = result.backend
            self._state = BackendKind.ACCELERATED
            _LOG.info("backend_selected kind=accelerated")
        else:
            self._state = BackendKind.FALLBACK
            _LOG.info("backend_selected kind=fallback reason=%s", result.reason or "n/a")
        return self._state

    def present(self, frame: ProcessedFrame) -> None:
        backend = self.active
        if backend is None:
            return
        # A throttled tick hands back the same frame; the surface already shows it.
        shown_frame, shown_backend, shown_revision = self._shown
        if (
            frame is shown_frame
            and backend is shown_backend
            and shown_revision == self._surface.revision
        ):
            return
        try:
            backend.present(frame, self._surface)
            self._shown = (frame, backend, self._surface.revision)
        except Exception as exc:
            if backend is self._fallback:
                raise
            _LOG.warning(
                "backend_present_failed kind=accelerated error=%s: %s",
                exc.__class__.__name__,
                exc,
            )
            self._demote(f"{exc.__class__.__name__}: {exc}")
            self._fallback.present(frame, self._surface)
            self._shown = (frame, self._fallback, self._surface.revision)

    def _demote(self, reason: str) -> None:
        if self._accelerated is not None:
            self._accelerated.release()
            self._accelerated = None
        self._state = BackendKind.FALLBACK
        self.last_reason = reason

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        if self._accelerated is not None:
            self._accelerated.release()
            self._accelerated = None
        self._fallback.release()
        _LOG.debug("backend_released")
