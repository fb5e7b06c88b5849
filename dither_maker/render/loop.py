"""Per-tick orchestration of the dithering engine.

`DitherRenderer` is one engine instance: it owns the output surface
binding, the governor, the last processed frame and the backend
negotiator. `RenderLoop` schedules its ticks on an asyncio event loop.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Callable

from dither_maker.core.governor import FrameRateGovernor
from dither_maker.core.processor import DitherSettings, ProcessedFrame, process_frame
from dither_maker.core.reader import Frame, FrameSource
from dither_maker.render.backend import BackendKind, BackendMode, BackendNegotiator, Prober
from dither_maker.render.surface import OutputSurface

_LOG = logging.getLogger("dither_maker.render")


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class DitherRenderer:
    """One independently constructible and releasable engine instance."""

    def __init__(
        self,
        surface: OutputSurface | None = None,
        *,
        backend_mode: BackendMode | str | None = None,
        prober: Prober | None = None,
        governor: FrameRateGovernor | None = None,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> None:
        self.surface = surface or OutputSurface()
        self.governor = governor or FrameRateGovernor()
        self._clock = clock
        self._negotiator = BackendNegotiator(self.surface, mode=backend_mode, prober=prober)
        self._current: ProcessedFrame | None = None
        self._source_size: tuple[int, int] | None = None
        self._released = False
        # Serializes ticks (run on a worker thread) against release().
        self._lock = threading.Lock()
        self.frames_processed = 0
        self.frames_presented = 0

    def __enter__(self) -> "DitherRenderer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    @property
    def backend_kind(self) -> BackendKind:
        return self._negotiator.state

    @property
    def negotiator(self) -> BackendNegotiator:
        return self._negotiator

    @property
    def current(self) -> ProcessedFrame | None:
        """Last processed frame, reused while the governor holds recomputation."""
        return self._current

    @property
    def released(self) -> bool:
        return self._released

    async def initialize(self) -> BackendKind:
        """Negotiate the presentation backend. Ticks may run before this finishes."""
        return await self._negotiator.negotiate()

    def _sync_size(self, frame: Frame) -> None:
        size = (frame.width, frame.height)
        if size == self._source_size:
            return
        if self._source_size is not None:
            _LOG.debug(
                "source_resized from=%sx%s to=%sx%s", *self._source_size, *size
            )
        self._source_size = size
        # A frame of the old size must not be shown or reused.
        self._current = None
        self.governor.reset()
        self.surface.resize(*size)

    def tick(self, source: FrameSource, settings: DitherSettings) -> ProcessedFrame | None:
        """Run one display refresh. Returns the frame that was presented, if any."""
        with self._lock:
            return self._tick(source, settings)

    def _tick(self, source: FrameSource, settings: DitherSettings) -> ProcessedFrame | None:
        if self._released:
            return None
        frame = source.current_frame()
        if frame is None or frame.width == 0 or frame.height == 0:
            # Not decoded yet; try again next tick.
            return None
        self._sync_size(frame)

        if self.governor.should_recompute(self._clock()):
            self._current = process_frame(frame, settings)
            self.frames_processed += 1
        shown = self._current
        if shown is None:
            shown = ProcessedFrame(
                pixels=frame.pixels,
                width=frame.width,
                height=frame.height,
                index=frame.index,
                duration_ms=frame.duration_ms,
                dithered=False,
            )
        self._negotiator.present(shown)
        self.frames_presented += 1
        return shown

    def release(self) -> None:
        """Release backend resources now. Later ticks do nothing.

        Waits for a tick already running on another thread to finish.
        """
        with self._lock:
            if self._released:
                return
            self._released = True
            self._current = None
            self._negotiator.release()


class RenderLoop:
    """Calls `renderer.tick` once per refresh interval.

    Ticks run on a worker thread; `on_frame` and `on_error` are called back on
    the event loop that started the loop.
    """

    def __init__(
        self,
        renderer: DitherRenderer,
        source: FrameSource,
        settings: Callable[[], DitherSettings],
        fps: float = 60.0,
    ) -> None:
        self.renderer = renderer
        self.source = source
        self._settings = settings
        self.interval = 1.0 / max(fps, 1.0)
        self._task: asyncio.Task[None] | None = None
        self._probe: asyncio.Task[BackendKind] | None = None
        self.on_frame: Callable[[ProcessedFrame], None] | None = None
        self.on_error: Callable[[Exception], None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running or self.renderer.released:
            return
        loop = asyncio.get_running_loop()
        self._probe = loop.create_task(self.renderer.initialize())
        self._task = loop.create_task(self._run())

    async def _run(self) -> None:
        while not self.renderer.released:
            started = time.monotonic()
            try:
                # Diffusion is CPU bound; awaiting the thread keeps one tick in flight.
                presented = await asyncio.to_thread(
                    self.renderer.tick, self.source, self._settings()
                )
                if presented is not None and self.on_frame is not None:
                    self.on_frame(presented)
            except Exception as exc:
                # A bad tick is retried on the next one.
                _LOG.warning("tick_failed error=%s: %s", exc.__class__.__name__, exc)
                if self.on_error is not None:
                    self.on_error(exc)
            elapsed = time.monotonic() - started
            await asyncio.sleep(max(0.0, self.interval - elapsed))

    def stop(self) -> None:
        """Cancel the scheduled tick. The probe, if still running, is left to finish."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def wait_probe(self) -> BackendKind | None:
        if self._probe is None:
            return None
        return await self._probe

    def close(self) -> None:
        """Stop ticking and release the renderer."""
        self.stop()
        self.renderer.release()
