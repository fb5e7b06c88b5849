"""Textual preview host for the dithering engine.

The app owns one `DitherRenderer` and drives it with a `RenderLoop`
scheduled on Textual's event loop; the diffusion itself runs on a worker
thread. The preview widget mirrors the output surface.
"""

from __future__ import annotations

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.widgets import Footer, Header, Static

from dither_maker.core.patterns import PatternName, is_known_pattern, resolve_pattern
from dither_maker.core.processor import (
    DEFAULT_SETTINGS,
    DitherSettings,
    ProcessedFrame,
    build_settings,
)
from dither_maker.core.reader import open_source
from dither_maker.render.backend import BackendMode
from dither_maker.render.loop import DitherRenderer, RenderLoop
from dither_maker.tui.preview import SurfacePreview

_PATTERNS = list(PatternName)


class DitherPreviewApp(App):
    """Live preview of a dithered image or video."""

    TITLE = "dither_maker"
    CSS = """
    #preview-container {
        height: 1fr;
        width: 1fr;
    }

    #status-bar {
        height: 1;
        background: $panel;
        padding: 0 1;
        color: $text-muted;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit", priority=True),
        Binding("p", "next_pattern", "Pattern", priority=True),
        Binding("plus,equals_sign", "pixelation(1)", "Bigger blocks"),
        Binding("minus", "pixelation(-1)", "Smaller blocks"),
        Binding("x", "swap_colors", "Swap colours"),
    ]

    def __init__(
        self,
        input_path: str,
        settings: DitherSettings = DEFAULT_SETTINGS,
        backend_mode: BackendMode | str | None = None,
        fps: float = 60.0,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self._input_path = input_path
        self._settings = settings
        self._backend_mode = backend_mode
        self._fps = fps
        self._loop: RenderLoop | None = None
        self._source = None

    def compose(self) -> ComposeResult:
        yield Header()
        with Vertical(id="preview-container"):
            yield SurfacePreview()
        yield Static("Loading...", id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        try:
            self._source = open_source(self._input_path)
        except (ValueError, IOError, FileNotFoundError) as e:
            self._update_status(f"Error: {e}")
            return
        renderer = DitherRenderer(backend_mode=self._backend_mode)
        self._loop = RenderLoop(renderer, self._source, lambda: self._settings, fps=self._fps)
        self._loop.on_frame = self._on_frame
        self._loop.on_error = self._on_tick_error
        self._loop.start()
        self.title = f"dither_maker - {self._input_path}"
        self._update_status(self._describe())
        self.run_worker(self._await_backend(), exclusive=True, group="probe")

    async def _await_backend(self) -> None:
        if self._loop is None:
            return
        await self._loop.wait_probe()
        if self._loop is not None:
            self._update_status(self._describe())

    def on_unmount(self) -> None:
        if self._loop is not None:
            self._loop.close()
            self._loop = None
        if self._source is not None:
            self._source.close()
            self._source = None

    def _on_frame(self, frame: ProcessedFrame) -> None:
        if self._loop is None:
            return
        surface = self._loop.renderer.surface
        self.query_one(SurfacePreview).show(surface.image, surface.revision)

    def _on_tick_error(self, error: Exception) -> None:
        self._update_status(f"Error: {error}")

    def _describe(self) -> str:
        s = self._settings
        backend = self._loop.renderer.backend_kind.value if self._loop else "none"
        pattern = resolve_pattern(s.pattern).value if is_known_pattern(s.pattern) else s.pattern
        return (
            f"{pattern} | {s.color1} / {s.color2} | block {s.block_size} | "
            f"contrast {s.contrast:g} | brightness {s.brightness:g} | "
            f"threshold {s.threshold:g} | backend {backend}"
        )

    def _update_status(self, text: str) -> None:
        self.query_one("#status-bar", Static).update(text)

    def _apply(self, settings: DitherSettings) -> None:
        self._settings = settings
        self._update_status(self._describe())

    # --- Actions ---

    def action_next_pattern(self) -> None:
        pattern = self._settings.pattern
        current = _PATTERNS.index(resolve_pattern(pattern)) if is_known_pattern(pattern) else -1
        self._apply(
            build_settings({"pattern": _PATTERNS[(current + 1) % len(_PATTERNS)]}, self._settings)
        )

    def action_pixelation(self, delta: int) -> None:
        size = max(1, self._settings.block_size + delta)
        self._apply(build_settings({"pixelation": size}, self._settings))

    def action_swap_colors(self) -> None:
        s = self._settings
        self._apply(build_settings({"color1": s.color2, "color2": s.color1}, s))


def run_app(
    input_path: str,
    settings: DitherSettings = DEFAULT_SETTINGS,
    backend_mode: BackendMode | str | None = None,
    fps: float = 60.0,
) -> None:
    """Launch the preview application."""
    app = DitherPreviewApp(input_path, settings=settings, backend_mode=backend_mode, fps=fps)
    app.run()
