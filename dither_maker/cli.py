"""Command-line interface for dither_maker.

Supports an interactive preview and a headless/JSON convert mode.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dither_maker.core.patterns import PatternName
from dither_maker.core.processor import DEFAULT_SETTINGS, DitherSettings
from dither_maker.core.reader import Frame
from dither_maker.render.backend import BackendMode


def _add_settings_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("input", help="Input image, GIF or video path (or HTTP(S) URL).")
    parser.add_argument(
        "--pattern",
        choices=[p.value for p in PatternName],
        default=PatternName.FLOYD_STEINBERG.value,
        help="Error diffusion kernel (default: floyd-steinberg).",
    )
    parser.add_argument(
        "--color1",
        default=DEFAULT_SETTINGS.color1,
        help=f"First palette colour as #rrggbb (default: {DEFAULT_SETTINGS.color1}).",
    )
    parser.add_argument(
        "--color2",
        default=DEFAULT_SETTINGS.color2,
        help=f"Second palette colour as #rrggbb (default: {DEFAULT_SETTINGS.color2}).",
    )
    parser.add_argument(
        "--pixelation",
        type=float,
        default=DEFAULT_SETTINGS.pixelation,
        help="Block size in source pixels, floored to >= 1 (default: 2).",
    )
    parser.add_argument(
        "--contrast",
        type=float,
        default=DEFAULT_SETTINGS.contrast,
        help="Contrast multiplier around mid-gray (default: 1.0).",
    )
    parser.add_argument(
        "--brightness",
        type=float,
        default=DEFAULT_SETTINGS.brightness,
        help="Brightness multiplier (default: 1.0).",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=DEFAULT_SETTINGS.threshold,
        help="Scale on diffused error; values above 1 amplify it (default: 1.0).",
    )
    parser.add_argument(
        "--backend",
        choices=[m.value for m in BackendMode],
        default=None,
        help="Presentation backend (default: $DITHER_MAKER_BACKEND or auto).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Verbose logging and stack traces on error.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dither-maker",
        description="Error-diffusion dithering for images, GIFs and videos.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # --- convert subcommand ---
    convert = subparsers.add_parser(
        "convert",
        help="Dither a media file and save the result.",
    )
    _add_settings_arguments(convert)
    convert.add_argument(
        "-o", "--output",
        help="Output file path (.png, .gif, .mp4). Defaults to <input>_dithered.<ext>.",
    )
    convert.add_argument(
        "--interval-ms",
        type=float,
        default=0.0,
        help="Minimum media time between recomputes; 0 dithers every frame (default: 0).",
    )
    convert.add_argument(
        "--json",
        action="store_true",
        help="Output structured JSON (pipe-friendly).",
    )

    # --- preview subcommand ---
    preview = subparsers.add_parser(
        "preview",
        help="Live terminal preview.",
    )
    _add_settings_arguments(preview)
    preview.add_argument(
        "--fps",
        type=float,
        default=60.0,
        help="Display refresh rate of the preview (default: 60).",
    )

    return parser


def _settings_from_args(args: argparse.Namespace) -> DitherSettings:
    return DitherSettings(
        pattern=PatternName(args.pattern),
        color1=args.color1,
        color2=args.color2,
        pixelation=args.pixelation,
        contrast=args.contrast,
        brightness=args.brightness,
        threshold=args.threshold,
    )


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )


def _auto_output_path(input_path: Path, media_format: str) -> Path:
    """Generate default output path from input."""
    suffix = {"image": ".png", "gif": ".gif"}.get(media_format, ".mp4")
    return input_path.parent / f"{input_path.stem}_dithered{suffix}"


def _json_error(message: str, code: str) -> None:
    """Print JSON error to stderr and exit with code 1."""
    err = {"status": "error", "error": message, "code": code}
    print(json.dumps(err), file=sys.stderr)
    sys.exit(1)


def _fail(message: str, code: str, is_json: bool) -> None:
    if is_json:
        _json_error(message, code)
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


class _FrameFeed:
    """Frame source that hands out whatever frame it was last given."""

    def __init__(self) -> None:
        self.frame: Frame | None = None

    @property
    def width(self) -> int:
        return self.frame.width if self.frame is not None else 0

    @property
    def height(self) -> int:
        return self.frame.height if self.frame is not None else 0

    def current_frame(self) -> Frame | None:
        return self.frame


def _run_convert(args: argparse.Namespace) -> None:
    """Run the headless convert pipeline."""
    from dither_maker.core.governor import FrameRateGovernor
    from dither_maker.core.processor import ProcessedFrame
    from dither_maker.core.reader import is_url, open_source
    from dither_maker.core.writer import save_output
    from dither_maker.render.loop import DitherRenderer
    from dither_maker.render.surface import OutputSurface

    raw_input = args.input
    is_json = args.json
    is_remote = is_url(raw_input)

    if is_remote:
        if not is_json:
            print(f"Downloading {raw_input}...", file=sys.stderr)
        input_display = raw_input
    else:
        input_path = Path(raw_input).resolve()
        input_display = str(input_path)
        if not input_path.exists():
            _fail(f"File not found: {input_path}", "FILE_NOT_FOUND", is_json)

    try:
        source = open_source(raw_input)
    except (ValueError, IOError, FileNotFoundError) as e:
        _fail(str(e), "DOWNLOAD_FAILED" if is_remote else "INVALID_INPUT", is_json)

    info = source.info
    if args.output:
        output_path = Path(args.output).resolve()
    else:
        output_path = _auto_output_path(info.path, info.format)

    settings = _settings_from_args(args)
    media_ms = 0.0
    feed = _FrameFeed()
    renderer = DitherRenderer(
        OutputSurface(info.width, info.height),
        backend_mode=args.backend,
        governor=FrameRateGovernor(interval_ms=args.interval_ms),
        clock=lambda: media_ms,
    )
    backend = asyncio.run(renderer.initialize())
    frame_count = 0

    def presented_frames():
        nonlocal frame_count, media_ms
        for raw_frame in source.frames():
            feed.frame = raw_frame
            if renderer.tick(feed, settings) is None:
                continue
            media_ms += raw_frame.duration_ms
            frame_count += 1
            surface = renderer.surface
            yield ProcessedFrame(
                pixels=surface.to_array(),
                width=surface.width,
                height=surface.height,
                index=raw_frame.index,
                duration_ms=raw_frame.duration_ms,
            )
            if not is_json:
                print(
                    f"\rProcessing frame {frame_count}/{info.frame_count}...",
                    end="",
                    file=sys.stderr,
                )

    try:
        with renderer:
            save_output(presented_frames(), output_path, fps=info.fps or 24.0)
    except Exception as e:
        if args.debug:
            import traceback
            traceback.print_exc(file=sys.stderr)
        _fail(str(e), "PROCESSING_ERROR", is_json)
    finally:
        source.close()

    if not is_json:
        print(f"\nSaved to {output_path}", file=sys.stderr)
    else:
        result = {
            "status": "success",
            "input": input_display,
            "output": str(output_path),
            "backend": backend.value,
            "settings": {
                "pattern": args.pattern,
                "color1": settings.color1,
                "color2": settings.color2,
                "pixelation": settings.block_size,
                "contrast": settings.contrast,
                "brightness": settings.brightness,
                "threshold": settings.threshold,
            },
            "metadata": {
                "input_frames": info.frame_count,
                "output_frames": frame_count,
                "dithered_frames": renderer.frames_processed,
                "fps": info.fps,
                "input_format": info.format,
                "output_format": output_path.suffix.lstrip("."),
            },
        }
        print(json.dumps(result, indent=2))


def main() -> None:
    """Main entry point.

    Routing:
      dither-maker convert <file> [opts]  → headless convert
      dither-maker preview <file> [opts]  → terminal preview
      dither-maker <file>                 → terminal preview with defaults
    """
    raw_args = sys.argv[1:]
    if raw_args and raw_args[0] not in ("convert", "preview") and not raw_args[0].startswith("-"):
        raw_args = ["preview", *raw_args]

    parser = _build_parser()
    args = parser.parse_args(raw_args)
    if args.command is None:
        parser.print_help()
        sys.exit(1)

    _configure_logging(args.debug)
    if args.command == "convert":
        _run_convert(args)
    else:
        from dither_maker.app import run_app
        run_app(
            args.input,
            settings=_settings_from_args(args),
            backend_mode=args.backend,
            fps=args.fps,
        )


if __name__ == "__main__":
    main()
