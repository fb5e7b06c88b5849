"""Save presented frames as PNG, animated GIF or MP4.

GIFs and PNGs are written with Pillow, MP4 via OpenCV VideoWriter.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterator

import cv2
import numpy as np
from PIL import Image

from dither_maker.core.processor import ProcessedFrame

IMAGE_SUFFIXES = (".png", ".bmp", ".webp")
VIDEO_SUFFIXES = (".mp4", ".avi", ".mov")


def frame_to_image(frame: ProcessedFrame) -> Image.Image:
    """Wrap a frame's RGBA buffer in a Pillow image."""
    return Image.fromarray(np.ascontiguousarray(frame.pixels))


def save_image(frames: Iterator[ProcessedFrame], output_path: Path) -> None:
    """Save the first frame as a still image."""
    for frame in frames:
        frame_to_image(frame).save(str(output_path))
        return
    raise ValueError("No frames to save")


def save_gif(
    frames: Iterator[ProcessedFrame],
    output_path: Path,
    on_progress: Callable[[int, int], None] | None = None,
    total_frames: int = 0,
) -> None:
    """Save frames as an animated GIF.

    Args:
        frames: iterator of ProcessedFrame objects.
        output_path: path to write the GIF.
        on_progress: callback(current_frame, total_frames).
        total_frames: total frame count for progress reporting.
    """
    images: list[Image.Image] = []
    durations: list[int] = []

    for i, frame in enumerate(frames):
        images.append(frame_to_image(frame).convert("RGB"))
        durations.append(max(frame.duration_ms, 10))
        if on_progress:
            on_progress(i + 1, total_frames)

    if not images:
        raise ValueError("No frames to save")

    # Normalize all frames to the same size (max dimensions)
    max_w = max(img.width for img in images)
    max_h = max(img.height for img in images)
    normalized = []
    for img in images:
        if img.size != (max_w, max_h):
            canvas = Image.new("RGB", (max_w, max_h), (0, 0, 0))
            canvas.paste(img, (0, 0))
            normalized.append(canvas)
        else:
            normalized.append(img)

    normalized[0].save(
        str(output_path),
        save_all=True,
        append_images=normalized[1:],
        duration=durations,
        loop=0,
        disposal=2,
    )


def save_mp4(
    frames: Iterator[ProcessedFrame],
    output_path: Path,
    fps: float = 24.0,
    on_progress: Callable[[int, int], None] | None = None,
    total_frames: int = 0,
) -> None:
    """Save frames as an MP4 video. Frames of a different size are padded/cropped."""
    writer: cv2.VideoWriter | None = None
    size: tuple[int, int] | None = None

    try:
        for i, frame in enumerate(frames):
            bgr = cv2.cvtColor(np.ascontiguousarray(frame.pixels), cv2.COLOR_RGBA2BGR)

            if writer is None:
                h, w = bgr.shape[:2]
                size = (w, h)
                fourcc = cv2.VideoWriter_fourcc(*"mp4v")
                writer = cv2.VideoWriter(str(output_path), fourcc, fps, size)
            elif size is not None and (bgr.shape[1], bgr.shape[0]) != size:
                canvas = np.zeros((size[1], size[0], 3), dtype=np.uint8)
                h = min(size[1], bgr.shape[0])
                w = min(size[0], bgr.shape[1])
                canvas[:h, :w] = bgr[:h, :w]
                bgr = canvas

            writer.write(bgr)
            if on_progress:
                on_progress(i + 1, total_frames)
    finally:
        if writer is not None:
            writer.release()

    if writer is None:
        raise ValueError("No frames to save")


def save_output(
    frames: Iterator[ProcessedFrame],
    output_path: Path,
    fps: float = 24.0,
    on_progress: Callable[[int, int], None] | None = None,
    total_frames: int = 0,
) -> None:
    """Save frames in the format determined by the output file extension."""
    suffix = output_path.suffix.lower()
    if suffix == ".gif":
        save_gif(frames, output_path, on_progress, total_frames)
    elif suffix in VIDEO_SUFFIXES:
        save_mp4(frames, output_path, fps, on_progress, total_frames)
    elif suffix in IMAGE_SUFFIXES:
        save_image(frames, output_path)
    else:
        raise ValueError(f"Unsupported output format: {suffix}")
