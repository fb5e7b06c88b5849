"""Tests for the output writer."""

import numpy as np
import pytest
from PIL import Image

from dither_maker.core.processor import DitherSettings, ProcessedFrame, process_frame
from dither_maker.core.reader import Frame
from dither_maker.core.writer import frame_to_image, save_gif, save_image, save_output


def _make_processed_frame(width=20, height=10, index=0, color=(128, 128, 128)):
    """Create a test ProcessedFrame."""
    raw = Frame.from_image(Image.new("RGB", (width, height), color), duration_ms=100, index=index)
    return process_frame(raw, DitherSettings(color1="#000000", color2="#ff0000"))


class TestFrameToImage:
    def test_produces_rgba_image(self):
        img = frame_to_image(_make_processed_frame())
        assert img.mode == "RGBA"
        assert img.size == (20, 10)


class TestSaveImage:
    def test_saves_first_frame(self, tmp_path):
        output = tmp_path / "still.png"
        save_image(iter([_make_processed_frame()]), output)
        assert Image.open(output).size == (20, 10)

    def test_empty_frames_raises(self, tmp_path):
        with pytest.raises(ValueError, match="No frames"):
            save_image(iter([]), tmp_path / "empty.png")


class TestSaveGif:
    def test_save_single_frame_gif(self, tmp_path):
        output = tmp_path / "test_output.gif"
        save_gif(iter([_make_processed_frame()]), output, total_frames=1)
        img = Image.open(str(output))
        assert img.format == "GIF"

    def test_save_multi_frame_gif(self, tmp_path):
        # Different colors so frames aren't identical (Pillow deduplicates)
        colors = [(255, 255, 255), (0, 0, 0), (128, 128, 128)]
        frames = [_make_processed_frame(index=i, color=c) for i, c in enumerate(colors)]
        output = tmp_path / "test_multi.gif"

        save_gif(iter(frames), output, total_frames=3)

        img = Image.open(str(output))
        assert img.format == "GIF"
        assert getattr(img, "n_frames", 1) == 3

    def test_mixed_sizes_are_padded(self, tmp_path):
        frames = [
            _make_processed_frame(width=10, height=10, color=(255, 255, 255)),
            _make_processed_frame(width=20, height=6, color=(0, 0, 0)),
        ]
        output = tmp_path / "mixed.gif"
        save_gif(iter(frames), output)
        assert Image.open(str(output)).size == (20, 10)

    def test_progress_callback(self, tmp_path):
        frames = [_make_processed_frame(index=i) for i in range(3)]
        progress = []

        save_gif(
            iter(frames),
            tmp_path / "test_progress.gif",
            total_frames=3,
            on_progress=lambda current, total: progress.append((current, total)),
        )

        assert len(progress) == 3
        assert progress[-1] == (3, 3)

    def test_empty_frames_raises(self, tmp_path):
        with pytest.raises(ValueError, match="No frames"):
            save_gif(iter([]), tmp_path / "empty.gif")


class TestSaveOutput:
    def test_dispatch_png(self, tmp_path):
        output = tmp_path / "out.png"
        save_output(iter([_make_processed_frame()]), output)
        assert output.exists()

    def test_unsupported_suffix(self, tmp_path):
        with pytest.raises(ValueError, match="Unsupported"):
            save_output(iter([_make_processed_frame()]), tmp_path / "out.txt")

    def test_pixels_survive_png(self, tmp_path):
        frame = ProcessedFrame(
            pixels=np.full((4, 4, 4), [0, 255, 0, 255], dtype=np.uint8), width=4, height=4
        )
        output = tmp_path / "green.png"
        save_output(iter([frame]), output)
        assert Image.open(output).convert("RGB").getpixel((1, 1)) == (0, 255, 0)
