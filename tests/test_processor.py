"""Tests for the error-diffusion processor."""

import numpy as np
import pytest

from dither_maker.core.palette import nearest, parse_hex_color, to_rgb8
from dither_maker.core.patterns import PatternName
from dither_maker.core.processor import (
    DEFAULT_SETTINGS,
    DitherSettings,
    ProcessedFrame,
    build_settings,
    diffuse,
    process_frame,
)
from dither_maker.core.reader import Frame

MONO = dict(color1="#000000", color2="#ffffff")


def _solid(width: int, height: int, color=(128, 128, 128), alpha: int = 255) -> np.ndarray:
    """Create a solid-color RGBA buffer."""
    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[:, :, :3] = color
    pixels[:, :, 3] = alpha
    return pixels


def _colors(pixels: np.ndarray) -> set[tuple[int, int, int]]:
    return {tuple(c) for c in pixels[:, :, :3].reshape(-1, 3).tolist()}


class TestSettings:
    def test_default_settings(self):
        s = DitherSettings()
        assert s.pattern == PatternName.FLOYD_STEINBERG
        assert s.color1 == "#050505"
        assert s.color2 == "#fafafa"
        assert s.pixelation == 2
        assert s.contrast == 1
        assert s.brightness == 1
        assert s.threshold == 1

    def test_block_size_floored(self):
        assert DitherSettings(pixelation=3.9).block_size == 3
        assert DitherSettings(pixelation=0.4).block_size == 1
        assert DitherSettings(pixelation=-5).block_size == 1
        assert DitherSettings(pixelation=float("nan")).block_size == 1

    def test_settings_are_frozen(self):
        with pytest.raises(AttributeError):
            DEFAULT_SETTINGS.pixelation = 4  # type: ignore[misc]


class TestBuildSettings:
    def test_merges_over_base(self):
        s = build_settings({"pattern": "stucki", "pixelation": 6, "color1": "#112233"})
        assert s.pattern == "stucki"
        assert s.pixelation == 6
        assert s.color1 == "#112233"
        assert s.color2 == DEFAULT_SETTINGS.color2

    def test_ignores_wrong_types(self):
        s = build_settings({"contrast": "high", "color2": 5, "threshold": True})
        assert s == DEFAULT_SETTINGS

    def test_custom_base(self):
        base = DitherSettings(brightness=2.0)
        merged = build_settings({"threshold": 0.5}, base)
        assert merged.brightness == 2.0
        assert merged.threshold == 0.5


class TestDiffuse:
    def test_output_only_palette_colors(self):
        rng = np.random.default_rng(0)
        pixels = rng.integers(0, 256, size=(24, 32, 4), dtype=np.uint8)
        settings = DitherSettings(pixelation=1, **MONO)
        out = diffuse(pixels, 32, 24, settings)
        assert out.shape == (24, 32, 4)
        assert _colors(out) <= {(0, 0, 0), (255, 255, 255)}

    def test_does_not_mutate_source(self):
        pixels = _solid(8, 8)
        before = pixels.copy()
        diffuse(pixels, 8, 8, DitherSettings(**MONO))
        assert np.array_equal(pixels, before)

    def test_alpha_preserved(self):
        pixels = _solid(6, 4, alpha=77)
        out = diffuse(pixels, 6, 4, DitherSettings(**MONO))
        assert (out[:, :, 3] == 77).all()

    def test_rgb_input_promoted_to_rgba(self):
        pixels = np.full((4, 4, 3), 200, dtype=np.uint8)
        out = diffuse(pixels, 4, 4, DitherSettings(**MONO))
        assert out.shape == (4, 4, 4)
        assert (out[:, :, 3] == 255).all()

    def test_requantizing_output_is_stable(self):
        rng = np.random.default_rng(7)
        pixels = rng.integers(0, 256, size=(20, 20, 4), dtype=np.uint8)
        settings = DitherSettings(pixelation=1, color1="#1e3a8a", color2="#fde68a")
        out = diffuse(pixels, 20, 20, settings)
        palette = settings.palette
        for r, g, b in out[:, :, :3].reshape(-1, 3).tolist():
            color = (r / 255, g / 255, b / 255)
            assert to_rgb8(nearest(color, palette)) == (r, g, b)

    @pytest.mark.parametrize("threshold", [0.0, 1.0, 3.5])
    def test_uniform_color1_stays_color1(self, threshold):
        settings = DitherSettings(color1="#336699", color2="#ffcc00", threshold=threshold)
        pixels = _solid(16, 12, color=(0x33, 0x66, 0x99))
        out = diffuse(pixels, 16, 12, settings)
        assert _colors(out) == {(0x33, 0x66, 0x99)}

    def test_mid_gray_floyd_steinberg_is_balanced(self):
        settings = DitherSettings(pattern=PatternName.FLOYD_STEINBERG, pixelation=1, **MONO)
        pixels = _solid(64, 64, color=(128, 128, 128))
        out = diffuse(pixels, 64, 64, settings)
        rgb = out[:, :, :3].reshape(-1, 3)
        white = int((rgb == 255).all(axis=1).sum())
        black = int((rgb == 0).all(axis=1).sum())
        assert white + black == 64 * 64
        assert abs(white / (64 * 64) - 0.5) <= 0.1
        assert abs(black / (64 * 64) - 0.5) <= 0.1

    @pytest.mark.parametrize("pattern", list(PatternName))
    def test_every_pattern_dithers_gray(self, pattern):
        settings = DitherSettings(pattern=pattern, pixelation=1, **MONO)
        out = diffuse(_solid(32, 32), 32, 32, settings)
        assert _colors(out) == {(0, 0, 0), (255, 255, 255)}

    def test_blocks_are_uniform(self):
        rng = np.random.default_rng(3)
        pixels = rng.integers(0, 256, size=(12, 12, 4), dtype=np.uint8)
        out = diffuse(pixels, 12, 12, DitherSettings(pixelation=4, **MONO))
        for by in range(0, 12, 4):
            for bx in range(0, 12, 4):
                block = out[by : by + 4, bx : bx + 4, :3].reshape(-1, 3)
                assert (block == block[0]).all()

    def test_edge_blocks_truncated(self):
        out = diffuse(_solid(5, 3), 5, 3, DitherSettings(pixelation=4, **MONO))
        assert out.shape == (3, 5, 4)
        assert _colors(out) <= {(0, 0, 0), (255, 255, 255)}

    def test_block_samples_center_pixel(self):
        # Only the pixel at (2, 2) of the 4x4 block is white.
        pixels = _solid(4, 4, color=(0, 0, 0))
        pixels[2, 2, :3] = 255
        out = diffuse(pixels, 4, 4, DitherSettings(pixelation=4, **MONO))
        assert _colors(out) == {(255, 255, 255)}

    def test_contrast_and_brightness(self):
        pixels = _solid(4, 4, color=(100, 100, 100))
        dark = diffuse(pixels, 4, 4, DitherSettings(pixelation=4, **MONO))
        assert _colors(dark) == {(0, 0, 0)}
        bright = diffuse(pixels, 4, 4, DitherSettings(pixelation=4, brightness=2.0, **MONO))
        assert _colors(bright) == {(255, 255, 255)}
        flat = diffuse(pixels, 4, 4, DitherSettings(pixelation=4, contrast=0.0, **MONO))
        # Zero contrast puts every channel at exactly 0.5: a tie, first entry wins.
        assert _colors(flat) == {(0, 0, 0)}

    def test_threshold_is_not_clamped(self):
        # 0.4 quantizes to black and pushes 7/16 of its error right.
        # 0.302 + 0.4 * 7/16 stays below 0.5; with threshold 2 it crosses it.
        pixels = np.array([[[102, 102, 102, 255], [77, 77, 77, 255]]], dtype=np.uint8)
        normal = diffuse(pixels, 2, 1, DitherSettings(pixelation=1, threshold=1.0, **MONO))
        amplified = diffuse(pixels, 2, 1, DitherSettings(pixelation=1, threshold=2.0, **MONO))
        assert tuple(normal[0, 1, :3]) == (0, 0, 0)
        assert tuple(amplified[0, 1, :3]) == (255, 255, 255)

    def test_zero_threshold_disables_diffusion(self):
        settings = DitherSettings(pixelation=1, threshold=0.0, **MONO)
        out = diffuse(_solid(16, 16), 16, 16, settings)
        assert _colors(out) == {(255, 255, 255)}


class TestNoOp:
    def test_zero_width_returns_source(self):
        pixels = np.zeros((0, 0, 4), dtype=np.uint8)
        assert diffuse(pixels, 0, 0, DEFAULT_SETTINGS) is pixels

    def test_missing_pixels_returns_source(self):
        assert diffuse(None, 10, 10, DEFAULT_SETTINGS) is None

    def test_shape_mismatch_returns_source(self):
        pixels = _solid(4, 4)
        assert diffuse(pixels, 8, 8, DEFAULT_SETTINGS) is pixels

    def test_unknown_pattern_returns_source(self):
        pixels = _solid(4, 4)
        assert diffuse(pixels, 4, 4, DitherSettings(pattern="bayer")) is pixels

    def test_unparsable_colors_use_black(self):
        pixels = _solid(4, 4, color=(250, 250, 250))
        out = diffuse(pixels, 4, 4, DitherSettings(color1="oops", color2="#ffffff", pixelation=4))
        assert _colors(out) == {(255, 255, 255)}
        assert parse_hex_color("oops") == (0.0, 0.0, 0.0)


class TestProcessFrame:
    def test_basic_processing(self):
        frame = Frame(pixels=_solid(10, 6), duration_ms=40, index=3)
        result = process_frame(frame, DitherSettings(**MONO))
        assert isinstance(result, ProcessedFrame)
        assert (result.width, result.height) == (10, 6)
        assert result.pixels.shape == (6, 10, 4)
        assert result.index == 3
        assert result.duration_ms == 40
        assert result.dithered is True

    def test_unknown_pattern_marks_not_dithered(self):
        frame = Frame(pixels=_solid(4, 4), duration_ms=0, index=0)
        result = process_frame(frame, DitherSettings(pattern="unknown"))
        assert result.dithered is False
        assert result.pixels is frame.pixels
