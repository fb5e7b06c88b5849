"""Tests for the diffusion kernel table."""

import pytest

from dither_maker.core.patterns import (
    KERNELS,
    DiffusionKernel,
    PatternName,
    UnknownPatternError,
    get_kernel,
    is_known_pattern,
    resolve_pattern,
)


class TestKernelTable:
    def test_all_eight_patterns_registered(self):
        assert set(KERNELS) == set(PatternName)
        assert len(KERNELS) == 8

    @pytest.mark.parametrize(
        "name",
        [p for p in PatternName if p != PatternName.ATKINSON],
    )
    def test_weights_sum_to_divisor(self, name):
        kernel = get_kernel(name)
        assert sum(w for _, _, w in kernel.offsets) == kernel.divisor
        assert kernel.coverage == pytest.approx(1.0)

    def test_atkinson_diffuses_three_quarters(self):
        kernel = get_kernel(PatternName.ATKINSON)
        assert kernel.divisor == 8
        assert len(kernel.offsets) == 6
        assert kernel.coverage == pytest.approx(0.75)

    @pytest.mark.parametrize(
        "name,count,divisor",
        [
            (PatternName.FLOYD_STEINBERG, 4, 16),
            (PatternName.JARVIS_JUDICE_NINKE, 12, 48),
            (PatternName.STUCKI, 12, 42),
            (PatternName.ATKINSON, 6, 8),
            (PatternName.BURKES, 7, 32),
            (PatternName.SIERRA, 10, 32),
            (PatternName.TWO_ROW_SIERRA, 7, 16),
            (PatternName.SIERRA_LITE, 3, 4),
        ],
    )
    def test_offset_counts_and_divisors(self, name, count, divisor):
        kernel = get_kernel(name)
        assert len(kernel.offsets) == count
        assert kernel.divisor == divisor

    def test_floyd_steinberg_exact(self):
        kernel = get_kernel(PatternName.FLOYD_STEINBERG)
        assert kernel.offsets == ((1, 0, 7), (-1, 1, 3), (0, 1, 5), (1, 1, 1))

    def test_jarvis_spans_two_rows_and_columns(self):
        kernel = get_kernel(PatternName.JARVIS_JUDICE_NINKE)
        assert {dy for _, dy, _ in kernel.offsets} == {0, 1, 2}
        assert {dx for dx, _, _ in kernel.offsets} == {-2, -1, 0, 1, 2}

    @pytest.mark.parametrize("name", list(PatternName))
    def test_offsets_only_reach_unvisited_pixels(self, name):
        for dx, dy, _ in get_kernel(name).offsets:
            assert dy > 0 or (dy == 0 and dx > 0)

    def test_weights_are_normalized(self):
        kernel = DiffusionKernel(offsets=((1, 0, 2), (0, 1, 2)), divisor=4)
        assert kernel.weights() == [(1, 0, 0.5), (0, 1, 0.5)]


class TestLookup:
    def test_string_value(self):
        assert get_kernel("sierra-lite") is KERNELS[PatternName.SIERRA_LITE]

    def test_camel_case_alias(self):
        assert resolve_pattern("floydSteinberg") == PatternName.FLOYD_STEINBERG
        assert resolve_pattern("twoRowSierra") == PatternName.TWO_ROW_SIERRA

    def test_unknown_pattern_raises(self):
        with pytest.raises(UnknownPatternError, match="bayer"):
            get_kernel("bayer")

    def test_unknown_pattern_is_key_error(self):
        with pytest.raises(KeyError):
            get_kernel("nope")

    def test_is_known_pattern(self):
        assert is_known_pattern("stucki")
        assert is_known_pattern(PatternName.BURKES)
        assert not is_known_pattern("ordered")
