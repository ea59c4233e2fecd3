"""Tests for the byte-budget quality search."""

from __future__ import annotations

from typing import Callable, List

import pytest

from src.pipeline.optimize import (
    LOSSLESS,
    CancelToken,
    ConversionCancelled,
    EncodeError,
    format_file_size,
    optimize_for_byte_budget,
    parse_file_size_to_bytes,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeEncoder:
    """Returns ``size(quality)`` bytes and records every call."""

    def __init__(self, size: Callable[[int], int], lossless_size: int = 10_000) -> None:
        self.size = size
        self.lossless_size = lossless_size
        self.calls: List[object] = []

    def __call__(self, raster, quality) -> bytes:
        self.calls.append(quality)
        n = self.lossless_size if quality == LOSSLESS else self.size(quality)
        return b"\x00" * n


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


class TestOptimizeForByteBudget:
    def test_lossless_wins_when_it_fits(self, noise_raster) -> None:
        encode = FakeEncoder(lambda q: 10 * q, lossless_size=300)
        result = optimize_for_byte_budget(noise_raster(4, 4), 500, encode)
        assert result.quality == LOSSLESS
        assert result.met_target
        assert result.size == 300
        assert encode.calls == [LOSSLESS]

    def test_highest_fitting_quality(self, noise_raster) -> None:
        encode = FakeEncoder(lambda q: 100 + 9 * q)
        result = optimize_for_byte_budget(noise_raster(4, 4), 500, encode)
        assert result.quality == 44
        assert result.size == 496
        assert len(result.data) == 496
        assert result.met_target

    def test_first_fitting_quality_from_top_wins(self, noise_raster) -> None:
        # Size shrinking with quality: the scan starts at 100, which fits
        encode = FakeEncoder(lambda q: 1000 - 9 * q)
        result = optimize_for_byte_budget(noise_raster(4, 4), 500, encode)
        assert result.quality == 100
        assert result.size == 100
        assert encode.calls == [LOSSLESS, 100]

    def test_non_monotonic_sizes(self, noise_raster) -> None:
        sizes = {q: 900 for q in range(1, 101)}
        sizes[97] = 450
        sizes[60] = 400
        encode = FakeEncoder(sizes.__getitem__)
        result = optimize_for_byte_budget(noise_raster(4, 4), 500, encode)
        assert result.quality == 97

    def test_unreachable_target_falls_back_to_quality_one(self, noise_raster, caplog) -> None:
        encode = FakeEncoder(lambda q: 1000)
        result = optimize_for_byte_budget(noise_raster(4, 4), 10, encode)
        assert result.quality == 1
        assert not result.met_target
        assert result.size == 1000
        # Lossless plus 100 quality levels, quality 1 is not encoded twice
        assert len(encode.calls) == 101
        assert "Could not meet" in caplog.text

    def test_progress_reports_each_step(self, noise_raster) -> None:
        seen = []
        encode = FakeEncoder(lambda q: 100 + 9 * q)
        optimize_for_byte_budget(
            noise_raster(4, 4), 500, encode, on_progress=lambda *a: seen.append(a)
        )
        assert seen[0] == (100, 1, 100)
        assert seen[-1] == (44, 57, 100)
        assert len(seen) == 57

    def test_empty_output_raises(self, noise_raster) -> None:
        with pytest.raises(EncodeError):
            optimize_for_byte_budget(noise_raster(4, 4), 500, lambda r, q: b"")

    def test_empty_output_mid_scan_raises(self, noise_raster) -> None:
        encode = FakeEncoder(lambda q: 0 if q == 90 else 1000)
        with pytest.raises(EncodeError):
            optimize_for_byte_budget(noise_raster(4, 4), 500, encode)


class TestCancellation:
    def test_cancel_before_start(self, noise_raster) -> None:
        token = CancelToken()
        token.cancel()
        encode = FakeEncoder(lambda q: 1000)
        with pytest.raises(ConversionCancelled):
            optimize_for_byte_budget(noise_raster(4, 4), 10, encode, cancel=token)
        assert encode.calls == []

    def test_cancel_during_scan(self, noise_raster) -> None:
        token = CancelToken()
        encode = FakeEncoder(lambda q: 1000)

        def on_progress(quality, step, total):
            if step == 3:
                token.cancel()

        with pytest.raises(ConversionCancelled):
            optimize_for_byte_budget(
                noise_raster(4, 4), 10, encode, on_progress=on_progress, cancel=token
            )
        assert encode.calls == [LOSSLESS, 100, 99, 98]

    def test_token_state(self) -> None:
        token = CancelToken()
        assert not token.cancelled
        token.raise_if_cancelled()
        token.cancel()
        assert token.cancelled


# ---------------------------------------------------------------------------
# Size helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "size,unit,expected",
    [
        (10, "MB", 10 * 1024 * 1024),
        (1.5, "kb", 1536),
        ("2", "GB", 2 * 1024**3),
        (0.5, " MB ", 512 * 1024),
    ],
)
def test_parse_file_size_to_bytes(size, unit, expected) -> None:
    assert parse_file_size_to_bytes(size, unit) == expected


@pytest.mark.parametrize("size,unit", [(1, "TB"), (0, "MB"), (-1, "KB"), ("nan", "MB")])
def test_parse_file_size_rejects(size, unit) -> None:
    with pytest.raises(ValueError):
        parse_file_size_to_bytes(size, unit)


@pytest.mark.parametrize(
    "num_bytes,expected",
    [
        (0, "0 Bytes"),
        (512, "512 Bytes"),
        (1536, "1.5 KB"),
        (1024 * 1024, "1 MB"),
        (3 * 1024**3, "3 GB"),
    ],
)
def test_format_file_size(num_bytes, expected) -> None:
    assert format_file_size(num_bytes) == expected
