"""Tests for the conversion orchestrator."""

from __future__ import annotations

from typing import List

import numpy as np
import pytest

from src.pipeline.convert import (
    ConversionOrchestrator,
    ConversionState,
    ConversionStatus,
    DimensionConstraint,
    apply_dimension_constraints,
    parse_dimension,
)
from src.pipeline.geometry import CropRect, initialize_crop
from src.pipeline.optimize import LOSSLESS, CancelToken, ConversionCancelled, EncodeError
from src.pipeline.raster import RasterImage

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class RecordingEncoder:
    """Fake encoder: ``100 + 9 * quality`` bytes, lossless is large."""

    def __init__(self, lossless_size: int = 100_000) -> None:
        self.lossless_size = lossless_size
        self.rasters: List[RasterImage] = []
        self.qualities: List[object] = []

    def __call__(self, raster, quality) -> bytes:
        self.rasters.append(raster)
        self.qualities.append(quality)
        n = self.lossless_size if quality == LOSSLESS else 100 + 9 * int(quality)
        return b"\x00" * n


def _states(statuses: List[ConversionStatus]) -> List[ConversionState]:
    states: List[ConversionState] = []
    for status in statuses:
        if not states or states[-1] is not status.state:
            states.append(status.state)
    return states


def _orchestrator(encode=None):
    statuses: List[ConversionStatus] = []
    orchestrator = ConversionOrchestrator(
        encode or RecordingEncoder(), on_status=statuses.append
    )
    return orchestrator, statuses


# ---------------------------------------------------------------------------
# Dimension constraints
# ---------------------------------------------------------------------------


class TestDimensionConstraints:
    def test_max_width(self) -> None:
        assert apply_dimension_constraints(1920, 1080, DimensionConstraint(960)) == (960, 540)

    def test_width_then_height(self) -> None:
        constraint = DimensionConstraint(800, 400)
        assert apply_dimension_constraints(800, 450, constraint) == (711, 400)

    def test_never_enlarges(self) -> None:
        constraint = DimensionConstraint(4000, 4000)
        assert apply_dimension_constraints(400, 300, constraint) == (400, 300)

    def test_no_constraint(self) -> None:
        assert apply_dimension_constraints(400, 300, None) == (400, 300)
        assert apply_dimension_constraints(400, 300, DimensionConstraint()) == (400, 300)

    def test_result_is_at_least_one_pixel(self) -> None:
        assert apply_dimension_constraints(1000, 1, DimensionConstraint(10)) == (10, 1)

    def test_parse(self) -> None:
        assert DimensionConstraint.parse("960", "") == DimensionConstraint(960, None)


@pytest.mark.parametrize(
    "value,expected",
    [
        ("800", 800),
        (" 960 ", 960),
        ("12.7", 12),
        (1200, 1200),
        ("", None),
        (None, None),
        ("abc", None),
        ("0", None),
        ("-5", None),
        (0, None),
    ],
)
def test_parse_dimension(value, expected) -> None:
    assert parse_dimension(value) == expected


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class TestConvert:
    def test_resize_to_max_width(self, solid_raster) -> None:
        encode = RecordingEncoder()
        orchestrator, statuses = _orchestrator(encode)
        output = orchestrator.convert(
            solid_raster(1920, 1080),
            constraint=DimensionConstraint(max_width=960),
            method="nearest",
            quality=80,
        )
        assert (output.width, output.height) == (960, 540)
        assert encode.rasters[-1].size == (960, 540)
        assert output.quality == 80
        assert output.quality_tag == "q80"
        assert _states(statuses) == [
            ConversionState.CROPPING,
            ConversionState.RESAMPLING,
            ConversionState.ENCODING,
            ConversionState.COMPLETE,
            ConversionState.IDLE,
        ]

    def test_square_crop_of_landscape(self, solid_raster) -> None:
        raster = solid_raster(1920, 1080)
        encode = RecordingEncoder()
        orchestrator, statuses = _orchestrator(encode)
        output = orchestrator.convert(raster, crop=initialize_crop(1920, 1080, 1.0))
        assert (output.width, output.height) == (1080, 1080)
        assert ConversionState.RESAMPLING not in _states(statuses)
        assert encode.qualities == [95]

    def test_width_then_height_constraint(self, noise_raster) -> None:
        orchestrator, _ = _orchestrator()
        output = orchestrator.convert(
            noise_raster(800, 450),
            constraint=DimensionConstraint(800, 400),
            method="bicubic",
        )
        assert (output.width, output.height) == (711, 400)

    def test_crop_copies_region(self, noise_raster) -> None:
        raster = noise_raster(100, 100, seed=5)
        encode = RecordingEncoder()
        orchestrator, _ = _orchestrator(encode)
        orchestrator.convert(raster, crop=CropRect(10, 20, 30, 40))
        encoded = encode.rasters[-1].to_array()
        np.testing.assert_array_equal(encoded, raster.to_array()[20:60, 10:40])

    def test_lossless(self, noise_raster) -> None:
        encode = RecordingEncoder()
        orchestrator, _ = _orchestrator(encode)
        output = orchestrator.convert(noise_raster(8, 8), lossless=True, web_optimize=True)
        assert output.quality == LOSSLESS
        assert output.quality_tag == "qLL"
        assert encode.qualities == [LOSSLESS]

    def test_web_optimize(self, noise_raster) -> None:
        orchestrator, statuses = _orchestrator()
        output = orchestrator.convert(noise_raster(8, 8), web_optimize=True, target_bytes=500)
        assert output.quality == 44
        assert output.size == 496
        assert output.met_target
        assert _states(statuses) == [
            ConversionState.CROPPING,
            ConversionState.OPTIMIZING,
            ConversionState.ENCODING,
            ConversionState.COMPLETE,
            ConversionState.IDLE,
        ]
        messages = [s.message for s in statuses]
        assert "Testing lossless compression..." in messages
        assert "Testing quality 100... (1/100)" in messages
        assert "Quality 44 achieves 496 Bytes" in messages
        step = next(s for s in statuses if s.message.startswith("Testing quality 44"))
        assert step.progress == 56

    def test_unreachable_target_still_outputs(self, noise_raster) -> None:
        orchestrator, statuses = _orchestrator()
        output = orchestrator.convert(noise_raster(8, 8), web_optimize=True, target_bytes=50)
        assert output.quality == 1
        assert not output.met_target
        assert "Could not meet target size. Using quality 1." in [s.message for s in statuses]

    def test_returns_to_idle(self, noise_raster) -> None:
        orchestrator, statuses = _orchestrator()
        orchestrator.convert(noise_raster(8, 8))
        assert orchestrator.status.state is ConversionState.IDLE
        complete = [s for s in statuses if s.state is ConversionState.COMPLETE]
        assert complete[0].progress == 100
        assert complete[0].message.startswith("Done: 8x8 q95")


class TestFailures:
    def test_empty_encoder_output(self, noise_raster) -> None:
        orchestrator, statuses = _orchestrator(lambda r, q: b"")
        with pytest.raises(EncodeError):
            orchestrator.convert(noise_raster(8, 8))
        assert orchestrator.status.state is ConversionState.IDLE
        assert orchestrator.status.message.startswith("Conversion failed")
        failures = [s for s in statuses if s.message.startswith("Conversion failed")]
        assert len(failures) == 1

    def test_encoder_error_is_propagated(self, noise_raster) -> None:
        def encode(raster, quality):
            raise EncodeError("boom")

        orchestrator, _ = _orchestrator(encode)
        with pytest.raises(EncodeError, match="boom"):
            orchestrator.convert(noise_raster(8, 8), web_optimize=True, target_bytes=10)
        assert orchestrator.status.state is ConversionState.IDLE

    def test_usable_after_failure(self, noise_raster) -> None:
        calls = []

        def encode(raster, quality):
            calls.append(quality)
            return b"" if len(calls) == 1 else b"\x01" * 10

        orchestrator, _ = _orchestrator(encode)
        with pytest.raises(EncodeError):
            orchestrator.convert(noise_raster(8, 8))
        output = orchestrator.convert(noise_raster(8, 8))
        assert output.size == 10

    def test_cancelled(self, noise_raster) -> None:
        token = CancelToken()
        token.cancel()
        encode = RecordingEncoder()
        orchestrator, _ = _orchestrator(encode)
        with pytest.raises(ConversionCancelled):
            orchestrator.convert(noise_raster(8, 8), cancel=token)
        assert encode.qualities == []
        assert orchestrator.status.state is ConversionState.IDLE
        assert orchestrator.status.message == "Conversion cancelled"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"quality": 0},
            {"quality": 101},
            {"web_optimize": True},
            {"web_optimize": True, "target_bytes": 0},
        ],
    )
    def test_invalid_arguments(self, noise_raster, kwargs) -> None:
        orchestrator, statuses = _orchestrator()
        with pytest.raises(ValueError):
            orchestrator.convert(noise_raster(8, 8), **kwargs)
        assert statuses == []
