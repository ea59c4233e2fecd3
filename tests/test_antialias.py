"""Tests for the Gaussian anti-alias pre-filter."""

from __future__ import annotations

import numpy as np
import pytest

from src.pipeline.antialias import (
    blur_radius_for_scale,
    gaussian_blur,
    gaussian_kernel,
    should_antialias,
)
from src.pipeline.raster import RasterImage


def test_kernel_is_normalized_and_symmetric() -> None:
    kernel = gaussian_kernel(7, 1.0)
    assert kernel.sum() == pytest.approx(1.0)
    np.testing.assert_allclose(kernel, kernel[::-1])
    assert kernel.argmax() == 3


def test_small_radius_is_noop(noise_raster) -> None:
    raster = noise_raster(16, 16)
    assert gaussian_blur(raster, 0.4) is raster


def test_blur_keeps_size_and_uniform_color(solid_raster) -> None:
    raster = solid_raster(20, 12)
    blurred = gaussian_blur(raster, 1.5)
    assert blurred.size == (20, 12)
    assert blurred.data == raster.data


def test_blur_spreads_a_single_pixel() -> None:
    pixels = np.zeros((9, 9, 4), dtype=np.uint8)
    pixels[..., 3] = 255
    pixels[4, 4, :3] = 255
    blurred = gaussian_blur(RasterImage.from_array(pixels), 1.0).to_array()
    assert blurred[4, 4, 0] < 255
    assert blurred[4, 5, 0] > 0
    assert blurred[5, 4, 0] > 0
    # Symmetric kernel, symmetric result
    assert blurred[4, 3, 0] == blurred[4, 5, 0]
    # Opaque stays opaque
    assert (blurred[..., 3] == 255).all()


def test_blur_clamps_at_edges(solid_raster) -> None:
    # A uniform image would darken at the border if samples wrapped or were zero
    blurred = gaussian_blur(solid_raster(5, 5, (10, 20, 30, 255)), 2.0).to_array()
    assert (blurred[0, 0] == [10, 20, 30, 255]).all()


@pytest.mark.parametrize(
    "scale,expected",
    [(0.5, 0.5), (0.25, 1.5), (1.0, 0.0), (2.0, 0.0)],
)
def test_blur_radius_for_scale(scale: float, expected: float) -> None:
    assert blur_radius_for_scale(scale) == pytest.approx(expected)


def test_should_antialias_threshold() -> None:
    assert should_antialias(0.5)
    assert not should_antialias(0.67)
    assert not should_antialias(0.9)
