"""Shared fixtures for the pipeline tests."""

from __future__ import annotations

import logging
from typing import Callable

import numpy as np
import pytest

from src.pipeline.raster import RasterImage


@pytest.fixture(autouse=True)
def _reset_pipeline_logger():
    """Drop handlers installed by ``setup_logger`` (the CLI calls it)."""

    yield
    logger = logging.getLogger("src.pipeline")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def noise_raster() -> Callable[..., RasterImage]:
    """Factory for opaque random RGBA rasters, seeded for repeatability."""

    def make(width: int, height: int, seed: int = 0) -> RasterImage:
        rng = np.random.default_rng(seed)
        pixels = rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)
        pixels[..., 3] = 255
        return RasterImage.from_array(pixels)

    return make


@pytest.fixture
def solid_raster() -> Callable[..., RasterImage]:
    def make(width: int, height: int, color=(200, 100, 50, 255)) -> RasterImage:
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[...] = color
        return RasterImage.from_array(pixels)

    return make
