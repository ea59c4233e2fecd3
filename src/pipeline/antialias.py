"""Gaussian anti-alias pre-filter.

A separable Gaussian blur applied before significant downscaling. It removes
spatial frequencies the destination grid cannot represent, which otherwise
show up as moire and ringing after resampling.
"""

from __future__ import annotations

import math

import numpy as np

from config import (
    GAUSSIAN_KERNEL_MULTIPLIER,
    MIN_BLUR_RADIUS,
    SIGNIFICANT_DOWNSAMPLE_THRESHOLD,
)
from .raster import RasterImage


def gaussian_kernel(size: int, sigma: float) -> np.ndarray:
    """Sampled, normalized 1-D Gaussian of odd ``size``."""

    center = size // 2
    offsets = np.arange(size, dtype=np.float64) - center
    kernel = np.exp(-(offsets * offsets) / (2.0 * sigma * sigma))
    return kernel / kernel.sum()


def _blur_axis(pixels: np.ndarray, kernel: np.ndarray, axis: int) -> np.ndarray:
    """Convolve along ``axis`` with edge clamping (no wraparound)."""

    length = pixels.shape[axis]
    center = len(kernel) // 2
    positions = np.arange(length)
    out = np.zeros(pixels.shape, dtype=np.float64)
    for k, weight in enumerate(kernel):
        idx = np.clip(positions + k - center, 0, length - 1)
        out += weight * np.take(pixels, idx, axis=axis)
    return out


def gaussian_blur(source: RasterImage, radius: float) -> RasterImage:
    """Blur ``source`` with sigma = ``radius``.

    Parameters
    ----------
    source
        Raster to filter.
    radius
        Gaussian sigma in pixels. Below ``MIN_BLUR_RADIUS`` the source is
        returned unchanged.

    Returns
    -------
    RasterImage
        A new, blurred raster of the same size.
    """

    if radius < MIN_BLUR_RADIUS:
        return source

    size = math.ceil(radius * GAUSSIAN_KERNEL_MULTIPLIER) * 2 + 1
    kernel = gaussian_kernel(size, radius)

    pixels = source.to_array().astype(np.float64)
    horizontal = _blur_axis(pixels, kernel, axis=1)
    blurred = _blur_axis(horizontal, kernel, axis=0)
    return RasterImage.from_array(blurred)


def blur_radius_for_scale(scale: float) -> float:
    """Blur radius for a downscale factor: ``(1/scale - 1) * 0.5``; 0 when upscaling."""

    if scale >= 1.0 or scale <= 0:
        return 0.0
    return max(0.0, (1.0 / scale - 1.0) * 0.5)


def should_antialias(
    scale: float, threshold: float = SIGNIFICANT_DOWNSAMPLE_THRESHOLD
) -> bool:
    return scale < threshold
