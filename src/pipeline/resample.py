"""Resampling kernels.

Implements nearest, bilinear, bicubic (Catmull-Rom) and Lanczos resampling on
RGBA rasters, plus a ``native`` method that hands off to a host scaling
primitive (Pillow by default). Smoothing kernels are preceded by a Gaussian
pre-filter when the downscale is significant.

All kernels are separable and evaluated one axis at a time: horizontal first,
then vertical. Source samples outside the raster are clamped to the edge.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional, Union

import numpy as np

from config import (
    BLUR_THRESHOLD,
    LANCZOS_WINDOW_SIZE,
    MIN_BLUR_RADIUS,
    SIGNIFICANT_DOWNSAMPLE_THRESHOLD,
)
from .antialias import blur_radius_for_scale, gaussian_blur, should_antialias
from .raster import RasterImage

logger = logging.getLogger(__name__)

NativeScaler = Callable[[RasterImage, int, int], RasterImage]


class ResamplingMethod(str, Enum):
    NEAREST = "nearest"
    BILINEAR = "bilinear"
    BICUBIC = "bicubic"
    LANCZOS = "lanczos"
    NATIVE = "native"


RESAMPLING_LABELS = {
    ResamplingMethod.BICUBIC: "Bicubic (Recommended)",
    ResamplingMethod.LANCZOS: "Lanczos (Highest Quality)",
    ResamplingMethod.BILINEAR: "Bilinear (Fast & Smooth)",
    ResamplingMethod.NEAREST: "Nearest Neighbor (Pixel Art)",
    ResamplingMethod.NATIVE: "Native (Pillow)",
}

# Methods that skip the anti-alias pre-filter. Nearest keeps hard edges
# (pixel art); native does its own filtering.
_NO_PREFILTER = {ResamplingMethod.NEAREST, ResamplingMethod.NATIVE}


def _apply_axis(
    pixels: np.ndarray, indices: np.ndarray, weights: np.ndarray, axis: int
) -> np.ndarray:
    """Weighted gather along ``axis``.

    ``indices`` and ``weights`` have shape ``(target_len, taps)``; the result
    has ``target_len`` entries along ``axis``.
    """

    shape = [1, 1, 1]
    shape[axis] = indices.shape[0]
    out = None
    for k in range(indices.shape[1]):
        term = np.take(pixels, indices[:, k], axis=axis) * weights[:, k].reshape(shape)
        out = term if out is None else out + term
    return out


def _to_raster(pixels: np.ndarray) -> RasterImage:
    return RasterImage.from_array(np.clip(np.rint(pixels), 0, 255).astype(np.uint8))


def resample_nearest(source: RasterImage, target_w: int, target_h: int) -> RasterImage:
    """Nearest neighbour: pure pixel copy, no blending."""

    xs = np.minimum((np.arange(target_w) * source.width) // target_w, source.width - 1)
    ys = np.minimum((np.arange(target_h) * source.height) // target_h, source.height - 1)
    pixels = source.to_array()
    return RasterImage.from_array(pixels[ys[:, None], xs[None, :]])


def _linear_taps(source_len: int, target_len: int) -> tuple[np.ndarray, np.ndarray]:
    # Corner-aligned mapping: first and last samples land on first and last
    # source pixels, so an unscaled axis maps onto itself.
    if target_len > 1:
        positions = np.arange(target_len) * ((source_len - 1) / (target_len - 1))
    else:
        positions = np.zeros(1)
    first = np.floor(positions).astype(np.intp)
    second = np.minimum(first + 1, source_len - 1)
    frac = positions - first
    indices = np.stack([first, second], axis=1)
    weights = np.stack([1.0 - frac, frac], axis=1)
    return indices, weights


def resample_bilinear(source: RasterImage, target_w: int, target_h: int) -> RasterImage:
    """Bilinear: 2x2 neighbourhood, linear weights."""

    pixels = source.to_array().astype(np.float64)
    idx_x, w_x = _linear_taps(source.width, target_w)
    idx_y, w_y = _linear_taps(source.height, target_h)
    rows = _apply_axis(pixels, idx_x, w_x, axis=1)
    return _to_raster(_apply_axis(rows, idx_y, w_y, axis=0))


def _cubic_weights(frac: np.ndarray) -> np.ndarray:
    """Catmull-Rom weights for taps at offsets -1, 0, 1, 2."""

    f2 = frac * frac
    f3 = f2 * frac
    return 0.5 * np.stack(
        [
            -frac + 2.0 * f2 - f3,
            2.0 - 5.0 * f2 + 3.0 * f3,
            frac + 4.0 * f2 - 3.0 * f3,
            -f2 + f3,
        ],
        axis=1,
    )


def _cubic_taps(source_len: int, target_len: int) -> tuple[np.ndarray, np.ndarray]:
    positions = np.arange(target_len) * (source_len / target_len)
    base = np.floor(positions).astype(np.intp)
    frac = positions - base
    offsets = np.arange(-1, 3)
    indices = np.clip(base[:, None] + offsets[None, :], 0, source_len - 1)
    return indices, _cubic_weights(frac)


def resample_bicubic(source: RasterImage, target_w: int, target_h: int) -> RasterImage:
    """Bicubic: 4x4 neighbourhood, Catmull-Rom convolution, clamped to 0..255."""

    pixels = source.to_array().astype(np.float64)
    idx_x, w_x = _cubic_taps(source.width, target_w)
    idx_y, w_y = _cubic_taps(source.height, target_h)
    rows = _apply_axis(pixels, idx_x, w_x, axis=1)
    return _to_raster(_apply_axis(rows, idx_y, w_y, axis=0))


def lanczos_kernel(x: np.ndarray, a: int = LANCZOS_WINDOW_SIZE) -> np.ndarray:
    """``sinc(x) * sinc(x / a)`` inside the window, 0 outside."""

    x = np.asarray(x, dtype=np.float64)
    return np.where(np.abs(x) < a, np.sinc(x) * np.sinc(x / a), 0.0)


def _lanczos_taps(
    source_len: int, target_len: int, a: int
) -> tuple[np.ndarray, np.ndarray]:
    positions = np.arange(target_len) * (source_len / target_len)
    base = np.floor(positions).astype(np.intp)
    offsets = np.arange(-a + 1, a)
    taps = base[:, None] + offsets[None, :]
    weights = lanczos_kernel(positions[:, None] - taps, a)
    # Normalizing each axis normalizes the 2-D product as well.
    weights = weights / weights.sum(axis=1, keepdims=True)
    return np.clip(taps, 0, source_len - 1), weights


def resample_lanczos(
    source: RasterImage, target_w: int, target_h: int, a: int = LANCZOS_WINDOW_SIZE
) -> RasterImage:
    """Lanczos-``a``: (2a-1)-tap windowed sinc per axis, normalized, clamped."""

    pixels = source.to_array().astype(np.float64)
    idx_x, w_x = _lanczos_taps(source.width, target_w, a)
    idx_y, w_y = _lanczos_taps(source.height, target_h, a)
    rows = _apply_axis(pixels, idx_x, w_x, axis=1)
    return _to_raster(_apply_axis(rows, idx_y, w_y, axis=0))


_KERNELS = {
    ResamplingMethod.NEAREST: resample_nearest,
    ResamplingMethod.BILINEAR: resample_bilinear,
    ResamplingMethod.BICUBIC: resample_bicubic,
    ResamplingMethod.LANCZOS: resample_lanczos,
}


def prefilter_radius(
    source_w: int,
    source_h: int,
    target_w: int,
    target_h: int,
    method: Union[ResamplingMethod, str],
) -> float:
    """Gaussian radius to apply before resampling, or 0 for none."""

    method = ResamplingMethod(method)
    min_scale = min(target_w / source_w, target_h / source_h)
    if min_scale >= 1.0 or method in _NO_PREFILTER:
        return 0.0
    if not should_antialias(min_scale, SIGNIFICANT_DOWNSAMPLE_THRESHOLD):
        return 0.0
    radius = blur_radius_for_scale(min_scale)
    return radius if radius > BLUR_THRESHOLD else 0.0


def resample(
    source: RasterImage,
    target_w: int,
    target_h: int,
    method: Union[ResamplingMethod, str] = ResamplingMethod.BICUBIC,
    native: Optional[NativeScaler] = None,
) -> RasterImage:
    """Resize ``source`` to ``target_w`` x ``target_h``.

    Parameters
    ----------
    source
        Raster to resize.
    target_w, target_h
        Output size, both at least 1.
    method
        Resampling method (enum member or its name).
    native
        Host scaling primitive used for ``native``.

    Returns
    -------
    RasterImage
        The resized raster. Identical inputs always give identical bytes.
    """

    method = ResamplingMethod(method)
    target_w = int(target_w)
    target_h = int(target_h)
    if target_w < 1 or target_h < 1:
        raise ValueError(f"Invalid target size: {target_w}x{target_h}")

    if method is ResamplingMethod.NATIVE:
        if native is None:
            raise ValueError("Native resampling needs a host scaling primitive")
        return native(source, target_w, target_h)

    radius = prefilter_radius(source.width, source.height, target_w, target_h, method)
    # Radii in (BLUR_THRESHOLD, MIN_BLUR_RADIUS) leave the source untouched
    if radius >= MIN_BLUR_RADIUS:
        logger.debug("Anti-alias pre-filter, radius %.2f", radius)
        source = gaussian_blur(source, radius)

    logger.debug(
        "Resampling %dx%d -> %dx%d (%s)",
        source.width,
        source.height,
        target_w,
        target_h,
        method.value,
    )
    return _KERNELS[method](source, target_w, target_h)
