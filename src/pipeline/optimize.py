"""Quality search against a byte budget.

The search is encoder-agnostic: callers inject ``encode(raster, quality) ->
bytes`` where quality is 1-100 or ``"lossless"``.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Union

from config import FILE_SIZE_MULTIPLIERS
from .raster import RasterImage

logger = logging.getLogger(__name__)

LOSSLESS = "lossless"

Quality = Union[int, str]
Encoder = Callable[[RasterImage, Quality], bytes]
ProgressCallback = Callable[[int, int, int], None]

MAX_QUALITY = 100
MIN_QUALITY = 1


class EncodeError(RuntimeError):
    """The encoder produced no usable output."""


class ConversionCancelled(RuntimeError):
    """A caller abandoned the conversion through its cancel token."""


class CancelToken:
    """Cooperative cancellation flag.

    Safe to set from another thread (for example a GUI); the pipeline polls
    it between stages and between encodes.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ConversionCancelled("Conversion cancelled")


@dataclass(frozen=True)
class OptimizationResult:
    """Outcome of a byte-budget search.

    Attributes
    ----------
    data
        Encoded bytes for the chosen level.
    quality
        1-100, or ``"lossless"``.
    size
        ``len(data)``.
    met_target
        False when even quality 1 exceeds the budget.
    """

    data: bytes
    quality: Quality
    size: int
    met_target: bool


def checked_encode(encode: Encoder, raster: RasterImage, quality: Quality) -> bytes:
    data = encode(raster, quality)
    if not data:
        raise EncodeError(f"Encoder returned no data at quality {quality}")
    return data


def optimize_for_byte_budget(
    raster: RasterImage,
    target_bytes: int,
    encode: Encoder,
    on_progress: Optional[ProgressCallback] = None,
    cancel: Optional[CancelToken] = None,
) -> OptimizationResult:
    """Find the best encoding that fits ``target_bytes``.

    Lossless wins whenever it fits. Otherwise quality is scanned linearly
    from 100 down to 1 and the first level that fits is returned. The scan
    does not assume encoded size is monotonic in quality, and it reports
    ``on_progress(quality, step, 100)`` before each encode.

    Parameters
    ----------
    raster
        Pixels to encode.
    target_bytes
        Byte budget.
    encode
        Encoder for the raster being optimized.
    on_progress
        Optional progress callback.
    cancel
        Optional cancel token, checked before every encode.

    Returns
    -------
    OptimizationResult
        Never fails for an unreachable budget: returns quality 1 with
        ``met_target=False``.
    """

    if cancel is not None:
        cancel.raise_if_cancelled()
    data = checked_encode(encode, raster, LOSSLESS)
    logger.debug("Lossless: %d bytes (budget %d)", len(data), target_bytes)
    if len(data) <= target_bytes:
        return OptimizationResult(data, LOSSLESS, len(data), True)

    total = MAX_QUALITY - MIN_QUALITY + 1
    for step, quality in enumerate(range(MAX_QUALITY, MIN_QUALITY - 1, -1), start=1):
        if cancel is not None:
            cancel.raise_if_cancelled()
        if on_progress is not None:
            on_progress(quality, step, total)
        data = checked_encode(encode, raster, quality)
        if len(data) <= target_bytes:
            logger.debug("Quality %d fits: %d bytes", quality, len(data))
            return OptimizationResult(data, quality, len(data), True)

    logger.warning(
        "Could not meet %s target; using quality %d (%s)",
        format_file_size(target_bytes),
        MIN_QUALITY,
        format_file_size(len(data)),
    )
    return OptimizationResult(data, MIN_QUALITY, len(data), False)


def parse_file_size_to_bytes(size: Union[str, float], unit: str) -> int:
    """Convert a size and a KB/MB/GB unit (powers of 1024) to bytes.

    Raises
    ------
    ValueError
        For an unknown unit or a non-positive size.
    """

    multiplier = FILE_SIZE_MULTIPLIERS.get(str(unit).strip().upper())
    if multiplier is None:
        choices = ", ".join(FILE_SIZE_MULTIPLIERS)
        raise ValueError(f"Unknown size unit '{unit}'. Choose from: {choices}")
    value = float(size)
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"Target size must be positive, got {size}")
    return int(value * multiplier)


def format_file_size(num_bytes: int, decimals: int = 2) -> str:
    """Human readable size, e.g. ``1.5 MB``."""

    if num_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    i = 0
    while i < len(units) - 1 and num_bytes >= 1024 ** (i + 1):
        i += 1
    value = round(num_bytes / 1024**i, decimals)
    return f"{value:g} {units[i]}"
