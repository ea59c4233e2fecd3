"""Crop -> constrain -> resample -> optimize/encode orchestration.

:class:`ConversionOrchestrator` sequences the pipeline for one image and
drives a small forward-only status machine for the UI or CLI:

    idle -> cropping -> [resampling] -> [optimizing] -> encoding -> complete -> idle

Each transition updates :attr:`ConversionOrchestrator.status` and notifies the
``on_status`` callback. An encoder failure or a cancellation ends the run,
resets the machine to idle and propagates to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple, Union

from .geometry import CropRect, initialize_crop
from .optimize import (
    LOSSLESS,
    CancelToken,
    ConversionCancelled,
    EncodeError,
    Encoder,
    OptimizationResult,
    Quality,
    checked_encode,
    format_file_size,
    optimize_for_byte_budget,
)
from .raster import RasterImage
from .resample import NativeScaler, ResamplingMethod, resample

logger = logging.getLogger(__name__)


class ConversionState(str, Enum):
    IDLE = "idle"
    CROPPING = "cropping"
    RESAMPLING = "resampling"
    OPTIMIZING = "optimizing"
    ENCODING = "encoding"
    COMPLETE = "complete"


_STATE_ORDER = list(ConversionState)


@dataclass(frozen=True)
class ConversionStatus:
    state: ConversionState = ConversionState.IDLE
    progress: float = 0.0
    message: str = ""


StatusCallback = Callable[[ConversionStatus], None]


def parse_dimension(value: Union[str, int, None]) -> Optional[int]:
    """Parse a max-dimension field. Empty, invalid or non-positive means no limit."""

    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value if value > 0 else None
    text = str(value).strip()
    if not text:
        return None
    try:
        number = int(float(text))
    except (ValueError, OverflowError):
        return None
    return number if number > 0 else None


@dataclass(frozen=True)
class DimensionConstraint:
    """Optional maximum output size; never enlarges an image."""

    max_width: Optional[int] = None
    max_height: Optional[int] = None

    @classmethod
    def parse(
        cls, max_width: Union[str, int, None], max_height: Union[str, int, None]
    ) -> "DimensionConstraint":
        return cls(parse_dimension(max_width), parse_dimension(max_height))


def apply_dimension_constraints(
    width: int, height: int, constraint: Optional[DimensionConstraint]
) -> Tuple[int, int]:
    """Scale ``width`` x ``height`` down to the constraint, keeping the aspect.

    The width limit is applied first and the height limit to its result, each
    only when exceeded. Results are rounded and kept at least 1.
    """

    final_w = float(width)
    final_h = float(height)
    if constraint is not None:
        if constraint.max_width and final_w > constraint.max_width:
            final_h *= constraint.max_width / final_w
            final_w = float(constraint.max_width)
        if constraint.max_height and final_h > constraint.max_height:
            final_w *= constraint.max_height / final_h
            final_h = float(constraint.max_height)
    return max(1, int(round(final_w))), max(1, int(round(final_h)))


@dataclass(frozen=True)
class ConversionOutput:
    data: bytes
    width: int
    height: int
    quality: Quality
    met_target: bool = True

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def quality_tag(self) -> str:
        return "qLL" if self.quality == LOSSLESS else f"q{self.quality}"


class ConversionOrchestrator:
    """Runs conversions one at a time and reports their progress.

    Parameters
    ----------
    encode
        ``encode(raster, quality) -> bytes``; quality is 1-100 or
        ``"lossless"``.
    native
        Host scaling primitive for :attr:`ResamplingMethod.NATIVE`.
    on_status
        Called with a :class:`ConversionStatus` on every update.
    """

    def __init__(
        self,
        encode: Encoder,
        native: Optional[NativeScaler] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> None:
        self._encode = encode
        self._native = native
        self._on_status = on_status
        self.status = ConversionStatus()

    # --- Status machine ---

    def _publish(self, status: ConversionStatus) -> None:
        self.status = status
        if status.message:
            logger.info(status.message)
        if self._on_status is not None:
            self._on_status(status)

    def _transition(self, state: ConversionState, progress: float, message: str) -> None:
        current = _STATE_ORDER.index(self.status.state)
        if _STATE_ORDER.index(state) <= current:
            raise RuntimeError(
                f"Illegal status transition {self.status.state.value} -> {state.value}"
            )
        self._publish(ConversionStatus(state, progress, message))

    def _update(self, progress: float, message: str) -> None:
        self._publish(ConversionStatus(self.status.state, progress, message))

    def _reset(self, message: str = "") -> None:
        self._publish(ConversionStatus(ConversionState.IDLE, 0.0, message))

    def _on_quality_step(self, quality: int, step: int, total: int) -> None:
        self._update(100.0 - quality, f"Testing quality {quality}... ({step}/{total})")

    # --- Pipeline ---

    def convert(
        self,
        image: RasterImage,
        crop: Optional[CropRect] = None,
        constraint: Optional[DimensionConstraint] = None,
        method: Union[ResamplingMethod, str] = ResamplingMethod.BICUBIC,
        quality: int = 95,
        lossless: bool = False,
        web_optimize: bool = False,
        target_bytes: Optional[int] = None,
        cancel: Optional[CancelToken] = None,
    ) -> ConversionOutput:
        """Convert one image.

        Parameters
        ----------
        image
            Decoded source raster.
        crop
            Crop rectangle in source pixels; the full image when None.
        constraint
            Optional maximum output dimensions.
        method
            Resampling method used when the output size differs from the crop.
        quality
            Fixed quality 1-100 when not optimizing.
        lossless
            Encode losslessly. Takes precedence over ``web_optimize``.
        web_optimize
            Search for the best quality fitting ``target_bytes``.
        target_bytes
            Byte budget, required with ``web_optimize``.
        cancel
            Optional token polled between stages and between encodes.

        Returns
        -------
        ConversionOutput
            Encoded bytes, final size and the achieved quality.

        Raises
        ------
        EncodeError
            The encoder produced nothing usable.
        ConversionCancelled
            ``cancel`` was triggered.
        """

        method = ResamplingMethod(method)
        optimize = web_optimize and not lossless
        if not lossless and not 1 <= int(quality) <= 100:
            raise ValueError(f"Quality must be within 1-100, got {quality}")
        if optimize and (target_bytes is None or target_bytes <= 0):
            raise ValueError("Web optimization needs a positive target size")
        if self.status.state is not ConversionState.IDLE:
            raise RuntimeError("A conversion is already running")

        try:
            return self._run(
                image, crop, constraint, method, int(quality), lossless, optimize,
                target_bytes, cancel,
            )
        except ConversionCancelled:
            self._reset("Conversion cancelled")
            raise
        except Exception as exc:
            logger.error("Conversion failed: %s", exc)
            self._reset(f"Conversion failed: {exc}")
            raise

    def _run(
        self,
        image: RasterImage,
        crop: Optional[CropRect],
        constraint: Optional[DimensionConstraint],
        method: ResamplingMethod,
        quality: int,
        lossless: bool,
        optimize: bool,
        target_bytes: Optional[int],
        cancel: Optional[CancelToken],
    ) -> ConversionOutput:
        def checkpoint() -> None:
            if cancel is not None:
                cancel.raise_if_cancelled()

        self._transition(ConversionState.CROPPING, 0.0, "Cropping image...")
        if crop is None:
            crop = initialize_crop(image.width, image.height)
        left, top, right, bottom = crop.box(image.width, image.height)
        raster = image.crop(left, top, right - left, bottom - top)
        checkpoint()

        final_w, final_h = apply_dimension_constraints(raster.width, raster.height, constraint)
        if (final_w, final_h) != raster.size:
            self._transition(
                ConversionState.RESAMPLING,
                0.0,
                f"Resampling {raster.width}x{raster.height} -> {final_w}x{final_h} "
                f"({method.value})...",
            )
            raster = resample(raster, final_w, final_h, method, native=self._native)
            checkpoint()

        result: Optional[OptimizationResult] = None
        if optimize:
            self._transition(
                ConversionState.OPTIMIZING, 0.0, "Testing lossless compression..."
            )
            result = optimize_for_byte_budget(
                raster, target_bytes, self._encode, self._on_quality_step, cancel
            )
            if result.quality == LOSSLESS:
                self._update(100.0, "Lossless fits within target")
            elif result.met_target:
                self._update(
                    100.0,
                    f"Quality {result.quality} achieves {format_file_size(result.size)}",
                )
            else:
                self._update(100.0, "Could not meet target size. Using quality 1.")
            checkpoint()

        if result is not None:
            self._transition(ConversionState.ENCODING, 100.0, "Finalizing WebP...")
            data, achieved, met = result.data, result.quality, result.met_target
        else:
            self._transition(ConversionState.ENCODING, 0.0, "Converting to WebP...")
            achieved = LOSSLESS if lossless else quality
            data = checked_encode(self._encode, raster, achieved)
            met = True

        output = ConversionOutput(data, raster.width, raster.height, achieved, met)
        self._transition(
            ConversionState.COMPLETE,
            100.0,
            f"Done: {output.width}x{output.height} {output.quality_tag} "
            f"({format_file_size(output.size)})",
        )
        self._reset()
        return output


__all__ = [
    "CancelToken",
    "ConversionCancelled",
    "ConversionOrchestrator",
    "ConversionOutput",
    "ConversionState",
    "ConversionStatus",
    "DimensionConstraint",
    "EncodeError",
    "apply_dimension_constraints",
    "parse_dimension",
]
