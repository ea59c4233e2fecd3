"""I/O utilities and host primitives for the conversion pipeline.

This module provides helpers to enumerate input images, load them as RGBA
rasters, encode rasters to WebP, scale them with Pillow's own resampler (the
``native`` method), name and write outputs, and read crop presets from JSON.
"""

from __future__ import annotations

import datetime as _dt
import json
import logging
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Dict, Generator, Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from config import CONFIG, IMAGE_EXTENSIONS
from .convert import DimensionConstraint
from .geometry import parse_aspect_ratio
from .optimize import LOSSLESS, EncodeError, Quality, parse_file_size_to_bytes
from .raster import RasterImage

logger = logging.getLogger(__name__)


def iter_image_paths(input_path: Path) -> Generator[Path, None, None]:
    """Yield image file paths from a file or directory.

    Parameters
    ----------
    input_path
        A path to a single image or a directory containing images.

    Yields
    ------
    Path
        Individual image file paths.
    """

    path = Path(input_path)
    if path.is_file():
        if path.suffix.lower() in IMAGE_EXTENSIONS:
            yield path
        return
    if path.is_dir():
        for p in sorted(path.rglob("*")):
            if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS:
                yield p


def ensure_dir(path: Path) -> None:
    """Create a directory if it does not exist."""

    Path(path).mkdir(parents=True, exist_ok=True)


def load_raster(image_path: Path) -> RasterImage:
    """Load an image file as an upright RGBA raster.

    Parameters
    ----------
    image_path
        Path to the image file.

    Returns
    -------
    RasterImage
        Decoded pixels, with EXIF orientation applied.

    Raises
    ------
    ValueError
        If the file is not a readable image.
    """

    try:
        with Image.open(image_path) as img:
            img = ImageOps.exif_transpose(img)
            return RasterImage.from_pil(img)
    except UnidentifiedImageError as exc:
        raise ValueError(f"Not an image file: {image_path}") from exc


def encode_webp(raster: RasterImage, quality: Quality) -> bytes:
    """Encode a raster to WebP.

    Parameters
    ----------
    raster
        Pixels to encode.
    quality
        1-100, or ``"lossless"``.

    Returns
    -------
    bytes
        The encoded file.

    Raises
    ------
    EncodeError
        If Pillow fails or yields an empty buffer.
    """

    params: Dict[str, object]
    if quality == LOSSLESS:
        params = {"lossless": True, "quality": 100}
    else:
        q = int(quality)
        if not 1 <= q <= 100:
            raise ValueError(f"Quality must be within 1-100, got {quality}")
        params = {"quality": q}

    buf = BytesIO()
    try:
        raster.to_pil().save(buf, format="WEBP", **params)
    except (OSError, ValueError, KeyError) as exc:
        raise EncodeError(f"WebP encoding failed: {exc}") from exc

    data = buf.getvalue()
    if not data:
        raise EncodeError("WebP encoder returned no data")
    return data


def map_resample(name: str) -> Image.Resampling:
    """Map a resample name to a Pillow constant.

    Parameters
    ----------
    name
        One of 'nearest', 'bilinear', 'bicubic', 'lanczos'. Anything else
        maps to LANCZOS.

    Returns
    -------
    Image.Resampling
        Pillow resampling constant.
    """

    name_lower = (name or "").lower()
    if name_lower == "nearest":
        return Image.Resampling.NEAREST
    if name_lower == "bilinear":
        return Image.Resampling.BILINEAR
    if name_lower == "bicubic":
        return Image.Resampling.BICUBIC
    return Image.Resampling.LANCZOS


def native_resample(
    raster: RasterImage, width: int, height: int, resample: str = "lanczos"
) -> RasterImage:
    """Host scaling primitive: Pillow's own high quality resize."""

    resized = raster.to_pil().resize((width, height), map_resample(resample))
    return RasterImage.from_pil(resized)


def webp_filename(
    width: int,
    height: int,
    quality: Quality,
    original_name: Optional[str] = None,
    date: Optional[_dt.date] = None,
) -> str:
    """Output name, e.g. ``photo-2025-11-17-1920x1080px-q85.webp``.

    Lossless output is tagged ``qLL``.
    """

    day = (date or _dt.date.today()).isoformat()
    resolution = f"{int(round(width))}x{int(round(height))}px"
    tag = "qLL" if quality == LOSSLESS else f"q{quality}"
    stem = Path(original_name).stem if original_name else "image"
    return f"{stem}-{day}-{resolution}-{tag}.webp"


def save_bytes(data: bytes, dest_path: Path) -> None:
    """Write encoded bytes, creating the parent directory if needed."""

    dest_path = Path(dest_path)
    ensure_dir(dest_path.parent)
    dest_path.write_bytes(data)


@dataclass(frozen=True)
class Preset:
    """A named crop preset.

    Attributes
    ----------
    aspect_ratio
        Locked width / height, or None for freestyle.
    max_width, max_height
        Optional output size limits.
    target_bytes
        Optional byte budget; enables web optimization when set.
    """

    aspect_ratio: Optional[float] = None
    max_width: Optional[int] = None
    max_height: Optional[int] = None
    target_bytes: Optional[int] = None

    def constrain(self, constraint: Optional[DimensionConstraint] = None) -> DimensionConstraint:
        """Merge with ``constraint``; limits set on ``constraint`` win."""

        constraint = constraint or DimensionConstraint()
        return DimensionConstraint(
            constraint.max_width or self.max_width,
            constraint.max_height or self.max_height,
        )

    def budget(
        self, web_optimize: bool, target_bytes: Optional[int], lossless: bool = False
    ) -> Tuple[bool, Optional[int]]:
        """Web optimization switch and byte budget with this preset applied.

        A preset size limit turns optimization on unless encoding is lossless.
        """

        if self.target_bytes and not lossless:
            return True, self.target_bytes
        return web_optimize, target_bytes


def builtin_presets() -> Dict[str, Preset]:
    return {label: Preset(ratio) for label, ratio in CONFIG.presets.items()}


def _preset_dimension(config: dict, key: str) -> Optional[int]:
    value = config.get(key)
    if value in (None, "", 0):
        return None
    if isinstance(value, bool):
        raise ValueError(f"{key} must be a number, got {value!r}")
    number = int(float(value))
    if number <= 0:
        raise ValueError(f"{key} must be positive, got {value!r}")
    return number


def parse_preset(value: object) -> Preset:
    """Parse one preset entry.

    Accepts null (freestyle), a bare ratio (``1.5``, ``"16/9"``) or an
    object with ``crop-ratio``, ``max-width``, ``max-height``,
    ``max-filesize`` and ``max-filesize-unit`` (default ``MB``). Without a
    ``crop-ratio`` the ratio falls back to ``max-width / max-height`` when
    both are given, and to freestyle otherwise.

    Raises
    ------
    ValueError
        If a field does not parse.
    """

    if value is None:
        return Preset()
    if not isinstance(value, dict):
        ratio = parse_aspect_ratio(value)
        if ratio is None:
            raise ValueError(f"invalid aspect ratio {value!r}")
        return Preset(ratio)

    max_width = _preset_dimension(value, "max-width")
    max_height = _preset_dimension(value, "max-height")

    crop_ratio = value.get("crop-ratio")
    if crop_ratio not in (None, "", 0):
        ratio = parse_aspect_ratio(crop_ratio)
        if ratio is None:
            raise ValueError(f"invalid crop-ratio {crop_ratio!r}")
    elif max_width and max_height:
        ratio = max_width / max_height
    else:
        ratio = None

    target_bytes = None
    if value.get("max-filesize") not in (None, "", 0):
        target_bytes = parse_file_size_to_bytes(
            value["max-filesize"], value.get("max-filesize-unit") or "MB"
        )

    return Preset(ratio, max_width, max_height, target_bytes)


def load_presets(path: Path) -> Dict[str, Preset]:
    """Read crop presets from a JSON object mapping names to entries.

    See :func:`parse_preset` for the entry format. Entries that do not parse
    are skipped with a warning.

    Raises
    ------
    ValueError
        If the file cannot be read, is not a JSON object or holds no presets.
    """

    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Cannot read presets file {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"Presets file {path} must contain a JSON object")
    if not raw:
        raise ValueError(f"Presets file {path} contains no presets")

    presets: Dict[str, Preset] = {}
    for name, value in raw.items():
        if not str(name).strip():
            logger.warning("Skipping preset with an empty name")
            continue
        try:
            presets[str(name)] = parse_preset(value)
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping preset %r: %s", name, exc)
    return presets
