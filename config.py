"""Global configuration for the WebP crop & convert toolkit.

This module centralizes defaults and user-tunable settings for:
- locating input images and writing outputs
- built-in aspect ratio presets for the crop rectangle
- resampling, anti-aliasing and crop-handle tunables
- quality / byte-budget conversion defaults

All values can be overridden via CLI flags or direct imports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional


# Supported file extensions for input images
IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp", ".tiff"}


# Built-in aspect ratio presets (width / height). ``None`` means freestyle.
BUILT_IN_PRESETS: Dict[str, Optional[float]] = {
    "Freestyle": None,
    "Square (1:1)": 1.0,
    "16:9 Landscape": 16 / 9,
    "9:16 Portrait": 9 / 16,
    "4:3 Landscape": 4 / 3,
    "3:4 Portrait": 3 / 4,
    "21:9 Ultrawide": 21 / 9,
    "Twitter Post": 16 / 9,
    "Twitter Header": 3 / 1,
    "Instagram Square": 1.0,
    "Instagram Portrait": 4 / 5,
    "Instagram Landscape": 1.91 / 1,
    "Facebook Post": 1.91 / 1,
    "YouTube Thumbnail": 16 / 9,
    "Discord Avatar": 1.0,
    "Pinterest Pin": 2 / 3,
}


RESAMPLE_METHOD = "bicubic"  # one of {nearest, bilinear, bicubic, lanczos, native}


# Anti-aliasing / resampling tunables. The blur formula and the downsample
# threshold were picked empirically and are open to retuning.

# Gaussian radii below this are treated as a no-op.
MIN_BLUR_RADIUS = 0.5
# Pre-blur only when the computed radius exceeds this.
BLUR_THRESHOLD = 0.3
# Kernel size = ceil(radius * multiplier) * 2 + 1
GAUSSIAN_KERNEL_MULTIPLIER = 3
# Lanczos window radius ``a``.
LANCZOS_WINDOW_SIZE = 3
# Scale factor (limiting axis) below which a downsample counts as significant.
SIGNIFICANT_DOWNSAMPLE_THRESHOLD = 0.67


# Crop geometry
MIN_CROP_SIZE = 10
# Maximum |width/height - ratio| drift tolerated after a crop mutation.
ASPECT_RATIO_TOLERANCE = 0.01
# Handle hit box, in display pixels
CROP_HANDLE_SIZE = 10
HANDLE_TOLERANCE = 5


# Byte multipliers for target size units
FILE_SIZE_MULTIPLIERS: Dict[str, int] = {
    "KB": 1024,
    "MB": 1024 * 1024,
    "GB": 1024 * 1024 * 1024,
}


@dataclass
class Paths:
    """I/O locations.

    Attributes
    ----------
    output_dir
        Directory where converted images will be written.
    """

    output_dir: Path = Path("./data/output")


@dataclass
class Constraints:
    """Optional maximum output dimensions.

    Attributes
    ----------
    max_width, max_height
        Maximum allowed dimensions. If not None, the cropped region is scaled
        down proportionally, width first, then height. Never upscales.
    """

    max_width: int | None = None
    max_height: int | None = None


@dataclass
class Behavior:
    """Processing behavior toggles.

    Attributes
    ----------
    overwrite
        Whether to overwrite files in the output directory.
    resample
        Resampling method for resizing operations. One of: 'nearest',
        'bilinear', 'bicubic', 'lanczos', 'native'.
    min_crop_size
        Smallest allowed crop side, in source pixels.
    """

    overwrite: bool = False
    resample: str = RESAMPLE_METHOD
    min_crop_size: int = MIN_CROP_SIZE


@dataclass
class Conversion:
    """WebP encoding defaults.

    Attributes
    ----------
    quality
        Fixed quality (1-100) used when web optimization is off.
    lossless
        Encode losslessly. Disables web optimization.
    web_optimize
        Search for the highest quality that fits ``target_size``.
    target_size, target_unit
        Byte budget, e.g. ``10`` ``MB``. Units are powers of 1024.
    """

    quality: int = 95
    lossless: bool = False
    web_optimize: bool = False
    target_size: float = 10.0
    target_unit: str = "MB"


@dataclass
class ProjectConfig:
    """Top-level configuration container.

    Attributes
    ----------
    paths
        Input/output locations.
    constraints
        Maximum output dimensions.
    behavior
        Execution-time toggles.
    conversion
        Encoding defaults.
    presets
        Mapping from preset label to aspect ratio (None = freestyle).
    """

    paths: Paths = field(default_factory=Paths)
    constraints: Constraints = field(default_factory=Constraints)
    behavior: Behavior = field(default_factory=Behavior)
    conversion: Conversion = field(default_factory=Conversion)
    presets: Dict[str, Optional[float]] = field(
        default_factory=lambda: dict(BUILT_IN_PRESETS)
    )


# Default singleton-style config instance used by CLI unless overridden
CONFIG = ProjectConfig()
