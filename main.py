"""CLI for cropping, resizing and converting images to WebP.

Commands:
  - convert: Crop, resize and encode images, optionally to a byte budget
  - presets: List crop presets
  - crop-manual: Tkinter GUI for manual cropping
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional

import click
from click.core import ParameterSource
from config import CONFIG, FILE_SIZE_MULTIPLIERS
from src.pipeline.convert import (
    ConversionOrchestrator,
    DimensionConstraint,
    apply_dimension_constraints,
)
from src.pipeline.geometry import (
    CropRect,
    clamp_rect,
    format_aspect_ratio,
    initialize_crop,
    parse_aspect_ratio,
)
from src.pipeline.io_utils import (
    Preset,
    builtin_presets,
    encode_webp,
    iter_image_paths,
    load_presets,
    load_raster,
    native_resample,
    save_bytes,
    webp_filename,
)
from src.pipeline.logger import setup_logger
from src.pipeline.optimize import LOSSLESS, format_file_size, parse_file_size_to_bytes
from src.pipeline.raster import RasterImage
from src.pipeline.resample import ResamplingMethod

logger = logging.getLogger("src.pipeline.cli")

_METHODS = [m.value for m in ResamplingMethod]
_FREESTYLE = {"free", "freestyle", "none"}


def _load_presets(presets_file: Optional[Path]) -> Dict[str, Preset]:
    presets = builtin_presets()
    if presets_file is not None:
        try:
            presets.update(load_presets(presets_file))
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="--presets-file") from exc
    return presets


def _resolve_preset(value: Optional[str], presets: Dict[str, Preset]) -> Preset:
    if value is None or value.strip().lower() in _FREESTYLE:
        return Preset()
    if value in presets:
        return presets[value]
    ratio = parse_aspect_ratio(value)
    if ratio is None:
        choices = ", ".join(presets.keys())
        raise click.BadParameter(
            f"Unknown ratio '{value}'. Use W/H, W:H, a number, or one of: {choices}",
            param_hint="--ratio",
        )
    return Preset(ratio)


def _budget_given(ctx: click.Context) -> bool:
    """Whether the byte budget was chosen on the command line."""

    return any(
        ctx.get_parameter_source(name) not in (None, ParameterSource.DEFAULT)
        for name in ("web_optimize", "target_size", "target_unit")
    )


def _parse_crop(value: Optional[str]) -> Optional[CropRect]:
    if value is None:
        return None
    parts = [p.strip() for p in value.split(",")]
    try:
        x, y, w, h = (float(p) for p in parts)
    except ValueError as exc:
        raise click.BadParameter(
            f"Expected X,Y,W,H, got '{value}'", param_hint="--crop"
        ) from exc
    if w <= 0 or h <= 0:
        raise click.BadParameter("Crop width and height must be positive", param_hint="--crop")
    return CropRect(x, y, w, h)


def _target_bytes(web_optimize: bool, target_size: float, target_unit: str) -> Optional[int]:
    if not web_optimize:
        return None
    try:
        return parse_file_size_to_bytes(target_size, target_unit)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--target-size") from exc


def _conversion_options(func):
    """Encoding options shared by ``convert`` and ``crop-manual``."""

    options = [
        click.option(
            "--max-width", type=str, default=CONFIG.constraints.max_width, help="Maximum output width"
        ),
        click.option(
            "--max-height", type=str, default=CONFIG.constraints.max_height, help="Maximum output height"
        ),
        click.option(
            "--quality",
            type=click.IntRange(1, 100),
            default=CONFIG.conversion.quality,
            show_default=True,
        ),
        click.option("--lossless/--no-lossless", default=CONFIG.conversion.lossless),
        click.option(
            "--web-optimize/--no-web-optimize",
            default=CONFIG.conversion.web_optimize,
            help="Pick the highest quality that fits --target-size",
        ),
        click.option(
            "--target-size", type=float, default=CONFIG.conversion.target_size, show_default=True
        ),
        click.option(
            "--target-unit",
            type=click.Choice(list(FILE_SIZE_MULTIPLIERS), case_sensitive=False),
            default=CONFIG.conversion.target_unit,
            show_default=True,
        ),
        click.option("--overwrite/--no-overwrite", default=CONFIG.behavior.overwrite),
        click.option(
            "--presets-file",
            type=click.Path(path_type=Path, exists=True, dir_okay=False),
            default=None,
            help="JSON object of extra crop presets",
        ),
        click.option("--verbose", "-v", is_flag=True, default=False, help="Debug logging"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _fixed_output_name(
    src: Path,
    raster: RasterImage,
    rect: CropRect,
    constraint: DimensionConstraint,
    quality: int,
    lossless: bool,
) -> str:
    """Name of a fixed-quality or lossless output, known before encoding."""

    left, top, right, bottom = rect.box(raster.width, raster.height)
    width, height = apply_dimension_constraints(right - left, bottom - top, constraint)
    return webp_filename(width, height, LOSSLESS if lossless else quality, src.name)


@click.group()
def cli() -> None:
    """WebP crop & convert toolkit."""


@cli.command(name="convert")
@click.option(
    "--input-path",
    type=click.Path(path_type=Path, exists=True),
    required=True,
    help="Image file or directory",
)
@click.option(
    "--output-dir",
    type=click.Path(path_type=Path),
    default=CONFIG.paths.output_dir,
    show_default=True,
    help="Output directory",
)
@click.option(
    "--ratio",
    type=str,
    default=None,
    help="Preset name or ratio such as 16/9, 4:3 or 1.5 (centered crop)",
)
@click.option("--crop", type=str, default=None, help="Explicit crop X,Y,W,H in pixels")
@click.option(
    "--resample",
    type=click.Choice(_METHODS, case_sensitive=False),
    default=CONFIG.behavior.resample,
    show_default=True,
)
@_conversion_options
@click.pass_context
def cmd_convert(
    ctx: click.Context,
    input_path: Path,
    output_dir: Path,
    ratio: Optional[str],
    crop: Optional[str],
    resample: str,
    max_width: Optional[str],
    max_height: Optional[str],
    quality: int,
    lossless: bool,
    web_optimize: bool,
    target_size: float,
    target_unit: str,
    overwrite: bool,
    presets_file: Optional[Path],
    verbose: bool,
) -> None:
    """Crop, resize and convert images to WebP.

    Limits and size budgets of a ``--ratio`` preset apply where the matching
    options were left at their defaults.
    """

    setup_logger(logging.DEBUG if verbose else logging.INFO)
    presets = _load_presets(presets_file)
    preset = _resolve_preset(ratio, presets)
    explicit_crop = _parse_crop(crop)
    constraint = preset.constrain(DimensionConstraint.parse(max_width, max_height))
    target_bytes = _target_bytes(web_optimize and not lossless, target_size, target_unit)
    if not _budget_given(ctx):
        web_optimize, target_bytes = preset.budget(web_optimize, target_bytes, lossless)
    optimize = web_optimize and not lossless

    sources = list(iter_image_paths(input_path))
    if not sources:
        raise click.ClickException(f"No images found in {input_path}")
    output_dir.mkdir(parents=True, exist_ok=True)

    orchestrator = ConversionOrchestrator(encode_webp, native=native_resample)
    failed = 0
    for src in sources:
        try:
            raster = load_raster(src)
            if explicit_crop is not None:
                rect = clamp_rect(
                    explicit_crop, raster.width, raster.height, CONFIG.behavior.min_crop_size
                )
            else:
                rect = initialize_crop(raster.width, raster.height, preset.aspect_ratio)
            if not optimize and not overwrite:
                dest = output_dir / _fixed_output_name(
                    src, raster, rect, constraint, quality, lossless
                )
                if dest.exists():
                    logger.info("Skipping %s: %s exists", src.name, dest.name)
                    continue
            output = orchestrator.convert(
                raster,
                crop=rect,
                constraint=constraint,
                method=resample.lower(),
                quality=quality,
                lossless=lossless,
                web_optimize=web_optimize,
                target_bytes=target_bytes,
            )
            # The quality of an optimized run is only known after the search
            dest = output_dir / webp_filename(
                output.width, output.height, output.quality, src.name
            )
            if dest.exists() and not overwrite:
                logger.info("Skipping %s: %s exists", src.name, dest.name)
                continue
            save_bytes(output.data, dest)
            logger.info("Wrote %s", dest)
        except (OSError, RuntimeError, ValueError) as exc:
            failed += 1
            logger.error("Failed to convert %s: %s", src, exc)

    if failed:
        raise click.ClickException(f"{failed} of {len(sources)} image(s) failed")


def _describe_preset(preset: Preset) -> str:
    parts = [format_aspect_ratio(preset.aspect_ratio)]
    if preset.max_width or preset.max_height:
        parts.append(f"max {preset.max_width or '-'}x{preset.max_height or '-'}px")
    if preset.target_bytes:
        parts.append(f"<= {format_file_size(preset.target_bytes)}")
    return "  ".join(parts)


@cli.command(name="presets")
@click.option(
    "--presets-file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    default=None,
    help="JSON object of extra crop presets",
)
def cmd_presets(presets_file: Optional[Path]) -> None:
    """List crop presets."""

    for label, preset in _load_presets(presets_file).items():
        click.echo(f"{label:<22} {_describe_preset(preset)}")


@cli.command(name="crop-manual")
@click.option(
    "--input-dir",
    type=click.Path(path_type=Path, exists=True, file_okay=False),
    required=True,
)
@click.option(
    "--output-dir",
    type=click.Path(path_type=Path),
    default=CONFIG.paths.output_dir,
    show_default=True,
)
@click.option("--preset", type=str, default="Freestyle", help="Initial preset selection")
@_conversion_options
@click.pass_context
def cmd_crop_manual(
    ctx: click.Context,
    input_dir: Path,
    output_dir: Path,
    preset: str,
    max_width: Optional[str],
    max_height: Optional[str],
    quality: int,
    lossless: bool,
    web_optimize: bool,
    target_size: float,
    target_unit: str,
    overwrite: bool,
    presets_file: Optional[Path],
    verbose: bool,
) -> None:
    """Launch the manual cropping GUI."""

    setup_logger(logging.DEBUG if verbose else logging.INFO)
    presets = _load_presets(presets_file)
    if preset not in presets:
        choices = ", ".join(presets.keys())
        raise click.BadParameter(
            f"Unknown preset '{preset}'. Choose from: {choices}", param_hint="--preset"
        )

    # Tk is only needed here
    from src.pipeline.crop_manual_gui import run_manual_cropper

    run_manual_cropper(
        input_dir=input_dir,
        output_dir=output_dir,
        default_preset=preset,
        overwrite=overwrite,
        presets=presets,
        constraint=DimensionConstraint.parse(max_width, max_height),
        quality=quality,
        lossless=lossless,
        web_optimize=web_optimize,
        target_bytes=_target_bytes(web_optimize and not lossless, target_size, target_unit),
        preset_budget=not _budget_given(ctx),
    )


if __name__ == "__main__":
    cli()
