"""Crop, resample and WebP conversion pipeline.

Submodules
----------
raster
    Immutable RGBA raster shared between stages.
geometry
    Crop rectangle creation, moving and 8-handle resizing.
antialias
    Gaussian pre-filter used before significant downscaling.
resample
    Nearest, bilinear, bicubic and Lanczos kernels.
optimize
    Quality search against a byte budget.
convert
    Pipeline orchestration and status reporting.
io_utils
    File discovery, loading, WebP encoding and output naming.
logger
    Logging setup.
crop_manual_gui
    Manual cropping GUI using Tkinter.
"""
