"""Manual cropping GUI using Tkinter.

The GUI displays images from an input directory one by one, allows selecting
a crop preset, and provides a red crop rectangle with eight resize
handles. Dragging inside the rectangle moves it, dragging a handle resizes it,
and dragging with the right mouse button pans the view. Saving runs the
conversion pipeline on the selected region and writes a WebP file.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

import tkinter as tk
from tkinter import ttk, messagebox
from PIL import Image, ImageTk

from config import CONFIG, CROP_HANDLE_SIZE, HANDLE_TOLERANCE
from .convert import ConversionOrchestrator, ConversionStatus, DimensionConstraint
from .geometry import (
    CropRect,
    DragSession,
    begin_drag,
    contains,
    drag_to,
    format_aspect_ratio,
    handle_at,
    handle_points,
    initialize_crop,
    pan_to,
)
from .io_utils import (
    Preset,
    builtin_presets,
    encode_webp,
    iter_image_paths,
    load_raster,
    native_resample,
    save_bytes,
    webp_filename,
)
from .raster import RasterImage
from .resample import RESAMPLING_LABELS, ResamplingMethod


@dataclass
class CropState:
    """State of the current cropping session."""

    image_path: Path
    raster: RasterImage
    display_image: Image.Image
    display_scale: float
    rect: CropRect  # in source image coords


class ManualCropperApp:
    """Tkinter application for manual cropping.

    Parameters
    ----------
    input_dir
        Directory containing images.
    output_dir
        Destination for converted images.
    default_preset
        Initially selected preset label.
    overwrite
        Whether to overwrite existing outputs.
    presets
        Preset label to :class:`Preset` mapping; defaults to the built-in
        presets.
    constraint
        Optional maximum output dimensions.
    quality, lossless, web_optimize, target_bytes
        Encoding settings passed to the conversion pipeline.
    preset_budget
        Let a preset with a size limit replace the byte budget.
    """

    def __init__(
        self,
        input_dir: Path,
        output_dir: Path,
        default_preset: str,
        overwrite: bool = False,
        presets: Optional[Dict[str, Preset]] = None,
        constraint: Optional[DimensionConstraint] = None,
        quality: int = CONFIG.conversion.quality,
        lossless: bool = CONFIG.conversion.lossless,
        web_optimize: bool = CONFIG.conversion.web_optimize,
        target_bytes: Optional[int] = None,
        preset_budget: bool = True,
    ) -> None:
        self.root = tk.Tk()
        self.root.title("Manual Cropper - WebP Prep")

        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        self.image_paths = list(iter_image_paths(Path(input_dir)))
        self.index = 0
        self.current: Optional[CropState] = None
        self.overwrite = overwrite
        self.presets = dict(presets if presets is not None else builtin_presets())
        self.constraint = constraint
        self.quality = quality
        self.lossless = lossless
        self.web_optimize = web_optimize
        self.target_bytes = target_bytes
        self.preset_budget = preset_budget

        if not self.image_paths:
            raise ValueError("No images found in input directory.")

        if default_preset not in self.presets:
            raise ValueError(f"Unknown preset label: {default_preset}")

        self.preset_label = default_preset
        self.orchestrator = ConversionOrchestrator(
            encode_webp, native=native_resample, on_status=self.on_status
        )

        # UI layout
        self.toolbar = ttk.Frame(self.root)
        self.toolbar.pack(side=tk.TOP, fill=tk.X)

        # Preset selector
        self.preset_var = tk.StringVar(value=self.preset_label)
        ttk.Label(self.toolbar, text="Aspect:").pack(side=tk.LEFT, padx=(6, 2))
        self.preset_combo = ttk.Combobox(
            self.toolbar, textvariable=self.preset_var, width=22, state="readonly"
        )
        self.preset_combo["values"] = list(self.presets)
        self.preset_combo.bind("<<ComboboxSelected>>", lambda _e: self.on_preset_change())
        self.preset_combo.pack(side=tk.LEFT, padx=2)

        # Resampling selector
        self.method_labels = {label: m for m, label in RESAMPLING_LABELS.items()}
        default_method = ResamplingMethod(CONFIG.behavior.resample)
        self.method_var = tk.StringVar(value=RESAMPLING_LABELS[default_method])
        ttk.Label(self.toolbar, text="Resample:").pack(side=tk.LEFT, padx=(6, 2))
        self.method_combo = ttk.Combobox(
            self.toolbar, textvariable=self.method_var, width=26, state="readonly"
        )
        self.method_combo["values"] = list(self.method_labels)
        self.method_combo.pack(side=tk.LEFT, padx=2)

        self.save_btn = ttk.Button(
            self.toolbar, text="Save & Next", command=self.on_save
        )
        self.save_btn.pack(side=tk.RIGHT, padx=4)
        self.skip_btn = ttk.Button(self.toolbar, text="Next", command=self.on_skip)
        self.skip_btn.pack(side=tk.RIGHT, padx=4)
        self.prev_btn = ttk.Button(self.toolbar, text="Back", command=self.on_prev)
        self.prev_btn.pack(side=tk.RIGHT, padx=4)

        # Canvas for image + crop rect
        self.canvas = tk.Canvas(self.root, bg="black", width=1024, height=768)
        self.canvas.pack(fill=tk.BOTH, expand=True)

        self.status_var = tk.StringVar(value="")
        ttk.Label(self.root, textvariable=self.status_var, anchor=tk.W).pack(
            side=tk.BOTTOM, fill=tk.X
        )

        self.canvas.bind("<ButtonPress-1>", self.on_mouse_down)
        self.canvas.bind("<B1-Motion>", self.on_mouse_drag)
        self.canvas.bind("<ButtonRelease-1>", self.on_mouse_up)
        self.canvas.bind("<ButtonPress-3>", self.on_pan_start)
        self.canvas.bind("<B3-Motion>", self.on_pan_drag)
        self.canvas.bind("<ButtonRelease-3>", self.on_mouse_up)

        self.drag: Optional[DragSession] = None
        self.pan: Tuple[float, float] = (0.0, 0.0)
        self.tk_image: Optional[ImageTk.PhotoImage] = None

        self.load_current()

    def run(self) -> None:
        """Start Tk event loop."""

        self.root.mainloop()

    @property
    def preset(self) -> Preset:
        return self.presets.get(self.preset_label, Preset())

    @property
    def ratio(self) -> Optional[float]:
        return self.preset.aspect_ratio

    # --- Event handlers ---

    def on_preset_change(self) -> None:
        self.preset_label = self.preset_var.get()
        self._reset_rect()
        self._redraw()

    def on_mouse_down(self, event: tk.Event) -> None:
        if not self.current:
            return
        ix, iy = self._to_image(event.x, event.y)
        rect = self.current.rect
        # Hit box is sized in display pixels
        tolerance = (CROP_HANDLE_SIZE / 2 + HANDLE_TOLERANCE) / self.current.display_scale
        handle = handle_at(rect, ix, iy, tolerance)
        if handle is not None:
            self.drag = begin_drag(ix, iy, rect, handle=handle)
        elif contains(rect, ix, iy):
            self.drag = begin_drag(ix, iy, rect)
        else:
            self.drag = None

    def on_mouse_drag(self, event: tk.Event) -> None:
        if not self.current or self.drag is None:
            return
        ix, iy = self._to_image(event.x, event.y)
        raster = self.current.raster
        self.current.rect = drag_to(
            self.drag,
            ix,
            iy,
            raster.width,
            raster.height,
            ratio=self.ratio,
            min_size=CONFIG.behavior.min_crop_size,
        )
        self._redraw()

    def on_mouse_up(self, _event: tk.Event) -> None:
        self.drag = None

    def on_pan_start(self, event: tk.Event) -> None:
        if not self.current:
            return
        self.drag = begin_drag(event.x, event.y, self.current.rect, pan=self.pan)

    def on_pan_drag(self, event: tk.Event) -> None:
        if not self.current or self.drag is None:
            return
        self.pan = pan_to(self.drag, event.x, event.y)
        self._redraw()

    def on_status(self, status: ConversionStatus) -> None:
        self.status_var.set(status.message)
        self.root.update_idletasks()

    def on_save(self) -> None:
        if not self.current:
            return
        method = self.method_labels[self.method_var.get()]
        web_optimize, target_bytes = self.web_optimize, self.target_bytes
        if self.preset_budget:
            web_optimize, target_bytes = self.preset.budget(
                web_optimize, target_bytes, self.lossless
            )
        try:
            output = self.orchestrator.convert(
                self.current.raster,
                crop=self.current.rect,
                constraint=self.preset.constrain(self.constraint),
                method=method,
                quality=self.quality,
                lossless=self.lossless,
                web_optimize=web_optimize,
                target_bytes=target_bytes,
            )
        except (RuntimeError, ValueError) as exc:
            messagebox.showerror("Conversion failed", str(exc))
            return

        dest = self.output_dir / webp_filename(
            output.width, output.height, output.quality, self.current.image_path.name
        )
        if dest.exists() and not self.overwrite:
            if not messagebox.askyesno("Overwrite?", f"{dest.name} exists. Overwrite?"):
                self.on_skip()
                return
        save_bytes(output.data, dest)
        self.on_next()

    def on_skip(self) -> None:
        self.on_next()

    def on_prev(self) -> None:
        if self.index <= 0:
            return
        self.index -= 1
        self.load_current()

    def on_next(self) -> None:
        self.index += 1
        if self.index >= len(self.image_paths):
            messagebox.showinfo("Done", "All images processed.")
            self.root.destroy()
            return
        self.load_current()

    # --- Helpers ---

    def load_current(self) -> None:
        path = self.image_paths[self.index]
        self.current = self._build_state(path, load_raster(path))
        self.pan = (0.0, 0.0)
        self.drag = None
        self._reset_rect()
        self._redraw()

    def _canvas_size(self) -> Tuple[int, int]:
        cw = max(1, int(self.canvas.winfo_width()) or 1024)
        ch = max(1, int(self.canvas.winfo_height()) or 768)
        return cw, ch

    def _build_state(self, path: Path, raster: RasterImage) -> CropState:
        # Fit display image to canvas while keeping aspect
        canvas_w, canvas_h = self._canvas_size()
        scale = min(canvas_w / raster.width, canvas_h / raster.height, 1.0)
        disp_w = max(1, int(round(raster.width * scale)))
        disp_h = max(1, int(round(raster.height * scale)))
        display = raster.to_pil().resize((disp_w, disp_h), Image.Resampling.LANCZOS)
        return CropState(
            image_path=path,
            raster=raster,
            display_image=display,
            display_scale=scale,
            rect=initialize_crop(raster.width, raster.height),
        )

    def _image_origin(self) -> Tuple[float, float]:
        cw, ch = self._canvas_size()
        img = self.current.display_image
        return (cw - img.width) / 2 + self.pan[0], (ch - img.height) / 2 + self.pan[1]

    def _to_image(self, x: float, y: float) -> Tuple[float, float]:
        ox, oy = self._image_origin()
        scale = self.current.display_scale
        return (x - ox) / scale, (y - oy) / scale

    def _to_display(self, x: float, y: float) -> Tuple[float, float]:
        ox, oy = self._image_origin()
        scale = self.current.display_scale
        return ox + x * scale, oy + y * scale

    def _reset_rect(self) -> None:
        if not self.current:
            return
        raster = self.current.raster
        self.current.rect = initialize_crop(raster.width, raster.height, self.ratio)

    def _redraw(self) -> None:
        if not self.current:
            return
        self.canvas.delete("all")
        img = self.current.display_image
        self.tk_image = ImageTk.PhotoImage(img)
        x, y = self._image_origin()
        self.canvas.create_image(x, y, image=self.tk_image, anchor=tk.NW)

        # Semi-transparent overlay outside rect
        self.canvas.create_rectangle(
            x, y, x + img.width, y + img.height, fill="#000000", stipple="gray25"
        )

        rect = self.current.rect
        rx0, ry0 = self._to_display(rect.x, rect.y)
        rx1, ry1 = self._to_display(rect.right, rect.bottom)
        self.canvas.create_rectangle(rx0, ry0, rx1, ry1, outline="red", width=2)

        half = CROP_HANDLE_SIZE / 2
        for hx, hy in handle_points(rect).values():
            dx, dy = self._to_display(hx, hy)
            self.canvas.create_rectangle(
                dx - half, dy - half, dx + half, dy + half, fill="white", outline="red"
            )

        raster = self.current.raster
        left, top, right, bottom = rect.box(raster.width, raster.height)
        self.status_var.set(
            f"{self.current.image_path.name}  crop {right - left}x{bottom - top}  "
            f"ratio {format_aspect_ratio(self.ratio)}  "
            f"({self.index + 1}/{len(self.image_paths)})"
        )


def run_manual_cropper(
    input_dir: Path,
    output_dir: Path,
    default_preset: str,
    overwrite: bool = False,
    **conversion: object,
) -> None:
    """Launch the manual cropper GUI.

    Parameters
    ----------
    input_dir
        Directory with images to process.
    output_dir
        Directory to write results.
    default_preset
        Initially selected preset label.
    overwrite
        Whether to overwrite existing files.
    **conversion
        Extra keyword arguments for :class:`ManualCropperApp` (presets,
        constraint, quality, lossless, web_optimize, target_bytes,
        preset_budget).
    """

    app = ManualCropperApp(
        Path(input_dir),
        Path(output_dir),
        default_preset=default_preset,
        overwrite=overwrite,
        **conversion,
    )
    app.run()
