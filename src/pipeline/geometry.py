"""Crop rectangle geometry.

Pure functions that create, move and resize a crop rectangle inside image
bounds, optionally locked to an aspect ratio. None of them raise for
degenerate input: they clamp and always return a valid rectangle.

Resizing is driven by :class:`ResizeHandle`; each handle carries the set of
edges it controls, and anchoring is derived from that set. A handle that
controls the left (top) edge keeps the right (bottom) edge fixed, every other
handle keeps the left (top) edge fixed.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import FrozenSet, Optional, Tuple, Union

from config import (
    ASPECT_RATIO_TOLERANCE,
    CROP_HANDLE_SIZE,
    HANDLE_TOLERANCE,
    MIN_CROP_SIZE,
)


class Edge(Enum):
    LEFT = "left"
    TOP = "top"
    RIGHT = "right"
    BOTTOM = "bottom"


_HORIZONTAL = frozenset({Edge.LEFT, Edge.RIGHT})
_VERTICAL = frozenset({Edge.TOP, Edge.BOTTOM})


class ResizeHandle(str, Enum):
    """One of the eight crop handles, named by compass direction."""

    NW = "nw"
    N = "n"
    NE = "ne"
    E = "e"
    SE = "se"
    S = "s"
    SW = "sw"
    W = "w"

    @property
    def edges(self) -> FrozenSet[Edge]:
        return _HANDLE_EDGES[self]

    @property
    def is_corner(self) -> bool:
        return bool(self.edges & _HORIZONTAL) and bool(self.edges & _VERTICAL)


_HANDLE_EDGES = {
    ResizeHandle.NW: frozenset({Edge.LEFT, Edge.TOP}),
    ResizeHandle.N: frozenset({Edge.TOP}),
    ResizeHandle.NE: frozenset({Edge.RIGHT, Edge.TOP}),
    ResizeHandle.E: frozenset({Edge.RIGHT}),
    ResizeHandle.SE: frozenset({Edge.RIGHT, Edge.BOTTOM}),
    ResizeHandle.S: frozenset({Edge.BOTTOM}),
    ResizeHandle.SW: frozenset({Edge.LEFT, Edge.BOTTOM}),
    ResizeHandle.W: frozenset({Edge.LEFT}),
}


@dataclass(frozen=True)
class CropRect:
    """Crop rectangle in source-pixel coordinates.

    Attributes
    ----------
    x, y
        Top-left corner.
    width, height
        Size in pixels (floats while editing; rounded by :meth:`box`).
    aspect_ratio
        Locked width / height, or None for freestyle.
    """

    x: float
    y: float
    width: float
    height: float
    aspect_ratio: Optional[float] = None

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def ratio(self) -> float:
        return self.width / self.height if self.height else 0.0

    def box(
        self, image_w: Optional[int] = None, image_h: Optional[int] = None
    ) -> Tuple[int, int, int, int]:
        """Integer ``(left, top, right, bottom)`` box, clipped to the image if given."""

        left = int(round(self.x))
        top = int(round(self.y))
        right = int(round(self.x + self.width))
        bottom = int(round(self.y + self.height))
        if image_w is not None:
            left = min(max(0, left), image_w - 1)
            right = min(max(left + 1, right), image_w)
        if image_h is not None:
            top = min(max(0, top), image_h - 1)
            bottom = min(max(top + 1, bottom), image_h)
        return left, top, max(left + 1, right), max(top + 1, bottom)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def _fit_ratio(width: float, height: float, ratio: float) -> Tuple[float, float]:
    """Largest ``ratio``-shaped size that fits inside ``width`` x ``height``."""

    if width / ratio <= height:
        return width, width / ratio
    return height * ratio, height


def initialize_crop(
    image_w: int, image_h: int, ratio: Optional[float] = None
) -> CropRect:
    """Initial crop for a freshly loaded image.

    Parameters
    ----------
    image_w, image_h
        Image size.
    ratio
        Aspect ratio lock (width / height). If None, the crop covers the full
        image. Otherwise the largest centered rectangle with that ratio.

    Returns
    -------
    CropRect
        The initial crop.
    """

    if not ratio:
        return CropRect(0.0, 0.0, float(image_w), float(image_h), None)

    image_aspect = image_w / image_h
    if ratio > image_aspect:
        # Wider than the image: width-limited
        width = float(image_w)
        height = width / ratio
    else:
        height = float(image_h)
        width = height * ratio

    return CropRect(
        x=(image_w - width) / 2,
        y=(image_h - height) / 2,
        width=width,
        height=height,
        aspect_ratio=ratio,
    )


def clamp_rect(
    rect: CropRect, image_w: int, image_h: int, min_size: float = MIN_CROP_SIZE
) -> CropRect:
    """Force a rectangle inside the image and above the minimum size."""

    min_w = min(min_size, image_w)
    min_h = min(min_size, image_h)
    width = _clamp(rect.width, min_w, image_w)
    height = _clamp(rect.height, min_h, image_h)
    x = _clamp(rect.x, 0.0, image_w - width)
    y = _clamp(rect.y, 0.0, image_h - height)
    return replace(rect, x=x, y=y, width=width, height=height)


def move_crop(
    rect: CropRect, dx: float, dy: float, image_w: int, image_h: int
) -> CropRect:
    """Translate the crop, keeping it fully inside the image. Size is unchanged."""

    x = _clamp(rect.x + dx, 0.0, max(0.0, image_w - rect.width))
    y = _clamp(rect.y + dy, 0.0, max(0.0, image_h - rect.height))
    return replace(rect, x=x, y=y)


def resize_crop(
    rect: CropRect,
    handle: Union[ResizeHandle, str],
    dx: float,
    dy: float,
    image_w: int,
    image_h: int,
    ratio: Optional[float] = None,
    min_size: float = MIN_CROP_SIZE,
) -> CropRect:
    """Resize the crop by dragging ``handle`` by ``(dx, dy)`` image pixels.

    The deltas move the edges the handle controls. With a ratio lock, edge
    handles drive the dimension they change and corner handles drive the
    dimension that changed by the larger relative amount; the other dimension
    follows the ratio. The result is then held above ``min_size``, clipped to
    the image, and shrunk back to the ratio if clipping distorted it.

    Returns
    -------
    CropRect
        Valid, in-bounds rectangle carrying ``ratio`` as its aspect lock.
    """

    handle = ResizeHandle(handle)
    edges = handle.edges
    rect = clamp_rect(rect, image_w, image_h, min_size)
    x0, y0, w0, h0 = rect.x, rect.y, rect.width, rect.height

    width, height = w0, h0
    if Edge.LEFT in edges:
        width -= dx
    elif Edge.RIGHT in edges:
        width += dx
    if Edge.TOP in edges:
        height -= dy
    elif Edge.BOTTOM in edges:
        height += dy

    if ratio:
        if handle.is_corner:
            width_primary = abs(width / w0 - 1) > abs(height / h0 - 1)
        else:
            width_primary = bool(edges & _HORIZONTAL)
        if width_primary:
            height = width / ratio
        else:
            width = height * ratio

        # Smallest width whose ratio-derived height still honours min_size
        min_w = max(min_size, min_size * ratio)
        if width < min_w:
            width, height = min_w, min_w / ratio
    else:
        width = max(width, min_size)
        height = max(height, min_size)

    x = x0 + w0 - width if Edge.LEFT in edges else x0
    y = y0 + h0 - height if Edge.TOP in edges else y0

    if x < 0:
        width += x
        x = 0.0
    if y < 0:
        height += y
        y = 0.0
    if x + width > image_w:
        width = image_w - x
    if y + height > image_h:
        height = image_h - y

    if ratio and height > 0 and abs(width / height - ratio) >= ASPECT_RATIO_TOLERANCE:
        fit_w, fit_h = _fit_ratio(width, height, ratio)
        if Edge.LEFT in edges:
            x += width - fit_w
        if Edge.TOP in edges:
            y += height - fit_h
        width, height = fit_w, fit_h

    return CropRect(x=x, y=y, width=width, height=height, aspect_ratio=ratio or None)


def handle_points(rect: CropRect) -> dict[ResizeHandle, Tuple[float, float]]:
    """Anchor point of every handle, in the rectangle's coordinate space."""

    cx = rect.x + rect.width / 2
    cy = rect.y + rect.height / 2
    points = {}
    for handle in ResizeHandle:
        edges = handle.edges
        px = rect.x if Edge.LEFT in edges else rect.right if Edge.RIGHT in edges else cx
        py = rect.y if Edge.TOP in edges else rect.bottom if Edge.BOTTOM in edges else cy
        points[handle] = (px, py)
    return points


def handle_at(
    rect: CropRect,
    px: float,
    py: float,
    tolerance: float = CROP_HANDLE_SIZE / 2 + HANDLE_TOLERANCE,
) -> Optional[ResizeHandle]:
    """Return the handle under ``(px, py)``, or None."""

    if rect.width <= 0 or rect.height <= 0:
        return None
    for handle, (hx, hy) in handle_points(rect).items():
        if abs(px - hx) <= tolerance and abs(py - hy) <= tolerance:
            return handle
    return None


def contains(rect: CropRect, px: float, py: float) -> bool:
    return rect.x <= px <= rect.right and rect.y <= py <= rect.bottom


class DragKind(str, Enum):
    PAN = "pan"
    MOVE = "move"
    RESIZE = "resize"


@dataclass(frozen=True)
class DragSession:
    """Snapshot taken when a drag starts.

    Every drag update is computed from this origin, so intermediate
    positions never accumulate rounding.
    """

    kind: DragKind
    start_x: float
    start_y: float
    origin: CropRect
    handle: Optional[ResizeHandle] = None
    origin_pan: Tuple[float, float] = (0.0, 0.0)


def begin_drag(
    start_x: float,
    start_y: float,
    origin: CropRect,
    handle: Optional[Union[ResizeHandle, str]] = None,
    pan: Optional[Tuple[float, float]] = None,
) -> DragSession:
    """Start a move (no handle), resize (handle) or pan (``pan`` given) drag."""

    if pan is not None:
        return DragSession(DragKind.PAN, start_x, start_y, origin, None, tuple(pan))
    if handle is not None:
        return DragSession(
            DragKind.RESIZE, start_x, start_y, origin, ResizeHandle(handle)
        )
    return DragSession(DragKind.MOVE, start_x, start_y, origin)


def drag_to(
    session: DragSession,
    px: float,
    py: float,
    image_w: int,
    image_h: int,
    ratio: Optional[float] = None,
    min_size: float = MIN_CROP_SIZE,
) -> CropRect:
    """Crop rectangle for the pointer at ``(px, py)`` (image coordinates)."""

    dx = px - session.start_x
    dy = py - session.start_y
    if session.kind is DragKind.MOVE:
        return move_crop(session.origin, dx, dy, image_w, image_h)
    if session.kind is DragKind.RESIZE:
        return resize_crop(
            session.origin, session.handle, dx, dy, image_w, image_h, ratio, min_size
        )
    return session.origin


def pan_to(session: DragSession, px: float, py: float) -> Tuple[float, float]:
    """Pan offset for the pointer at ``(px, py)`` (view coordinates)."""

    return (
        session.origin_pan[0] + px - session.start_x,
        session.origin_pan[1] + py - session.start_y,
    )


def parse_aspect_ratio(value: Union[str, float, int, None]) -> Optional[float]:
    """Parse ``"16/9"``, ``"16:9"``, ``"1.777"`` or a number.

    Returns None for empty, invalid or non-positive input (freestyle).
    """

    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        ratio = float(value)
        return ratio if math.isfinite(ratio) and ratio > 0 else None

    text = str(value).strip()
    for sep in ("/", ":"):
        if sep in text:
            parts = text.split(sep)
            if len(parts) != 2:
                return None
            try:
                numerator = float(parts[0].strip())
                denominator = float(parts[1].strip())
            except ValueError:
                return None
            if denominator == 0:
                return None
            ratio = numerator / denominator
            return ratio if math.isfinite(ratio) and ratio > 0 else None

    try:
        ratio = float(text)
    except ValueError:
        return None
    return ratio if math.isfinite(ratio) and ratio > 0 else None


def format_aspect_ratio(ratio: Optional[float], decimals: int = 2) -> str:
    if ratio is None:
        return "Free"
    return f"{ratio:.{decimals}f}"
