"""
Tamuu Kernel — Coordinate & Scaling Engine

All element geometry lives in a fixed logical canvas. Every render target
derives one scale factor from it:

- editor:     s = zoom (1.0 for native editing)
- framed:     viewport ≥ breakpoint → s = min(maxFrameWidth, 0.9·vw) / W₀,
              frame centered, section height s·H₀
- fullscreen: viewport < breakpoint → s = vw / W₀, section height = vh

Pure and deterministic. Viewport dimensions are clamped to ≥ 1 before any
division so degenerate input never yields NaN or Infinity.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from engine.kernel.types import CANVAS_HEIGHT, CANVAS_WIDTH

DESKTOP_BREAKPOINT = 768
MAX_FRAME_WIDTH = 420
FRAME_RATIO = 0.9


@dataclass(frozen=True)
class CanvasSize:
    width: float
    height: float

    def __post_init__(self) -> None:
        if not (self.width > 0 and self.height > 0):
            raise ValueError(f"Canvas size must be positive, got {self.width}x{self.height}")


LOGICAL_CANVAS = CanvasSize(CANVAS_WIDTH, CANVAS_HEIGHT)


class LayoutMode(str, Enum):
    EDITOR = "editor"
    FRAMED = "framed"
    FULLSCREEN = "fullscreen"


@dataclass(frozen=True)
class Transform:
    """Logical units → target pixels. Independent x/y factors."""

    sx: float
    sy: float

    @classmethod
    def uniform(cls, s: float) -> Transform:
        return cls(s, s)

    def to_target(self, x: float, y: float) -> tuple[float, float]:
        return x * self.sx, y * self.sy

    def to_logical(self, x: float, y: float) -> tuple[float, float]:
        return x / self.sx, y / self.sy

    def length(self, v: float) -> float:
        """Scale a non-directional quantity (font size, icon size, stroke)."""
        return v * min(self.sx, self.sy)


IDENTITY = Transform(1.0, 1.0)


@dataclass(frozen=True)
class RenderGeometry:
    mode: LayoutMode
    scale: float
    frame_width: float
    section_height: float
    offset_x: float
    viewport_width: float
    viewport_height: float

    @property
    def transform(self) -> Transform:
        return Transform.uniform(self.scale)


def _clamp_dimension(v: float) -> float:
    v = float(v)
    if not math.isfinite(v) or v < 1.0:
        return 1.0
    return v


def scale_value(v: float, s: float) -> float:
    return v * s


def editor_geometry(canvas: CanvasSize = LOGICAL_CANVAS, zoom: float = 1.0) -> RenderGeometry:
    """Geometry for the interactive editor. zoom=1 is native logical pixels."""
    s = zoom if math.isfinite(zoom) and zoom > 0 else 1.0
    return RenderGeometry(
        mode=LayoutMode.EDITOR,
        scale=s,
        frame_width=canvas.width * s,
        section_height=canvas.height * s,
        offset_x=0.0,
        viewport_width=canvas.width * s,
        viewport_height=canvas.height * s,
    )


def responsive_geometry(
    canvas: CanvasSize,
    viewport_width: float,
    viewport_height: float,
    breakpoint: float = DESKTOP_BREAKPOINT,
    max_frame_width: float = MAX_FRAME_WIDTH,
    frame_ratio: float = FRAME_RATIO,
) -> RenderGeometry:
    """Geometry for the public view at a given viewport size."""
    vw = _clamp_dimension(viewport_width)
    vh = _clamp_dimension(viewport_height)

    if vw >= breakpoint:
        frame_width = min(max_frame_width, frame_ratio * vw)
        s = frame_width / canvas.width
        return RenderGeometry(
            mode=LayoutMode.FRAMED,
            scale=s,
            frame_width=frame_width,
            section_height=s * canvas.height,
            offset_x=(vw - frame_width) / 2,
            viewport_width=vw,
            viewport_height=vh,
        )

    s = vw / canvas.width
    return RenderGeometry(
        mode=LayoutMode.FULLSCREEN,
        scale=s,
        frame_width=vw,
        section_height=vh,
        offset_x=0.0,
        viewport_width=vw,
        viewport_height=vh,
    )


class ViewportTracker:
    """
    Recomputes responsive geometry on resize.

    Listeners fire only when the geometry actually changes, so repeated
    resize events with the same dimensions are no-ops.
    """

    def __init__(
        self,
        canvas: CanvasSize = LOGICAL_CANVAS,
        breakpoint: float = DESKTOP_BREAKPOINT,
        max_frame_width: float = MAX_FRAME_WIDTH,
    ) -> None:
        self.canvas = canvas
        self.breakpoint = breakpoint
        self.max_frame_width = max_frame_width
        self.geometry: RenderGeometry | None = None
        self._listeners: list[Callable[[RenderGeometry], None]] = []

    def subscribe(self, listener: Callable[[RenderGeometry], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def resize(self, width: float, height: float) -> bool:
        """Apply a new viewport size. Returns True if the geometry changed."""
        geometry = responsive_geometry(
            self.canvas,
            width,
            height,
            breakpoint=self.breakpoint,
            max_frame_width=self.max_frame_width,
        )
        if geometry == self.geometry:
            return False
        self.geometry = geometry
        for listener in list(self._listeners):
            listener(geometry)
        return True
