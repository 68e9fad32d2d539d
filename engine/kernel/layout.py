"""
Tamuu Kernel — Layout

Shared placement used by both render modes: the canvas controller and the
public renderer call the same functions, so paint order, scaled boxes and
transforms are identical in both.

Out-of-bounds geometry is laid out as stored. Only the editor clamps.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from engine.kernel.scaling import CanvasSize, Transform
from engine.kernel.types import SectionDesign, Size, Template, TemplateElement


@dataclass(frozen=True)
class Box:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def intersection(self, other: Box) -> float:
        w = min(self.right, other.right) - max(self.x, other.x)
        h = min(self.bottom, other.bottom) - max(self.y, other.y)
        if w <= 0 or h <= 0:
            return 0.0
        return w * h


@dataclass(frozen=True)
class PlacedElement:
    """An element with its target-space box, ready to paint."""

    element: TemplateElement
    box: Box
    rotation: float
    flip_horizontal: bool
    flip_vertical: bool
    paint_index: int

    @property
    def css_transform(self) -> str:
        return css_transform(self.flip_horizontal, self.flip_vertical, self.rotation)


def css_transform(flip_horizontal: bool, flip_vertical: bool, rotation: float) -> str:
    """Flip first, then rotate. Returns "none" when nothing applies."""
    parts: list[str] = []
    if flip_horizontal:
        parts.append("scaleX(-1)")
    if flip_vertical:
        parts.append("scaleY(-1)")
    if rotation:
        parts.append(f"rotate({_num(rotation)}deg)")
    return " ".join(parts) if parts else "none"


def _num(v: float) -> str:
    """Stable number formatting: integers without a trailing .0."""
    if float(v).is_integer():
        return str(int(v))
    return f"{v:.4f}".rstrip("0").rstrip(".")


def paint_order(elements: Sequence[TemplateElement]) -> list[TemplateElement]:
    """Ascending z_index; ties keep insertion order."""
    indexed = sorted(enumerate(elements), key=lambda pair: (pair[1].z_index, pair[0]))
    return [el for _, el in indexed]


def layout_elements(elements: Sequence[TemplateElement], transform: Transform) -> list[PlacedElement]:
    placed: list[PlacedElement] = []
    for i, el in enumerate(paint_order(elements)):
        x, y = transform.to_target(el.position.x, el.position.y)
        w, h = transform.to_target(el.size.width, el.size.height)
        placed.append(
            PlacedElement(
                element=el,
                box=Box(x, y, w, h),
                rotation=el.rotation,
                flip_horizontal=el.flip_horizontal,
                flip_vertical=el.flip_vertical,
                paint_index=i,
            )
        )
    return placed


def clamp_position(x: float, y: float, size: Size, canvas: CanvasSize) -> tuple[float, float]:
    """
    Keep the full bounding box inside [0, W₀] × [0, H₀].

    An element larger than the canvas on an axis is pinned to 0 on that axis.
    """
    max_x = max(0.0, canvas.width - size.width)
    max_y = max(0.0, canvas.height - size.height)
    return max(0.0, min(x, max_x)), max(0.0, min(y, max_y))


def visible_sections(template: Template) -> list[tuple[str, SectionDesign]]:
    """
    Sections to render, in display order.

    Keys in section_order with no stored data become empty default
    sections. Hidden sections are dropped entirely.
    """
    result: list[tuple[str, SectionDesign]] = []
    for key in template.ordered_section_keys():
        section = template.section_or_default(key)
        if section.is_visible:
            result.append((key, section))
    return result
