"""
Tamuu Kernel — Interactive Canvas Controller

Direct-manipulation editing of one section against an abstract Surface.
The controller never talks to a drawing library: it produces PaintNodes
and asks the surface to add, remove, reposition and hit-test them, so the
same logic can back a retained-mode scene graph or a DOM renderer.

Paint contract:
- paint() tears the surface down completely before repainting, so an
  unchanged (elements, selection, background) triple always yields the
  same node list
- elements are painted in ascending z_index (layout.paint_order)
- the selection outline is painted last and never changes stored z_index
- images come from the shared ImageCache; until they load a placeholder
  node is painted with distinct loading / failed states

Drag contract:
- drag_to() moves the node and updates the live position, clamped to the
  canvas every frame; nothing is recorded as a change
- end_drag() rounds to whole logical units, clamps, and commits one edit
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable

from engine.kernel.images import ImageCache, ImageEntry, ImageState, image_cache
from engine.kernel.layout import Box, PlacedElement, clamp_position, layout_elements
from engine.kernel.scaling import LOGICAL_CANVAS, CanvasSize, editor_geometry
from engine.kernel.session import DocumentSession, SessionEvent
from engine.kernel.types import SectionDesign

SELECTION_STROKE = "#3b82f6"
SELECTION_WIDTH = 2
SELECTION_PAD = 2

PLACEHOLDER_STROKE = "#94a3b8"
PLACEHOLDER_FILLS = {ImageState.LOADING: "#e2e8f0", ImageState.FAILED: "#cbd5e1", None: "#e2e8f0"}
PLACEHOLDER_LABELS = {ImageState.LOADING: "Loading...", ImageState.FAILED: "Failed", None: "No Image"}

IMAGE_KINDS = {"image", "gif"}

# Node kinds that never receive clicks
_INERT = {"background", "overlay", "selection"}


@dataclass(frozen=True)
class PaintNode:
    id: str
    kind: str  # background | overlay | element | image | placeholder | selection
    box: Box
    rotation: float = 0.0
    flip_horizontal: bool = False
    flip_vertical: bool = False
    element_id: str | None = None
    props: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Surface
# ---------------------------------------------------------------------------


class Surface:
    """
    Abstract drawing surface.
    Nodes added later paint above nodes added earlier.
    """

    def clear(self) -> None:
        raise NotImplementedError

    def add(self, node: PaintNode) -> None:
        raise NotImplementedError

    def remove(self, node_id: str) -> None:
        raise NotImplementedError

    def reposition(self, node_id: str, box: Box) -> None:
        raise NotImplementedError

    def hit_test(self, x: float, y: float) -> str | None:
        """Element id of the topmost hittable node at (x, y), or None."""
        raise NotImplementedError

    def node_ids(self) -> list[str]:
        """Node ids in paint order, bottom first."""
        raise NotImplementedError


def _contains(node: PaintNode, x: float, y: float) -> bool:
    """Point-in-box with the node's rotation undone around its center."""
    cx, cy = node.box.center
    if node.rotation:
        rad = math.radians(-node.rotation)
        dx, dy = x - cx, y - cy
        x = cx + dx * math.cos(rad) - dy * math.sin(rad)
        y = cy + dx * math.sin(rad) + dy * math.cos(rad)
    b = node.box
    return b.x <= x <= b.right and b.y <= y <= b.bottom


class SceneSurface(Surface):
    """In-memory retained scene graph."""

    def __init__(self) -> None:
        self.nodes: list[PaintNode] = []

    def clear(self) -> None:
        self.nodes = []

    def add(self, node: PaintNode) -> None:
        self.remove(node.id)
        self.nodes.append(node)

    def remove(self, node_id: str) -> None:
        self.nodes = [n for n in self.nodes if n.id != node_id]

    def reposition(self, node_id: str, box: Box) -> None:
        for i, node in enumerate(self.nodes):
            if node.id == node_id:
                self.nodes[i] = PaintNode(
                    node.id,
                    node.kind,
                    box,
                    node.rotation,
                    node.flip_horizontal,
                    node.flip_vertical,
                    node.element_id,
                    node.props,
                )

    def hit_test(self, x: float, y: float) -> str | None:
        for node in reversed(self.nodes):
            if node.kind in _INERT:
                continue
            if _contains(node, x, y):
                return node.element_id
        return None

    def node_ids(self) -> list[str]:
        return [n.id for n in self.nodes]

    def get(self, node_id: str) -> PaintNode | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


def selection_box(box: Box) -> Box:
    return Box(box.x - SELECTION_PAD, box.y - SELECTION_PAD, box.width + 2 * SELECTION_PAD, box.height + 2 * SELECTION_PAD)


def _commit_coord(v: float, upper: float) -> int:
    """Round to a whole unit, then clamp into [0, floor(upper)]."""
    return max(0, min(round(v), math.floor(max(0.0, upper))))


class CanvasController:
    def __init__(
        self,
        session: DocumentSession,
        surface: Surface,
        section_key: str,
        images: ImageCache | None = None,
        zoom: float = 1.0,
        canvas: CanvasSize = LOGICAL_CANVAS,
    ) -> None:
        self.session = session
        self.surface = surface
        self.section_key = section_key
        self.images = images or image_cache
        self.canvas = canvas
        self.geometry = editor_geometry(canvas, zoom)
        self.paint_count = 0
        self._unsubscribers: list[Callable[[], None]] = [
            session.subscribe(self._on_session_event),
            self.images.subscribe(self._on_image_settled),
        ]

    @property
    def section(self) -> SectionDesign:
        return self.session.template.section_or_default(self.section_key)

    # -- painting -----------------------------------------------------------

    def paint(self) -> list[str]:
        """Tear down and repaint the whole section. Returns node ids in paint order."""
        self.surface.clear()
        self.paint_count += 1
        section = self.section
        if not section.is_visible:
            return self.surface.node_ids()

        transform = self.geometry.transform
        self.surface.add(self._background_node(section))
        if section.overlay_opacity > 0:
            self.surface.add(
                PaintNode(
                    "overlay",
                    "overlay",
                    self._frame_box(),
                    props={"fill": "#000000", "opacity": section.overlay_opacity},
                )
            )

        selected: PlacedElement | None = None
        for placed in layout_elements(section.elements, transform):
            self.surface.add(self._element_node(placed))
            if placed.element.id == self.session.selected_id:
                selected = placed

        if selected is not None:
            self.surface.add(self._selection_node(selected))
        return self.surface.node_ids()

    def _frame_box(self) -> Box:
        return Box(0, 0, self.geometry.frame_width, self.geometry.section_height)

    def _background_node(self, section: SectionDesign) -> PaintNode:
        props: dict[str, Any] = {"fill": section.background_color or "#ffffff"}
        if section.background_url:
            entry = self.images.request(section.background_url)
            if entry.state is ImageState.LOADED:
                props["image"] = entry.url
        return PaintNode("background", "background", self._frame_box(), props=props)

    def _element_node(self, placed: PlacedElement) -> PaintNode:
        el = placed.element
        common = dict(
            box=placed.box,
            rotation=placed.rotation,
            flip_horizontal=placed.flip_horizontal,
            flip_vertical=placed.flip_vertical,
            element_id=el.id,
        )
        if el.type in IMAGE_KINDS:
            entry: ImageEntry | None = self.images.request(el.image_url) if el.image_url else None  # type: ignore[union-attr]
            if entry is not None and entry.state is ImageState.LOADED:
                return PaintNode(el.id, "image", props={"image": entry.url, "opacity": el.opacity}, **common)
            state = entry.state if entry is not None else None
            return PaintNode(
                el.id,
                "placeholder",
                props={
                    "fill": PLACEHOLDER_FILLS[state],
                    "stroke": PLACEHOLDER_STROKE,
                    "label": PLACEHOLDER_LABELS[state],
                },
                **common,
            )
        props = el.model_dump(exclude={"id", "position", "size", "rotation", "flip_horizontal", "flip_vertical"})
        if el.type == "text":
            props["font_px"] = self.geometry.transform.length(el.text_style.font_size)  # type: ignore[union-attr]
        return PaintNode(el.id, "element", props=props, **common)

    def _selection_node(self, placed: PlacedElement) -> PaintNode:
        return PaintNode(
            f"selection:{placed.element.id}",
            "selection",
            selection_box(placed.box),
            rotation=placed.rotation,
            element_id=placed.element.id,
            props={"stroke": SELECTION_STROKE, "stroke_width": SELECTION_WIDTH},
        )

    # -- interaction --------------------------------------------------------

    def click(self, x: float, y: float) -> str | None:
        """Select the topmost element under (x, y) in target pixels; empty area clears."""
        hit = self.surface.hit_test(x, y)
        self.session.select(hit)
        return hit

    def begin_drag(self, element_id: str) -> bool:
        """Select the element for dragging. Locked and unknown elements cannot be dragged."""
        found = self.session.template.find_element(element_id)
        if found is None or found[1].locked:
            return False
        if self.session.selected_id != element_id:
            self.session.select(element_id)
        return True

    def drag_to(self, element_id: str, x: float, y: float) -> tuple[float, float] | None:
        """
        Live drag frame. (x, y) is the element's top-left in target pixels.
        Returns the clamped logical position, or None for locked/unknown elements.
        """
        found = self.session.template.find_element(element_id)
        if found is None or found[1].locked:
            return None
        el = found[1]
        lx, ly = self.geometry.transform.to_logical(x, y)
        lx, ly = clamp_position(lx, ly, el.size, self.canvas)
        self.session.move_element_live(element_id, lx, ly)

        tx, ty = self.geometry.transform.to_target(lx, ly)
        tw, th = self.geometry.transform.to_target(el.size.width, el.size.height)
        box = Box(tx, ty, tw, th)
        self.surface.reposition(element_id, box)
        if self.session.selected_id == element_id:
            self.surface.reposition(f"selection:{element_id}", selection_box(box))
        return lx, ly

    def end_drag(self, element_id: str, x: float, y: float) -> tuple[int, int] | None:
        """Drop. Commits one rounded, clamped position edit."""
        found = self.session.template.find_element(element_id)
        if found is None or found[1].locked:
            return None
        el = found[1]
        lx, ly = self.geometry.transform.to_logical(x, y)
        cx = _commit_coord(lx, self.canvas.width - el.size.width)
        cy = _commit_coord(ly, self.canvas.height - el.size.height)
        self.session.update_element(element_id, {"position": {"x": cx, "y": cy}})
        return cx, cy

    def image_state(self, url: str | None) -> ImageState | None:
        """Load state for an image URL as the canvas sees it (None when there is no URL)."""
        if not url:
            return None
        return self.images.request(url).state

    # -- observers ----------------------------------------------------------

    def _on_session_event(self, event: SessionEvent) -> None:
        if event.kind == "closed":
            self.close()
            return
        if event.live:
            return
        self.paint()

    def _on_image_settled(self, entry: ImageEntry) -> None:
        section = self.section
        urls = {self.images.resolve(section.background_url)} if section.background_url else set()
        for el in section.elements:
            url = getattr(el, "image_url", None)
            if url:
                urls.add(self.images.resolve(url))
        if entry.url in urls:
            self.paint()

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
