"""
Interactive canvas controller tests, against the in-memory SceneSurface.

Covers:
  - paint order by z_index with the selection outline always last
  - repainting an unchanged document yields the same scene
  - click selects the topmost element; empty area clears the selection
  - drag frames clamp and stay out of dirty tracking; drop rounds and commits
  - locked elements cannot be picked up or dragged
  - image placeholders for missing, loading and failed images
  - the controller repaints when an image it shows settles, and stops after close
"""

from engine.kernel.canvas import PLACEHOLDER_LABELS, CanvasController, SceneSurface
from engine.kernel.errors import AssetLoadError
from engine.kernel.images import FetchedImage, ImageCache, ImageLoader, ImageState
from engine.kernel.session import DocumentSession
from engine.kernel.types import SectionDesign, Template

PHOTO = "https://photos.example.com/a.jpg"
BROKEN = "https://photos.example.com/broken.jpg"


class StaticLoader(ImageLoader):
    async def fetch(self, url, anonymous):
        if url == BROKEN:
            raise AssetLoadError(url, "gone")
        return FetchedImage(b"jpg", "image/jpeg")


def make_controller(zoom=1.0, elements=None, **section):
    elements = elements or [
        {"id": "low", "type": "shape", "zIndex": 1, "position": {"x": 10, "y": 10}, "size": {"width": 100, "height": 100}},
        {"id": "high", "type": "shape", "zIndex": 3, "position": {"x": 50, "y": 50}, "size": {"width": 100, "height": 100}},
        {"id": "img", "type": "image", "zIndex": 2, "position": {"x": 200, "y": 300}, "size": {"width": 80, "height": 80}},
        {"id": "pin", "type": "text", "zIndex": 0, "locked": True, "position": {"x": 0, "y": 500}, "size": {"width": 50, "height": 50}},
    ]
    template = Template(
        id="t1",
        section_order=["opening"],
        sections={"opening": SectionDesign(elements=elements, overlay_opacity=0.3, **section)},
    )
    session = DocumentSession(template)
    surface = SceneSurface()
    images = ImageCache(StaticLoader())
    controller = CanvasController(session, surface, "opening", images=images, zoom=zoom)
    return controller, session, surface, images


# ============================================================================
# Painting
# ============================================================================


class TestPaint:
    def test_paint_order(self):
        controller, _, _, _ = make_controller()
        assert controller.paint() == ["background", "overlay", "pin", "low", "img", "high"]

    def test_selection_painted_last(self):
        controller, session, surface, _ = make_controller()
        controller.paint()
        session.select("low")
        assert surface.node_ids()[-1] == "selection:low"
        selection = surface.get("selection:low")
        assert selection.box.x == 8 and selection.box.width == 104
        assert session.template.find_element("low")[1].z_index == 1

    def test_repaint_is_stable(self):
        controller, session, surface, _ = make_controller()
        session.select("img")
        first = list(surface.nodes)
        controller.paint()
        assert surface.nodes == first

    def test_hidden_section_paints_nothing(self):
        controller, _, _, _ = make_controller(is_visible=False)
        assert controller.paint() == []

    def test_zoom_scales_boxes(self):
        controller, _, surface, _ = make_controller(zoom=2)
        controller.paint()
        assert surface.get("high").box.x == 100
        assert surface.get("background").box.width == 750

    def test_edits_repaint_but_live_moves_do_not(self):
        controller, session, _, _ = make_controller()
        controller.paint()
        count = controller.paint_count
        session.move_element_live("low", 1, 1)
        assert controller.paint_count == count
        session.update_element("low", {"opacity": 0.5})
        assert controller.paint_count == count + 1


class TestImagePlaceholders:
    def test_missing_url(self):
        controller, _, surface, _ = make_controller()
        controller.paint()
        node = surface.get("img")
        assert node.kind == "placeholder"
        assert node.props["label"] == PLACEHOLDER_LABELS[None]

    def test_loading(self):
        controller, _, surface, _ = make_controller(
            elements=[{"id": "img", "type": "image", "imageUrl": PHOTO}],
        )
        controller.paint()
        assert surface.get("img").props["label"] == PLACEHOLDER_LABELS[ImageState.LOADING]

    async def test_loaded_image_repaints(self):
        controller, _, surface, images = make_controller(
            elements=[{"id": "img", "type": "image", "imageUrl": PHOTO}],
        )
        controller.paint()
        assert surface.get("img").kind == "placeholder"
        await images.load(PHOTO)
        node = surface.get("img")
        assert node.kind == "image"
        assert node.props["image"] == PHOTO

    async def test_failed_image(self):
        controller, _, surface, images = make_controller(
            elements=[{"id": "img", "type": "image", "imageUrl": BROKEN}],
        )
        controller.paint()
        await images.load(BROKEN)
        node = surface.get("img")
        assert node.kind == "placeholder"
        assert node.props["label"] == PLACEHOLDER_LABELS[ImageState.FAILED]

    async def test_image_state(self):
        controller, _, _, images = make_controller()
        assert controller.image_state(None) is None
        assert controller.image_state(PHOTO) is ImageState.LOADING
        await images.load(PHOTO)
        assert controller.image_state(PHOTO) is ImageState.LOADED

    async def test_close_stops_repaints(self):
        controller, session, _, images = make_controller(
            elements=[{"id": "img", "type": "image", "imageUrl": PHOTO}],
        )
        controller.paint()
        count = controller.paint_count
        session.close()
        await images.load(PHOTO)
        assert controller.paint_count == count


# ============================================================================
# Interaction
# ============================================================================


class TestClick:
    def test_topmost_wins(self):
        controller, session, _, _ = make_controller()
        controller.paint()
        assert controller.click(60, 60) == "high"
        assert session.selected_id == "high"

    def test_empty_area_clears(self):
        controller, session, _, _ = make_controller()
        controller.paint()
        controller.click(60, 60)
        assert controller.click(350, 20) is None
        assert session.selected_id is None

    def test_click_at_zoom(self):
        controller, _, _, _ = make_controller(zoom=2)
        controller.paint()
        assert controller.click(30, 30) == "low"

    def test_rotation_is_honoured(self):
        controller, _, _, _ = make_controller(
            elements=[
                {
                    "id": "bar",
                    "type": "shape",
                    "rotation": 90,
                    "position": {"x": 0, "y": 0},
                    "size": {"width": 200, "height": 20},
                }
            ]
        )
        controller.paint()
        assert controller.click(100, 80) == "bar"
        assert controller.click(180, 10) is None


class TestDrag:
    def test_begin_drag_selects(self):
        controller, session, surface, _ = make_controller()
        controller.paint()
        assert controller.begin_drag("low") is True
        assert session.selected_id == "low"
        assert surface.node_ids()[-1] == "selection:low"

    def test_begin_drag_refuses_locked(self):
        controller, session, _, _ = make_controller()
        assert controller.begin_drag("pin") is False
        assert controller.begin_drag("ghost") is False
        assert session.selected_id is None

    def test_drag_clamps_and_is_not_dirty(self):
        controller, session, surface, _ = make_controller()
        controller.paint()
        assert controller.drag_to("low", -50, 1000) == (0, 567)
        assert session.dirty is False
        assert surface.get("low").box.y == 567

    def test_drag_moves_selection_outline(self):
        controller, session, surface, _ = make_controller()
        controller.paint()
        session.select("low")
        controller.drag_to("low", 100, 100)
        assert surface.get("selection:low").box.x == 98

    def test_drop_rounds_and_commits(self):
        controller, session, _, _ = make_controller()
        controller.paint()
        controller.drag_to("low", 12, 20)
        assert controller.end_drag("low", 12.6, 20.4) == (13, 20)
        [change] = session.pending()
        assert change.patch == {"position": {"x": 13, "y": 20}}

    def test_drop_clamps(self):
        controller, _, _, _ = make_controller()
        assert controller.end_drag("high", 400.7, -3) == (275, 0)

    def test_drop_at_zoom_uses_logical_units(self):
        controller, _, _, _ = make_controller(zoom=2)
        assert controller.end_drag("low", 100.8, 50) == (50, 25)

    def test_locked_element_ignores_drag(self):
        controller, session, _, _ = make_controller()
        assert controller.drag_to("pin", 100, 100) is None
        assert controller.end_drag("pin", 100, 100) is None
        assert session.template.find_element("pin")[1].position.y == 500
        assert session.dirty is False
