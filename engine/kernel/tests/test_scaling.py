"""
Coordinate & Scaling Engine tests.

Covers:
  - editor geometry is native at zoom 1
  - framed mode at and above the desktop breakpoint, capped frame width
  - fullscreen mode below the breakpoint
  - degenerate viewports clamp to 1 and never produce NaN/Infinity
  - logical → target → logical is the identity (within float tolerance)
  - ViewportTracker only notifies on real geometry changes
"""

import math

import pytest

from engine.kernel.scaling import (
    DESKTOP_BREAKPOINT,
    LOGICAL_CANVAS,
    CanvasSize,
    LayoutMode,
    Transform,
    ViewportTracker,
    editor_geometry,
    responsive_geometry,
)

# ============================================================================
# Editor
# ============================================================================


class TestEditorGeometry:
    def test_native_zoom(self):
        g = editor_geometry()
        assert g.mode is LayoutMode.EDITOR
        assert g.scale == 1.0
        assert g.frame_width == 375
        assert g.section_height == 667

    def test_zoom_scales_frame(self):
        g = editor_geometry(zoom=2.0)
        assert g.frame_width == 750
        assert g.transform.to_target(10, 20) == (20, 40)

    def test_invalid_zoom_falls_back_to_native(self):
        assert editor_geometry(zoom=0).scale == 1.0
        assert editor_geometry(zoom=float("nan")).scale == 1.0


# ============================================================================
# Responsive
# ============================================================================


class TestResponsiveGeometry:
    def test_desktop_is_framed_and_capped(self):
        g = responsive_geometry(LOGICAL_CANVAS, 1440, 900)
        assert g.mode is LayoutMode.FRAMED
        assert g.frame_width == 420
        assert g.scale == pytest.approx(420 / 375)
        assert g.section_height == pytest.approx(g.scale * 667)
        assert g.offset_x == pytest.approx((1440 - 420) / 2)

    def test_breakpoint_itself_is_framed(self):
        g = responsive_geometry(LOGICAL_CANVAS, DESKTOP_BREAKPOINT, 900)
        assert g.mode is LayoutMode.FRAMED
        # 0.9 * 768 = 691.2 > 420, so the cap applies
        assert g.frame_width == 420

    def test_frame_uses_ratio_when_below_cap(self):
        g = responsive_geometry(LOGICAL_CANVAS, 800, 600, max_frame_width=1000)
        assert g.frame_width == pytest.approx(720)

    def test_mobile_is_fullscreen(self):
        g = responsive_geometry(LOGICAL_CANVAS, 390, 844)
        assert g.mode is LayoutMode.FULLSCREEN
        assert g.scale == pytest.approx(390 / 375)
        assert g.frame_width == 390
        assert g.section_height == 844
        assert g.offset_x == 0

    @pytest.mark.parametrize("vw,vh", [(0, 0), (-5, 100), (float("nan"), 10), (float("inf"), 1)])
    def test_degenerate_viewports_are_finite(self, vw, vh):
        g = responsive_geometry(LOGICAL_CANVAS, vw, vh)
        for value in (g.scale, g.frame_width, g.section_height, g.offset_x):
            assert math.isfinite(value)
        assert g.scale > 0

    def test_zero_viewport_clamps_to_one(self):
        g = responsive_geometry(LOGICAL_CANVAS, 0, 0)
        assert g.viewport_width == 1
        assert g.viewport_height == 1
        assert g.scale == pytest.approx(1 / 375)


class TestTransform:
    def test_round_trip(self):
        t = Transform(1.37, 0.82)
        for x, y in [(0, 0), (10.5, 200), (374.9, 666.9)]:
            lx, ly = t.to_logical(*t.to_target(x, y))
            assert lx == pytest.approx(x, abs=1e-9)
            assert ly == pytest.approx(y, abs=1e-9)

    def test_length_uses_smaller_axis(self):
        assert Transform(2.0, 3.0).length(10) == 20


class TestCanvasSize:
    def test_rejects_non_positive(self):
        with pytest.raises(ValueError):
            CanvasSize(0, 100)


# ============================================================================
# Viewport tracker
# ============================================================================


class TestViewportTracker:
    def test_notifies_only_on_change(self):
        tracker = ViewportTracker()
        seen = []
        tracker.subscribe(seen.append)

        assert tracker.resize(390, 844) is True
        assert tracker.resize(390, 844) is False
        assert tracker.resize(1440, 900) is True
        assert [g.mode for g in seen] == [LayoutMode.FULLSCREEN, LayoutMode.FRAMED]

    def test_unsubscribe(self):
        tracker = ViewportTracker()
        seen = []
        unsubscribe = tracker.subscribe(seen.append)
        unsubscribe()
        tracker.resize(390, 844)
        assert seen == []
