"""
Field table tests.

The field table is the only place document fields meet columns, so it
must be total: every model field has a column, and every element kind
survives doc → row → doc unchanged.

Covers:
  - no unmapped fields on Template, SectionDesign or any element kind
  - full round trip for one element of every kind
  - patch_to_row writes only present paths; present None writes NULL
  - row_to_doc omits NULL columns so model defaults apply
"""

import pytest

from engine.kernel.fields import (
    ELEMENT_FIELDS,
    SECTION_FIELDS,
    TEMPLATE_FIELDS,
    doc_to_row,
    json_columns,
    patch_to_row,
    row_to_doc,
    unmapped_fields,
)
from engine.kernel.types import ELEMENT_ADAPTER, ELEMENT_TYPES, SectionDesign, Template, parse_element

# ============================================================================
# Helpers
# ============================================================================

SAMPLE_ELEMENTS = {
    "image": {"imageUrl": "https://cdn.example.com/a.png", "objectFit": "contain"},
    "gif": {"imageUrl": "https://cdn.example.com/a.gif"},
    "text": {"content": "Hello", "textStyle": {"fontSize": 30, "color": "#ff0000", "letterSpacing": 1.5}},
    "icon": {"iconStyle": {"iconName": "star", "iconSize": 48}},
    "countdown": {"countdownConfig": {"targetDate": "2030-01-01T00:00:00Z", "showSeconds": False}},
    "rsvp_form": {"rsvpFormConfig": {"title": "Come!", "showPhoneField": True}},
    "guest_wishes": {"guestWishesConfig": {"layout": "grid", "maxDisplayCount": 5}},
    "open_invitation_button": {"openInvitationConfig": {"buttonText": "Buka", "buttonShape": "stadium"}},
    "shape": {"shapeConfig": {"shapeType": "circle", "fill": "#000", "strokeWidth": 2}},
    "maps_point": {"content": "Hall", "mapsConfig": {"googleMapsUrl": "https://maps.example.com/x"}},
}


def make_element(kind):
    return parse_element(
        {
            "id": f"{kind}-1",
            "type": kind,
            "name": f"My {kind}",
            "position": {"x": 12.5, "y": 40},
            "size": {"width": 80, "height": 30},
            "zIndex": 4,
            "animation": "slide-up",
            "loopAnimation": "float",
            "animationDelay": 200,
            "animationDuration": 600,
            "rotation": 15,
            "flipVertical": True,
            "opacity": 0.5,
            "locked": True,
            **SAMPLE_ELEMENTS[kind],
        }
    )


# ============================================================================
# Totality
# ============================================================================


class TestTotality:
    def test_sample_covers_every_kind(self):
        assert set(SAMPLE_ELEMENTS) == ELEMENT_TYPES

    def test_template_fully_mapped(self):
        assert unmapped_fields(Template, TEMPLATE_FIELDS, structural=("sections",)) == []

    def test_section_fully_mapped(self):
        assert unmapped_fields(SectionDesign, SECTION_FIELDS, structural=("elements",)) == []

    @pytest.mark.parametrize("kind", sorted(ELEMENT_TYPES))
    def test_element_kind_fully_mapped(self, kind):
        model = type(make_element(kind))
        assert unmapped_fields(model, ELEMENT_FIELDS) == []


class TestRoundTrip:
    @pytest.mark.parametrize("kind", sorted(ELEMENT_TYPES))
    def test_element_round_trip(self, kind):
        original = make_element(kind)
        row = doc_to_row(original.model_dump(), ELEMENT_FIELDS)
        restored = ELEMENT_ADAPTER.validate_python(row_to_doc(row, ELEMENT_FIELDS))
        assert restored == original

    def test_row_has_every_column(self):
        row = doc_to_row(make_element("text").model_dump(), ELEMENT_FIELDS)
        assert set(row) == {fs.column for fs in ELEMENT_FIELDS}
        assert row["position_x"] == 12.5
        assert row["width"] == 80
        # A text element carries no image
        assert row["image_url"] is None

    def test_config_columns_are_json(self):
        assert {"text_style", "countdown_config", "maps_config"} <= json_columns(ELEMENT_FIELDS)
        assert "position_x" not in json_columns(ELEMENT_FIELDS)


class TestPatch:
    def test_absent_paths_emit_nothing(self):
        assert patch_to_row({"position": {"x": 5}}, ELEMENT_FIELDS) == {"position_x": 5}

    def test_present_none_writes_null(self):
        assert patch_to_row({"slug": None}, TEMPLATE_FIELDS) == {"slug": None}

    def test_null_columns_use_defaults(self):
        doc = row_to_doc({"id": "e", "type": "text", "animation": None, "opacity": None}, ELEMENT_FIELDS)
        el = ELEMENT_ADAPTER.validate_python(doc)
        assert el.animation == "none"
        assert el.opacity == 1.0
