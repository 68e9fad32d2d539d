"""
Tamuu Kernel — Document Model

Typed schema for Template → SectionDesign → TemplateElement. These are the
contracts that bind the kernel together: the session mutates them, the
synchronizer maps them to rows, the canvas and renderer paint them.

Key points:
- camelCase on the wire (alias generator), snake_case in Python
- `sections` is a mapping keyed by section type; `section_order` is the
  authoritative rendering order and never contains duplicates
- elements are a closed tagged union on `type`: each kind carries exactly
  its own configuration object and rejects every other kind's
- geometry is in logical canvas units (see scaling.LOGICAL_CANVAS)
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from engine.kernel.errors import ValidationFailure

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CANVAS_WIDTH = 375
CANVAS_HEIGHT = 667

# Order value given to sections whose key is absent from section_order.
UNORDERED_SECTION = 999

TEMPLATE_STATUSES: set[str] = {"draft", "published"}

# Legacy spellings still found in stored rows.
ELEMENT_TYPE_ALIASES: dict[str, str] = {
    "rsvp-form": "rsvp_form",
    "button": "open_invitation_button",
}


def canonical_element_type(kind: Any) -> Any:
    return ELEMENT_TYPE_ALIASES.get(kind, kind) if isinstance(kind, str) else kind


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


class Position(_Model):
    x: float = 0.0
    y: float = 0.0


class Size(_Model):
    width: float = 100.0
    height: float = 100.0


# ---------------------------------------------------------------------------
# Kind-specific configuration
# ---------------------------------------------------------------------------


class TextStyle(_Model):
    font_family: str = "Inter"
    font_size: float = 16
    font_weight: str = "normal"
    font_style: Literal["normal", "italic"] = "normal"
    text_decoration: Literal["none", "underline"] = "none"
    text_align: Literal["left", "center", "right"] = "center"
    color: str = "#1e293b"
    line_height: float | None = None
    letter_spacing: float | None = None


class IconStyle(_Model):
    icon_name: str = "heart"
    icon_color: str = "#1e293b"
    icon_size: float = 24


class CountdownLabels(_Model):
    days: str = "Days"
    hours: str = "Hours"
    minutes: str = "Minutes"
    seconds: str = "Seconds"


class CountdownConfig(_Model):
    target_date: str = ""
    style: str = "classic"
    show_days: bool = True
    show_hours: bool = True
    show_minutes: bool = True
    show_seconds: bool = True
    background_color: str = "transparent"
    text_color: str = "#1e293b"
    accent_color: str = "#3b82f6"
    label_color: str = "#64748b"
    digit_color: str | None = None
    font_family: str | None = None
    font_size: float | None = None
    show_labels: bool = True
    labels: CountdownLabels = Field(default_factory=CountdownLabels)


class RsvpFormConfig(_Model):
    style: str = "classic"
    title: str | None = None
    background_color: str = "#ffffff"
    text_color: str = "#1e293b"
    button_color: str = "#3b82f6"
    button_text_color: str = "#ffffff"
    border_color: str = "#e2e8f0"
    show_name_field: bool = True
    show_email_field: bool = False
    show_phone_field: bool = False
    show_message_field: bool = True
    show_attendance_field: bool = True
    name_label: str = "Name"
    email_label: str = "Email"
    phone_label: str = "Phone"
    message_label: str = "Message"
    attendance_label: str = "Will you attend?"
    submit_button_text: str = "Send RSVP"
    success_message: str = "Thank you for your response!"


class GuestWishesConfig(_Model):
    style: str = "classic"
    background_color: str = "#ffffff"
    text_color: str = "#1e293b"
    card_background_color: str = "#f8fafc"
    card_border_color: str = "#e2e8f0"
    show_timestamp: bool = True
    max_display_count: int = 20
    layout: Literal["list", "grid", "masonry"] = "list"


class OpenInvitationConfig(_Model):
    enabled: bool = True
    button_text: str = "Open Invitation"
    sub_text: str | None = None
    button_color: str = "#1e293b"
    text_color: str = "#ffffff"
    font_family: str = "Inter"
    font_size: float = 14
    button_style: str = "classic"
    button_shape: Literal["pill", "rounded", "rectangle", "stadium"] = "pill"
    position: Literal["bottom-center", "center", "bottom-third"] = "bottom-center"
    show_icon: bool = False
    icon_name: str | None = None


class ShapeConfig(_Model):
    shape_type: str = "rectangle"
    fill: str | None = "#cbd5e1"
    stroke: str | None = None
    stroke_width: float = 0
    corner_radius: float | None = None
    points: int | None = None
    inner_radius: float | None = None
    path_data: str | None = None


class MapsPointConfig(_Model):
    google_maps_url: str = ""
    display_name: str | None = None
    pin_color: str = "#ef4444"
    show_label: bool = True
    button_text: str = "Open Maps"


# ---------------------------------------------------------------------------
# Elements (closed tagged union on `type`)
# ---------------------------------------------------------------------------


class _ElementBase(_Model):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    id: str
    name: str = ""
    position: Position = Field(default_factory=Position)
    size: Size = Field(default_factory=Size)
    z_index: int = 0
    animation: str = "none"
    loop_animation: str | None = None
    animation_delay: int | None = None
    animation_speed: int | None = None
    animation_duration: int | None = None
    rotation: float = 0.0
    flip_horizontal: bool = False
    flip_vertical: bool = False
    opacity: float = 1.0
    locked: bool = False


class ImageElement(_ElementBase):
    type: Literal["image"] = "image"
    image_url: str | None = None
    object_fit: Literal["cover", "contain", "fill"] = "cover"


class GifElement(_ElementBase):
    type: Literal["gif"] = "gif"
    image_url: str | None = None
    object_fit: Literal["cover", "contain", "fill"] = "cover"


class TextElement(_ElementBase):
    type: Literal["text"] = "text"
    content: str = ""
    text_style: TextStyle = Field(default_factory=TextStyle)


class IconElement(_ElementBase):
    type: Literal["icon"] = "icon"
    icon_style: IconStyle = Field(default_factory=IconStyle)


class CountdownElement(_ElementBase):
    type: Literal["countdown"] = "countdown"
    countdown_config: CountdownConfig = Field(default_factory=CountdownConfig)


class RsvpFormElement(_ElementBase):
    type: Literal["rsvp_form"] = "rsvp_form"
    rsvp_form_config: RsvpFormConfig = Field(default_factory=RsvpFormConfig)


class GuestWishesElement(_ElementBase):
    type: Literal["guest_wishes"] = "guest_wishes"
    guest_wishes_config: GuestWishesConfig = Field(default_factory=GuestWishesConfig)


class OpenInvitationButtonElement(_ElementBase):
    type: Literal["open_invitation_button"] = "open_invitation_button"
    open_invitation_config: OpenInvitationConfig = Field(default_factory=OpenInvitationConfig)


class ShapeElement(_ElementBase):
    type: Literal["shape"] = "shape"
    shape_config: ShapeConfig = Field(default_factory=ShapeConfig)


class MapsPointElement(_ElementBase):
    type: Literal["maps_point"] = "maps_point"
    content: str | None = None
    maps_config: MapsPointConfig = Field(default_factory=MapsPointConfig)


TemplateElement = Annotated[
    Union[
        ImageElement,
        GifElement,
        TextElement,
        IconElement,
        CountdownElement,
        RsvpFormElement,
        GuestWishesElement,
        OpenInvitationButtonElement,
        ShapeElement,
        MapsPointElement,
    ],
    Field(discriminator="type"),
]

ELEMENT_ADAPTER: TypeAdapter[TemplateElement] = TypeAdapter(TemplateElement)

ELEMENT_TYPES: set[str] = {
    "image",
    "gif",
    "text",
    "icon",
    "countdown",
    "rsvp_form",
    "guest_wishes",
    "open_invitation_button",
    "shape",
    "maps_point",
}

# Which configuration field each kind owns; used when merging patches.
CONFIG_FIELD_BY_TYPE: dict[str, str | None] = {
    "image": None,
    "gif": None,
    "text": "text_style",
    "icon": "icon_style",
    "countdown": "countdown_config",
    "rsvp_form": "rsvp_form_config",
    "guest_wishes": "guest_wishes_config",
    "open_invitation_button": "open_invitation_config",
    "shape": "shape_config",
    "maps_point": "maps_config",
}


def parse_element(data: dict[str, Any]) -> TemplateElement:
    """
    Validate one element dict (camelCase or snake_case keys) into its kind's model.

    Raises ValidationFailure("invalid_element") for unknown kinds or
    configuration that does not belong to the declared kind.
    """
    data = dict(data)
    kind = data.get("type")
    if "type" in data:
        data["type"] = canonical_element_type(kind)
    try:
        return ELEMENT_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise ValidationFailure(
            "invalid_element",
            f"Element {data.get('id', '?')!r} of type {kind!r} is invalid: {e.errors()[0]['msg']}",
        ) from e


# ---------------------------------------------------------------------------
# Sections and templates
# ---------------------------------------------------------------------------


class SectionDesign(_Model):
    id: str | None = None
    background_color: str | None = None
    background_url: str | None = None
    overlay_opacity: float = 0.0
    animation: str = "none"
    is_visible: bool = True
    page_title: str | None = None
    elements: list[TemplateElement] = Field(default_factory=list)
    open_invitation_config: OpenInvitationConfig | None = None

    @field_validator("overlay_opacity", mode="before")
    @classmethod
    def _clamp_overlay(cls, v: Any) -> float:
        if v is None:
            return 0.0
        return min(1.0, max(0.0, float(v)))

    def find_element(self, element_id: str) -> TemplateElement | None:
        for el in self.elements:
            if el.id == element_id:
                return el
        return None


class CustomSection(_Model):
    id: str
    name: str
    order: int = 0


class Template(_Model):
    """
    A multi-section invitation document.

    `sections` may be missing keys listed in `section_order`; such keys
    render as an empty default section. Keys present in `sections` but not
    in `section_order` render after all ordered sections.
    """

    id: str
    name: str = "Untitled Template"
    slug: str | None = None
    thumbnail: str | None = None
    status: Literal["draft", "published"] = "draft"
    sections: dict[str, SectionDesign] = Field(default_factory=dict)
    section_order: list[str] = Field(default_factory=list)
    custom_sections: list[CustomSection] = Field(default_factory=list)
    global_theme: dict[str, Any] = Field(default_factory=dict)
    event_date: str | None = None
    source_template_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("section_order")
    @classmethod
    def _no_duplicate_keys(cls, v: list[str]) -> list[str]:
        seen: set[str] = set()
        for key in v:
            if key in seen:
                raise ValueError(f"sectionOrder contains duplicate key {key!r}")
            seen.add(key)
        return v

    def section_rank(self, key: str) -> int:
        """Display rank of a section key; unlisted keys get UNORDERED_SECTION."""
        try:
            return self.section_order.index(key)
        except ValueError:
            return UNORDERED_SECTION

    def ordered_section_keys(self) -> list[str]:
        """section_order first, then any stored sections it does not mention."""
        extra = [k for k in self.sections if k not in self.section_order]
        return list(self.section_order) + extra

    def section_or_default(self, key: str) -> SectionDesign:
        return self.sections.get(key) or SectionDesign()

    def find_element(self, element_id: str) -> tuple[str, TemplateElement] | None:
        """Locate an element across all sections. Returns (section_key, element)."""
        for key, section in self.sections.items():
            el = section.find_element(element_id)
            if el is not None:
                return key, el
        return None


def parse_template(data: dict[str, Any]) -> Template:
    """Validate a full template document, raising ValidationFailure on bad input."""
    try:
        return Template.model_validate(data)
    except ValidationError as e:
        raise ValidationFailure("invalid_template", f"Template is invalid: {e.errors()[0]['msg']}") from e
