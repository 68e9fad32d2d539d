"""
Tamuu Kernel — Public Renderer

Pure function: (template, options) → HTML string.
No IO. Deterministic for a fixed `options.now`: same input → same output.

- Only visible sections, in display order; order keys with no stored data
  render as an empty default section
- Geometry comes from scaling + layout, the same code the canvas uses
- Every asset URL passes through the proxy rewrite
- Entrance/loop animation styles for sections and elements come from the
  animation resolver; a small IntersectionObserver script applies the
  post-entrance style exactly once
- A cover section with an open-invitation call to action keeps the
  following sections hidden until it is pressed
- One element failing to render degrades to a placeholder; siblings and
  other sections are unaffected
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from html import escape as _html_escape
from typing import Any
from urllib.parse import urlsplit

import chevron

from engine.kernel.animation import (
    DEFAULT_VISIBILITY_THRESHOLD,
    KEYFRAMES_CSS,
    ElementAnimationState,
    plan_for,
    resolve_animation,
)
from engine.kernel.countdown import time_left
from engine.kernel.layout import PlacedElement, layout_elements, visible_sections
from engine.kernel.scaling import (
    DESKTOP_BREAKPOINT,
    FRAME_RATIO,
    LOGICAL_CANVAS,
    MAX_FRAME_WIDTH,
    RenderGeometry,
    Transform,
    responsive_geometry,
)
from engine.kernel.types import CANVAS_HEIGHT, CANVAS_WIDTH, SectionDesign, Template
from engine.kernel.urls import DEFAULT_PROXY_RULE, ProxyRule, proxied_url

logger = logging.getLogger(__name__)

TERMINAL_MESSAGES: dict[str, str] = {
    "not_found": "Template not found or not published.",
    "not_published": "This template is not published yet.",
    "unavailable": "This invitation could not be loaded. Please try again later.",
}


@dataclass
class RenderOptions:
    """Options controlling the public render."""

    viewport_width: float = CANVAS_WIDTH
    viewport_height: float = CANVAS_HEIGHT
    proxy_rule: ProxyRule = DEFAULT_PROXY_RULE
    now: datetime | None = None  # countdown reference time; fix it for reproducible output
    visibility_threshold: float = DEFAULT_VISIBILITY_THRESHOLD
    include_scripts: bool = True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def render_template(template: Template, options: RenderOptions | None = None) -> str:
    """Render a complete public HTML page for a template."""
    opts = options or RenderOptions()
    geometry = responsive_geometry(LOGICAL_CANVAS, opts.viewport_width, opts.viewport_height)

    parts: list[str] = []
    parts.append("<!DOCTYPE html>")
    parts.append('<html lang="en">')
    parts.append("<head>")
    parts.append('  <meta charset="utf-8">')
    parts.append('  <meta name="viewport" content="width=device-width, initial-scale=1">')
    parts.append(f"  <title>{escape(template.name)}</title>")
    parts.append("  <style>")
    parts.append(BASE_CSS)
    parts.append(KEYFRAMES_CSS)
    parts.append("  </style>")
    parts.append("</head>")
    parts.append(f'<body class="tm-mode-{geometry.mode.value}">')

    frame_style = _style({"width": _px(geometry.frame_width), "margin-left": _px(geometry.offset_x)})
    parts.append(f'  <main class="tm-frame" style="{escape(frame_style)}">')

    sections = visible_sections(template)
    gated = bool(sections) and _has_gate(sections[0][1])
    for i, (key, section) in enumerate(sections):
        parts.append(render_section(key, section, geometry, opts, template=template, locked=gated and i > 0))
    if not sections:
        parts.append('    <p class="tm-empty">This invitation is empty.</p>')

    parts.append("  </main>")
    if opts.include_scripts:
        parts.append(_render_scripts(geometry, opts))
    parts.append("</body>")
    parts.append("</html>")
    return "\n".join(parts)


def render_section(
    key: str,
    section: SectionDesign,
    geometry: RenderGeometry,
    options: RenderOptions | None = None,
    template: Template | None = None,
    locked: bool = False,
) -> str:
    """Render one section fragment at the given geometry."""
    opts = options or RenderOptions()
    transform = geometry.transform

    style: dict[str, str] = {"height": _px(geometry.section_height)}
    if section.background_color:
        style["background-color"] = section.background_color
    if section.background_url:
        style["background-image"] = f'url("{proxied_url(section.background_url, opts.proxy_rule)}")'

    classes = "tm-section tm-locked" if locked else "tm-section"
    parts: list[str] = [f'    <section class="{classes}" data-section="{escape(key)}" style="{escape(_style(style))}">']
    if section.overlay_opacity > 0:
        parts.append(f'      <div class="tm-overlay" style="opacity:{_num(section.overlay_opacity)}"></div>')
    # The section's own animation moves its elements, not the background or overlay
    section_state = ElementAnimationState(resolve_animation(section.animation), opts.visibility_threshold)
    section_attrs, section_style = _animation_attrs(section_state)
    if section_attrs:
        parts.append(f'      <div class="tm-section-anim"{section_attrs} style="{escape(section_style)}">')

    canvas_style = _style({"width": _px(CANVAS_WIDTH * transform.sx), "height": _px(CANVAS_HEIGHT * transform.sy)})
    parts.append(f'      <div class="tm-canvas" style="{canvas_style}">')
    placed_all = layout_elements(section.elements, transform)
    for placed in placed_all:
        parts.append(_render_element_safe(placed, transform, opts, template))
    if section.open_invitation_config and section.open_invitation_config.enabled:
        if not any(p.element.type == "open_invitation_button" for p in placed_all):
            parts.append(_render_section_gate_button(section, transform))
    parts.append("      </div>")
    if section_attrs:
        parts.append("      </div>")
    parts.append("    </section>")
    return "\n".join(parts)


def render_terminal(state: str, message: str | None = None) -> str:
    """
    Full page for a document-level terminal state (not_found, not_published,
    unavailable). Carries the message only, never template content.
    """
    text = message or TERMINAL_MESSAGES.get(state, TERMINAL_MESSAGES["unavailable"])
    parts = [
        "<!DOCTYPE html>",
        '<html lang="en">',
        "<head>",
        '  <meta charset="utf-8">',
        '  <meta name="viewport" content="width=device-width, initial-scale=1">',
        "  <title>Invitation</title>",
        "  <style>",
        TERMINAL_CSS,
        "  </style>",
        "</head>",
        "<body>",
        f'  <div class="tm-terminal" data-state="{escape(state)}"><p>{escape(text)}</p></div>',
        "</body>",
        "</html>",
    ]
    return "\n".join(parts)


# ---------------------------------------------------------------------------
# Elements
# ---------------------------------------------------------------------------


def _has_gate(cover: SectionDesign) -> bool:
    if cover.open_invitation_config is not None and cover.open_invitation_config.enabled:
        return True
    return any(el.type == "open_invitation_button" for el in cover.elements)


def _render_element_safe(
    placed: PlacedElement,
    transform: Transform,
    opts: RenderOptions,
    template: Template | None,
) -> str:
    try:
        return _render_element(placed, transform, opts, template)
    except Exception as e:
        logger.warning("renderer: element %s (%s) failed, rendering placeholder: %s", placed.element.id, placed.element.type, e)
        return _wrap(placed, '<div class="tm-placeholder">Unavailable</div>', None)


def _render_element(
    placed: PlacedElement,
    transform: Transform,
    opts: RenderOptions,
    template: Template | None,
) -> str:
    el = placed.element
    renderer = _FRAGMENT_RENDERERS[el.type]
    inner = renderer(el, transform, opts, template)

    state = ElementAnimationState(plan_for(el), opts.visibility_threshold)
    return _wrap(placed, inner, state)


def _animation_attrs(state: ElementAnimationState | None) -> tuple[str, str]:
    """Initial inline style plus the data attributes the visibility script swaps in."""
    if state is None or state.plan.is_static:
        return "", ""
    initial = _style(state.style())
    state.observe(1.0)
    return f' data-tm-anim data-tm-final="{escape(_style(state.style()))}"', initial


def _wrap(placed: PlacedElement, inner: str, state: ElementAnimationState | None) -> str:
    el = placed.element
    box = placed.box
    outer = {
        "left": _px(box.x),
        "top": _px(box.y),
        "width": _px(box.width),
        "height": _px(box.height),
        "z-index": str(placed.paint_index + 1),
    }
    if el.opacity != 1:
        outer["opacity"] = _num(el.opacity)

    anim_attrs, anim_style = _animation_attrs(state)

    body_style = f"transform:{placed.css_transform}"
    return (
        f'        <div class="tm-el tm-el-{el.type}" data-el="{escape(el.id)}" style="{escape(_style(outer))}">'
        f'<div class="tm-anim"{anim_attrs} style="{escape(anim_style)}">'
        f'<div class="tm-body" style="{body_style}">{inner}</div>'
        "</div></div>"
    )


_IMAGE_TEMPLATE = (
    '<img src="{{src}}" alt="{{alt}}" loading="lazy" '
    'style="width:100%;height:100%;object-fit:{{fit}}" onerror="this.replaceWith(Object.assign('
    "document.createElement('div'),{className:'tm-placeholder',textContent:'Failed'}))\">"
)
_TEXT_TEMPLATE = '<div class="tm-text" style="{{style}}">{{content}}</div>'
_ICON_TEMPLATE = '<span class="tm-icon" data-icon="{{name}}" style="{{style}}"></span>'
_COUNTDOWN_TEMPLATE = (
    '<div class="tm-countdown tm-countdown-{{variant}}" data-tm-countdown="{{target}}" style="{{style}}">'
    "{{#units}}"
    '<div class="tm-cd-unit"><span class="tm-cd-value" data-unit="{{key}}" style="{{digit_style}}">{{value}}</span>'
    '{{#label}}<span class="tm-cd-label" style="{{label_style}}">{{label}}</span>{{/label}}</div>'
    "{{/units}}"
    "</div>"
)
_RSVP_TEMPLATE = (
    '<form class="tm-rsvp tm-style-{{variant}}" style="{{style}}" onsubmit="return false">'
    "{{#title}}<h3>{{title}}</h3>{{/title}}"
    '{{#fields}}<label>{{label}}<{{tag}} name="{{name}}"{{#type}} type="{{type}}"{{/type}}></{{tag}}></label>{{/fields}}'
    '<button type="submit" style="{{button_style}}">{{submit}}</button>'
    "</form>"
)
_WISHES_TEMPLATE = (
    '<div class="tm-wishes tm-wishes-{{layout}} tm-style-{{variant}}" style="{{style}}" data-max="{{max}}">'
    '<p class="tm-wishes-empty">No wishes yet.</p>'
    "</div>"
)
_BUTTON_TEMPLATE = (
    '<button type="button" class="tm-open-invitation tm-shape-{{shape}}" data-tm-open style="{{style}}">'
    "{{text}}{{#sub}}<small>{{sub}}</small>{{/sub}}</button>"
)
_MAPS_TEMPLATE = (
    '<a class="tm-maps" href="{{url}}" target="_blank" rel="noopener">'
    '<span class="tm-pin" style="color:{{pin}}">&#9679;</span>'
    "{{#label}}<span class=\"tm-maps-label\">{{label}}</span>{{/label}}"
    '<span class="tm-maps-button">{{button}}</span></a>'
)


def _image(el: Any, transform: Transform, opts: RenderOptions, template: Template | None) -> str:
    if not el.image_url:
        return '<div class="tm-placeholder">No Image</div>'
    return chevron.render(
        _IMAGE_TEMPLATE,
        {"src": proxied_url(el.image_url, opts.proxy_rule), "alt": el.name, "fit": el.object_fit},
    )


def _text(el: Any, transform: Transform, opts: RenderOptions, template: Template | None) -> str:
    ts = el.text_style
    style = {
        "font-family": ts.font_family,
        "font-size": _px(transform.length(ts.font_size)),
        "font-weight": ts.font_weight,
        "font-style": ts.font_style,
        "text-decoration": ts.text_decoration,
        "text-align": ts.text_align,
        "color": ts.color,
    }
    if ts.line_height is not None:
        style["line-height"] = _num(ts.line_height)
    if ts.letter_spacing is not None:
        style["letter-spacing"] = _px(transform.length(ts.letter_spacing))
    return chevron.render(_TEXT_TEMPLATE, {"style": _style(style), "content": el.content})


def _icon(el: Any, transform: Transform, opts: RenderOptions, template: Template | None) -> str:
    ist = el.icon_style
    style = {"color": ist.icon_color, "font-size": _px(transform.length(ist.icon_size))}
    return chevron.render(_ICON_TEMPLATE, {"name": ist.icon_name, "style": _style(style)})


def _countdown(el: Any, transform: Transform, opts: RenderOptions, template: Template | None) -> str:
    cfg = el.countdown_config
    target = cfg.target_date or (template.event_date if template else None) or ""
    left = time_left(target, opts.now)
    units = []
    for key, show, value in (
        ("days", cfg.show_days, left.days),
        ("hours", cfg.show_hours, left.hours),
        ("minutes", cfg.show_minutes, left.minutes),
        ("seconds", cfg.show_seconds, left.seconds),
    ):
        if show:
            units.append(
                {
                    "key": key,
                    "value": f"{value:02d}",
                    "label": getattr(cfg.labels, key) if cfg.show_labels else "",
                    "digit_style": _style({"color": cfg.digit_color or cfg.text_color}),
                    "label_style": _style({"color": cfg.label_color}),
                }
            )
    style = {"background-color": cfg.background_color, "color": cfg.text_color}
    if cfg.font_family:
        style["font-family"] = cfg.font_family
    if cfg.font_size:
        style["font-size"] = _px(transform.length(cfg.font_size))
    return chevron.render(
        _COUNTDOWN_TEMPLATE,
        {"variant": cfg.style, "target": target, "style": _style(style), "units": units},
    )


def _rsvp(el: Any, transform: Transform, opts: RenderOptions, template: Template | None) -> str:
    cfg = el.rsvp_form_config
    fields = []
    if cfg.show_name_field:
        fields.append({"label": cfg.name_label, "name": "name", "tag": "input", "type": "text"})
    if cfg.show_email_field:
        fields.append({"label": cfg.email_label, "name": "email", "tag": "input", "type": "email"})
    if cfg.show_phone_field:
        fields.append({"label": cfg.phone_label, "name": "phone", "tag": "input", "type": "tel"})
    if cfg.show_attendance_field:
        fields.append({"label": cfg.attendance_label, "name": "attendance", "tag": "select", "type": ""})
    if cfg.show_message_field:
        fields.append({"label": cfg.message_label, "name": "message", "tag": "textarea", "type": ""})
    return chevron.render(
        _RSVP_TEMPLATE,
        {
            "variant": cfg.style,
            "title": cfg.title or "",
            "style": _style(
                {"background-color": cfg.background_color, "color": cfg.text_color, "border-color": cfg.border_color}
            ),
            "fields": fields,
            "submit": cfg.submit_button_text,
            "button_style": _style({"background-color": cfg.button_color, "color": cfg.button_text_color}),
        },
    )


def _wishes(el: Any, transform: Transform, opts: RenderOptions, template: Template | None) -> str:
    cfg = el.guest_wishes_config
    return chevron.render(
        _WISHES_TEMPLATE,
        {
            "layout": cfg.layout,
            "variant": cfg.style,
            "max": cfg.max_display_count,
            "style": _style({"background-color": cfg.background_color, "color": cfg.text_color}),
        },
    )


def _button_style(cfg: Any, transform: Transform) -> str:
    return _style(
        {
            "background-color": cfg.button_color,
            "color": cfg.text_color,
            "font-family": cfg.font_family,
            "font-size": _px(transform.length(cfg.font_size)),
        }
    )


def _open_button(el: Any, transform: Transform, opts: RenderOptions, template: Template | None) -> str:
    cfg = el.open_invitation_config
    return chevron.render(
        _BUTTON_TEMPLATE,
        {"shape": cfg.button_shape, "style": _button_style(cfg, transform), "text": cfg.button_text, "sub": cfg.sub_text or ""},
    )


def _render_section_gate_button(section: SectionDesign, transform: Transform) -> str:
    cfg = section.open_invitation_config
    button = chevron.render(
        _BUTTON_TEMPLATE,
        {"shape": cfg.button_shape, "style": _button_style(cfg, transform), "text": cfg.button_text, "sub": cfg.sub_text or ""},
    )
    return f'        <div class="tm-gate tm-gate-{cfg.position}">{button}</div>'


def _shape(el: Any, transform: Transform, opts: RenderOptions, template: Template | None) -> str:
    cfg = el.shape_config
    w, h = el.size.width, el.size.height
    fill = escape(cfg.fill or "none")
    stroke = escape(cfg.stroke or "none")
    sw = _num(cfg.stroke_width)
    paint = f'fill="{fill}" stroke="{stroke}" stroke-width="{sw}"'
    if cfg.path_data:
        body = f'<path d="{escape(cfg.path_data)}" {paint}/>'
    elif cfg.shape_type in ("circle", "ellipse"):
        body = f'<ellipse cx="{_num(w / 2)}" cy="{_num(h / 2)}" rx="{_num(w / 2)}" ry="{_num(h / 2)}" {paint}/>'
    elif cfg.shape_type == "triangle":
        body = f'<polygon points="{_num(w / 2)},0 {_num(w)},{_num(h)} 0,{_num(h)}" {paint}/>'
    elif cfg.shape_type == "line":
        body = f'<line x1="0" y1="{_num(h / 2)}" x2="{_num(w)}" y2="{_num(h / 2)}" {paint}/>'
    else:
        rx = _num(cfg.corner_radius or (min(w, h) * 0.15 if cfg.shape_type == "rounded-rectangle" else 0))
        body = f'<rect x="0" y="0" width="{_num(w)}" height="{_num(h)}" rx="{rx}" {paint}/>'
    return (
        f'<svg class="tm-shape" viewBox="0 0 {_num(w)} {_num(h)}" width="100%" height="100%" '
        f'preserveAspectRatio="none">{body}</svg>'
    )


def _link(url: str) -> str:
    """Outbound links are limited to http(s); anything else becomes a dead "#"."""
    try:
        scheme = urlsplit(url.strip()).scheme.lower()
    except ValueError:
        return "#"
    return url if scheme in ("http", "https") else "#"


def _maps(el: Any, transform: Transform, opts: RenderOptions, template: Template | None) -> str:
    cfg = el.maps_config
    label = (cfg.display_name or el.content or "") if cfg.show_label else ""
    return chevron.render(
        _MAPS_TEMPLATE,
        {"url": _link(cfg.google_maps_url), "pin": cfg.pin_color, "label": label, "button": cfg.button_text},
    )


_FRAGMENT_RENDERERS = {
    "image": _image,
    "gif": _image,
    "text": _text,
    "icon": _icon,
    "countdown": _countdown,
    "rsvp_form": _rsvp,
    "guest_wishes": _wishes,
    "open_invitation_button": _open_button,
    "shape": _shape,
    "maps_point": _maps,
}


# ---------------------------------------------------------------------------
# Scripts
# ---------------------------------------------------------------------------

_SCRIPT = """
(function () {
  var G = %(geometry)s;
  var frame = document.querySelector('.tm-frame');
  var sections = Array.prototype.slice.call(document.querySelectorAll('.tm-section'));
  var canvases = Array.prototype.slice.call(document.querySelectorAll('.tm-canvas'));

  function fit() {
    var vw = Math.max(1, window.innerWidth), vh = Math.max(1, window.innerHeight);
    var framed = vw >= G.breakpoint;
    var width = framed ? Math.min(G.maxFrameWidth, G.frameRatio * vw) : vw;
    var s = width / G.canvasWidth;
    var height = framed ? s * G.canvasHeight : vh;
    document.body.className = framed ? 'tm-mode-framed' : 'tm-mode-fullscreen';
    frame.style.width = width + 'px';
    frame.style.marginLeft = (framed ? (vw - width) / 2 : 0) + 'px';
    sections.forEach(function (el) { el.style.height = height + 'px'; });
    canvases.forEach(function (el) { el.style.transform = 'scale(' + (s / G.renderScale) + ')'; });
  }
  window.addEventListener('resize', fit);
  fit();

  if ('IntersectionObserver' in window) {
    var io = new IntersectionObserver(function (entries) {
      entries.forEach(function (entry) {
        if (!entry.isIntersecting) return;
        var el = entry.target;
        el.setAttribute('style', el.getAttribute('data-tm-final'));
        io.unobserve(el);
      });
    }, { threshold: G.threshold });
    document.querySelectorAll('[data-tm-anim]').forEach(function (el) { io.observe(el); });
  } else {
    document.querySelectorAll('[data-tm-anim]').forEach(function (el) {
      el.setAttribute('style', el.getAttribute('data-tm-final'));
    });
  }

  document.querySelectorAll('[data-tm-open]').forEach(function (btn) {
    btn.addEventListener('click', function () {
      var locked = document.querySelectorAll('.tm-locked');
      locked.forEach(function (el) { el.classList.remove('tm-locked'); });
      if (locked.length) locked[0].scrollIntoView({ behavior: 'smooth' });
    });
  });

  var counters = document.querySelectorAll('[data-tm-countdown]');
  function pad(n) { return (n < 10 ? '0' : '') + n; }
  function tick() {
    counters.forEach(function (el) {
      var target = Date.parse(el.getAttribute('data-tm-countdown'));
      var left = isNaN(target) ? 0 : Math.max(0, Math.floor((target - Date.now()) / 1000));
      var parts = { days: Math.floor(left / 86400), hours: Math.floor(left %% 86400 / 3600),
                    minutes: Math.floor(left %% 3600 / 60), seconds: left %% 60 };
      el.querySelectorAll('[data-unit]').forEach(function (u) { u.textContent = pad(parts[u.getAttribute('data-unit')]); });
    });
  }
  if (counters.length) setInterval(tick, 1000);
})();
"""


def _render_scripts(geometry: RenderGeometry, opts: RenderOptions) -> str:
    config = {
        "breakpoint": DESKTOP_BREAKPOINT,
        "canvasHeight": CANVAS_HEIGHT,
        "canvasWidth": CANVAS_WIDTH,
        "frameRatio": FRAME_RATIO,
        "maxFrameWidth": MAX_FRAME_WIDTH,
        "renderScale": geometry.scale,
        "threshold": opts.visibility_threshold,
    }
    body = _SCRIPT % {"geometry": json.dumps(config, sort_keys=True)}
    return f"  <script>{body}  </script>"


# ---------------------------------------------------------------------------
# CSS
# ---------------------------------------------------------------------------

BASE_CSS = """
*, *::before, *::after { box-sizing: border-box; margin: 0; padding: 0; }
html, body { min-height: 100%; background: #0f172a; }
body.tm-mode-fullscreen { background: #ffffff; }
.tm-frame { position: relative; overflow: hidden; background: #ffffff; }
.tm-section { position: relative; overflow: hidden; background-size: cover; background-position: center; }
.tm-locked { display: none; }
.tm-section-anim { position: absolute; inset: 0; }
.tm-overlay { position: absolute; inset: 0; background: #000000; pointer-events: none; }
.tm-canvas { position: absolute; left: 0; top: 0; transform-origin: top left; }
.tm-el { position: absolute; }
.tm-anim, .tm-body { width: 100%; height: 100%; }
.tm-placeholder {
  display: flex; align-items: center; justify-content: center; width: 100%; height: 100%;
  background: #e2e8f0; border: 1px dashed #94a3b8; color: #64748b; font: 12px sans-serif;
}
.tm-text { width: 100%; height: 100%; white-space: pre-wrap; word-break: break-word; }
.tm-icon { display: inline-block; }
.tm-countdown { display: flex; justify-content: center; gap: 8px; width: 100%; height: 100%; align-items: center; }
.tm-cd-unit { display: flex; flex-direction: column; align-items: center; }
.tm-cd-value { font-size: 1.6em; font-weight: 600; }
.tm-cd-label { font-size: 0.7em; }
.tm-rsvp { display: flex; flex-direction: column; gap: 6px; padding: 12px; border: 1px solid; border-radius: 8px; }
.tm-rsvp label { display: flex; flex-direction: column; font-size: 12px; }
.tm-rsvp button { padding: 8px; border: 0; border-radius: 6px; }
.tm-wishes { width: 100%; height: 100%; overflow: auto; padding: 8px; border-radius: 8px; }
.tm-open-invitation { padding: 10px 24px; border: 0; cursor: pointer; }
.tm-shape-pill, .tm-shape-stadium { border-radius: 999px; }
.tm-shape-rounded { border-radius: 8px; }
.tm-gate { position: absolute; left: 0; right: 0; display: flex; justify-content: center; z-index: 10000; }
.tm-gate-bottom-center { bottom: 10%; }
.tm-gate-bottom-third { top: 66%; }
.tm-gate-center { top: 50%; transform: translateY(-50%); }
.tm-maps { display: flex; flex-direction: column; align-items: center; text-decoration: none; color: inherit; }
.tm-empty { padding: 48px 16px; text-align: center; color: #64748b; }
"""

TERMINAL_CSS = """
body { margin: 0; min-height: 100vh; display: flex; align-items: center; justify-content: center;
       background: #f8fafc; font-family: system-ui, sans-serif; color: #334155; }
.tm-terminal { padding: 32px; text-align: center; }
"""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def escape(text: Any) -> str:
    """HTML-escape user content."""
    return _html_escape(str(text), quote=True)


def _num(v: float) -> str:
    v = round(float(v), 2)
    return str(int(v)) if v.is_integer() else f"{v:g}"


def _px(v: float) -> str:
    return f"{_num(v)}px"


def _style(props: dict[str, str]) -> str:
    return ";".join(f"{k}:{v}" for k, v in props.items())
