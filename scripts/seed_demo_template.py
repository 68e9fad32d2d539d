#!/usr/bin/env python3
"""
Seed a published demo template with every element kind.

Usage:
    python scripts/seed_demo_template.py [slug]

Creates a template called "Component Showcase" (slug "demo" by default)
and prints its public URL.
"""

import asyncio
import sys

from backend.config import settings
from backend.db import close_pool, init_pool
from backend.repos.template_repo import template_repo
from engine.kernel.sync import TemplateSynchronizer

DEMO_SECTIONS = {
    "opening": {
        "background_color": "#1e293b",
        "overlay_opacity": 0.2,
        "open_invitation_config": {"enabled": False},
    },
    "quotes": {"background_color": "#fdf6ec"},
    "event": {"background_color": "#ffffff"},
    "rsvp": {"background_color": "#f1f5f9"},
}

DEMO_ELEMENTS = [
    (
        "opening",
        {
            "type": "text",
            "name": "Couple names",
            "content": "Rina & Dimas",
            "position": {"x": 37, "y": 220},
            "size": {"width": 300, "height": 60},
            "animation": "fade-in",
            "text_style": {"font_family": "Great Vibes", "font_size": 40, "color": "#ffffff"},
        },
    ),
    (
        "opening",
        {
            "type": "open_invitation_button",
            "name": "Open",
            "position": {"x": 107, "y": 520},
            "size": {"width": 160, "height": 44},
            "animation": "slide-up",
            "loop_animation": "pulse",
            "open_invitation_config": {"button_text": "Open Invitation", "button_color": "#f59e0b"},
        },
    ),
    (
        "quotes",
        {
            "type": "icon",
            "name": "Heart",
            "position": {"x": 167, "y": 80},
            "size": {"width": 40, "height": 40},
            "loop_animation": "heartbeat",
            "icon_style": {"icon_name": "heart", "icon_color": "#e11d48", "icon_size": 32},
        },
    ),
    (
        "quotes",
        {
            "type": "text",
            "name": "Quote",
            "content": "Two souls with but a single thought,\ntwo hearts that beat as one.",
            "position": {"x": 30, "y": 160},
            "size": {"width": 315, "height": 120},
            "animation": "zoom-in",
            "text_style": {"font_size": 18, "font_style": "italic"},
        },
    ),
    (
        "quotes",
        {
            "type": "shape",
            "name": "Divider",
            "position": {"x": 87, "y": 300},
            "size": {"width": 200, "height": 4},
            "shape_config": {"shape_type": "rectangle", "fill": "#d4a373"},
        },
    ),
    (
        "event",
        {
            "type": "countdown",
            "name": "Countdown",
            "position": {"x": 27, "y": 120},
            "size": {"width": 320, "height": 90},
            "animation": "bounce",
            "countdown_config": {"target_date": "2027-06-12T09:00:00+07:00"},
        },
    ),
    (
        "event",
        {
            "type": "maps_point",
            "name": "Venue",
            "content": "Grand Ballroom",
            "position": {"x": 87, "y": 300},
            "size": {"width": 200, "height": 80},
            "maps_config": {"google_maps_url": "https://maps.google.com/?q=Grand+Ballroom"},
        },
    ),
    (
        "rsvp",
        {
            "type": "rsvp_form",
            "name": "RSVP",
            "position": {"x": 27, "y": 80},
            "size": {"width": 320, "height": 360},
            "animation": "slide-up",
            "rsvp_form_config": {"title": "Will you join us?"},
        },
    ),
    (
        "rsvp",
        {
            "type": "guest_wishes",
            "name": "Wishes",
            "position": {"x": 27, "y": 460},
            "size": {"width": 320, "height": 180},
        },
    ),
]


async def main(slug: str) -> None:
    await init_pool()
    try:
        sync = TemplateSynchronizer(template_repo)
        template = await sync.create_template(
            "Component Showcase",
            slug=slug,
            section_order=list(DEMO_SECTIONS),
            event_date="2027-06-12T09:00:00+07:00",
        )
        for key, patch in DEMO_SECTIONS.items():
            await sync.upsert_section(template.id, key, patch)
        for key, data in DEMO_ELEMENTS:
            await sync.create_element(template.id, key, data)
        await sync.update_template(template.id, {"status": "published"})
        print(f"Seeded template {template.id}")
        print(f"View at {settings.PUBLIC_URL}/p/{slug}")
    finally:
        await close_pool()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "demo"))
