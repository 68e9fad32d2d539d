"""Template, section and element tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

from alembic import op


# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.execute("""
        CREATE TABLE templates (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name TEXT NOT NULL DEFAULT 'Untitled Template',
            slug TEXT UNIQUE,
            thumbnail TEXT,
            status TEXT NOT NULL DEFAULT 'draft' CHECK (status IN ('draft', 'published')),
            section_order JSONB NOT NULL DEFAULT '[]'::jsonb,
            custom_sections JSONB NOT NULL DEFAULT '[]'::jsonb,
            global_theme JSONB NOT NULL DEFAULT '{}'::jsonb,
            event_date TEXT,
            source_template_id UUID REFERENCES templates(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    op.execute("""
        CREATE INDEX idx_templates_updated ON templates(updated_at DESC);
    """)

    # One row per (template, section type); the synchronizer upserts on this key
    op.execute("""
        CREATE TABLE template_sections (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            template_id UUID NOT NULL REFERENCES templates(id) ON DELETE CASCADE,
            type TEXT NOT NULL,
            background_color TEXT,
            background_url TEXT,
            overlay_opacity DOUBLE PRECISION NOT NULL DEFAULT 0,
            animation TEXT NOT NULL DEFAULT 'none',
            is_visible BOOLEAN NOT NULL DEFAULT true,
            page_title TEXT,
            open_invitation_config JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            UNIQUE (template_id, type)
        );
    """)

    op.execute("""
        CREATE TABLE template_elements (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            section_id UUID NOT NULL REFERENCES template_sections(id) ON DELETE CASCADE,
            type TEXT NOT NULL,
            name TEXT,
            position_x DOUBLE PRECISION NOT NULL DEFAULT 0,
            position_y DOUBLE PRECISION NOT NULL DEFAULT 0,
            width DOUBLE PRECISION NOT NULL DEFAULT 100,
            height DOUBLE PRECISION NOT NULL DEFAULT 100,
            z_index INTEGER NOT NULL DEFAULT 0,
            animation TEXT,
            loop_animation TEXT,
            animation_delay INTEGER,
            animation_speed INTEGER,
            animation_duration INTEGER,
            rotation DOUBLE PRECISION NOT NULL DEFAULT 0,
            flip_horizontal BOOLEAN NOT NULL DEFAULT false,
            flip_vertical BOOLEAN NOT NULL DEFAULT false,
            opacity DOUBLE PRECISION NOT NULL DEFAULT 1,
            locked BOOLEAN NOT NULL DEFAULT false,
            content TEXT,
            image_url TEXT,
            object_fit TEXT,
            text_style JSONB,
            icon_style JSONB,
            countdown_config JSONB,
            rsvp_form_config JSONB,
            guest_wishes_config JSONB,
            open_invitation_config JSONB,
            shape_config JSONB,
            maps_config JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    op.execute("""
        CREATE INDEX idx_template_elements_section ON template_elements(section_id, created_at);
    """)


def downgrade():
    op.execute("DROP TABLE IF EXISTS template_elements CASCADE;")
    op.execute("DROP TABLE IF EXISTS template_sections CASCADE;")
    op.execute("DROP TABLE IF EXISTS templates CASCADE;")
