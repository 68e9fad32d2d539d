"""
Document session tests.

Covers:
  - one merged pending change per entity; create then delete cancels out
  - live drag frames are never dirty, the committed edit is
  - restore_pending keeps edits made while a flush was in flight
  - temporary ids are swapped everywhere the session holds them
  - selection is cleared when the selected element goes away
  - a closed session rejects edits, notifies listeners once and cancels its loads
  - reset swaps in a reloaded document only when nothing is unsaved
  - legacy type spellings in a patch are not a type change
"""

import pytest

from engine.kernel.errors import LoadCancelled, ValidationFailure
from engine.kernel.session import (
    DocumentSession,
    EntityKey,
    PendingChange,
    is_temporary_id,
    merge_changes,
    new_temp_id,
)
from engine.kernel.types import SectionDesign, Template


def make_session():
    template = Template(
        id="t1",
        name="Wedding",
        section_order=["opening"],
        sections={
            "opening": SectionDesign(
                elements=[
                    {"id": "e1", "type": "text", "content": "Hi", "zIndex": 1},
                    {"id": "e2", "type": "image", "zIndex": 5},
                ]
            )
        },
    )
    return DocumentSession(template)


def pending_map(session):
    return {(c.key.kind, c.key.key): c for c in session.pending()}


# ============================================================================
# Change merging
# ============================================================================


class TestMergeChanges:
    key = EntityKey("element", "e1")

    def test_update_patches_merge(self):
        merged = merge_changes(
            PendingChange(self.key, "update", {"opacity": 0.5, "rotation": 10}),
            PendingChange(self.key, "update", {"rotation": 20}),
        )
        assert merged.op == "update"
        assert merged.patch == {"opacity": 0.5, "rotation": 20}

    def test_create_absorbs_updates(self):
        merged = merge_changes(
            PendingChange(self.key, "create", {}, "opening"),
            PendingChange(self.key, "update", {"opacity": 0.2}),
        )
        assert merged.op == "create"
        assert merged.section_key == "opening"

    def test_create_then_delete_cancels(self):
        assert merge_changes(PendingChange(self.key, "create"), PendingChange(self.key, "delete")) is None

    def test_update_then_delete_is_delete(self):
        merged = merge_changes(PendingChange(self.key, "update", {"a": 1}), PendingChange(self.key, "delete"))
        assert merged.op == "delete"


class TestTemporaryIds:
    def test_prefix(self):
        tid = new_temp_id()
        assert is_temporary_id(tid)
        assert not is_temporary_id("5f0c6c1e-0000-0000-0000-000000000000")
        assert new_temp_id() != tid


# ============================================================================
# Session edits
# ============================================================================


class TestSessionEdits:
    def test_starts_clean(self):
        assert make_session().dirty is False

    def test_successive_edits_give_one_change(self):
        session = make_session()
        session.update_element("e1", {"opacity": 0.5})
        session.update_element("e1", {"rotation": 30})
        changes = session.pending()
        assert len(changes) == 1
        assert changes[0].patch == {"opacity": 0.5, "rotation": 30}

    def test_nested_patch_keeps_siblings(self):
        session = make_session()
        updated = session.update_element("e1", {"position": {"x": 42}, "text_style": {"font_size": 30}})
        assert updated.position.x == 42
        assert updated.position.y == 0
        assert updated.text_style.font_size == 30
        assert updated.text_style.font_family == "Inter"

    def test_id_and_type_are_immutable(self):
        session = make_session()
        with pytest.raises(ValidationFailure):
            session.update_element("e1", {"type": "icon"})
        with pytest.raises(ValidationFailure):
            session.update_element("e1", {"id": "other"})
        assert session.dirty is False

    def test_legacy_type_spelling_is_not_a_type_change(self):
        session = make_session()
        rsvp = session.add_element("opening", "rsvp_form")
        session.take_pending()
        updated = session.update_element(rsvp.id, {"type": "rsvp-form", "opacity": 0.5})
        assert updated.type == "rsvp_form"
        assert updated.opacity == 0.5
        [change] = session.pending()
        assert change.patch["type"] == "rsvp_form"
        with pytest.raises(ValidationFailure):
            session.update_element(rsvp.id, {"type": "button"})

    def test_unknown_element(self):
        with pytest.raises(ValidationFailure) as exc:
            make_session().update_element("ghost", {"opacity": 1})
        assert exc.value.reason == "invalid_element"

    def test_live_move_is_not_dirty(self):
        session = make_session()
        events = []
        session.subscribe(events.append)
        session.move_element_live("e1", 100, 200)
        assert session.template.find_element("e1")[1].position.x == 100
        assert session.dirty is False
        assert events[-1].live is True

    def test_add_element_uses_temp_id_and_next_z(self):
        session = make_session()
        el = session.add_element("opening", "shape")
        assert is_temporary_id(el.id)
        assert el.z_index == 6
        assert pending_map(session)[("element", el.id)].op == "create"

    def test_add_then_remove_leaves_nothing_for_element(self):
        session = make_session()
        el = session.add_element("opening", "shape")
        session.remove_element(el.id)
        assert ("element", el.id) not in pending_map(session)

    def test_add_to_new_section_extends_order(self):
        session = make_session()
        session.add_element("rsvp", "rsvp_form")
        assert session.template.section_order == ["opening", "rsvp"]
        changes = pending_map(session)
        assert changes[("template", "t1")].patch == {"section_order": ["opening", "rsvp"]}
        assert ("section", "rsvp") in changes

    def test_update_section(self):
        session = make_session()
        updated = session.update_section("opening", {"background_color": "#000", "overlay_opacity": 5})
        assert updated.overlay_opacity == 1.0
        assert len(updated.elements) == 2
        assert pending_map(session)[("section", "opening")].patch == {
            "background_color": "#000",
            "overlay_opacity": 1.0,
        }

    def test_section_elements_not_patchable(self):
        with pytest.raises(ValidationFailure):
            make_session().update_section("opening", {"elements": []})

    def test_remove_section_drops_element_changes(self):
        session = make_session()
        session.update_element("e1", {"opacity": 0.1})
        session.select("e1")
        session.remove_section("opening")
        changes = pending_map(session)
        assert ("element", "e1") not in changes
        assert changes[("section", "opening")].op == "delete"
        assert changes[("template", "t1")].patch == {"section_order": []}
        assert session.selected_id is None

    def test_update_template(self):
        session = make_session()
        session.update_template({"name": "Renamed", "slug": "renamed"})
        assert session.template.name == "Renamed"
        assert session.template.sections["opening"].elements
        assert pending_map(session)[("template", "t1")].patch == {"name": "Renamed", "slug": "renamed"}

    def test_update_template_rejects_store_fields(self):
        with pytest.raises(ValidationFailure) as exc:
            make_session().update_template({"id": "x"})
        assert exc.value.reason == "invalid_template"

    def test_update_template_rejects_duplicate_order(self):
        session = make_session()
        with pytest.raises(ValidationFailure):
            session.update_template({"section_order": ["opening", "opening"]})
        assert session.template.section_order == ["opening"]


# ============================================================================
# Flush bookkeeping
# ============================================================================


class TestPendingHandOff:
    def test_take_clears(self):
        session = make_session()
        session.update_element("e1", {"opacity": 0.3})
        taken = session.take_pending()
        assert len(taken) == 1
        assert session.dirty is False

    def test_restore_keeps_newer_edits(self):
        session = make_session()
        session.update_element("e1", {"opacity": 0.3, "rotation": 5})
        taken = session.take_pending()
        session.update_element("e1", {"rotation": 90})
        session.restore_pending(taken)
        [change] = session.pending()
        assert change.patch == {"opacity": 0.3, "rotation": 90}

    def test_restore_after_delete_keeps_delete(self):
        session = make_session()
        session.update_element("e1", {"opacity": 0.3})
        taken = session.take_pending()
        session.remove_element("e1")
        session.restore_pending(taken)
        assert pending_map(session)[("element", "e1")].op == "delete"

    def test_replace_element_id(self):
        session = make_session()
        el = session.add_element("opening", "icon")
        session.select(el.id)
        taken = session.take_pending()
        # an edit lands while the create is in flight
        session.update_element(el.id, {"opacity": 0.4})
        session.replace_element_id(el.id, "real-id")

        assert session.selected_id == "real-id"
        assert session.template.find_element("real-id")[1].opacity == 0.4
        assert session.template.find_element(el.id) is None
        assert pending_map(session)[("element", "real-id")].patch == {"opacity": 0.4}
        assert any(c.key.key == el.id for c in taken)


class TestSelectionAndLifecycle:
    def test_select_unknown_clears(self):
        session = make_session()
        session.select("e1")
        session.select("ghost")
        assert session.selected_id is None

    def test_selection_events(self):
        session = make_session()
        events = []
        session.subscribe(events.append)
        session.select("e2")
        session.select("e2")
        assert [(e.kind, e.key) for e in events] == [("selection", "e2")]
        assert session.selected.type == "image"

    def test_remove_selected_clears_selection(self):
        session = make_session()
        session.select("e1")
        session.remove_element("e1")
        assert session.selected is None

    def test_close(self):
        session = make_session()
        events = []
        session.subscribe(events.append)
        session.close()
        assert [e.kind for e in events] == ["closed"]
        with pytest.raises(RuntimeError):
            session.update_element("e1", {"opacity": 0})
        session.select("e1")
        assert len(events) == 1

    def test_close_cancels_loads_for_the_session(self):
        session = make_session()
        session.load_token.check()
        session.close()
        with pytest.raises(LoadCancelled):
            session.load_token.check()

    def test_reset_swaps_document_and_drops_stale_selection(self):
        session = make_session()
        session.select("e1")
        events = []
        session.subscribe(events.append)
        session.reset(Template(id="t1", name="Reloaded"))
        assert session.template.name == "Reloaded"
        assert session.selected_id is None
        assert [e.kind for e in events] == ["template", "selection"]

    def test_reset_refused_with_unsaved_edits(self):
        session = make_session()
        session.update_element("e1", {"opacity": 0.5})
        with pytest.raises(ValidationFailure) as exc:
            session.reset(Template(id="t1"))
        assert exc.value.reason == "unsaved_changes"
        assert session.template.name == "Wedding"
