"""
Unit tests for the condition resolver.

Covers condition overlays, the EDITOR/LIVE fallback rule, the active-state
overlay, and the ConditionEditor cursor.
"""

import pytest

from canvasforge.models.contracts.elements import Document, Element, Screen
from canvasforge.models.enums import RenderType, ResolveMode
from canvasforge.services.active_state import ActiveStateFlags, compute_active_state
from canvasforge.services.condition_resolver import (
    ConditionEditor,
    apply_active_overlay,
    resolve,
    select_condition_index,
)
from canvasforge.services.element_kinds import ElementKind, ElementKindRegistry
from canvasforge.services.element_store import ElementStore


@pytest.fixture
def red_when_matched() -> Element:
    return Element(
        id="e1",
        type="text",
        properties={"color": "black", "size": 10},
        render_type=RenderType.CONDITIONAL,
        conditions=[{"expression": "always", "properties": {"color": "red"}}],
    )


class TestConditionalResolution:
    """Tests for base/overlay merging."""

    def test_static_element_returns_base(self):
        element = Element(id="e1", type="text", properties={"color": "black"})

        assert resolve(element, matched_condition_index=0) == {"color": "black"}

    def test_matched_overlay_wins(self, red_when_matched):
        assert resolve(red_when_matched, 0) == {"color": "red", "size": 10}

    def test_result_is_fresh_dict(self, red_when_matched):
        resolved = resolve(red_when_matched, 0)
        resolved["color"] = "green"

        assert red_when_matched.properties["color"] == "black"
        assert red_when_matched.conditions[0].properties == {"color": "red"}

    def test_editor_falls_back_to_first_condition(self, conditional_text):
        assert resolve(conditional_text)["color"] == "red"
        assert resolve(conditional_text, 7)["color"] == "red"

    def test_editor_uses_matched_index(self, conditional_text):
        assert resolve(conditional_text, 1) == {"color": "blue", "size": 12}

    def test_live_without_match_uses_base(self, conditional_text):
        assert resolve(conditional_text, None, mode=ResolveMode.LIVE) == {"color": "black", "size": 10}
        assert resolve(conditional_text, 9, mode=ResolveMode.LIVE)["color"] == "black"

    def test_condition_without_overlay_uses_base(self):
        element = Element(
            id="e1",
            type="text",
            properties={"color": "black"},
            render_type=RenderType.CONDITIONAL,
            conditions=[{"expression": "x"}],
        )

        assert resolve(element, 0) == {"color": "black"}

    def test_conditional_without_conditions_uses_base(self):
        element = Element(
            id="e1", type="text", properties={"color": "black"}, render_type=RenderType.CONDITIONAL
        )

        assert select_condition_index(element, 0) is None
        assert resolve(element, 0) == {"color": "black"}

    def test_conditions_ignored_on_static_element(self):
        element = Element(
            id="e1",
            type="text",
            properties={"color": "black"},
            conditions=[{"properties": {"color": "red"}}],
        )

        assert resolve(element, 0) == {"color": "black"}


class TestActiveOverlay:
    """Tests for active<Key> substitution."""

    def test_active_font_size(self, slider_forest):
        flags = compute_active_state(slider_forest, {"slider": 0})
        active, inactive = slider_forest[0].children

        assert resolve(active, active_state=flags)["fontSize"] == 24
        assert resolve(inactive, active_state=flags)["fontSize"] == 16

    def test_bool_and_mapping_inputs(self, slider_forest):
        slide = slider_forest[0].children[0]

        assert resolve(slide, active_state=True)["fontSize"] == 24
        assert resolve(slide, active_state=False)["fontSize"] == 16
        assert resolve(slide, active_state={"slide0": True})["fontSize"] == 24

    def test_undefined_twin_keeps_base(self):
        element = Element(id="e1", type="text", properties={"fontSize": 16})

        assert resolve(element, active_state=True) == {"fontSize": 16}

    def test_overlay_applies_after_conditions(self):
        element = Element(
            id="e1",
            type="text",
            properties={"fontSize": 16, "activeFontSize": 24},
            render_type=RenderType.CONDITIONAL,
            conditions=[{"properties": {"activeFontSize": 30}}],
        )

        assert resolve(element, 0, ActiveStateFlags(frozenset({"e1"})))["fontSize"] == 30

    def test_custom_registry_key_map(self):
        registry = ElementKindRegistry()
        registry.register(
            ElementKind(
                type="badge",
                label="Badge",
                defaults={"tint": "grey", "activeTint": "gold"},
                active_keys=("tint",),
            )
        )
        element = Element(id="b", type="badge", properties={"tint": "grey", "activeTint": "gold"})

        assert resolve(element, active_state=True, registry=registry)["tint"] == "gold"

    def test_apply_active_overlay_skips_none_twins(self):
        result = apply_active_overlay(
            {"color": "red", "activeColor": None},
            {"color": "activeColor"},
        )

        assert result["color"] == "red"


class TestConditionEditor:
    """Tests for routing panel edits to conditions or base properties."""

    def test_for_element_starts_on_first_condition(self, conditional_text):
        assert ConditionEditor.for_element(conditional_text).editing_index == 0

    def test_for_static_element_edits_base(self):
        element = Element(id="e1", type="text")

        assert ConditionEditor.for_element(element).editing_index is None

    def test_edit_goes_to_condition_overlay(self, conditional_text):
        editor = ConditionEditor.for_element(conditional_text)

        updates = editor.update_property(conditional_text, "size", 40)

        assert "properties" not in updates
        assert updates["conditions"][0].properties == {"color": "red", "size": 40}
        assert updates["conditions"][1] is conditional_text.conditions[1]

    def test_first_edit_seeds_overlay_from_base(self):
        element = Element(
            id="e1",
            type="text",
            properties={"color": "black", "size": 10},
            render_type=RenderType.CONDITIONAL,
            conditions=[{"expression": "x"}],
        )
        editor = ConditionEditor.for_element(element)

        updates = editor.update_property(element, "color", "red")

        assert updates["conditions"][0].properties == {"color": "red", "size": 10}

    def test_base_edit_when_not_editing_condition(self, conditional_text):
        editor = ConditionEditor.for_element(conditional_text)
        editor.select(conditional_text, None)

        assert editor.update_property(conditional_text, "size", 1) == {"properties": {"size": 1}}

    def test_select_rejects_out_of_range(self, conditional_text):
        editor = ConditionEditor.for_element(conditional_text)

        assert editor.select(conditional_text, 5) is False
        assert editor.select(conditional_text, 1) is True
        assert editor.current_properties(conditional_text) == {"color": "blue", "size": 12}

    def test_add_condition_copies_current_properties(self, conditional_text):
        editor = ConditionEditor.for_element(conditional_text)
        editor.select(conditional_text, 1)

        updates = editor.add_condition(conditional_text, expression="third")

        assert updates["render_type"] == RenderType.CONDITIONAL
        assert len(updates["conditions"]) == 3
        assert updates["conditions"][2].properties == {"color": "blue", "size": 12}

    def test_add_first_condition_selects_it(self):
        element = Element(id="e1", type="text", properties={"color": "black"})
        editor = ConditionEditor.for_element(element)

        updates = editor.add_condition(element)

        assert editor.editing_index == 0
        assert updates["conditions"][0].properties is None

    def test_add_condition_resets_stale_cursor(self):
        """A cursor left over from another element points at the new condition."""
        element = Element(id="e1", type="text", properties={"color": "black"})
        editor = ConditionEditor(editing_index=3)

        updates = editor.add_condition(element, expression="x")

        assert editor.editing_index == 0
        assert len(updates["conditions"]) == 1

    def test_remove_condition_moves_cursor(self, conditional_text):
        editor = ConditionEditor.for_element(conditional_text)
        editor.select(conditional_text, 1)

        updates = editor.remove_condition(conditional_text, 1)

        assert len(updates["conditions"]) == 1
        assert editor.editing_index == 0

    def test_remove_out_of_range_is_noop(self, conditional_text):
        assert ConditionEditor().remove_condition(conditional_text, 4) == {}

    def test_set_render_type_static_edits_base(self, conditional_text):
        editor = ConditionEditor.for_element(conditional_text)

        updates = editor.set_render_type(conditional_text, RenderType.STATIC)

        assert updates == {"render_type": RenderType.STATIC}
        assert editor.editing_index is None

    def test_set_render_type_conditional_creates_list(self):
        element = Element(id="e1", type="text")

        updates = ConditionEditor().set_render_type(element, RenderType.CONDITIONAL)

        assert updates == {"render_type": RenderType.CONDITIONAL, "conditions": []}

    def test_updates_apply_through_store(self, conditional_text):
        """Editor output is a valid partial update for the store."""
        store = ElementStore(Document(screens=[Screen(id="s", name="S", elements=[conditional_text])]))
        editor = ConditionEditor.for_element(conditional_text)

        store.update_element("ct", editor.update_property(conditional_text, "color", "green"))

        resolved = resolve(store.find_element("ct"), 0)
        assert resolved == {"color": "green", "size": 10}
