"""
Unit tests for ElementStore.

Tests palette drops, moves, updates, deletes and screen handling against an
in-memory document.
"""

from canvasforge.core.exceptions import (
    CircularMoveError,
    ElementKindError,
    NotAContainerError,
    TargetNotFoundError,
)
from canvasforge.models.enums import RenderType
from canvasforge.services.element_store import ElementStore
from canvasforge.services.element_tree import collect_ids, find_parent_id


class TestElementStoreCreation:
    def test_default_document_has_one_screen(self):
        store = ElementStore()

        assert len(store.document.screens) == 1
        assert store.current_screen.name == "Home"
        assert store.elements == []

    def test_starts_on_first_screen(self, sample_document):
        store = ElementStore(sample_document)

        assert store.current_screen_id == "s1"
        assert collect_ids(store.elements) == ["r1", "c1", "r1b", "c2", "t1"]


class TestPaletteDrops:
    """Tests for adding new elements from the palette."""

    def test_add_to_canvas_uses_kind_defaults(self):
        store = ElementStore()

        result = store.add_element_to_canvas("text")

        assert result.ok
        element = store.elements[0]
        assert element.type == "text"
        assert element.properties["value"] == "Sample Text"
        assert element.properties["activeFontSize"] == 16
        assert element.render_type == RenderType.STATIC

    def test_new_elements_get_distinct_ids(self):
        store = ElementStore()

        store.add_element_to_canvas("text")
        store.add_element_to_canvas("text")

        first, second = store.elements
        assert first.id != second.id

    def test_new_elements_do_not_share_default_dicts(self):
        store = ElementStore()
        store.add_element_to_canvas("input")
        store.add_element_to_canvas("input")

        store.elements[0].properties["inputTypes"].append("email")

        assert store.elements[1].properties["inputTypes"] == []

    def test_add_to_container(self, sample_document):
        store = ElementStore(sample_document)

        result = store.add_element_to_container("text", "r1b")

        assert result.ok
        new_id = store.find_element("r1b").children[-1].id
        assert find_parent_id(store.elements, new_id) == "r1b"

    def test_add_to_non_container_rejected(self, sample_document):
        store = ElementStore(sample_document)
        before = store.elements

        result = store.add_element_to_container("text", "t1")

        assert isinstance(result.error, NotAContainerError)
        assert store.elements is before
        assert store.last_error is result.error

    def test_add_to_missing_container_rejected(self, sample_document):
        store = ElementStore(sample_document)

        result = store.add_element_to_container("text", "ghost")

        assert isinstance(result.error, TargetNotFoundError)

    def test_unknown_kind_rejected(self):
        store = ElementStore()

        result = store.add_element_to_canvas("video")

        assert isinstance(result.error, ElementKindError)
        assert store.elements == []


class TestMoves:
    def test_move_to_canvas(self, sample_document):
        store = ElementStore(sample_document)

        result = store.move_existing_element_to_canvas("c2")

        assert result.ok
        assert [e.id for e in store.elements] == ["r1", "t1", "c2"]

    def test_move_into_container(self, sample_document):
        store = ElementStore(sample_document)

        store.move_existing_element_to_container("t1", "r1")

        assert find_parent_id(store.elements, "t1") == "r1"

    def test_move_into_own_descendant_leaves_tree_unchanged(self, sample_document):
        store = ElementStore(sample_document)
        before = store.elements

        result = store.move_existing_element_to_container("r1", "r1b")

        assert isinstance(result.error, CircularMoveError)
        assert store.elements is before

    def test_move_into_text_rejected(self, sample_document):
        store = ElementStore(sample_document)

        result = store.move_existing_element_to_container("c1", "t1")

        assert isinstance(result.error, NotAContainerError)


class TestUpdatesAndDeletes:
    """Tests for update_element and delete_element."""

    def test_update_publishes_new_forest(self, sample_document):
        store = ElementStore(sample_document)

        store.update_element("c1", {"properties": {"value": "changed"}})

        assert store.find_element("c1").properties["value"] == "changed"

    def test_selection_follows_updates(self, sample_document):
        store = ElementStore(sample_document)
        store.select_element("c1")

        store.update_element("c1", {"properties": {"value": "changed"}})

        assert store.selected_element.properties["value"] == "changed"

    def test_failed_update_records_error(self, sample_document):
        store = ElementStore(sample_document)

        result = store.update_element("ghost", {"properties": {}})

        assert not result.ok
        assert store.last_error is result.error

    def test_successful_mutation_clears_last_error(self, sample_document):
        store = ElementStore(sample_document)
        store.update_element("ghost", {})

        store.update_element("c1", {"properties": {"value": "x"}})

        assert store.last_error is None

    def test_delete_clears_selection_inside_subtree(self, sample_document):
        store = ElementStore(sample_document)
        store.select_element("c2")

        store.delete_element("r1")

        assert store.selected_element_id is None
        assert collect_ids(store.elements) == ["t1"]

    def test_delete_keeps_unrelated_selection(self, sample_document):
        store = ElementStore(sample_document)
        store.select_element("t1")

        store.delete_element("r1b")

        assert store.selected_element_id == "t1"

    def test_delete_missing_is_noop(self, sample_document):
        store = ElementStore(sample_document)
        before = store.elements

        result = store.delete_element("ghost")

        assert store.elements is before
        assert isinstance(result.error, TargetNotFoundError)


class TestScreens:
    def test_mutations_apply_to_current_screen_only(self, sample_document):
        store = ElementStore(sample_document)
        store.select_screen("s2")

        store.add_element_to_canvas("text")

        assert len(store.get_screen("s2").elements) == 1
        assert collect_ids(store.get_screen("s1").elements) == ["r1", "c1", "r1b", "c2", "t1"]

    def test_select_screen_clears_selection(self, sample_document):
        store = ElementStore(sample_document)
        store.select_element("t1")

        assert store.select_screen("s2") is True
        assert store.selected_element_id is None

    def test_select_unknown_screen(self, sample_document):
        store = ElementStore(sample_document)

        assert store.select_screen("nope") is False
        assert store.current_screen_id == "s1"

    def test_add_rename_remove_screen(self):
        store = ElementStore()
        first_id = store.current_screen_id

        screen = store.add_screen("Settings")
        assert store.rename_screen(screen.id, "Preferences") is True
        assert store.get_screen(screen.id).name == "Preferences"

        assert store.remove_screen(first_id) is True
        assert store.current_screen_id == screen.id
        assert store.remove_screen("nope") is False

    def test_mutation_without_screen_reports_error(self):
        store = ElementStore()
        store.remove_screen(store.current_screen_id)

        result = store.add_element_to_canvas("text")

        assert isinstance(result.error, TargetNotFoundError)
        assert store.elements == []
