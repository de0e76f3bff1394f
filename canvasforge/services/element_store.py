"""
Element Store

Owns the document being edited and applies every structural change through
the element tree service:
- Palette drops (new element at root or in a container)
- Relocation of existing elements
- Property/condition updates and deletes
- Screen selection and element selection

Each call publishes at most one new forest for the current screen, in a
single assignment, so a move is never observed half-done. Rejected
mutations are logged and returned, never raised; the gesture is simply
ignored.
"""

import logging
from typing import Any

from canvasforge.core.exceptions import (
    CanvasError,
    ElementKindError,
    NotAContainerError,
    TargetNotFoundError,
)
from canvasforge.models.contracts.elements import Document, Element, Screen, generate_element_id
from canvasforge.services import element_tree
from canvasforge.services.element_kinds import ElementKindRegistry, default_registry
from canvasforge.services.element_tree import MutationResult

logger = logging.getLogger(__name__)


class ElementStore:
    """In-memory element tree for one editing session."""

    def __init__(
        self,
        document: Document | None = None,
        registry: ElementKindRegistry | None = None,
    ):
        if document is None:
            document = Document(screens=[Screen(id=generate_element_id(), name="Home", elements=[])])
        self.document = document
        self.registry = registry or default_registry
        self.current_screen_id: str | None = document.screens[0].id if document.screens else None
        self.selected_element_id: str | None = None
        self.last_error: CanvasError | None = None

    # =========================================================================
    # Screens
    # =========================================================================

    @property
    def current_screen(self) -> Screen | None:
        return self.get_screen(self.current_screen_id) if self.current_screen_id else None

    @property
    def elements(self) -> list[Element]:
        """Root elements of the current screen."""
        screen = self.current_screen
        return screen.elements if screen else []

    def get_screen(self, screen_id: str) -> Screen | None:
        for screen in self.document.screens:
            if screen.id == screen_id:
                return screen
        return None

    def select_screen(self, screen_id: str) -> bool:
        """Make a screen current. Clears the element selection."""
        if self.get_screen(screen_id) is None:
            logger.warning(f"Cannot select unknown screen '{screen_id}'")
            return False
        self.current_screen_id = screen_id
        self.selected_element_id = None
        return True

    def add_screen(self, name: str) -> Screen:
        screen = Screen(id=generate_element_id(), name=name, elements=[])
        self.document.screens = [*self.document.screens, screen]
        if self.current_screen_id is None:
            self.current_screen_id = screen.id
        logger.info(f"Created screen '{name}' ({screen.id})")
        return screen

    def rename_screen(self, screen_id: str, name: str) -> bool:
        screen = self.get_screen(screen_id)
        if screen is None:
            return False
        screen.name = name
        return True

    def remove_screen(self, screen_id: str) -> bool:
        """
        Remove a screen and everything on it.

        If it was current, the first remaining screen becomes current.
        """
        remaining = [s for s in self.document.screens if s.id != screen_id]
        if len(remaining) == len(self.document.screens):
            return False
        self.document.screens = remaining
        if self.current_screen_id == screen_id:
            self.current_screen_id = remaining[0].id if remaining else None
            self.selected_element_id = None
        logger.info(f"Removed screen '{screen_id}'")
        return True

    # =========================================================================
    # Lookup
    # =========================================================================

    def find_element(self, element_id: str) -> Element | None:
        return element_tree.find_element(self.elements, element_id)

    def all_elements(self) -> list[Element]:
        """Every element on the current screen, pre-order."""
        return element_tree.flatten_elements(self.elements)

    @property
    def selected_element(self) -> Element | None:
        if self.selected_element_id is None:
            return None
        return self.find_element(self.selected_element_id)

    def select_element(self, element_id: str | None) -> None:
        self.selected_element_id = element_id

    # =========================================================================
    # Mutations
    # =========================================================================

    def add_element_to_canvas(self, kind: str) -> MutationResult:
        """Create an element of the given kind and append it as a root."""
        element = self._create(kind)
        if isinstance(element, MutationResult):
            return element
        return self._apply(element_tree.insert_root(self.elements, element), "add to canvas")

    def add_element_to_container(self, kind: str, container_id: str) -> MutationResult:
        """Create an element of the given kind and append it to a container."""
        rejected = self._check_container(container_id)
        if rejected is not None:
            return rejected
        element = self._create(kind)
        if isinstance(element, MutationResult):
            return element
        return self._apply(
            element_tree.insert_into_container(self.elements, container_id, element),
            f"add to container '{container_id}'",
        )

    def move_existing_element_to_canvas(self, element_id: str) -> MutationResult:
        return self._apply(
            element_tree.move_to_root(self.elements, element_id),
            f"move '{element_id}' to canvas",
        )

    def move_existing_element_to_container(
        self,
        element_id: str,
        container_id: str,
    ) -> MutationResult:
        rejected = self._check_container(container_id)
        if rejected is not None:
            return rejected
        return self._apply(
            element_tree.move_into_container(self.elements, element_id, container_id),
            f"move '{element_id}' into '{container_id}'",
        )

    def update_element(self, element_id: str, updates: dict[str, Any]) -> MutationResult:
        """
        Apply a partial update.

        The selection follows by id, so the selected element always reflects
        the latest copy in the tree.
        """
        return self._apply(
            element_tree.update_element(self.elements, element_id, updates),
            f"update '{element_id}'",
        )

    def delete_element(self, element_id: str) -> MutationResult:
        """Remove an element and its subtree; clears a selection inside it."""
        doomed = self.find_element(element_id)
        result = self._apply(
            element_tree.remove_element(self.elements, element_id),
            f"delete '{element_id}'",
        )
        if result.ok and doomed is not None and self.selected_element_id is not None:
            if self.selected_element_id in element_tree.collect_ids([doomed]):
                self.selected_element_id = None
        return result

    # =========================================================================
    # Helpers
    # =========================================================================

    def _create(self, kind: str) -> Element | MutationResult:
        try:
            return self.registry.create_element(kind)
        except ElementKindError as e:
            logger.warning(f"Cannot create element: {e.message}")
            self.last_error = e
            return MutationResult(self.elements, e)

    def _check_container(self, container_id: str) -> MutationResult | None:
        container = self.find_element(container_id)
        if container is None:
            error: CanvasError = TargetNotFoundError(container_id)
        elif not self.registry.accepts_children(container.type):
            error = NotAContainerError(container_id, container.type)
        else:
            return None
        logger.info(f"Drop rejected: {error.message}")
        self.last_error = error
        return MutationResult(self.elements, error)

    def _apply(self, result: MutationResult, action: str) -> MutationResult:
        if not result.ok:
            logger.info(f"Ignored {action}: {result.error.message}")
            self.last_error = result.error
            return result

        screen = self.current_screen
        if screen is None:
            error = TargetNotFoundError("<no current screen>")
            self.last_error = error
            return MutationResult([], error)

        screen.elements = result.forest
        self.last_error = None
        logger.info(f"Applied {action} on screen '{screen.id}'")
        return result
