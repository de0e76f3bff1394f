"""
Drag/Drop Controller

Turns pointer-drag gestures into element store mutations.

State machine:
    IDLE --start_new_drag(kind)-----------> DRAGGING_NEW
    any  --start_existing_drag(element)---> DRAGGING_EXISTING
    any  --drop() / drag_end() / cancel()-> IDLE

While dragging, drag_over_* records the candidate drop zone: a container id
or the CANVAS_DROP_ZONE sentinel for the root. A drop with no recorded zone
does nothing. Leaving the gesture always resets every field, even when the
store call raises.

A start always begins a fresh gesture, except the bubbled start from an
ancestor of the element already captured, so a gesture whose end event was
lost never leaks into the next one.
"""

import logging
from typing import Final, Union

from canvasforge.models.enums import DragState
from canvasforge.services.element_store import ElementStore
from canvasforge.services.element_tree import MutationResult, is_descendant

logger = logging.getLogger(__name__)


class _CanvasDropZone:
    """Drop zone marker for the screen root; never equal to an element id."""

    def __repr__(self) -> str:
        return "CANVAS_DROP_ZONE"


CANVAS_DROP_ZONE: Final = _CanvasDropZone()

DropZone = Union[str, _CanvasDropZone]


class DragDropController:
    """Transient gesture state for one editing session."""

    def __init__(self, store: ElementStore):
        self.store = store
        self.state = DragState.IDLE
        self.dragged_kind: str | None = None
        self.dragged_element_id: str | None = None
        self.drop_zone: DropZone | None = None

    # =========================================================================
    # Gesture start
    # =========================================================================

    def start_new_drag(self, kind: str) -> None:
        """Pointer-down on a palette entry."""
        self._reset()
        self.state = DragState.DRAGGING_NEW
        self.dragged_kind = kind
        logger.debug(f"Dragging new '{kind}' from palette")

    def start_existing_drag(self, element_id: str) -> bool:
        """
        Pointer-down on an element's drag handle.

        Returns:
            True, meaning the event must not bubble to ancestor containers.
            Nested handles fire innermost first; a start from an ancestor of
            the captured element is that same event bubbling and is ignored.
            Any other start replaces a stale gesture.
        """
        if self._is_bubbled_start(element_id):
            return True
        if self.state != DragState.IDLE:
            logger.debug("Discarding unfinished drag gesture")
        self._reset()
        self.state = DragState.DRAGGING_EXISTING
        self.dragged_element_id = element_id
        logger.debug(f"Dragging existing element '{element_id}'")
        return True

    # =========================================================================
    # Hover
    # =========================================================================

    def drag_over_container(self, container_id: str) -> bool:
        """
        Pointer over a container while dragging.

        Returns:
            Whether the container became the drop zone. An element is never a
            drop target for itself.
        """
        if self.state == DragState.IDLE:
            return False
        if self.dragged_element_id is not None and self.dragged_element_id == container_id:
            self.drop_zone = None
            return False
        self.drop_zone = container_id
        return True

    def drag_over_canvas(self) -> bool:
        if self.state == DragState.IDLE:
            return False
        self.drop_zone = CANVAS_DROP_ZONE
        return True

    def drag_leave(self, zone_id: DropZone | None = None) -> None:
        """Pointer left a zone; clears the drop zone if it was that zone."""
        if zone_id is None or self.drop_zone == zone_id:
            self.drop_zone = None

    def is_drop_target(self, zone_id: DropZone) -> bool:
        return self.drop_zone == zone_id

    # =========================================================================
    # Gesture end
    # =========================================================================

    def drop(self) -> MutationResult | None:
        """
        Complete the gesture at the recorded drop zone.

        Returns:
            The store's MutationResult, or None when nothing was attempted.
        """
        try:
            if self.state == DragState.IDLE or self.drop_zone is None:
                logger.debug("Drop ignored: no drop zone")
                return None

            zone = self.drop_zone
            if self.state == DragState.DRAGGING_NEW and self.dragged_kind is not None:
                if zone is CANVAS_DROP_ZONE:
                    return self.store.add_element_to_canvas(self.dragged_kind)
                return self.store.add_element_to_container(self.dragged_kind, zone)

            if self.state == DragState.DRAGGING_EXISTING and self.dragged_element_id is not None:
                if zone is CANVAS_DROP_ZONE:
                    return self.store.move_existing_element_to_canvas(self.dragged_element_id)
                if zone == self.dragged_element_id:
                    return None
                return self.store.move_existing_element_to_container(self.dragged_element_id, zone)

            return None
        finally:
            self._reset()

    def drag_end(self) -> None:
        """Gesture finished or aborted; back to IDLE."""
        self._reset()

    cancel = drag_end

    def _is_bubbled_start(self, element_id: str) -> bool:
        if self.state != DragState.DRAGGING_EXISTING or self.dragged_element_id is None:
            return False
        ancestor = self.store.find_element(element_id)
        return ancestor is not None and is_descendant(ancestor, self.dragged_element_id)

    def _reset(self) -> None:
        self.state = DragState.IDLE
        self.dragged_kind = None
        self.dragged_element_id = None
        self.drop_zone = None
