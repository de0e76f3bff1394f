"""
Condition Resolver

Computes the property set an element renders with:

1. Base properties for static elements (or conditional ones without conditions)
2. For conditional elements, the selected condition's overlay merged over
   base properties (condition wins). The selected index comes from the
   condition evaluator; in EDITOR mode a missing or out-of-range index falls
   back to the first condition so the canvas previews something.
3. Active overlay: inside the current slide/tab, each base key with a
   registered ``active<Key>`` twin takes the twin's value.

The result is a fresh dict on every call and is never stored on the element,
so edits to a condition's overlay show up on the next render.

ConditionEditor is the properties panel's cursor: it tracks which condition
is being edited and turns property edits into partial updates for
ElementStore.update_element().
"""

import logging
from collections.abc import Mapping
from typing import Any, Union

from canvasforge.models.contracts.elements import Condition, Element
from canvasforge.models.enums import RenderType, ResolveMode
from canvasforge.services.active_state import ActiveStateFlags
from canvasforge.services.element_kinds import ElementKindRegistry, default_registry

logger = logging.getLogger(__name__)

ActiveStateInput = Union[ActiveStateFlags, Mapping[str, bool], bool, None]


def is_element_active(element: Element, active_state: ActiveStateInput) -> bool:
    """Whether the ambient context marks this element as inside an active slide/tab."""
    if active_state is None:
        return False
    if isinstance(active_state, bool):
        return active_state
    if isinstance(active_state, ActiveStateFlags):
        return active_state.is_active(element.id)
    return bool(active_state.get(element.id, False))


def select_condition_index(
    element: Element,
    matched_index: int | None,
    mode: ResolveMode = ResolveMode.EDITOR,
) -> int | None:
    """
    Index of the condition whose overlay applies, or None for base properties.

    EDITOR mode previews the first condition when no valid match is supplied.
    LIVE mode trusts the evaluator: no valid match means base properties.
    """
    conditions = element.conditions or []
    if not element.is_conditional or not conditions:
        return None

    if matched_index is not None and 0 <= matched_index < len(conditions):
        return matched_index

    if mode == ResolveMode.EDITOR:
        return 0

    if matched_index is not None:
        logger.warning(
            f"Element '{element.id}': matched condition {matched_index} out of range "
            f"({len(conditions)} conditions), using base properties"
        )
    return None


def resolve_conditional_properties(
    element: Element,
    matched_index: int | None = None,
    mode: ResolveMode = ResolveMode.EDITOR,
) -> dict[str, Any]:
    """Steps 1-2: base properties, or base merged with the selected overlay."""
    index = select_condition_index(element, matched_index, mode)
    if index is None:
        return dict(element.properties)

    overlay = element.conditions[index].properties
    if overlay is None:
        return dict(element.properties)
    return {**element.properties, **overlay}


def apply_active_overlay(
    properties: Mapping[str, Any],
    active_key_map: Mapping[str, str],
) -> dict[str, Any]:
    """
    Replace each base key with its active twin where the twin is defined.

    Args:
        properties: Resolved properties
        active_key_map: Base key -> active key, from the element kind registry
    """
    result = dict(properties)
    for key, twin in active_key_map.items():
        if key in result and result.get(twin) is not None:
            result[key] = result[twin]
    return result


def resolve(
    element: Element,
    matched_condition_index: int | None = None,
    active_state: ActiveStateInput = None,
    *,
    mode: ResolveMode = ResolveMode.EDITOR,
    registry: ElementKindRegistry | None = None,
) -> dict[str, Any]:
    """
    Effective properties for rendering an element.

    Args:
        element: Element to resolve
        matched_condition_index: Index chosen by the condition evaluator
        active_state: ActiveStateFlags for this render pass (a plain
            id -> bool mapping or a bool for this element also work)
        mode: EDITOR (fallback to first condition) or LIVE
        registry: Kind registry providing the active key table

    Returns:
        Flat property mapping, recomputed on every call.
    """
    properties = resolve_conditional_properties(element, matched_condition_index, mode)

    if is_element_active(element, active_state):
        key_map = (registry or default_registry).active_key_map(element.type)
        properties = apply_active_overlay(properties, key_map)

    return properties


# =============================================================================
# Editing cursor
# =============================================================================


class ConditionEditor:
    """
    Which condition of the selected element the properties panel is editing.

    Every method returns a partial update for ElementStore.update_element();
    the editor never touches the tree itself.
    """

    def __init__(self, editing_index: int | None = None):
        self.editing_index = editing_index

    @classmethod
    def for_element(cls, element: Element) -> "ConditionEditor":
        """Start editing the first condition of conditional elements, base otherwise."""
        editor = cls()
        editor.sync(element)
        return editor

    def _valid_index(self, element: Element) -> int | None:
        conditions = element.conditions or []
        if not element.is_conditional or self.editing_index is None:
            return None
        if 0 <= self.editing_index < len(conditions):
            return self.editing_index
        return None

    def sync(self, element: Element) -> None:
        """Reset the cursor when the element changed under it."""
        conditions = element.conditions or []
        if not element.is_conditional or not conditions:
            self.editing_index = None
        elif self.editing_index is None or self.editing_index >= len(conditions):
            self.editing_index = 0

    def select(self, element: Element, index: int | None) -> bool:
        """Pick a condition to edit (None edits base properties)."""
        if index is None:
            self.editing_index = None
            return True
        conditions = element.conditions or []
        if not element.is_conditional or not 0 <= index < len(conditions):
            return False
        self.editing_index = index
        return True

    def current_properties(self, element: Element) -> dict[str, Any]:
        """What the panel shows: base merged with the edited condition's overlay."""
        index = self._valid_index(element)
        if index is None:
            return dict(element.properties)
        overlay = element.conditions[index].properties
        return {**element.properties, **(overlay or {})}

    def update_properties(self, element: Element, values: Mapping[str, Any]) -> dict[str, Any]:
        """
        Route property edits to the edited condition's overlay or to base.

        A condition edited for the first time gets an overlay seeded from the
        base properties, so untouched keys keep their current values.
        """
        index = self._valid_index(element)
        if index is None:
            return {"properties": dict(values)}

        conditions = list(element.conditions or [])
        target = conditions[index]
        overlay = dict(target.properties) if target.properties is not None else dict(element.properties)
        overlay.update(values)
        conditions[index] = target.model_copy(update={"properties": overlay})
        return {"conditions": conditions}

    def update_property(self, element: Element, key: str, value: Any) -> dict[str, Any]:
        return self.update_properties(element, {key: value})

    def add_condition(self, element: Element, expression: Any = None, **extra: Any) -> dict[str, Any]:
        """
        Append a condition.

        While a condition is being edited, the new one starts from the
        currently resolved properties so it looks identical until changed.
        """
        editing = self._valid_index(element)
        new_condition = Condition(expression=expression, **extra)
        if editing is not None:
            new_condition = Condition(
                expression=expression,
                properties=self.current_properties(element),
                **extra,
            )

        conditions = [*(element.conditions or []), new_condition]
        if editing is None:
            self.editing_index = len(conditions) - 1
        return {"render_type": RenderType.CONDITIONAL, "conditions": conditions}

    def remove_condition(self, element: Element, index: int) -> dict[str, Any]:
        conditions = list(element.conditions or [])
        if not 0 <= index < len(conditions):
            return {}
        del conditions[index]

        if not conditions:
            self.editing_index = None
        elif self.editing_index is not None and self.editing_index >= len(conditions):
            self.editing_index = 0
        return {"conditions": conditions}

    def set_render_type(self, element: Element, render_type: RenderType) -> dict[str, Any]:
        updates: dict[str, Any] = {"render_type": render_type}
        if render_type == RenderType.CONDITIONAL:
            if element.conditions is None:
                updates["conditions"] = []
            self.editing_index = 0 if element.conditions else None
        else:
            self.editing_index = None
        return updates
