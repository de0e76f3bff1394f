"""
Element Tree Service

Structural operations over a forest of root elements:
- Pre-order traversal, lookup and flattening
- Insert (root or into a container), update, remove
- Move (remove-then-insert) with cycle rejection

Every operation is pure: the input forest is never mutated, unchanged
subtrees are shared, and the result is a MutationResult carrying either the
new forest or the original forest plus an error. Nothing here raises for a
rejected mutation.

Traversal order everywhere is pre-order, depth-first, children in list
order. The first match wins if an id were ever duplicated, and
flatten_elements() relies on the same order.
"""

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from canvasforge.core.exceptions import (
    CanvasError,
    CircularMoveError,
    DuplicateIdError,
    InvalidUpdateError,
    TargetNotFoundError,
)
from canvasforge.models.contracts.elements import Element

logger = logging.getLogger(__name__)

# Serialized key -> model field for partial updates
_FIELD_ALIASES = {
    "renderType": "render_type",
    "contentType": "content_type",
}


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a tree mutation."""

    forest: list[Element]
    error: CanvasError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# =============================================================================
# Traversal
# =============================================================================


def iter_elements(forest: Iterable[Element]) -> Iterator[Element]:
    """Yield every element in pre-order, depth-first."""
    for element in forest:
        yield element
        if element.children:
            yield from iter_elements(element.children)


def flatten_elements(forest: Iterable[Element]) -> list[Element]:
    """All elements of a screen, in pre-order (the calculation engine's scope)."""
    return list(iter_elements(forest))


def collect_ids(forest: Iterable[Element]) -> list[str]:
    return [element.id for element in iter_elements(forest)]


def find_element(forest: Iterable[Element], element_id: str) -> Element | None:
    """First element with the given id in pre-order, or None."""
    for element in iter_elements(forest):
        if element.id == element_id:
            return element
    return None


def find_path(forest: Iterable[Element], element_id: str) -> list[Element] | None:
    """
    Chain of elements from a root down to the element with the given id.

    Returns:
        [root, ..., element], or None if the id is not in the forest.
    """
    for element in forest:
        if element.id == element_id:
            return [element]
        if element.children:
            path = find_path(element.children, element_id)
            if path is not None:
                return [element, *path]
    return None


def find_parent_id(forest: Iterable[Element], element_id: str) -> str | None:
    """Id of the element's parent; None for roots and unknown ids."""
    path = find_path(forest, element_id)
    if path is None or len(path) < 2:
        return None
    return path[-2].id


def is_descendant(element: Element, candidate_id: str) -> bool:
    """True if candidate_id is somewhere below element (not element itself)."""
    return find_element(element.child_list, candidate_id) is not None


def _first_duplicate(ids: Iterable[str], existing: set[str]) -> str | None:
    seen = set(existing)
    for element_id in ids:
        if element_id in seen:
            return element_id
        seen.add(element_id)
    return None


def _replace_first(
    elements: list[Element],
    target_id: str,
    replace: Callable[[Element], list[Element]],
) -> tuple[list[Element], bool]:
    """
    Replace the first pre-order match with replace(match).

    Ancestors of the match are copied with their new children list; every
    other element is shared with the input.
    """
    for index, element in enumerate(elements):
        if element.id == target_id:
            return [*elements[:index], *replace(element), *elements[index + 1:]], True
        if element.children:
            new_children, found = _replace_first(element.children, target_id, replace)
            if found:
                updated = element.model_copy(update={"children": new_children})
                return [*elements[:index], updated, *elements[index + 1:]], True
    return elements, False


# =============================================================================
# Mutations
# =============================================================================


def insert_root(forest: list[Element], element: Element) -> MutationResult:
    """Append element (with its subtree) as the last root."""
    duplicate = _first_duplicate(collect_ids([element]), set(collect_ids(forest)))
    if duplicate is not None:
        logger.debug(f"insert_root rejected: duplicate id '{duplicate}'")
        return MutationResult(forest, DuplicateIdError(duplicate))

    return MutationResult([*forest, element])


def insert_into_container(
    forest: list[Element],
    container_id: str,
    element: Element,
) -> MutationResult:
    """Append element as the last child of the element with container_id."""
    duplicate = _first_duplicate(collect_ids([element]), set(collect_ids(forest)))
    if duplicate is not None:
        logger.debug(f"insert_into_container rejected: duplicate id '{duplicate}'")
        return MutationResult(forest, DuplicateIdError(duplicate))

    def append(container: Element) -> list[Element]:
        return [container.model_copy(update={"children": [*container.child_list, element]})]

    new_forest, found = _replace_first(forest, container_id, append)
    if not found:
        logger.debug(f"insert_into_container rejected: container '{container_id}' not found")
        return MutationResult(forest, TargetNotFoundError(container_id))

    return MutationResult(new_forest)


def update_element(
    forest: list[Element],
    target_id: str,
    updates: dict[str, Any],
) -> MutationResult:
    """
    Shallow-merge a partial update onto one element.

    ``properties`` is merged key-wise onto the existing properties;
    ``conditions`` and ``children`` replace the current value only when the
    update names them. Serialized keys (``renderType``) and field names
    (``render_type``) are both accepted.
    """
    target = find_element(forest, target_id)
    if target is None:
        return MutationResult(forest, TargetNotFoundError(target_id))

    normalized = {_FIELD_ALIASES.get(key, key): value for key, value in updates.items()}

    if "id" in normalized and normalized["id"] != target_id:
        return MutationResult(
            forest, InvalidUpdateError(f"Cannot change id of element '{target_id}'")
        )

    if "children" in normalized and normalized["children"]:
        try:
            new_children = [
                child if isinstance(child, Element) else Element.model_validate(child)
                for child in normalized["children"]
            ]
        except ValidationError as e:
            return MutationResult(forest, InvalidUpdateError(f"Invalid children: {e}"))
        normalized["children"] = new_children

        remaining = set(collect_ids(forest)) - set(collect_ids([target]))
        remaining.add(target_id)
        duplicate = _first_duplicate(collect_ids(new_children), remaining)
        if duplicate is not None:
            return MutationResult(forest, DuplicateIdError(duplicate))

    data: dict[str, Any] = {name: getattr(target, name) for name in target.model_fields_set}
    data.update(target.model_extra or {})
    for key, value in normalized.items():
        if key == "properties" and isinstance(value, dict):
            data["properties"] = {**target.properties, **value}
        else:
            data[key] = value

    try:
        updated = Element.model_validate(data)
    except ValidationError as e:
        return MutationResult(
            forest, InvalidUpdateError(f"Invalid update for element '{target_id}': {e}")
        )

    new_forest, _ = _replace_first(forest, target_id, lambda _: [updated])
    return MutationResult(new_forest)


def remove_element(forest: list[Element], target_id: str) -> MutationResult:
    """
    Remove an element from whichever level holds it.

    Its whole subtree goes with it. An unknown id is a no-op.
    """
    new_forest, found = _replace_first(forest, target_id, lambda _: [])
    if not found:
        return MutationResult(forest, TargetNotFoundError(target_id))
    return MutationResult(new_forest)


def move_to_root(forest: list[Element], element_id: str) -> MutationResult:
    """Detach an element's current subtree and append it as the last root."""
    element = find_element(forest, element_id)
    if element is None:
        return MutationResult(forest, TargetNotFoundError(element_id))

    removed = remove_element(forest, element_id)
    inserted = insert_root(removed.forest, element)
    if not inserted.ok:
        return MutationResult(forest, inserted.error)

    logger.debug(f"Moved element '{element_id}' to root")
    return inserted


def move_into_container(
    forest: list[Element],
    element_id: str,
    container_id: str,
) -> MutationResult:
    """
    Detach an element's current subtree and append it to a container.

    Rejected (forest unchanged) when the container is the element itself or
    one of its descendants, or when either id is missing.
    """
    if element_id == container_id:
        return MutationResult(forest, CircularMoveError(element_id, container_id))

    element = find_element(forest, element_id)
    if element is None:
        return MutationResult(forest, TargetNotFoundError(element_id))

    if is_descendant(element, container_id):
        return MutationResult(forest, CircularMoveError(element_id, container_id))

    if find_element(forest, container_id) is None:
        return MutationResult(forest, TargetNotFoundError(container_id))

    removed = remove_element(forest, element_id)
    inserted = insert_into_container(removed.forest, container_id, element)
    if not inserted.ok:
        return MutationResult(forest, inserted.error)

    logger.debug(f"Moved element '{element_id}' into '{container_id}'")
    return inserted
