"""
Active slide/tab context.

Elements inside the currently shown slide of a slider container (or the
current tab of a tabs container) render with their ``active<Key>`` property
set. Which slide is current is tracked outside the engine; this module turns
that tracker's snapshot into an immutable ActiveStateFlags value, computed
once per render pass and passed down explicitly.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from canvasforge.models.contracts.elements import Element
from canvasforge.models.enums import ContentType
from canvasforge.services.element_tree import collect_ids

SLIDE_CONTENT_TYPES = frozenset({ContentType.SLIDER, ContentType.TABS})


@dataclass(frozen=True)
class ActiveStateFlags:
    """Ids of elements that currently sit inside an active slide or tab."""

    active_ids: frozenset[str] = frozenset()

    def is_active(self, element_id: str) -> bool:
        return element_id in self.active_ids

    @classmethod
    def from_mapping(cls, flags: Mapping[str, bool]) -> "ActiveStateFlags":
        return cls(frozenset(element_id for element_id, active in flags.items() if active))


NO_ACTIVE_STATE = ActiveStateFlags()


def compute_active_state(
    forest: Iterable[Element],
    active_slides: Mapping[str, int],
) -> ActiveStateFlags:
    """
    Mark every element inside an active slide.

    Args:
        forest: Root elements of the screen
        active_slides: Slider/tabs container id -> index of its active child.
            Containers missing from the mapping show their first child.

    Returns:
        ActiveStateFlags covering each active slide and its whole subtree.
    """
    active: set[str] = set()

    def walk(elements: Iterable[Element]) -> None:
        for element in elements:
            children = element.child_list
            if element.content_type in SLIDE_CONTENT_TYPES and children:
                index = active_slides.get(element.id, 0)
                if 0 <= index < len(children):
                    active.update(collect_ids([children[index]]))
            walk(children)

    walk(forest)
    return ActiveStateFlags(frozenset(active))
