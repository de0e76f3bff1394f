"""
Element Kind Registry

Maps an element ``type`` tag to its behavior:
- default properties and default children used when the palette creates one
- whether the kind can hold children (drop target)
- the base -> active property key table used by the active-state overlay

The active key table is enumerated when a kind registers, and registration
fails if a declared pair is missing from the defaults. Nothing at render time
builds property names from strings.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Any

from canvasforge.core.exceptions import ElementKindError
from canvasforge.models.contracts.elements import Element, generate_element_id
from canvasforge.models.enums import RenderType

logger = logging.getLogger(__name__)


def active_key(key: str) -> str:
    """``fontSize`` -> ``activeFontSize``."""
    return f"active{key[:1].upper()}{key[1:]}"


@dataclass(frozen=True)
class ElementKind:
    """
    Definition of one element kind.

    Attributes:
        type: Tag stored on Element.type
        label: Palette label
        defaults: Default properties (deep-copied for every new element)
        active_keys: Base keys that carry an ``active<Key>`` twin in defaults
        accepts_children: Whether elements of this kind are drop targets
        default_children: Child specs ({"type", "properties"}) built with each new element
    """

    type: str
    label: str
    defaults: dict[str, Any]
    active_keys: tuple[str, ...] = ()
    accepts_children: bool = False
    default_children: tuple[dict[str, Any], ...] = ()

    def default_properties(self) -> dict[str, Any]:
        return copy.deepcopy(self.defaults)


class ElementKindRegistry:
    """Registry of element kinds keyed by type tag."""

    def __init__(self) -> None:
        self._kinds: dict[str, ElementKind] = {}
        self._active_maps: dict[str, dict[str, str]] = {}

    def register(self, kind: ElementKind) -> ElementKind:
        """
        Register a kind and freeze its active key table.

        Raises:
            ElementKindError: If the type is already registered, or an active
                pair is missing from the defaults.
        """
        if kind.type in self._kinds:
            raise ElementKindError(f"Element kind '{kind.type}' is already registered")

        mapping: dict[str, str] = {}
        for key in kind.active_keys:
            twin = active_key(key)
            if key not in kind.defaults:
                raise ElementKindError(
                    f"Element kind '{kind.type}' declares active key '{key}' without a default"
                )
            if twin not in kind.defaults:
                raise ElementKindError(
                    f"Element kind '{kind.type}' is missing default for '{twin}'"
                )
            mapping[key] = twin

        self._kinds[kind.type] = kind
        self._active_maps[kind.type] = mapping
        logger.debug(f"Registered element kind '{kind.type}' ({len(mapping)} active pairs)")
        return kind

    def get(self, type_: str) -> ElementKind | None:
        return self._kinds.get(type_)

    def require(self, type_: str) -> ElementKind:
        kind = self._kinds.get(type_)
        if kind is None:
            raise ElementKindError(f"Unknown element kind '{type_}'")
        return kind

    def types(self) -> list[str]:
        return list(self._kinds)

    def accepts_children(self, type_: str) -> bool:
        kind = self._kinds.get(type_)
        return bool(kind and kind.accepts_children)

    def active_key_map(self, type_: str) -> dict[str, str]:
        """Base -> active key table for a kind; empty for unknown kinds."""
        return dict(self._active_maps.get(type_, {}))

    def create_element(self, type_: str) -> Element:
        """
        Build a new element of the given kind with fresh ids.

        Raises:
            ElementKindError: If the kind is not registered.
        """
        kind = self.require(type_)
        children = [self._build_child(spec) for spec in kind.default_children]
        return Element(
            id=generate_element_id(),
            type=kind.type,
            properties=kind.default_properties(),
            render_type=RenderType.STATIC,
            children=children,
        )

    def _build_child(self, spec: dict[str, Any]) -> Element:
        child = self.create_element(spec["type"])
        if spec.get("properties"):
            child.properties.update(copy.deepcopy(spec["properties"]))
        return child


# =============================================================================
# Built-in kinds
# =============================================================================

_SPACING = {
    "marginTop": 0,
    "marginBottom": 0,
    "marginLeft": 0,
    "marginRight": 0,
}

TEXT_KIND = ElementKind(
    type="text",
    label="Text",
    defaults={
        "value": "Sample Text",
        "fontSize": 16,
        "fontWeight": "400",
        "textAlignment": "left",
        "textColor": "#333333",
        "textBackgroundColor": "transparent",
        **_SPACING,
        "paddingTop": 8,
        "paddingBottom": 8,
        "paddingLeft": 12,
        "paddingRight": 12,
        # Active state (inside the current slide or tab)
        "activeFontSize": 16,
        "activeFontWeight": "400",
        "activeTextAlignment": "left",
        "activeTextColor": "#333333",
        "activeTextBackgroundColor": "transparent",
        "activeMarginTop": 0,
        "activeMarginBottom": 0,
        "activeMarginLeft": 0,
        "activeMarginRight": 0,
        "activePaddingTop": 8,
        "activePaddingBottom": 8,
        "activePaddingLeft": 12,
        "activePaddingRight": 12,
    },
    active_keys=(
        "fontSize",
        "fontWeight",
        "textAlignment",
        "textColor",
        "textBackgroundColor",
        "marginTop",
        "marginBottom",
        "marginLeft",
        "marginRight",
        "paddingTop",
        "paddingBottom",
        "paddingLeft",
        "paddingRight",
    ),
)

CONTAINER_KIND = ElementKind(
    type="container",
    label="Container",
    defaults={
        "orientation": "column",
        "width": "auto",
        "height": "auto",
        "verticalAlignment": "flex-start",
        "horizontalAlignment": "flex-start",
        "backgroundColor": "#ffffff",
        **_SPACING,
        "paddingTop": 15,
        "paddingBottom": 15,
        "paddingLeft": 15,
        "paddingRight": 15,
        "borderRadiusTopLeft": 0,
        "borderRadiusTopRight": 0,
        "borderRadiusBottomLeft": 0,
        "borderRadiusBottomRight": 0,
        "borderTopWidth": 1,
        "borderBottomWidth": 1,
        "borderLeftWidth": 1,
        "borderRightWidth": 1,
        "borderTopStyle": "dashed",
        "borderBottomStyle": "dashed",
        "borderLeftStyle": "dashed",
        "borderRightStyle": "dashed",
        "borderTopColor": "#ccc",
        "borderBottomColor": "#ccc",
        "borderLeftColor": "#ccc",
        "borderRightColor": "#ccc",
        "shadowColor": "#000000",
        "shadowX": 0,
        "shadowY": 0,
        "shadowBlur": 0,
        "activeBackgroundColor": "#ffffff",
        "activeBorderTopColor": "#ccc",
        "activeBorderBottomColor": "#ccc",
        "activeBorderLeftColor": "#ccc",
        "activeBorderRightColor": "#ccc",
    },
    active_keys=(
        "backgroundColor",
        "borderTopColor",
        "borderBottomColor",
        "borderLeftColor",
        "borderRightColor",
    ),
    accepts_children=True,
)

INPUT_KIND = ElementKind(
    type="input",
    label="Input",
    defaults={
        "inputType": "text",
        "inputTypes": [],
        "placeholder": "Enter text...",
        "defaultValue": "",
        "fontSize": 16,
        "fontWeight": "400",
        "textAlignment": "left",
        "textColor": "#333333",
        "placeholderColor": "#999999",
        "boxBackgroundColor": "#ffffff",
        **_SPACING,
        "paddingTop": 12,
        "paddingBottom": 12,
        "paddingLeft": 16,
        "paddingRight": 16,
        "borderRadiusTopLeft": 4,
        "borderRadiusTopRight": 4,
        "borderRadiusBottomLeft": 4,
        "borderRadiusBottomRight": 4,
        "borderColor": "#ddd",
        "borderWidth": 1,
        "activeFontSize": 16,
        "activeFontWeight": "400",
        "activeTextAlignment": "left",
        "activeTextColor": "#333333",
        "activePlaceholderColor": "#999999",
        "activeBoxBackgroundColor": "#ffffff",
        "activeBorderColor": "#ddd",
    },
    active_keys=(
        "fontSize",
        "fontWeight",
        "textAlignment",
        "textColor",
        "placeholderColor",
        "boxBackgroundColor",
        "borderColor",
    ),
)


def build_default_registry() -> ElementKindRegistry:
    """Registry preloaded with the built-in text, container and input kinds."""
    registry = ElementKindRegistry()
    for kind in (TEXT_KIND, CONTAINER_KIND, INPUT_KIND):
        registry.register(kind)
    return registry


default_registry = build_default_registry()
