"""
Canvas Element Definitions

Core types for the recursive element tree and the documents that hold it.

This module is the single source of truth for the serialized shape:
- Element (recursive, with optional conditions and children)
- Condition (opaque expression + optional property overlay)
- Screen and Document containers

Serialization uses exclude_unset so a round trip keeps the difference between
an empty list and an absent key for ``conditions`` and ``children``.
"""

from __future__ import annotations

from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from canvasforge.models.enums import ContentType, RenderType


def generate_element_id() -> str:
    """
    Generate a fresh element id.

    Returns:
        32-char uuid4 hex string; never reused within a document.
    """
    return uuid4().hex


# -----------------------------------------------------------------------------
# Condition
# -----------------------------------------------------------------------------


class Condition(BaseModel):
    """
    One alternate property set for a conditional element.

    ``properties`` stays unset until the user edits this condition; until
    then resolution falls back to the element's base properties.
    """

    model_config = ConfigDict(extra="allow")

    expression: Any = Field(
        default=None,
        description="Rule evaluated by the condition evaluator (opaque to the engine)",
    )
    properties: dict[str, Any] | None = Field(
        default=None, description="Partial property overlay, None until first edit"
    )


# -----------------------------------------------------------------------------
# Element
# -----------------------------------------------------------------------------


class Element(BaseModel):
    """A node in the document tree."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(description="Unique element identifier")
    type: str = Field(description="Element kind tag (text, container, input, ...)")
    properties: dict[str, Any] = Field(
        default_factory=dict, description="Kind-specific properties"
    )
    render_type: RenderType = Field(
        default=RenderType.STATIC,
        alias="renderType",
        description="static or conditional rendering",
    )
    conditions: list[Condition] | None = Field(
        default=None, description="Ordered conditions (conditional elements only)"
    )
    children: list[Element] | None = Field(
        default=None, description="Ordered child elements; None when absent"
    )
    content_type: ContentType | None = Field(
        default=None,
        alias="contentType",
        description="Container content mode; slider/tabs children are slides",
    )

    @property
    def is_conditional(self) -> bool:
        return self.render_type == RenderType.CONDITIONAL

    @property
    def child_list(self) -> list[Element]:
        """Children, treating an absent list as empty."""
        return self.children or []


# -----------------------------------------------------------------------------
# Screens and Documents
# -----------------------------------------------------------------------------


class Screen(BaseModel):
    """One named root-level tree of elements."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(default_factory=generate_element_id, description="Screen id")
    name: str = Field(description="Display name")
    elements: list[Element] = Field(
        default_factory=list, description="Ordered root elements"
    )


class Document(BaseModel):
    """An app: an ordered collection of screens."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(default_factory=generate_element_id, description="Document id")
    name: str = Field(default="Untitled", description="Display name")
    screens: list[Screen] = Field(default_factory=list, description="Ordered screens")


Element.model_rebuild()


# -----------------------------------------------------------------------------
# Serialization helpers
# -----------------------------------------------------------------------------


def serialize_element(element: Element) -> dict[str, Any]:
    """Dump an element tree to its persisted JSON shape."""
    return element.model_dump(mode="json", by_alias=True, exclude_unset=True)


def deserialize_element(data: dict[str, Any]) -> Element:
    """Load an element tree from its persisted JSON shape."""
    return Element.model_validate(data)


def serialize_screen(screen: Screen) -> dict[str, Any]:
    """Dump a screen, including its whole element forest."""
    data = screen.model_dump(mode="json", exclude={"elements"})
    data["elements"] = [serialize_element(element) for element in screen.elements]
    return data


def deserialize_screen(data: dict[str, Any]) -> Screen:
    return Screen.model_validate(data)
