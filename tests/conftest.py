"""
Pytest fixtures for canvasforge unit tests.

This module provides:
1. Settings isolated from the developer's environment
2. Element/forest factories
3. A sample screen forest used across service tests
"""

from typing import Any, Callable

import pytest

from canvasforge.config import Settings, get_settings
from canvasforge.models.contracts.elements import Document, Element, Screen
from canvasforge.models.enums import ContentType, RenderType


# ==================== CONFIGURATION ====================


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """get_settings() is lru_cached; never leak one test's env into another."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="testing",
        calculation_timeout_seconds=1.0,
        max_calculation_depth=8,
    )


# ==================== ELEMENT FACTORIES ====================


@pytest.fixture
def make_element() -> Callable[..., Element]:
    """Build an element: make_element("e1", value="3", children=[...])."""

    def _make(
        element_id: str,
        type_: str = "text",
        children: list[Element] | None = None,
        **properties: Any,
    ) -> Element:
        data: dict[str, Any] = {"id": element_id, "type": type_, "properties": properties}
        if children is not None:
            data["children"] = children
        return Element(**data)

    return _make


@pytest.fixture
def make_container(make_element) -> Callable[..., Element]:
    def _make(element_id: str, *children: Element, **properties: Any) -> Element:
        return make_element(element_id, "container", children=list(children), **properties)

    return _make


@pytest.fixture
def sample_forest(make_element, make_container) -> list[Element]:
    """
    r1 (container)
      c1 (text)
      r1b (container)
        c2 (text)
    t1 (text)
    """
    return [
        make_container(
            "r1",
            make_element("c1", value="child one"),
            make_container("r1b", make_element("c2", value="child two")),
        ),
        make_element("t1", value="top"),
    ]


@pytest.fixture
def sample_document(sample_forest) -> Document:
    return Document(
        id="doc1",
        name="Sample",
        screens=[
            Screen(id="s1", name="Home", elements=sample_forest),
            Screen(id="s2", name="Details", elements=[]),
        ],
    )


@pytest.fixture
def conditional_text() -> Element:
    """Text element with two conditions, the first overriding color only."""
    return Element(
        id="ct",
        type="text",
        properties={"color": "black", "size": 10},
        render_type=RenderType.CONDITIONAL,
        conditions=[
            {"expression": "first", "properties": {"color": "red"}},
            {"expression": "second", "properties": {"color": "blue", "size": 12}},
        ],
    )


@pytest.fixture
def slider_forest() -> list[Element]:
    """A slider with two text slides."""
    return [
        Element(
            id="slider",
            type="container",
            properties={},
            content_type=ContentType.SLIDER,
            children=[
                Element(
                    id="slide0",
                    type="text",
                    properties={"fontSize": 16, "activeFontSize": 24},
                ),
                Element(
                    id="slide1",
                    type="text",
                    properties={"fontSize": 16, "activeFontSize": 24},
                ),
            ],
        )
    ]
