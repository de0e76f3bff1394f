"""
Screen Renderer

Turns a screen's element forest into what the canvas (EDITOR) or the running
app (LIVE) draws: resolved properties per element with calculated texts
filled in.

Active slide flags are computed once per pass from the ``active_slides``
snapshot and passed down explicitly; nothing is read from ambient state.
"""

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from canvasforge.models.contracts.elements import Element
from canvasforge.models.enums import ResolveMode
from canvasforge.services.active_state import ActiveStateFlags, compute_active_state
from canvasforge.services.calculation_engine import CalculationEngine, has_calculations
from canvasforge.services.condition_evaluator import ConditionEvaluator
from canvasforge.services.condition_resolver import resolve, select_condition_index
from canvasforge.services.element_kinds import ElementKindRegistry, default_registry

logger = logging.getLogger(__name__)


@dataclass
class RenderedElement:
    """One element as drawn."""

    id: str
    type: str
    properties: dict[str, Any]
    children: list["RenderedElement"] = field(default_factory=list)
    condition_index: int | None = None
    active: bool = False


@dataclass(frozen=True)
class _RenderPass:
    matched_conditions: Mapping[str, int]
    active_state: ActiveStateFlags
    mode: ResolveMode
    engine: CalculationEngine
    registry: ElementKindRegistry
    text_key: str


async def render_screen(
    elements: Iterable[Element],
    *,
    matched_conditions: Mapping[str, int] | None = None,
    active_slides: Mapping[str, int] | None = None,
    mode: ResolveMode = ResolveMode.EDITOR,
    engine: CalculationEngine | None = None,
    registry: ElementKindRegistry | None = None,
    text_key: str = "value",
) -> list[RenderedElement]:
    """
    Render a forest.

    Args:
        elements: Root elements of the screen
        matched_conditions: Element id -> matched condition index
        active_slides: Slider/tabs container id -> active child index
        mode: EDITOR previews the first condition when nothing matched;
            LIVE omits conditional elements without a match
        engine: Calculation engine (defaults to one scoped to ``elements``)
        registry: Kind registry for active key tables
        text_key: Property evaluated for calculation tokens

    Returns:
        Rendered roots in document order.
    """
    forest = list(elements)
    render_pass = _RenderPass(
        matched_conditions=matched_conditions or {},
        active_state=compute_active_state(forest, active_slides or {}),
        mode=mode,
        engine=engine or CalculationEngine.for_forest(forest),
        registry=registry or default_registry,
        text_key=text_key,
    )
    return await _render_level(forest, render_pass)


async def render_live_screen(
    elements: Iterable[Element],
    evaluator: ConditionEvaluator,
    *,
    active_slides: Mapping[str, int] | None = None,
    registry: ElementKindRegistry | None = None,
) -> list[RenderedElement]:
    """Match every condition with the evaluator, then render in LIVE mode."""
    forest = list(elements)
    matches = await evaluator.match_all(forest)
    return await render_screen(
        forest,
        matched_conditions=matches,
        active_slides=active_slides,
        mode=ResolveMode.LIVE,
        engine=evaluator.engine,
        registry=registry,
    )


async def _render_level(elements: list[Element], render_pass: _RenderPass) -> list[RenderedElement]:
    rendered = await asyncio.gather(*(_render_element(element, render_pass) for element in elements))
    return [item for item in rendered if item is not None]


async def _render_element(element: Element, render_pass: _RenderPass) -> RenderedElement | None:
    matched = render_pass.matched_conditions.get(element.id)
    index = select_condition_index(element, matched, render_pass.mode)

    if (
        render_pass.mode == ResolveMode.LIVE
        and element.is_conditional
        and element.conditions
        and index is None
    ):
        logger.debug(f"Element '{element.id}' has no matching condition, not rendered")
        return None

    properties = resolve(
        element,
        matched,
        render_pass.active_state,
        mode=render_pass.mode,
        registry=render_pass.registry,
    )

    text = properties.get(render_pass.text_key)
    if has_calculations(text):
        properties[render_pass.text_key] = await render_pass.engine.evaluate(
            text, current_element_id=element.id
        )

    return RenderedElement(
        id=element.id,
        type=element.type,
        properties=properties,
        children=await _render_level(element.child_list, render_pass),
        condition_index=index,
        active=render_pass.active_state.is_active(element.id),
    )
