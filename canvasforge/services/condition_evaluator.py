"""
Condition Evaluator

Reference implementation of the rule engine that picks which condition of a
conditional element applies. Expressions use the stored-calculation step
shape (``{"steps": [...]}``) with comparison and logical operations on top of
the arithmetic ones:

    equals, not_equals, greater_than, less_than, greater_equal, less_equal,
    and, or, add, subtract, multiply, divide, concatenate

Conditions are tried in order and the first truthy one wins. A condition that
fails to evaluate is skipped, never fatal.
"""

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from canvasforge.core.exceptions import CalculationError, EvaluationError
from canvasforge.models.contracts.calculations import ConditionExpression
from canvasforge.models.contracts.elements import Condition, Element
from canvasforge.services.calculation_engine import (
    CalculationEngine,
    apply_operation,
    convert_value,
    format_value,
)
from canvasforge.services.element_tree import iter_elements

logger = logging.getLogger(__name__)


def to_boolean(value: Any) -> bool:
    """Truthiness of a condition result; "", "0" and "false" are false."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        trimmed = value.strip().lower()
        return trimmed not in ("", "false", "0")
    return bool(value)


def _number(value: Any) -> float:
    converted = convert_value(value)
    if isinstance(converted, (int, float)):
        return float(converted)
    return 0.0


def loose_equals(left: Any, right: Any) -> bool:
    """Numbers compare numerically; everything else by rendered text."""
    left = convert_value(left)
    right = convert_value(right)
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    return format_value(left) == format_value(right)


COMPARISONS = {
    "equals": loose_equals,
    "not_equals": lambda left, right: not loose_equals(left, right),
    "greater_than": lambda left, right: _number(left) > _number(right),
    "less_than": lambda left, right: _number(left) < _number(right),
    "greater_equal": lambda left, right: _number(left) >= _number(right),
    "less_equal": lambda left, right: _number(left) <= _number(right),
    "and": lambda left, right: to_boolean(convert_value(left)) and to_boolean(convert_value(right)),
    "or": lambda left, right: to_boolean(convert_value(left)) or to_boolean(convert_value(right)),
}


def apply_condition_operation(left: Any, right: Any, operation: str | None) -> Any:
    """Comparison/logical operations, falling back to calculation arithmetic."""
    comparison = COMPARISONS.get(operation or "")
    if comparison is not None:
        return comparison(left, right)
    return apply_operation(left, right, operation)


class ConditionEvaluator:
    """
    Chooses the matching condition of each conditional element.

    Step values (element references, nested tokens) are resolved through the
    same CalculationEngine used for text, so both see identical values.
    """

    def __init__(self, engine: CalculationEngine):
        self.engine = engine

    @classmethod
    def for_forest(cls, forest: Iterable[Element], **engine_kwargs: Any) -> "ConditionEvaluator":
        return cls(CalculationEngine.for_forest(forest, **engine_kwargs))

    async def evaluate_condition(self, condition: Condition) -> bool:
        """
        Evaluate one condition's expression.

        Raises:
            CalculationError: A step could not be evaluated.
            ValidationError: The expression is not in step form.
        """
        expression = ConditionExpression.from_opaque(condition.expression)
        if expression is None or not expression.steps:
            return False

        result: Any = None
        for index, step in enumerate(expression.steps):
            value = await self.engine.step_value(step)
            if index == 0:
                result = value
            else:
                try:
                    result = apply_condition_operation(result, value, step.operation)
                except EvaluationError as e:
                    raise EvaluationError(f"step {index + 1}: {e.message}") from e
        return to_boolean(convert_value(result))

    async def match(self, element: Element) -> int | None:
        """Index of the first truthy condition, or None when none matches."""
        if not element.is_conditional or not element.conditions:
            return None

        for index, condition in enumerate(element.conditions):
            try:
                if await self.evaluate_condition(condition):
                    logger.debug(f"Element '{element.id}' matched condition {index}")
                    return index
            except (CalculationError, ValidationError) as e:
                logger.warning(f"Element '{element.id}': condition {index} skipped: {e}")
        return None

    async def match_all(self, forest: Iterable[Element]) -> dict[str, int]:
        """Matched condition index for every conditional element that has one."""
        matches: dict[str, int] = {}
        for element in iter_elements(forest):
            index = await self.match(element)
            if index is not None:
                matches[element.id] = index
        return matches

    async def should_render(self, element: Element) -> bool:
        if not element.is_conditional or not element.conditions:
            return True
        return await self.match(element) is not None

    async def visible_elements(self, forest: Iterable[Element]) -> list[Element]:
        """
        Drop conditional elements that match no condition, recursively.

        An element whose evaluation fails unexpectedly stays visible.
        """
        visible: list[Element] = []
        for element in forest:
            try:
                keep = await self.should_render(element)
            except Exception:
                logger.exception(f"Visibility check failed for element '{element.id}', keeping it")
                keep = True
            if not keep:
                continue

            if element.children:
                children = await self.visible_elements(element.children)
                element = element.model_copy(update={"children": children})
            visible.append(element)
        return visible
