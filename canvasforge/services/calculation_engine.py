"""
Calculation Engine

Evaluates inline calculation tokens embedded in text values.

Token grammar (persisted inside user content, keep stable):

    {{CALC:<operation>:<element-id>[,<element-id>...]}}
        operation: sum | avg | min | max | product | count | value |
                   concat | subtract | divide
    {{CALC:<calculation-id>}}
        a stored multi-step calculation (see models.contracts.calculations)

Evaluation flow:
1. tokenize() splits text into literal segments and tokens, in order
2. every token is evaluated concurrently (asyncio.gather) and on its own
3. referenced ids are looked up among the screen's elements (pre-order);
   their values come from an ElementValueSource
4. values that contain tokens themselves are evaluated recursively, with the
   chain of elements being evaluated used as a cycle guard
5. each token becomes its formatted value, or an inline ``[Error: ...]``
   marker; the surrounding text is always kept

evaluate() never raises for a bad token.
"""

import asyncio
import logging
import math
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Union

from canvasforge.config import Settings, get_settings
from canvasforge.core.exceptions import (
    CalculationError,
    CalculationMissingError,
    CircularReferenceError,
    EvaluationError,
    ReferenceMissingError,
)
from canvasforge.models.contracts.calculations import Calculation, CalculationStep
from canvasforge.models.contracts.elements import Element
from canvasforge.models.enums import CalculationSource, DatabaseAction
from canvasforge.services.element_tree import flatten_elements
from canvasforge.services.value_sources import (
    DatabaseQuerySource,
    ElementValueSource,
    PropertyValueSource,
)

logger = logging.getLogger(__name__)

CALC_TOKEN_PATTERN = re.compile(r"\{\{CALC:([^}]+)\}\}")
CALC_TOKEN_PREFIX = "{{CALC:"

# Stack entries for stored calculations, kept apart from element ids
_CALC_STACK_PREFIX = "calc:"


# =============================================================================
# Tokenizing
# =============================================================================


@dataclass(frozen=True)
class TextSegment:
    """Literal text between tokens."""

    text: str


@dataclass(frozen=True)
class CalculationToken:
    """One ``{{CALC:...}}`` occurrence; drawn as a capsule in the editor."""

    raw: str
    payload: str


Segment = Union[TextSegment, CalculationToken]


def has_calculations(text: Any) -> bool:
    return isinstance(text, str) and CALC_TOKEN_PREFIX in text


def tokenize(text: str) -> list[Segment]:
    """Split text into literal segments and tokens, preserving order."""
    segments: list[Segment] = []
    position = 0
    for match in CALC_TOKEN_PATTERN.finditer(text):
        if match.start() > position:
            segments.append(TextSegment(text[position:match.start()]))
        segments.append(CalculationToken(raw=match.group(0), payload=match.group(1)))
        position = match.end()
    if position < len(text):
        segments.append(TextSegment(text[position:]))
    return segments


@dataclass(frozen=True)
class ParsedPayload:
    """Decoded token payload: an operation over element ids, or a stored calculation."""

    operation: str | None = None
    element_ids: tuple[str, ...] = ()
    calculation_id: str | None = None


def parse_payload(payload: str) -> ParsedPayload:
    """
    Decode a token payload.

    Raises:
        EvaluationError: Empty payload, unknown operation or malformed id list.
    """
    payload = payload.strip()
    if not payload:
        raise EvaluationError("empty calculation")

    if ":" not in payload:
        return ParsedPayload(calculation_id=payload)

    operation, _, references = payload.partition(":")
    operation = operation.strip().lower()
    if operation not in AGGREGATIONS:
        raise EvaluationError(f"unknown operation '{operation}'")

    element_ids = tuple(reference.strip() for reference in references.split(","))
    if not element_ids or any(not element_id for element_id in element_ids):
        raise EvaluationError("malformed reference list")

    return ParsedPayload(operation=operation, element_ids=element_ids)


def build_token(operation: str, element_ids: Sequence[str]) -> str:
    """Inverse of parse_payload for operation tokens."""
    return f"{CALC_TOKEN_PREFIX}{operation}:{','.join(element_ids)}}}}}"


# =============================================================================
# Values
# =============================================================================


def convert_value(value: Any) -> Any:
    """Numeric-looking strings become floats; None becomes an empty string."""
    if value is None:
        return ""
    if isinstance(value, str):
        trimmed = value.strip()
        if trimmed:
            try:
                number = float(trimmed)
            except ValueError:
                return value
            if math.isfinite(number):
                return number
    return value


def to_number(value: Any, label: str = "value") -> float:
    """
    Strict numeric conversion for aggregations.

    Raises:
        EvaluationError: If the value is not a number or numeric string.
    """
    converted = convert_value(value)
    if isinstance(converted, bool) or not isinstance(converted, (int, float)):
        raise EvaluationError(f"{label} is not a number")
    return float(converted)


def _lenient_number(value: Any) -> float:
    """Stored-calculation arithmetic: anything non-numeric counts as 0."""
    converted = convert_value(value)
    if isinstance(converted, bool):
        return float(converted)
    if isinstance(converted, (int, float)):
        return float(converted)
    return 0.0


def format_value(value: Any) -> str:
    """Render a calculated value for insertion into text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, (list, tuple)):
        return ", ".join(format_value(item) for item in value if item is not None)
    return str(value)


def _first_column(row: Any) -> Any:
    if isinstance(row, Mapping):
        return next(iter(row.values()), None)
    return row


def format_database_result(data: Any, action: DatabaseAction | str) -> Any:
    """
    Reduce raw query data to a step value.

    count: the ``count`` field of an object result, else the number of rows.
    value: first column of the first row (or of the object), '' when empty.
    values: first column of every row, nulls skipped, joined with ', '.
    """
    action = DatabaseAction(action)
    if action == DatabaseAction.COUNT:
        if isinstance(data, Mapping) and data.get("count"):
            return data["count"]
        return len(data) if isinstance(data, list) else 0
    if action == DatabaseAction.VALUE:
        if isinstance(data, list):
            first = _first_column(data[0]) if data else None
        elif isinstance(data, Mapping):
            first = _first_column(data)
        else:
            first = None
        return "" if first is None else first
    if isinstance(data, list):
        values = (_first_column(row) for row in data)
        return ", ".join(format_value(value) for value in values if value is not None)
    return ""


# =============================================================================
# Operations
# =============================================================================


def _numbers(values: Sequence[Any], element_ids: Sequence[str]) -> list[float]:
    return [to_number(value, f"'{element_id}'") for value, element_id in zip(values, element_ids)]


def _sum(values, ids):
    return sum(_numbers(values, ids))


def _avg(values, ids):
    numbers = _numbers(values, ids)
    return sum(numbers) / len(numbers)


def _min(values, ids):
    return min(_numbers(values, ids))


def _max(values, ids):
    return max(_numbers(values, ids))


def _product(values, ids):
    return math.prod(_numbers(values, ids))


def _count(values, ids):
    return sum(1 for value in values if value not in (None, ""))


def _value(values, ids):
    if len(values) == 1:
        return values[0]
    return ", ".join(format_value(value) for value in values if value not in (None, ""))


def _concat(values, ids):
    return "".join(format_value(value) for value in values)


def _subtract(values, ids):
    first, *rest = _numbers(values, ids)
    return first - sum(rest)


def _divide(values, ids):
    first, *rest = _numbers(values, ids)
    for divisor in rest:
        if divisor == 0:
            raise EvaluationError("division by zero")
        first /= divisor
    return first


AGGREGATIONS = {
    "sum": _sum,
    "avg": _avg,
    "min": _min,
    "max": _max,
    "product": _product,
    "count": _count,
    "value": _value,
    "concat": _concat,
    "subtract": _subtract,
    "divide": _divide,
}


def apply_aggregation(operation: str, values: Sequence[Any], element_ids: Sequence[str]) -> Any:
    handler = AGGREGATIONS.get(operation)
    if handler is None:
        raise EvaluationError(f"unknown operation '{operation}'")
    return handler(values, element_ids)


def apply_operation(left: Any, right: Any, operation: str | None) -> Any:
    """
    Combine the running result of a stored calculation with the next step.

    ``add`` sums two numbers but concatenates anything else; the other
    arithmetic operations treat non-numeric values as 0.
    """
    left = convert_value(left)
    right = convert_value(right)

    if operation == "add":
        if isinstance(left, (int, float)) and isinstance(right, (int, float)):
            return left + right
        return format_value(left) + format_value(right)
    if operation == "subtract":
        return _lenient_number(left) - _lenient_number(right)
    if operation == "multiply":
        return _lenient_number(left) * _lenient_number(right)
    if operation == "divide":
        divisor = _lenient_number(right)
        if divisor == 0:
            raise EvaluationError("division by zero")
        return _lenient_number(left) / divisor
    if operation == "concatenate":
        return format_value(left) + format_value(right)

    raise EvaluationError(f"unknown operation '{operation}'")


# =============================================================================
# Engine
# =============================================================================


@dataclass(frozen=True)
class Viewport:
    """Size of the screen being rendered, read by screen_width/screen_height steps."""

    width: int
    height: int


@dataclass(frozen=True)
class TokenOutcome:
    """Result of one token: a rendered value or the error that replaced it."""

    token: CalculationToken
    value: str | None = None
    error: CalculationError | None = None

    @property
    def rendered(self) -> str:
        return self.error.marker() if self.error is not None else (self.value or "")


class CalculationEngine:
    """
    Evaluates calculation tokens against the elements of one screen.

    Args:
        available_elements: Elements in scope, pre-order (first id wins)
        value_source: Where element values come from
        calculations: Stored calculations by id
        database: Runs the queries of database steps
        viewport: Screen size of the current render, for screen size steps
        settings: Timeout and nesting limits
    """

    def __init__(
        self,
        available_elements: Iterable[Element] = (),
        *,
        value_source: ElementValueSource | None = None,
        calculations: Mapping[str, Calculation] | None = None,
        database: DatabaseQuerySource | None = None,
        viewport: Viewport | None = None,
        settings: Settings | None = None,
    ):
        self.elements: dict[str, Element] = {}
        for element in available_elements:
            self.elements.setdefault(element.id, element)

        settings = settings or get_settings()
        self.value_source = value_source or PropertyValueSource()
        self.calculations: dict[str, Calculation] = dict(calculations or {})
        self.database = database
        self.viewport = viewport
        self.timeout = settings.calculation_timeout_seconds
        self.max_depth = settings.max_calculation_depth

    @classmethod
    def for_forest(cls, forest: Iterable[Element], **kwargs: Any) -> "CalculationEngine":
        """Engine scoped to every element of a screen's forest."""
        return cls(flatten_elements(forest), **kwargs)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def evaluate(self, text: str | None, *, current_element_id: str | None = None) -> str:
        """
        Replace every token in text with its value or an inline error marker.

        Args:
            text: Text property value
            current_element_id: Element that owns the text; tokens that lead
                back to it fail with a circular reference.
        """
        if not text:
            return text or ""
        if not has_calculations(text):
            return text

        stack = (current_element_id,) if current_element_id else ()
        segments = tokenize(text)
        outcomes = await self.evaluate_tokens(
            [segment for segment in segments if isinstance(segment, CalculationToken)],
            stack,
        )
        return _assemble(segments, [outcome.rendered for outcome in outcomes])

    async def evaluate_tokens(
        self,
        tokens: Sequence[CalculationToken],
        stack: tuple[str, ...] = (),
    ) -> list[TokenOutcome]:
        """Evaluate tokens concurrently; outcomes come back in token order."""
        return list(await asyncio.gather(*(self._evaluate_guarded(token, stack) for token in tokens)))

    async def evaluate_payload(self, payload: str, stack: tuple[str, ...] = ()) -> Any:
        """
        Raw value of one token payload.

        Raises:
            CalculationError: On any failure.
        """
        parsed = parse_payload(payload)
        if parsed.calculation_id is not None:
            return await self._run_stored(parsed.calculation_id, stack)

        results = await asyncio.gather(
            *(self.element_value(element_id, stack) for element_id in parsed.element_ids),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return apply_aggregation(parsed.operation, results, parsed.element_ids)

    async def element_value(self, element_id: str, stack: tuple[str, ...] = ()) -> Any:
        """
        Current value of a referenced element, evaluating nested tokens.

        Raises:
            CircularReferenceError: The element is already being evaluated.
            ReferenceMissingError: The element is not in scope.
        """
        if element_id in stack:
            raise CircularReferenceError(element_id)

        element = self.elements.get(element_id)
        if element is None:
            raise ReferenceMissingError(element_id)

        raw = await self.value_source.get_value(element)
        if has_calculations(raw):
            return await self._evaluate_nested(raw, (*stack, element_id))
        return raw

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _evaluate_guarded(self, token: CalculationToken, stack: tuple[str, ...]) -> TokenOutcome:
        try:
            value = await asyncio.wait_for(self.evaluate_payload(token.payload, stack), self.timeout)
        except CalculationError as e:
            logger.warning(f"Calculation token {token.raw} failed: {e.message}")
            return TokenOutcome(token, error=e)
        except asyncio.TimeoutError:
            logger.warning(f"Calculation token {token.raw} timed out after {self.timeout}s")
            return TokenOutcome(token, error=EvaluationError("timed out"))
        except Exception as e:
            logger.exception(f"Unexpected error evaluating {token.raw}")
            return TokenOutcome(token, error=EvaluationError(str(e) or type(e).__name__))
        return TokenOutcome(token, value=format_value(value))

    async def _evaluate_nested(self, text: str, stack: tuple[str, ...]) -> str:
        """
        Evaluate tokens inside a referenced value.

        Unlike evaluate(), the first failing token fails the whole value, so
        the error surfaces on the outer token that asked for it.
        """
        if len(stack) > self.max_depth:
            raise EvaluationError("calculation nested too deeply")

        segments = tokenize(text)
        outcomes = await self.evaluate_tokens(
            [segment for segment in segments if isinstance(segment, CalculationToken)],
            stack,
        )
        for outcome in outcomes:
            if outcome.error is not None:
                raise outcome.error
        return _assemble(segments, [outcome.rendered for outcome in outcomes])

    async def _run_stored(self, calculation_id: str, stack: tuple[str, ...]) -> Any:
        key = f"{_CALC_STACK_PREFIX}{calculation_id}"
        if key in stack:
            raise CircularReferenceError(calculation_id)

        calculation = self.calculations.get(calculation_id)
        if calculation is None:
            raise CalculationMissingError(calculation_id)
        if not calculation.steps:
            return ""

        stack = (*stack, key)
        result: Any = None
        for index, step in enumerate(calculation.steps):
            try:
                value = await self.step_value(step, stack)
                result = value if index == 0 else apply_operation(result, value, step.operation)
            except EvaluationError as e:
                raise EvaluationError(f"step {index + 1}: {e.message}") from e
        return result

    async def step_value(self, step: CalculationStep, stack: tuple[str, ...] = ()) -> Any:
        if step.source == CalculationSource.CUSTOM:
            return await self._custom_value(step.value, stack)
        if step.source == CalculationSource.ELEMENT:
            if not step.element_id:
                raise EvaluationError("no element selected")
            return await self.element_value(step.element_id, stack)
        if step.source == CalculationSource.DATABASE:
            return await self._database_value(step, stack)
        if step.source == CalculationSource.TIMESTAMP:
            return datetime.now(timezone.utc).isoformat()
        if step.source in (CalculationSource.SCREEN_WIDTH, CalculationSource.SCREEN_HEIGHT):
            if self.viewport is None:
                raise EvaluationError("screen size unknown")
            if step.source == CalculationSource.SCREEN_WIDTH:
                return self.viewport.width
            return self.viewport.height
        raise EvaluationError(f"unknown source '{step.source}'")

    async def _custom_value(self, value: str | None, stack: tuple[str, ...]) -> Any:
        if has_calculations(value):
            return await self._evaluate_nested(value, stack)
        return value or ""

    async def _database_value(self, step: CalculationStep, stack: tuple[str, ...]) -> Any:
        if not step.database_id or not step.table_id:
            raise EvaluationError("database and table must be selected")
        if step.action != DatabaseAction.COUNT and not step.selected_column:
            raise EvaluationError("column must be selected for value operations")
        if self.database is None:
            raise EvaluationError("no database configured")

        filters = []
        for query_filter in step.filters:
            if not (query_filter.column and query_filter.operator and query_filter.value != ""):
                continue
            filters.append(
                {
                    "column": query_filter.column,
                    "operator": query_filter.operator,
                    "value": await self._custom_value(query_filter.value, stack),
                    "logic": query_filter.logic,
                }
            )

        data = await self.database.query(
            step.database_id,
            step.table_id,
            filters=filters,
            action=step.action.value,
            column=step.selected_column,
        )
        return format_database_result(data, step.action)


def _assemble(segments: Sequence[Segment], rendered: Sequence[str]) -> str:
    """Stitch literal segments and rendered tokens back together."""
    parts: list[str] = []
    values = iter(rendered)
    for segment in segments:
        if isinstance(segment, TextSegment):
            parts.append(segment.text)
        else:
            parts.append(next(values))
    return "".join(parts)


async def evaluate(
    text: str | None,
    available_elements: Iterable[Element],
    **kwargs: Any,
) -> str:
    """
    One-shot evaluation of a text value against a set of elements.

    Keyword arguments are passed to CalculationEngine; ``current_element_id``
    is passed to CalculationEngine.evaluate().
    """
    current_element_id = kwargs.pop("current_element_id", None)
    engine = CalculationEngine(available_elements, **kwargs)
    return await engine.evaluate(text, current_element_id=current_element_id)
