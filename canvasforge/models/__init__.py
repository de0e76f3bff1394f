"""
canvasforge Models

Pydantic contracts (serialized document shape):
    from canvasforge.models import Element, Screen, Condition
    from canvasforge.models.contracts.elements import Element

Enums:
    from canvasforge.models import RenderType
    from canvasforge.models.enums import RenderType
"""

from canvasforge.models.contracts.calculations import Calculation, CalculationStep, QueryFilter
from canvasforge.models.contracts.elements import (
    Condition,
    Document,
    Element,
    Screen,
    deserialize_element,
    generate_element_id,
    serialize_element,
)
from canvasforge.models.enums import (
    CalculationSource,
    DatabaseAction,
    ContentType,
    DragState,
    RenderType,
    ResolveMode,
)

__all__ = [
    "Calculation",
    "CalculationStep",
    "QueryFilter",
    "Condition",
    "Document",
    "Element",
    "Screen",
    "deserialize_element",
    "generate_element_id",
    "serialize_element",
    "CalculationSource",
    "DatabaseAction",
    "ContentType",
    "DragState",
    "RenderType",
    "ResolveMode",
]
