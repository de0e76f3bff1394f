"""
Stored calculation contracts.

A token with a bare id (``{{CALC:calc_1712}}``) names a multi-step
calculation built in the calculation popup. Condition expressions reuse the
same step shape with comparison and logical operations.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from canvasforge.models.enums import CalculationSource, DatabaseAction


class QueryFilter(BaseModel):
    """One filter row of a database step; the value may contain tokens."""

    column: str | None = None
    operator: str | None = None
    value: str = ""
    logic: str | None = Field(default=None, description="and/or joining this filter to the previous one")


class CalculationStep(BaseModel):
    """
    One step of a stored calculation.

    The first step seeds the running result; every later step combines the
    running result with its own value using ``operation``.
    """

    model_config = ConfigDict(populate_by_name=True)

    source: CalculationSource = Field(description="Where the step value comes from")
    value: str | None = Field(
        default=None, description="Literal value for custom steps (may contain tokens)"
    )
    element_id: str | None = Field(
        default=None, alias="elementId", description="Referenced element for element steps"
    )
    operation: str | None = Field(
        default=None, description="Operation applied against the running result"
    )

    # Database steps
    database_id: str | None = Field(default=None, alias="databaseId")
    table_id: str | None = Field(default=None, alias="tableId")
    filters: list[QueryFilter] = Field(default_factory=list)
    action: DatabaseAction = Field(
        default=DatabaseAction.VALUE, description="How the query result becomes the step value"
    )
    selected_column: str | None = Field(
        default=None, alias="selectedColumn", description="Column read by value/values actions"
    )


class Calculation(BaseModel):
    """A named, ordered list of steps."""

    id: str = Field(description="Calculation id embedded in the token payload")
    steps: list[CalculationStep] = Field(default_factory=list)


class ConditionExpression(BaseModel):
    """Expression shape understood by the reference condition evaluator."""

    model_config = ConfigDict(extra="ignore")

    steps: list[CalculationStep] = Field(default_factory=list)

    @classmethod
    def from_opaque(cls, expression: Any) -> ConditionExpression | None:
        """Parse a Condition.expression; None when it is not in step form."""
        if isinstance(expression, ConditionExpression):
            return expression
        if isinstance(expression, dict) and "steps" in expression:
            return cls.model_validate(expression)
        return None
