"""
Core Exceptions

Custom exceptions for the canvas engine.

Tree mutation errors are returned inside a MutationResult rather than raised,
so a drag gesture racing against a delete never crashes the editor.
Calculation errors are caught per token and rendered inline.
"""


class CanvasError(Exception):
    """Base class for all canvas engine errors."""

    def __init__(self, message: str = "Canvas error"):
        self.message = message
        super().__init__(self.message)


# ==================== TREE MUTATION ====================


class TreeMutationError(CanvasError):
    """Base class for rejected structural mutations."""


class DuplicateIdError(TreeMutationError):
    """Raised when an inserted subtree reuses an id already in the document."""

    def __init__(self, element_id: str):
        self.element_id = element_id
        super().__init__(f"Element id '{element_id}' already exists")


class TargetNotFoundError(TreeMutationError):
    """
    Raised when a mutation addresses an id that is not in the tree.

    Usually benign: the user deleted the target while a drag was in flight.
    """

    def __init__(self, element_id: str):
        self.element_id = element_id
        super().__init__(f"Element '{element_id}' not found")


class CircularMoveError(TreeMutationError):
    """Raised when a move would place an element inside itself or its descendant."""

    def __init__(self, element_id: str, container_id: str):
        self.element_id = element_id
        self.container_id = container_id
        super().__init__(
            f"Cannot move element '{element_id}' into '{container_id}': would create a cycle"
        )


class InvalidUpdateError(TreeMutationError):
    """Raised when a partial update cannot be applied to an element."""


class NotAContainerError(TreeMutationError):
    """Raised when an element is dropped onto a kind that cannot hold children."""

    def __init__(self, element_id: str, element_type: str):
        self.element_id = element_id
        self.element_type = element_type
        super().__init__(f"Element '{element_id}' of type '{element_type}' cannot contain children")


# ==================== CALCULATIONS ====================


class CalculationError(CanvasError):
    """
    Base class for per-token calculation failures.

    Never escapes CalculationEngine.evaluate(); the failing token is replaced
    by marker() and the rest of the text is kept.
    """

    def marker(self) -> str:
        return f"[Error: {self.message}]"


class ReferenceMissingError(CalculationError):
    """Raised when a token references an element that is not on the screen."""

    def __init__(self, element_id: str):
        self.element_id = element_id
        super().__init__("reference not found")


class CircularReferenceError(CalculationError):
    """Raised when a token references an element already being evaluated."""

    def __init__(self, element_id: str):
        self.element_id = element_id
        super().__init__("circular reference")


class EvaluationError(CalculationError):
    """Raised when an operation cannot produce a value."""


class CalculationMissingError(CalculationError):
    """Raised when a token names a stored calculation that no longer exists."""

    def __init__(self, calculation_id: str):
        self.calculation_id = calculation_id
        super().__init__(f"calculation '{calculation_id}' not found")

    def marker(self) -> str:
        return f"[Missing: {self.calculation_id[-6:]}]"


# ==================== REGISTRY ====================


class ElementKindError(CanvasError):
    """Raised when an element kind is registered or looked up incorrectly."""
