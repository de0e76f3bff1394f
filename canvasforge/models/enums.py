"""
Enumeration types used across the engine.
"""

from enum import Enum


class RenderType(str, Enum):
    """How an element picks its property set"""
    STATIC = "static"
    CONDITIONAL = "conditional"
    FIXED = "fixed"  # Legacy spelling of STATIC in older saved screens


class ContentType(str, Enum):
    """Container content modes"""
    FIXED = "fixed"
    SLIDER = "slider"
    TABS = "tabs"
    REPEATING = "repeating"


class DragState(str, Enum):
    """Drag/drop gesture states"""
    IDLE = "idle"
    DRAGGING_NEW = "dragging_new"
    DRAGGING_EXISTING = "dragging_existing"


class ResolveMode(str, Enum):
    """Context a property resolution happens in"""
    EDITOR = "editor"  # Builder canvas and preview: missing match falls back to the first condition
    LIVE = "live"  # Running app: the condition evaluator always decides


class CalculationSource(str, Enum):
    """Where a stored calculation step takes its value from"""
    CUSTOM = "custom"
    ELEMENT = "element"
    TIMESTAMP = "timestamp"
    DATABASE = "database"  # Query against a backend table
    SCREEN_WIDTH = "screen_width"
    SCREEN_HEIGHT = "screen_height"


class DatabaseAction(str, Enum):
    """What a database step returns from its query"""
    COUNT = "count"  # Number of matching rows
    VALUE = "value"  # First column of the first row
    VALUES = "values"  # First column of every row, comma separated
