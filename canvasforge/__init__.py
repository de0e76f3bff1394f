"""
canvasforge

Element-tree engine behind the visual canvas builder.
"""

__version__ = "0.1.0"
