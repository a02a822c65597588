"""Conversion error definitions.

Every failure while lowering a node is raised as a ConversionError subclass
and aborts the conversion of that node.
"""

__docformat__ = "restructuredtext"
__all__ = [
    "ConversionError",
    "LoweringError",
    "PreconditionError",
    "ShapeError",
    "UnsupportedOperatorError",
]

from .build.types import Shape
from .build.utils import format_shape


class ConversionError(Exception):
    """Base exception for node conversion failures."""

    def __init__(self, message: str, node: str | None = None):
        self.message = message
        self.node = node
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.node:
            return f"{self.message} (node: {self.node})"
        return self.message


class ShapeError(ConversionError):
    """An operand is not broadcastable to the shape it is combined with."""

    def __init__(self, operand: str, expected: Shape, actual: Shape, node: str | None = None):
        self.operand = operand
        self.expected = tuple(expected)
        self.actual = tuple(actual)
        super().__init__(
            f"{operand} with shape {format_shape(self.actual)} is not broadcastable "
            f"to shape {format_shape(self.expected)}",
            node,
        )


class LoweringError(ConversionError):
    """The primitive graph builder failed to construct a layer."""

    def __init__(self, primitive: str, node: str | None, reason: str | None = None):
        self.primitive = primitive
        self.reason = reason
        message = f"Unable to create {primitive} layer"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, node)


class PreconditionError(ConversionError):
    """Operator arguments violate the converter's contract."""


class UnsupportedOperatorError(ConversionError):
    """No converter is registered for an operator kind."""

    def __init__(self, kind: str, node: str | None = None):
        self.kind = kind
        super().__init__(f"No converter registered for operator: {kind}", node)
