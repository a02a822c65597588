"""Primitive graph construction.

This module provides the append-only primitive graph builder and its types.
"""

__docformat__ = "restructuredtext"
__all__ = [
    "DEFAULT_OPSET",
    "ActivationKind",
    "ElementwiseOp",
    "PrimitiveGraphBuilder",
    "PrimitiveKind",
    "PrimitiveLayer",
    "Shape",
    "TensorHandle",
]

from ._export import DEFAULT_OPSET
from .builder import PrimitiveGraphBuilder
from .types import (
    ActivationKind,
    ElementwiseOp,
    PrimitiveKind,
    PrimitiveLayer,
    Shape,
    TensorHandle,
)
