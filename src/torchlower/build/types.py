"""Primitive graph type definitions.

Defines TensorHandle and PrimitiveLayer dataclasses plus the enums that
select elementwise operations and activations.
"""

__docformat__ = "restructuredtext"
__all__ = [
    "ActivationKind",
    "ElementwiseOp",
    "PrimitiveKind",
    "PrimitiveLayer",
    "Shape",
    "TensorHandle",
]

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

import torch

# Static dims are ints, dynamic dims (e.g. a batch marker) are symbol strings
Shape = tuple[int | str, ...]


class PrimitiveKind(Enum):
    """Kinds of primitive layers the builder can append."""

    MATMUL = "matmul"
    ELEMENTWISE = "elementwise"
    SLICE = "slice"
    ACTIVATION = "activation"
    RESHAPE = "reshape"


class ElementwiseOp(Enum):
    """Elementwise binary operations.

    :cvar SUM: a + b (ONNX Add)
    :cvar PRODUCT: a * b (ONNX Mul)
    """

    SUM = "Add"
    PRODUCT = "Mul"


class ActivationKind(Enum):
    """Pointwise activations.

    :cvar SIGMOID: ONNX Sigmoid
    :cvar TANH: ONNX Tanh
    """

    SIGMOID = "Sigmoid"
    TANH = "Tanh"


@dataclass(frozen=True)
class TensorHandle:
    """Reference to a tensor produced inside the primitive graph.

    :param name: Unique tensor name within the graph
    :param shape: Rank-ordered dimensions (int for static, str for symbolic)
    :param dtype: Element type
    """

    name: str
    shape: Shape
    dtype: torch.dtype = torch.float32

    @property
    def rank(self) -> int:
        return len(self.shape)

    def __str__(self) -> str:
        dims = ", ".join(str(dim) for dim in self.shape)
        return f"{self.name}[{dims}]"


@dataclass(frozen=True)
class PrimitiveLayer:
    """One primitive appended to the graph.

    A primitive may lower to several backend nodes (a transposed matmul emits
    a Transpose before the MatMul), but it is recorded once.

    :param kind: Primitive kind
    :param name: Layer name
    :param inputs: Input tensor names
    :param output: Output tensor name
    :param attrs: Primitive attributes (op, offsets, new shape, ...), stored read-only
    """

    kind: PrimitiveKind
    name: str
    inputs: tuple[str, ...]
    output: str
    attrs: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "attrs", MappingProxyType(dict(self.attrs)))
