"""Source operator and resolved argument type definitions.

Defines the node being lowered and the tagged values its inputs resolve to.
"""

__docformat__ = "restructuredtext"
__all__ = [
    "ABSENT",
    "Absent",
    "ConstantArg",
    "ListArg",
    "OperatorNode",
    "PreviousState",
    "ResolvedArgument",
    "TensorArg",
    "TensorContainer",
]

from dataclasses import dataclass

import torch

from torchlower.build import TensorHandle


@dataclass(frozen=True)
class OperatorNode:
    """A single node of the traced source graph.

    :param name: Node identity used in diagnostics
    :param kind: Qualified operator name (e.g., "aten::lstm_cell")
    :param inputs: Source value names consumed, in schema order
    :param outputs: Source value names produced, in schema order
    """

    name: str
    kind: str
    inputs: tuple[str, ...]
    outputs: tuple[str, ...]

    def __str__(self) -> str:
        outputs = ", ".join(f"%{value}" for value in self.outputs)
        inputs = ", ".join(f"%{value}" for value in self.inputs)
        return f"{self.name}: {outputs} = {self.kind}({inputs})"


@dataclass(frozen=True)
class TensorArg:
    """Argument already materialized as a tensor in the primitive graph."""

    tensor: TensorHandle


@dataclass(frozen=True, eq=False)
class ConstantArg:
    """Argument known at conversion time; frozen into the graph on use."""

    value: torch.Tensor


@dataclass(frozen=True)
class TensorContainer:
    """Boxed reference to a graph tensor (e.g., recurrent state from a previous step)."""

    tensor: TensorHandle


@dataclass(frozen=True)
class ListArg:
    """Argument holding a list of tensors (``Tensor[]``)."""

    items: tuple["TensorArg | ConstantArg | TensorContainer | Absent", ...]


class Absent:
    """Explicitly omitted optional argument."""

    _instance: "Absent | None" = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = Absent()

ResolvedArgument = TensorArg | ConstantArg | TensorContainer | ListArg | Absent


@dataclass(frozen=True)
class PreviousState:
    """Recurrent state carried into one LSTM cell step.

    :param hidden: Previous hidden state h_prev
    :param cell: Previous cell state c_prev
    """

    hidden: TensorHandle
    cell: TensorHandle
