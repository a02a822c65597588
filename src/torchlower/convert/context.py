"""Per-node conversion context.

Holds the primitive graph being extended and the table binding source graph
values to the tensor handles produced for them.
"""

__docformat__ = "restructuredtext"
__all__ = ["ConversionContext"]

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import torch

from torchlower.build import PrimitiveGraphBuilder, TensorHandle
from torchlower.errors import LoweringError

from .types import OperatorNode

logger = logging.getLogger(__name__)


class ConversionContext:
    """Scratch state for converting one operator node.

    :param builder: Primitive graph receiving the lowered layers
    """

    def __init__(self, builder: PrimitiveGraphBuilder):
        self.builder = builder
        self.value_tensor_map: dict[str, TensorHandle] = {}

    @contextmanager
    def checked(self, node: OperatorNode, primitive: str) -> Iterator[None]:
        """Turn a builder rejection into a LoweringError for the owning node.

        :param node: Node being lowered
        :param primitive: Description of the primitive being constructed
        :raises LoweringError: If the builder raises ValueError
        """
        try:
            yield
        except ValueError as error:
            raise LoweringError(primitive, str(node), str(error)) from error

    def freeze(self, value: torch.Tensor, node: OperatorNode) -> TensorHandle:
        """Embed a conversion-time constant in the primitive graph.

        :param value: Constant tensor
        :param node: Node the constant is an argument of
        :return: Handle of the frozen constant
        :raises LoweringError: If the builder cannot embed the constant
        """
        with self.checked(node, "constant"):
            return self.builder.freeze(value)

    def associate_value_and_tensor(self, value: str, tensor: TensorHandle) -> TensorHandle:
        """Bind a source value to the tensor produced for it.

        :param value: Source value name
        :param tensor: Produced tensor handle
        :return: The bound handle
        """
        logger.debug("Binding %%%s to %s", value, tensor)
        self.value_tensor_map[value] = tensor
        return tensor

    def find_tensor(self, value: str) -> TensorHandle | None:
        return self.value_tensor_map.get(value)

    def require_outputs(self, node: OperatorNode) -> dict[str, TensorHandle]:
        """Collect the tensors bound to every declared output of a node.

        :param node: Node whose outputs must all be bound
        :return: Mapping of output value name to tensor handle, in declared order
        :raises LoweringError: If an output was left unbound
        """
        missing = [value for value in node.outputs if value not in self.value_tensor_map]
        if missing:
            raise LoweringError(
                "output binding",
                str(node),
                "no tensor bound to " + ", ".join(f"%{value}" for value in missing),
            )
        return {value: self.value_tensor_map[value] for value in node.outputs}
