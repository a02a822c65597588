__docformat__ = "restructuredtext"
__all__ = ["TorchLower"]

from collections.abc import Sequence

import onnx

from torchlower.build import DEFAULT_OPSET, PrimitiveGraphBuilder, TensorHandle
from torchlower.convert import (
    ConversionContext,
    OperatorNode,
    ResolvedArgument,
    build_default_registry,
)


class TorchLower:
    def __init__(
        self,
        verbose: bool = False,
        opset: int = DEFAULT_OPSET,
        check_model: bool = True,
    ):
        self.verbose = verbose
        self.opset = opset
        self.check_model = check_model
        self.registry = build_default_registry()

    def lower(
        self,
        node: OperatorNode,
        args: Sequence[ResolvedArgument],
        builder: PrimitiveGraphBuilder,
    ) -> dict[str, TensorHandle]:
        """Lower one operator node into the primitive graph.

        :param node: Source operator node
        :param args: Resolved positional arguments of the node
        :param builder: Primitive graph receiving the layers
        :return: Mapping of node output value name to produced tensor
        """
        ctx = ConversionContext(builder)
        outputs = self.registry.convert(ctx, node, args)

        if self.verbose:
            produced = ", ".join(f"%{value} -> {tensor}" for value, tensor in outputs.items())
            print(f"Lowered {node.kind} ({node.name}): {produced}")

        return outputs

    def convert(
        self,
        node: OperatorNode,
        args: Sequence[ResolvedArgument],
        builder: PrimitiveGraphBuilder,
        graph_name: str | None = None,
    ) -> onnx.ModelProto:
        """Lower one operator node and export the primitive graph as ONNX.

        The node's outputs become the graph outputs in declared order.

        :param node: Source operator node
        :param args: Resolved positional arguments of the node
        :param builder: Primitive graph receiving the layers
        :param graph_name: ONNX graph name (defaults to the node name)
        :return: ONNX model of the lowered node
        """
        outputs = self.lower(node, args, builder)
        model = builder.to_model(
            list(outputs.values()),
            graph_name=graph_name or node.name,
            opset=self.opset,
            check_model=self.check_model,
        )

        if self.verbose:
            print(f"Exported {len(model.graph.node)} ONNX nodes (opset {self.opset})")

        return model
