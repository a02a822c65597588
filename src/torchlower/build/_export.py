"""ONNX export of primitive graphs."""

__docformat__ = "restructuredtext"
__all__ = ["DEFAULT_OPSET", "build_onnx_model"]

import warnings
from collections.abc import Sequence

import onnx
from onnx import ModelProto, NodeProto, TensorProto, helper

# Every primitive the builder emits is stable from opset 13 on; 17 keeps
# exported models loadable by older runtimes
DEFAULT_OPSET = 17
MIN_SUPPORTED_OPSET = 13
PRODUCER_NAME = "torchlower"

ValueSpec = tuple[str, int, Sequence[int | str]]


def _check_model(model: ModelProto) -> None:
    """Check ONNX model validity using onnx.checker.

    :param model: ONNX model
    :raises ValueError: If model is invalid
    """
    try:
        onnx.checker.check_model(model)
    except (onnx.checker.ValidationError, ValueError, TypeError) as error:
        raise ValueError(f"Invalid primitive graph: {error}") from error


def _infer_shapes(model: ModelProto) -> ModelProto:
    """Run ONNX shape inference, keeping the model unchanged on failure.

    :param model: ONNX model
    :return: Model annotated with intermediate value_info (if successful)
    """
    try:
        return onnx.shape_inference.infer_shapes(model)
    except (ValueError, RuntimeError, AttributeError) as error:
        warnings.warn(f"Shape inference failed: {error}", UserWarning, stacklevel=2)
        return model


def build_onnx_model(
    nodes: Sequence[NodeProto],
    initializers: Sequence[TensorProto],
    inputs: Sequence[ValueSpec],
    outputs: Sequence[ValueSpec],
    graph_name: str,
    opset: int = DEFAULT_OPSET,
    check_model: bool = True,
) -> ModelProto:
    """Assemble an ONNX model from primitive graph parts.

    :param nodes: Graph nodes in topological (append) order
    :param initializers: Constant tensors
    :param inputs: (name, elem_type, shape) for each graph input
    :param outputs: (name, elem_type, shape) for each graph output
    :param graph_name: Graph name
    :param opset: Default-domain opset version
    :param check_model: Validate with onnx.checker before returning
    :return: ONNX model
    """
    if opset < MIN_SUPPORTED_OPSET:
        raise ValueError(
            f"Opset {opset} is not supported; primitives need opset >= {MIN_SUPPORTED_OPSET}"
        )

    graph = helper.make_graph(
        list(nodes),
        graph_name,
        [helper.make_tensor_value_info(name, elem, list(shape)) for name, elem, shape in inputs],
        [helper.make_tensor_value_info(name, elem, list(shape)) for name, elem, shape in outputs],
        initializer=list(initializers),
    )
    opset_imports = [helper.make_opsetid("", opset)]
    model = helper.make_model(graph, opset_imports=opset_imports, producer_name=PRODUCER_NAME)
    model.ir_version = helper.find_min_ir_version_for(opset_imports)

    if check_model:
        _check_model(model)
    return _infer_shapes(model)
