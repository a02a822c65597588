"""Primitive Graph Builder.

Append-only builder for primitive tensor graphs targeting ONNX. Every
constructor computes its output shape, appends the backend nodes and
returns a TensorHandle for the result. Constructors raise ValueError when
the backend would reject the operation.
"""

__docformat__ = "restructuredtext"
__all__ = ["PrimitiveGraphBuilder"]

from collections.abc import Sequence

import numpy as np
import onnx
import torch
from onnx import NodeProto, TensorProto, helper, numpy_helper

from ._export import DEFAULT_OPSET, build_onnx_model
from .types import (
    ActivationKind,
    ElementwiseOp,
    PrimitiveKind,
    PrimitiveLayer,
    Shape,
    TensorHandle,
)
from .utils import broadcast_shape, dims_match, format_shape, volume

# Slice end used for "to the end" of a symbolic dimension
_INT64_MAX = 2**63 - 1

_ONNX_DTYPES: dict[torch.dtype, int] = {
    torch.float16: TensorProto.FLOAT16,
    torch.float32: TensorProto.FLOAT,
    torch.float64: TensorProto.DOUBLE,
}


def onnx_elem_type(dtype: torch.dtype) -> int:
    """Map a torch dtype to an ONNX TensorProto element type.

    :param dtype: PyTorch dtype
    :return: ONNX element type
    :raises ValueError: If the dtype has no supported ONNX counterpart
    """
    if dtype not in _ONNX_DTYPES:
        raise ValueError(f"Unsupported tensor dtype for ONNX primitives: {dtype}")
    return _ONNX_DTYPES[dtype]


def _swap_last_two(shape: Shape) -> Shape:
    return (*shape[:-2], shape[-1], shape[-2])


class PrimitiveGraphBuilder:
    """Append-only builder of primitive ONNX graphs.

    Nodes are only ever appended. A failed constructor leaves whatever was
    appended before it in place; callers discard the builder on failure.
    """

    def __init__(self):
        self.nodes: list[NodeProto] = []
        self.initializers: list[TensorProto] = []
        self.inputs: list[TensorHandle] = []
        self.layers: list[PrimitiveLayer] = []
        self._tensors: dict[str, TensorHandle] = {}
        self._name_counter: int = 0

    # ===== Bookkeeping =====

    def _fresh_name(self, prefix: str) -> str:
        """Generate a unique layer name."""
        self._name_counter += 1
        return f"{prefix}_{self._name_counter}"

    def _new_tensor(self, name: str, shape: Shape, dtype: torch.dtype) -> TensorHandle:
        if name in self._tensors:
            raise ValueError(f"Tensor name '{name}' is already defined in this graph")
        handle = TensorHandle(name=name, shape=tuple(shape), dtype=dtype)
        self._tensors[name] = handle
        return handle

    def _check_owned(self, *handles: TensorHandle) -> None:
        for handle in handles:
            if self._tensors.get(handle.name) != handle:
                raise ValueError(f"Tensor {handle} does not belong to this graph")

    def _unique_name(self, name: str) -> str:
        """Return name, or a fresh variant of it if it is already taken."""
        unique = name
        while unique in self._tensors:
            unique = self._fresh_name(name)
        return unique

    def _int64_constant(self, layer_name: str, suffix: str, values: Sequence[int]) -> str:
        array = np.asarray(values, dtype=np.int64)
        name = self._unique_name(f"{layer_name}_{suffix}")
        self._new_tensor(name, array.shape, torch.int64)
        self.initializers.append(numpy_helper.from_array(array, name=name))
        return name

    def _record(
        self,
        primitive: PrimitiveKind,
        layer_name: str,
        inputs: Sequence[TensorHandle],
        output: TensorHandle,
        **attrs,
    ) -> TensorHandle:
        self.layers.append(
            PrimitiveLayer(
                kind=primitive,
                name=layer_name,
                inputs=tuple(handle.name for handle in inputs),
                output=output.name,
                attrs=attrs,
            )
        )
        return output

    def tensor(self, name: str) -> TensorHandle:
        """Look up a tensor handle by name.

        :param name: Tensor name
        :return: Handle
        :raises KeyError: If no tensor of that name exists
        """
        return self._tensors[name]

    def count(self, kind: PrimitiveKind) -> int:
        """Number of appended layers of a given kind."""
        return sum(1 for layer in self.layers if layer.kind is kind)

    def layers_of(self, kind: PrimitiveKind) -> list[PrimitiveLayer]:
        return [layer for layer in self.layers if layer.kind is kind]

    # ===== Graph inputs and constants =====

    def add_input(
        self, name: str, shape: Sequence[int | str], dtype: torch.dtype = torch.float32
    ) -> TensorHandle:
        """Declare a graph input.

        :param name: Input tensor name
        :param shape: Input shape (str dimensions are symbolic)
        :param dtype: Element type
        :return: Handle of the new input
        """
        onnx_elem_type(dtype)
        handle = self._new_tensor(name, tuple(shape), dtype)
        self.inputs.append(handle)
        return handle

    def freeze(self, tensor: torch.Tensor, name: str | None = None) -> TensorHandle:
        """Embed a constant tensor in the graph as an initializer.

        :param tensor: Constant tensor value
        :param name: Initializer name (generated if omitted)
        :return: Handle of the frozen constant
        """
        onnx_elem_type(tensor.dtype)
        name = self._unique_name(name or self._fresh_name("const"))
        array = tensor.detach().cpu().numpy()
        self.initializers.append(numpy_helper.from_array(array, name=name))
        return self._new_tensor(name, tuple(tensor.shape), tensor.dtype)

    # ===== Primitive constructors =====

    def matmul(
        self,
        a: TensorHandle,
        b: TensorHandle,
        transpose_a: bool = False,
        transpose_b: bool = False,
    ) -> TensorHandle:
        """Matrix multiplication with optional operand transposes.

        :param a: Left operand (rank >= 2)
        :param b: Right operand (rank >= 2)
        :param transpose_a: Transpose the last two dimensions of a
        :param transpose_b: Transpose the last two dimensions of b
        :return: Handle of the product
        """
        self._check_owned(a, b)
        if a.rank < 2 or b.rank < 2:
            raise ValueError(
                f"Matrix multiplication needs operands of rank >= 2, got {a} and {b}"
            )
        if a.dtype != b.dtype:
            raise ValueError(f"Matrix multiplication dtype mismatch: {a.dtype} vs {b.dtype}")

        a_shape = _swap_last_two(a.shape) if transpose_a else a.shape
        b_shape = _swap_last_two(b.shape) if transpose_b else b.shape
        if not dims_match(a_shape[-1], b_shape[-2]):
            raise ValueError(
                f"Matrix multiplication inner dimensions do not match: "
                f"{format_shape(a_shape)} x {format_shape(b_shape)}"
            )
        batch = broadcast_shape(a_shape[:-2], b_shape[:-2])
        if batch is None:
            raise ValueError(
                f"Matrix multiplication batch dimensions are not broadcastable: "
                f"{format_shape(a_shape)} x {format_shape(b_shape)}"
            )

        layer_name = self._fresh_name("matmul")
        a_name = self._transpose(a, layer_name, "a") if transpose_a else a.name
        b_name = self._transpose(b, layer_name, "b") if transpose_b else b.name
        output_name = self._unique_name(f"{layer_name}_out")
        output = self._new_tensor(output_name, (*batch, a_shape[-2], b_shape[-1]), a.dtype)
        self.nodes.append(
            helper.make_node("MatMul", [a_name, b_name], [output.name], name=layer_name)
        )
        return self._record(
            PrimitiveKind.MATMUL,
            layer_name,
            (a, b),
            output,
            transpose_a=transpose_a,
            transpose_b=transpose_b,
        )

    def _transpose(self, handle: TensorHandle, layer_name: str, operand: str) -> str:
        perm = [*range(handle.rank - 2), handle.rank - 1, handle.rank - 2]
        output_name = self._unique_name(f"{layer_name}_{operand}_t")
        self._new_tensor(output_name, _swap_last_two(handle.shape), handle.dtype)
        self.nodes.append(
            helper.make_node(
                "Transpose",
                [handle.name],
                [output_name],
                name=f"{layer_name}_transpose_{operand}",
                perm=perm,
            )
        )
        return output_name

    def elementwise(self, a: TensorHandle, b: TensorHandle, op: ElementwiseOp) -> TensorHandle:
        """Elementwise binary operation with multidirectional broadcasting.

        :param a: First operand
        :param b: Second operand
        :param op: Operation to apply
        :return: Handle of the result
        """
        self._check_owned(a, b)
        if a.dtype != b.dtype:
            raise ValueError(f"Elementwise {op.name} dtype mismatch: {a.dtype} vs {b.dtype}")
        shape = broadcast_shape(a.shape, b.shape)
        if shape is None:
            raise ValueError(
                f"Elementwise {op.name} operands are not broadcastable: "
                f"{format_shape(a.shape)} and {format_shape(b.shape)}"
            )

        layer_name = self._fresh_name(op.name.lower())
        output = self._new_tensor(self._unique_name(f"{layer_name}_out"), shape, a.dtype)
        self.nodes.append(
            helper.make_node(op.value, [a.name, b.name], [output.name], name=layer_name)
        )
        return self._record(PrimitiveKind.ELEMENTWISE, layer_name, (a, b), output, op=op)

    def slice(
        self,
        a: TensorHandle,
        offsets: Sequence[int],
        sizes: Sequence[int | str],
        strides: Sequence[int],
    ) -> TensorHandle:
        """Strided slice with one (offset, size, stride) triple per dimension.

        A symbolic size is only accepted when it spans the whole (identically
        named) dimension from offset 0 with stride 1.

        :param a: Tensor to slice
        :param offsets: Start index per dimension
        :param sizes: Output size per dimension
        :param strides: Step per dimension
        :return: Handle of the slice
        """
        self._check_owned(a)
        if not len(offsets) == len(sizes) == len(strides) == a.rank:
            raise ValueError(
                f"Slice of rank-{a.rank} tensor needs {a.rank} offsets, sizes and strides, "
                f"got {len(offsets)}, {len(sizes)} and {len(strides)}"
            )

        ends: list[int] = []
        for axis, (dim, offset, size, stride) in enumerate(
            zip(a.shape, offsets, sizes, strides, strict=True)
        ):
            if not isinstance(offset, int) or offset < 0:
                raise ValueError(f"Slice offset on axis {axis} must be a non-negative int")
            if not isinstance(stride, int) or stride < 1:
                raise ValueError(f"Slice stride on axis {axis} must be a positive int")
            if isinstance(size, str):
                if not (dims_match(size, dim) and offset == 0 and stride == 1):
                    raise ValueError(
                        f"Symbolic slice size '{size}' on axis {axis} must span "
                        f"the whole dimension {dim}"
                    )
                ends.append(_INT64_MAX)
                continue
            if size < 1:
                raise ValueError(f"Slice size on axis {axis} must be >= 1, got {size}")
            last = offset + (size - 1) * stride
            if isinstance(dim, int) and last >= dim:
                raise ValueError(
                    f"Slice on axis {axis} reads index {last} "
                    f"outside dimension of size {dim}"
                )
            ends.append(last + 1)

        layer_name = self._fresh_name("slice")
        inputs = [
            a.name,
            self._int64_constant(layer_name, "starts", offsets),
            self._int64_constant(layer_name, "ends", ends),
            self._int64_constant(layer_name, "axes", range(a.rank)),
            self._int64_constant(layer_name, "steps", strides),
        ]
        output = self._new_tensor(self._unique_name(f"{layer_name}_out"), tuple(sizes), a.dtype)
        self.nodes.append(helper.make_node("Slice", inputs, [output.name], name=layer_name))
        return self._record(
            PrimitiveKind.SLICE,
            layer_name,
            (a,),
            output,
            offsets=tuple(offsets),
            sizes=tuple(sizes),
            strides=tuple(strides),
        )

    def activation(self, a: TensorHandle, kind: ActivationKind) -> TensorHandle:
        """Pointwise activation.

        :param a: Input tensor
        :param kind: Activation to apply
        :return: Handle of the activated tensor
        """
        self._check_owned(a)
        if not isinstance(kind, ActivationKind):
            raise ValueError(f"Unsupported activation: {kind!r}")
        layer_name = self._fresh_name(kind.name.lower())
        output = self._new_tensor(self._unique_name(f"{layer_name}_out"), a.shape, a.dtype)
        self.nodes.append(helper.make_node(kind.value, [a.name], [output.name], name=layer_name))
        return self._record(PrimitiveKind.ACTIVATION, layer_name, (a,), output, kind=kind)

    def reshape(self, a: TensorHandle, new_shape: Sequence[int | str]) -> TensorHandle:
        """Reshape to a new shape with the same number of elements.

        Symbolic target dimensions are copied from the input when the same
        symbol sits at the same axis; at most one other symbolic dimension
        is inferred.

        :param a: Input tensor
        :param new_shape: Target shape
        :return: Handle of the reshaped tensor
        """
        self._check_owned(a)
        new_shape = tuple(new_shape)
        old_volume, new_volume = volume(a.shape), volume(new_shape)
        if old_volume is not None and new_volume is not None and old_volume != new_volume:
            raise ValueError(
                f"Cannot reshape {format_shape(a.shape)} ({old_volume} elements) "
                f"to {format_shape(new_shape)} ({new_volume} elements)"
            )

        target: list[int] = []
        inferred = 0
        for axis, dim in enumerate(new_shape):
            if isinstance(dim, int):
                if dim < 1:
                    raise ValueError(f"Reshape dimension on axis {axis} must be >= 1")
                target.append(dim)
            elif axis < a.rank and dims_match(a.shape[axis], dim):
                target.append(0)
            else:
                inferred += 1
                target.append(-1)
        if inferred > 1:
            raise ValueError(
                f"Reshape to {format_shape(new_shape)} leaves more than one dimension unresolved"
            )

        layer_name = self._fresh_name("reshape")
        shape_name = self._int64_constant(layer_name, "shape", target)
        output = self._new_tensor(self._unique_name(f"{layer_name}_out"), new_shape, a.dtype)
        self.nodes.append(
            helper.make_node("Reshape", [a.name, shape_name], [output.name], name=layer_name)
        )
        return self._record(PrimitiveKind.RESHAPE, layer_name, (a,), output, new_shape=new_shape)

    # ===== Export =====

    def to_model(
        self,
        outputs: Sequence[TensorHandle],
        graph_name: str = "torchlower",
        opset: int = DEFAULT_OPSET,
        check_model: bool = True,
    ) -> onnx.ModelProto:
        """Export the primitive graph as an ONNX model.

        :param outputs: Tensors to expose as graph outputs (in order)
        :param graph_name: ONNX graph name
        :param opset: Default-domain opset version
        :param check_model: Validate the model with onnx.checker
        :return: ONNX model
        """
        self._check_owned(*outputs)
        return build_onnx_model(
            nodes=self.nodes,
            initializers=self.initializers,
            inputs=[(h.name, onnx_elem_type(h.dtype), h.shape) for h in self.inputs],
            outputs=[(h.name, onnx_elem_type(h.dtype), h.shape) for h in outputs],
            graph_name=graph_name,
            opset=opset,
            check_model=check_model,
        )
