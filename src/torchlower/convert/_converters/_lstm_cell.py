"""LSTM cell converter.

Lowers one ``aten::lstm_cell`` step into matmul, elementwise, slice and
activation primitives.
"""

__docformat__ = "restructuredtext"
__all__ = [
    "LSTM_CELL_SCHEMA",
    "GateTensors",
    "convert_lstm_cell",
    "lower_lstm_cell",
    "register_lstm_cell_converters",
]

import logging
from dataclasses import dataclass

from torchlower.build import ActivationKind, ElementwiseOp, TensorHandle
from torchlower.convert._converters._registry import ConverterRegistry
from torchlower.convert.arguments import resolve_optional_tensor, resolve_state, resolve_tensor
from torchlower.convert.broadcast import add_bias
from torchlower.convert.context import ConversionContext
from torchlower.convert.types import OperatorNode, PreviousState, ResolvedArgument
from torchlower.errors import PreconditionError

logger = logging.getLogger(__name__)

LSTM_CELL_SCHEMA = (
    "aten::lstm_cell(Tensor input, Tensor[] hx, Tensor w_ih, Tensor w_hh, "
    "Tensor? b_ih=None, Tensor? b_hh=None) -> (Tensor, Tensor)"
)

# Gate order along the last dimension of the pre-activation tensor
_GATES = (
    ("ingate", ActivationKind.SIGMOID),
    ("forgetgate", ActivationKind.SIGMOID),
    ("cellgate", ActivationKind.TANH),
    ("outgate", ActivationKind.SIGMOID),
)


@dataclass(frozen=True)
class GateTensors:
    """Activated gates of one LSTM step."""

    ingate: TensorHandle
    forgetgate: TensorHandle
    cellgate: TensorHandle
    outgate: TensorHandle


def _gate_width(gates: TensorHandle, node: OperatorNode) -> int:
    width = gates.shape[-1]
    if not isinstance(width, int):
        raise PreconditionError(
            f"Gate dimension must be static to slice, got '{width}'", str(node)
        )
    if width % 4 != 0:
        raise PreconditionError(
            f"Gate dimension {width} is not divisible into 4 equal gates", str(node)
        )
    return width // 4


def _chunk_gates(ctx: ConversionContext, node: OperatorNode, gates: TensorHandle) -> GateTensors:
    """Split gate pre-activations into four contiguous slices and activate them."""
    hidden = _gate_width(gates, node)
    sizes = (*gates.shape[:-1], hidden)
    strides = (1,) * gates.rank

    activated = {}
    for index, (gate, kind) in enumerate(_GATES):
        offsets = (0,) * (gates.rank - 1) + (index * hidden,)
        with ctx.checked(node, "slice"):
            chunk = ctx.builder.slice(gates, offsets, sizes, strides)
        with ctx.checked(node, f"{kind.name.lower()} activation"):
            activated[gate] = ctx.builder.activation(chunk, kind)
    return GateTensors(**activated)


def _product(
    ctx: ConversionContext, node: OperatorNode, a: TensorHandle, b: TensorHandle
) -> TensorHandle:
    with ctx.checked(node, "elementwise product"):
        return ctx.builder.elementwise(a, b, ElementwiseOp.PRODUCT)


def lower_lstm_cell(
    ctx: ConversionContext,
    node: OperatorNode,
    input: TensorHandle,
    state: PreviousState,
    w_ih: TensorHandle,
    w_hh: TensorHandle,
    b_ih: TensorHandle | None = None,
    b_hh: TensorHandle | None = None,
) -> tuple[TensorHandle, TensorHandle]:
    """Decompose one LSTM cell step into primitives.

    The cell update is multiplicative:
    ``cy = (forgetgate * c_prev) * (ingate * cellgate)``.

    :param ctx: Conversion context
    :param node: Node being lowered (its outputs receive hy and cy)
    :param input: Input at this step, [batch, input_size]
    :param state: Previous hidden and cell state, [batch, hidden]
    :param w_ih: Input-hidden weights, [4 * hidden, input_size]
    :param w_hh: Hidden-hidden weights, [4 * hidden, hidden]
    :param b_ih: Optional input-hidden bias
    :param b_hh: Optional hidden-hidden bias
    :return: (hy, cy)
    """
    # first half of gates
    with ctx.checked(node, "matrix multiplication"):
        gates_i = ctx.builder.matmul(input, w_ih, transpose_b=True)
    if b_ih is not None:
        gates_i = add_bias(ctx, gates_i, b_ih, "b_ih", node)

    # second half of gates
    with ctx.checked(node, "matrix multiplication"):
        gates_h = ctx.builder.matmul(state.hidden, w_hh, transpose_b=True)
    if b_hh is not None:
        gates_h = add_bias(ctx, gates_h, b_hh, "b_hh", node)

    with ctx.checked(node, "elementwise sum"):
        gates = ctx.builder.elementwise(gates_i, gates_h, ElementwiseOp.SUM)

    gate_tensors = _chunk_gates(ctx, node, gates)

    forget_cx = _product(ctx, node, gate_tensors.forgetgate, state.cell)
    in_cell = _product(ctx, node, gate_tensors.ingate, gate_tensors.cellgate)
    cy = _product(ctx, node, forget_cx, in_cell)
    cy = ctx.associate_value_and_tensor(node.outputs[1], cy)

    with ctx.checked(node, "tanh activation"):
        cy_tanh = ctx.builder.activation(cy, ActivationKind.TANH)
    hy = _product(ctx, node, gate_tensors.outgate, cy_tanh)
    hy = ctx.associate_value_and_tensor(node.outputs[0], hy)

    return hy, cy


def convert_lstm_cell(
    ctx: ConversionContext, node: OperatorNode, args: list[ResolvedArgument]
) -> None:
    """Converter for ``aten::lstm_cell``.

    :param ctx: Conversion context
    :param node: Node being lowered
    :param args: Arguments bound against LSTM_CELL_SCHEMA
    """
    input = resolve_tensor(ctx, args[0], "input", node)
    state = resolve_state(ctx, args[1], "hx", node)
    w_ih = resolve_tensor(ctx, args[2], "w_ih", node)
    w_hh = resolve_tensor(ctx, args[3], "w_hh", node)
    b_ih = resolve_optional_tensor(ctx, args[4], "b_ih", node)
    b_hh = resolve_optional_tensor(ctx, args[5], "b_hh", node)

    logger.debug("Input tensor shape: %s", input.shape)
    logger.debug("w_ih tensor shape: %s", w_ih.shape)
    logger.debug("w_hh tensor shape: %s", w_hh.shape)
    logger.debug("State tensor 0 shape: %s", state.hidden.shape)
    logger.debug("State tensor 1 shape: %s", state.cell.shape)

    hy, cy = lower_lstm_cell(ctx, node, input, state, w_ih, w_hh, b_ih, b_hh)

    logger.debug("Output tensor [hy] shape: %s", hy.shape)
    logger.debug("Output tensor [cy] shape: %s", cy.shape)


def register_lstm_cell_converters(registry: ConverterRegistry) -> None:
    """Register the LSTM cell converter.

    :param registry: Registry to populate
    """
    registry.pattern(LSTM_CELL_SCHEMA, convert_lstm_cell)
