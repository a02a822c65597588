"""Synthetic LSTM cell lowering cases.

Builds graph inputs, weights and converter arguments for aten::lstm_cell,
plus a torch reference of the lowered computation.
"""

from dataclasses import dataclass, field

import torch

from torchlower.build import PrimitiveGraphBuilder, TensorHandle
from torchlower.convert import (
    ABSENT,
    ConstantArg,
    ListArg,
    OperatorNode,
    ResolvedArgument,
    TensorArg,
)

LSTM_NODE = OperatorNode(
    name="lstm_cell_0",
    kind="aten::lstm_cell",
    inputs=("input", "hx", "w_ih", "w_hh", "b_ih", "b_hh"),
    outputs=("hy", "cy"),
)


@dataclass
class LSTMCase:
    """Everything needed to lower and check one LSTM cell step."""

    builder: PrimitiveGraphBuilder
    node: OperatorNode
    args: list[ResolvedArgument]
    input: TensorHandle
    hidden: TensorHandle
    cell: TensorHandle
    weights: dict[str, torch.Tensor] = field(default_factory=dict)


def make_lstm_case(
    batch: int | str = 2,
    input_size: int = 5,
    hidden_size: int = 3,
    b_ih_shape: tuple | None = None,
    b_hh_shape: tuple | None = None,
    with_bias: bool = True,
    seed: int = 0,
) -> LSTMCase:
    """Create an LSTM cell case with graph inputs and constant weights.

    :param batch: Batch dimension (a str makes it symbolic)
    :param input_size: Input feature size
    :param hidden_size: Hidden size
    :param b_ih_shape: Shape of b_ih (defaults to [4 * hidden])
    :param b_hh_shape: Shape of b_hh (defaults to [4 * hidden])
    :param with_bias: If False both biases are ABSENT
    :param seed: Weight seed
    :return: LSTM case
    """
    generator = torch.Generator().manual_seed(seed)
    gate_size = 4 * hidden_size

    builder = PrimitiveGraphBuilder()
    x = builder.add_input("input", (batch, input_size))
    h = builder.add_input("h0", (batch, hidden_size))
    c = builder.add_input("c0", (batch, hidden_size))

    weights = {
        "w_ih": torch.randn(gate_size, input_size, generator=generator),
        "w_hh": torch.randn(gate_size, hidden_size, generator=generator),
    }
    bias_args: list[ResolvedArgument] = [ABSENT, ABSENT]
    if with_bias:
        weights["b_ih"] = torch.randn(b_ih_shape or (gate_size,), generator=generator)
        weights["b_hh"] = torch.randn(b_hh_shape or (gate_size,), generator=generator)
        bias_args = [ConstantArg(weights["b_ih"]), ConstantArg(weights["b_hh"])]

    args = [
        TensorArg(x),
        ListArg((TensorArg(h), TensorArg(c))),
        ConstantArg(weights["w_ih"]),
        ConstantArg(weights["w_hh"]),
        *bias_args,
    ]
    return LSTMCase(builder, LSTM_NODE, args, x, h, c, weights)


def reference_lstm_cell(
    x: torch.Tensor,
    h: torch.Tensor,
    c: torch.Tensor,
    weights: dict[str, torch.Tensor],
) -> tuple[torch.Tensor, torch.Tensor]:
    """Torch reference of the lowered LSTM step (multiplicative cell update).

    :return: (hy, cy)
    """
    gates_i = x @ weights["w_ih"].T
    gates_h = h @ weights["w_hh"].T
    if "b_ih" in weights:
        gates_i = gates_i + weights["b_ih"]
        gates_h = gates_h + weights["b_hh"]
    gates = gates_i + gates_h
    ingate, forgetgate, cellgate, outgate = gates.chunk(4, dim=-1)
    ingate = torch.sigmoid(ingate)
    forgetgate = torch.sigmoid(forgetgate)
    cellgate = torch.tanh(cellgate)
    outgate = torch.sigmoid(outgate)

    cy = (forgetgate * c) * (ingate * cellgate)
    hy = outgate * torch.tanh(cy)
    return hy, cy
