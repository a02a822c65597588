"""Operator lowering.

This module lowers source operator nodes into primitive graph layers.
"""

__docformat__ = "restructuredtext"
__all__ = [
    "ABSENT",
    "LSTM_CELL_SCHEMA",
    "Absent",
    "ConstantArg",
    "ConversionContext",
    "ConverterRegistry",
    "ListArg",
    "OperatorNode",
    "PreviousState",
    "ResolvedArgument",
    "TensorArg",
    "TensorContainer",
    "add_bias",
    "build_default_registry",
    "is_broadcastable",
    "lower_lstm_cell",
    "reconcile",
]

from torchlower.convert._converters import (
    LSTM_CELL_SCHEMA,
    ConverterRegistry,
    build_default_registry,
    lower_lstm_cell,
)
from torchlower.convert.broadcast import add_bias, is_broadcastable, reconcile
from torchlower.convert.context import ConversionContext
from torchlower.convert.types import (
    ABSENT,
    Absent,
    ConstantArg,
    ListArg,
    OperatorNode,
    PreviousState,
    ResolvedArgument,
    TensorArg,
    TensorContainer,
)
