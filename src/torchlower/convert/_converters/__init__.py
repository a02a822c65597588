"""Operator converters.

Converter registry and operator-specific lowering functions.
"""

__docformat__ = "restructuredtext"
__all__ = [
    "LSTM_CELL_SCHEMA",
    "Converter",
    "ConverterEntry",
    "ConverterRegistry",
    "bind_arguments",
    "build_default_registry",
    "convert_lstm_cell",
    "lower_lstm_cell",
    "register_lstm_cell_converters",
]

from torchlower.convert._converters._lstm_cell import (
    LSTM_CELL_SCHEMA,
    convert_lstm_cell,
    lower_lstm_cell,
    register_lstm_cell_converters,
)
from torchlower.convert._converters._registry import (
    Converter,
    ConverterEntry,
    ConverterRegistry,
    bind_arguments,
)


def build_default_registry() -> ConverterRegistry:
    """Create a registry holding every converter shipped with torchlower.

    :return: Populated registry
    """
    registry = ConverterRegistry()
    register_lstm_cell_converters(registry)
    return registry
