"""Converter registry for operator lowering.

Maps operator schemas to the functions that lower them. A registry is an
explicit object built once by the caller, see ``build_default_registry``.
"""

__docformat__ = "restructuredtext"
__all__ = [
    "Converter",
    "ConverterEntry",
    "ConverterRegistry",
    "bind_arguments",
]

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import torch

from torchlower.build import TensorHandle
from torchlower.convert.context import ConversionContext
from torchlower.convert.types import ABSENT, Absent, ListArg, OperatorNode, ResolvedArgument
from torchlower.errors import PreconditionError, UnsupportedOperatorError

logger = logging.getLogger(__name__)

# Converter type: takes context, node and schema-ordered arguments, binds node outputs
Converter = Callable[[ConversionContext, OperatorNode, list[ResolvedArgument]], None]


@dataclass(frozen=True)
class ConverterEntry:
    """A registered converter and the schema it implements.

    :param signature: Textual operator schema
    :param schema: Parsed schema
    :param converter: Lowering function
    """

    signature: str
    schema: torch._C.FunctionSchema
    converter: Converter

    @property
    def kind(self) -> str:
        return self.schema.name


def _is_optional(argument) -> bool:
    return isinstance(argument.type, torch.OptionalType)


def _is_list(argument) -> bool:
    return isinstance(argument.type, torch.ListType)


def bind_arguments(
    schema: torch._C.FunctionSchema,
    node: OperatorNode,
    args: Sequence[ResolvedArgument],
) -> list[ResolvedArgument]:
    """Check arguments against a schema and fill omitted optionals with ABSENT.

    :param schema: Operator schema
    :param node: Node being converted
    :param args: Positional arguments supplied for the node
    :return: One argument per schema parameter
    :raises PreconditionError: If arity, optionality or list-ness do not match
    """
    parameters = schema.arguments
    if len(node.outputs) != len(schema.returns):
        raise PreconditionError(
            f"{schema.name} produces {len(schema.returns)} outputs, "
            f"node declares {len(node.outputs)}",
            str(node),
        )
    if len(args) > len(parameters):
        raise PreconditionError(
            f"{schema.name} takes at most {len(parameters)} arguments, got {len(args)}",
            str(node),
        )

    bound = list(args)
    for parameter in parameters[len(args) :]:
        if not _is_optional(parameter):
            raise PreconditionError(
                f"Missing required argument '{parameter.name}' of {schema.name}", str(node)
            )
        bound.append(ABSENT)

    for parameter, arg in zip(parameters, bound, strict=True):
        if isinstance(arg, Absent):
            if not _is_optional(parameter):
                raise PreconditionError(
                    f"Argument '{parameter.name}' of {schema.name} is not optional", str(node)
                )
        elif _is_list(parameter) != isinstance(arg, ListArg):
            expected = "a tensor list" if _is_list(parameter) else "a single tensor"
            raise PreconditionError(
                f"Argument '{parameter.name}' of {schema.name} must be {expected}", str(node)
            )
    return bound


class ConverterRegistry:
    """Registry of node converters keyed by operator name."""

    def __init__(self):
        self._entries: dict[str, ConverterEntry] = {}

    def pattern(self, signature: str, converter: Converter) -> "ConverterRegistry":
        """Register a converter for an operator schema.

        :param signature: Textual schema, e.g. "aten::add(Tensor a, Tensor b) -> Tensor"
        :param converter: Lowering function
        :return: The registry, for chaining
        """
        schema = torch._C.parse_schema(signature)
        self._entries[schema.name] = ConverterEntry(signature, schema, converter)
        logger.debug("Registered converter for %s", schema.name)
        return self

    def find(self, kind: str) -> ConverterEntry | None:
        """Get the entry for an operator kind.

        :param kind: Qualified operator name
        :return: Entry or None if not registered
        """
        return self._entries.get(kind)

    def schemas(self) -> list[str]:
        return [entry.signature for entry in self._entries.values()]

    def __contains__(self, kind: str) -> bool:
        return kind in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def convert(
        self,
        ctx: ConversionContext,
        node: OperatorNode,
        args: Sequence[ResolvedArgument],
    ) -> dict[str, TensorHandle]:
        """Lower one node with its registered converter.

        :param ctx: Conversion context for this node
        :param node: Node to lower
        :param args: Positional arguments for the node
        :return: Mapping of node output value name to produced tensor
        :raises UnsupportedOperatorError: If no converter handles node.kind
        """
        entry = self.find(node.kind)
        if entry is None:
            raise UnsupportedOperatorError(node.kind, str(node))

        bound = bind_arguments(entry.schema, node, args)
        logger.debug("Converting node %s", node)
        entry.converter(ctx, node, bound)
        return ctx.require_outputs(node)
