"""Resolution of converter arguments into primitive tensor handles."""

__docformat__ = "restructuredtext"
__all__ = ["resolve_optional_tensor", "resolve_state", "resolve_tensor"]

from torchlower.build import TensorHandle
from torchlower.errors import PreconditionError

from .context import ConversionContext
from .types import (
    Absent,
    ConstantArg,
    ListArg,
    OperatorNode,
    PreviousState,
    ResolvedArgument,
    TensorArg,
    TensorContainer,
)


def resolve_tensor(
    ctx: ConversionContext, arg: ResolvedArgument, name: str, node: OperatorNode
) -> TensorHandle:
    """Resolve a required tensor argument, freezing constants into the graph.

    :param ctx: Conversion context
    :param arg: Resolved argument
    :param name: Argument name (for diagnostics)
    :param node: Node being converted
    :return: Tensor handle
    :raises PreconditionError: If the argument is not a single tensor
    """
    if isinstance(arg, TensorArg):
        return arg.tensor
    if isinstance(arg, ConstantArg):
        return ctx.freeze(arg.value, node)
    if isinstance(arg, TensorContainer):
        return arg.tensor
    if isinstance(arg, Absent):
        raise PreconditionError(f"Required tensor argument '{name}' is absent", str(node))
    if isinstance(arg, ListArg):
        raise PreconditionError(
            f"Argument '{name}' must be a single tensor, got a list of {len(arg.items)}",
            str(node),
        )
    raise PreconditionError(f"Argument '{name}' has unsupported kind {type(arg).__name__}", str(node))


def resolve_optional_tensor(
    ctx: ConversionContext, arg: ResolvedArgument, name: str, node: OperatorNode
) -> TensorHandle | None:
    """Resolve an optional tensor argument.

    :return: Tensor handle, or None if the argument is ABSENT
    """
    if isinstance(arg, Absent):
        return None
    return resolve_tensor(ctx, arg, name, node)


def resolve_state(
    ctx: ConversionContext, arg: ResolvedArgument, name: str, node: OperatorNode
) -> PreviousState:
    """Resolve the recurrent state list into (hidden, cell).

    Each entry may be a graph tensor, a constant or a boxed container.

    :param ctx: Conversion context
    :param arg: Resolved ``Tensor[]`` argument
    :param name: Argument name (for diagnostics)
    :param node: Node being converted
    :return: Previous hidden and cell state
    :raises PreconditionError: If the argument is not a list of exactly two tensors
    """
    if not isinstance(arg, ListArg):
        raise PreconditionError(f"Argument '{name}' must be a tensor list", str(node))
    if len(arg.items) != 2:
        raise PreconditionError(
            f"Argument '{name}' must hold exactly 2 tensors (hidden, cell), "
            f"got {len(arg.items)}",
            str(node),
        )
    hidden, cell = (
        resolve_tensor(ctx, item, f"{name}[{index}]", node) for index, item in enumerate(arg.items)
    )
    return PreviousState(hidden=hidden, cell=cell)
