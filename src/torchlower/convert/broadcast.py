"""Broadcast reconciliation between primitive tensors.

Decides whether one tensor can be combined elementwise with another and
reshapes it to the other's rank when needed.
"""

__docformat__ = "restructuredtext"
__all__ = ["add_bias", "is_broadcastable", "reconcile"]

import logging

from torchlower.build import ElementwiseOp, PrimitiveGraphBuilder, Shape, TensorHandle
from torchlower.build.utils import dims_match, pad_shape
from torchlower.errors import ShapeError

from .context import ConversionContext
from .types import OperatorNode

logger = logging.getLogger(__name__)


def is_broadcastable(primary: Shape, secondary: Shape, multidirectional: bool = False) -> bool:
    """Check whether secondary can be broadcast against primary.

    Shapes are aligned from the right and the shorter one is padded with
    leading 1s. By default the check is unidirectional: secondary may not
    outrank primary and each of its dimensions must equal primary's or be 1,
    so the combined result always has primary's shape. With
    ``multidirectional`` either side may supply the 1.

    :param primary: Shape of the tensor being added to
    :param secondary: Shape of the tensor being broadcast
    :param multidirectional: Allow primary dimensions to broadcast as well
    :return: True if compatible
    """
    if tuple(primary) == tuple(secondary):
        return True
    if not multidirectional and len(secondary) > len(primary):
        return False

    rank = max(len(primary), len(secondary))
    for p_dim, s_dim in zip(pad_shape(primary, rank), pad_shape(secondary, rank), strict=True):
        if dims_match(p_dim, s_dim) or s_dim == 1:
            continue
        if multidirectional and p_dim == 1:
            continue
        return False
    return True


def reconcile(
    builder: PrimitiveGraphBuilder,
    primary: TensorHandle,
    secondary: TensorHandle,
    name: str = "secondary",
) -> TensorHandle:
    """Return a handle for secondary that combines elementwise with primary.

    Identical shapes pass through untouched. A lower-rank secondary gets one
    reshape padding it with leading 1s up to primary's rank.

    :param builder: Primitive graph
    :param primary: Tensor whose shape is kept
    :param secondary: Tensor to reconcile
    :param name: Logical name of secondary (for diagnostics)
    :return: Reconciled handle (secondary itself if no reshape was needed)
    :raises ShapeError: If secondary is not broadcastable to primary
    """
    if primary.shape == secondary.shape:
        return secondary
    if not is_broadcastable(primary.shape, secondary.shape):
        raise ShapeError(name, primary.shape, secondary.shape)
    # Padding to the same rank is a no-op, so unlike a shuffle-always lowering
    # no reshape is emitted here; the sum broadcasts the 1s directly.
    if secondary.rank == primary.rank:
        return secondary

    logger.debug("%s's dimensions need to be reshaped", name)
    return builder.reshape(secondary, pad_shape(secondary.shape, primary.rank))


def add_bias(
    ctx: ConversionContext,
    a: TensorHandle,
    b: TensorHandle,
    b_name: str,
    node: OperatorNode,
) -> TensorHandle:
    """Add a bias to the output of a previous matmul.

    :param ctx: Conversion context
    :param a: Matmul output
    :param b: Bias tensor
    :param b_name: Logical bias name (e.g., "b_ih")
    :param node: Node being lowered
    :return: Handle of a + b
    :raises ShapeError: If the bias is not broadcastable to a
    :raises LoweringError: If the reshape or sum cannot be constructed
    """
    logger.debug("%s tensor shape: %s", b_name, b.shape)

    if not is_broadcastable(a.shape, b.shape):
        raise ShapeError(b_name, a.shape, b.shape, str(node))

    if a.shape != b.shape:
        with ctx.checked(node, "reshape"):
            b = reconcile(ctx.builder, a, b, b_name)

    with ctx.checked(node, "elementwise sum"):
        return ctx.builder.elementwise(a, b, ElementwiseOp.SUM)
