"""Shape algebra helpers for the primitive graph builder."""

__docformat__ = "restructuredtext"
__all__ = [
    "broadcast_shape",
    "dims_match",
    "format_shape",
    "is_static",
    "pad_shape",
    "volume",
]

import math

from .types import Shape


def dims_match(a: int | str, b: int | str) -> bool:
    """Check two dimensions are the same size.

    Symbolic dimensions only match the identical symbol.
    """
    return a == b


def is_static(shape: Shape) -> bool:
    """Check every dimension of a shape is a known integer.

    :param shape: Shape tuple
    :return: True if no dimension is symbolic
    """
    return all(isinstance(dim, int) for dim in shape)


def volume(shape: Shape) -> int | None:
    """Number of elements described by a shape.

    :param shape: Shape tuple
    :return: Element count, or None if any dimension is symbolic
    """
    if not is_static(shape):
        return None
    return math.prod(shape)  # type: ignore[arg-type]


def pad_shape(shape: Shape, rank: int) -> Shape:
    """Pad a shape on the left with size-1 dimensions.

    :param shape: Shape tuple
    :param rank: Target rank (must be >= len(shape))
    :return: Padded shape
    """
    if rank < len(shape):
        raise ValueError(f"Cannot pad shape {format_shape(shape)} down to rank {rank}")
    return (1,) * (rank - len(shape)) + tuple(shape)


def broadcast_shape(a: Shape, b: Shape) -> Shape | None:
    """Multidirectional (numpy-style) broadcast of two shapes.

    :param a: First shape
    :param b: Second shape
    :return: Broadcast result shape, or None if the shapes are incompatible
    """
    rank = max(len(a), len(b))
    a_padded = pad_shape(a, rank)
    b_padded = pad_shape(b, rank)

    result: list[int | str] = []
    for a_dim, b_dim in zip(a_padded, b_padded, strict=True):
        if dims_match(a_dim, b_dim):
            result.append(a_dim)
        elif a_dim == 1:
            result.append(b_dim)
        elif b_dim == 1:
            result.append(a_dim)
        else:
            return None
    return tuple(result)


def format_shape(shape: Shape) -> str:
    return "[" + ", ".join(str(dim) for dim in shape) + "]"
