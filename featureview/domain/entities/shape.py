"""Shape arithmetic shared by feature types and tensor views."""
import math
from collections.abc import Sequence

from featureview.domain.errors import ElementCountMismatch, InvalidShape

DYNAMIC = -1


def normalize_shape(shape: Sequence[int] | None) -> tuple[int, ...] | None:
    """
    Validate a shape and convert it to a tuple.

    Every axis must be a positive integer, except that a single axis may be
    `DYNAMIC` (-1).

    Parameters
    ----------
    shape : Sequence[int] | None
        Shape to validate. `None` stands for an unknown shape and passes through.

    Returns
    -------
    tuple[int, ...] | None
        The validated shape.

    Raises
    ------
    InvalidShape
        If the shape is empty, has a non-positive axis, or more than one
        dynamic axis.
    """
    if shape is None:
        return None
    result = tuple(int(s) for s in shape)
    if not result:
        raise InvalidShape("Shape must have at least one axis")
    for axis, size in enumerate(result):
        if size < 1 and size != DYNAMIC:
            raise InvalidShape(f"Shape {result} has invalid size {size} at axis {axis}")
    if result.count(DYNAMIC) > 1:
        raise InvalidShape(f"Shape {result} has more than one dynamic axis")
    return result


def is_fully_specified(shape: Sequence[int] | None) -> bool:
    """Whether a shape is known and has no dynamic axis."""
    return shape is not None and DYNAMIC not in shape


def element_count(shape: Sequence[int]) -> int:
    """Product of all axes of a fully specified shape."""
    return math.prod(shape)


def resolve_shape(shape: Sequence[int], total: int) -> tuple[int, ...]:
    """
    Resolve the dynamic axis of a shape from a total element count.

    Parameters
    ----------
    shape : Sequence[int]
        Shape with at most one dynamic axis.
    total : int
        Number of elements the shape must describe.

    Returns
    -------
    tuple[int, ...]
        Fully specified shape.

    Raises
    ------
    InvalidShape
        If the shape itself is invalid.
    ElementCountMismatch
        If the static axes do not divide `total` exactly.
    """
    shape = normalize_shape(shape)
    if DYNAMIC not in shape:
        return shape
    axis = shape.index(DYNAMIC)
    static_count = math.prod(s for i, s in enumerate(shape) if i != axis)
    if total % static_count != 0 or total == 0:
        raise ElementCountMismatch(
            f"Cannot resolve dynamic axis of shape {shape} for {total} elements"
        )
    return shape[:axis] + (total // static_count,) + shape[axis + 1:]


def row_major_strides(shape: Sequence[int]) -> tuple[int, ...]:
    """
    Compute C-order strides, in elements, for a fully specified shape.

    `strides[-1] == 1` and `strides[i] == shape[i + 1] * strides[i + 1]`.
    """
    strides = [1] * len(shape)
    for i in range(len(shape) - 2, -1, -1):
        strides[i] = shape[i + 1] * strides[i + 1]
    return tuple(strides)
