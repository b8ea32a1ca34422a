"""Shape and axis helpers shared by the operator generators and backends."""

from __future__ import annotations

from kernel_compiler.errors import ValidationError


def size(dims) -> int:
    """Number of elements for dims (1 for a scalar)."""
    total = 1
    for d in dims:
        total *= d
    return total


def compute_strides(dims) -> tuple[int, ...]:
    """Row-major element strides."""
    strides = [1] * len(dims)
    for i in range(len(dims) - 2, -1, -1):
        strides[i] = strides[i + 1] * dims[i + 1]
    return tuple(strides)


def normalize_axis(axis: int, rank: int) -> int:
    if axis < -rank or axis >= rank:
        raise ValidationError(f"Axis {axis} out of range for rank {rank}")
    return axis + rank if axis < 0 else axis


def normalize_axes(axes, rank: int) -> tuple[int, ...]:
    return tuple(normalize_axis(a, rank) for a in axes)


def check_dims(dims) -> tuple[int, ...]:
    dims = tuple(int(d) for d in dims)
    if any(d < 0 for d in dims):
        raise ValidationError(f"Negative dimension in {list(dims)}")
    return dims
