"""Expand: NumPy-style broadcast of a tensor to a requested shape.

The requested shape is left-aligned against the input after padding the input
with leading 1s. Each output axis takes max(input, requested), so a request
smaller than a non-1 input axis never shrinks it, and a larger one is rejected.
Axes where a size-1 input is stretched get their coordinate pinned to 0 before
the read.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from kernel_compiler.cache_key import CacheKey, make_cache_key
from kernel_compiler.dtypes import INTEGER_TYPES
from kernel_compiler.errors import ValidationError
from kernel_compiler.program import (
    AccessMode,
    KernelBody,
    KernelProgram,
    OutputInfo,
    ProgramMetadata,
    ProgramRequest,
    Read,
    SetIndex,
)

if TYPE_CHECKING:
    from kernel_runtime.handler import ExecutionHandler
    from kernel_runtime.tensor import Tensor

EXPAND_METADATA = ProgramMetadata(
    name="Expand",
    input_names=("X",),
    input_access=(AccessMode.INDEXED,),
)


def validate_inputs(inputs: list[Tensor]) -> None:
    if not inputs or len(inputs) != 2:
        raise ValidationError(f"Expand requires 2 inputs, got {len(inputs) if inputs else 0}")
    shape = inputs[1]
    if shape.dtype not in INTEGER_TYPES or len(shape.dims) != 1:
        raise ValidationError(
            "Expand shape input must be a 1-D integer tensor",
            context={"dtype": shape.dtype, "dims": list(shape.dims)},
        )
    if shape.dims[0] < len(inputs[0].dims):
        raise ValidationError(
            "Expand shape has lower rank than the input",
            context={"input_dims": list(inputs[0].dims), "shape_length": shape.dims[0]},
        )


def expand_cache_key(input_dims, requested_dims, dtype: str) -> CacheKey:
    return make_cache_key(input_dims=input_dims, requested_dims=requested_dims, dtype=dtype)


def create_expand_program(
    input_dims: tuple[int, ...], requested_dims: tuple[int, ...], dtype: str
) -> KernelProgram:
    """Build the broadcast program for input_dims -> requested_dims."""
    if len(requested_dims) < len(input_dims):
        raise ValidationError(
            "Expand shape has lower rank than the input",
            context={"input_dims": list(input_dims), "requested_dims": list(requested_dims)},
        )
    if any(d < 0 for d in requested_dims):
        raise ValidationError(f"Expand shape has negative entries: {list(requested_dims)}")

    padded = (1,) * (len(requested_dims) - len(input_dims)) + tuple(input_dims)
    output_dims = tuple(i if r == 1 else max(r, i) for r, i in zip(requested_dims, padded))
    for axis, (i, o) in enumerate(zip(padded, output_dims)):
        if i != 1 and o != i:
            raise ValidationError(
                "Expand shape is not broadcastable from the input",
                context={"axis": axis, "input_dims": list(input_dims), "requested_dims": list(requested_dims)},
            )

    statements = tuple(
        SetIndex(axis, 0)
        for axis, (i, o) in enumerate(zip(padded, output_dims))
        if i == 1 and o != i
    )
    return KernelProgram(
        metadata=EXPAND_METADATA,
        output=OutputInfo(output_dims, dtype),
        body=KernelBody(statements, Read("X")),
    )


def expand(handler: ExecutionHandler, inputs: list[Tensor]) -> list[Tensor]:
    validate_inputs(inputs)
    data = inputs[0]
    requested = tuple(inputs[1].integer_data)
    output = handler.run(
        ProgramRequest(
            metadata=EXPAND_METADATA,
            cache_hint=expand_cache_key(data.dims, requested, data.dtype),
            get=lambda: create_expand_program(data.dims, requested, data.dtype),
        ),
        [data],
    )
    return [output]
