"""Where: element-wise select between X and Y on a condition tensor.

The output takes the condition's shape and X's dtype. X and Y are expected to
already match that shape; broadcasting across the three operands is resolved
by graph shape inference before this op runs. The condition is bound through
a boolean view created by the execution handler, and any positive stored
value selects X.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from kernel_compiler.cache_key import make_cache_key
from kernel_compiler.errors import ValidationError
from kernel_compiler.program import (
    AccessMode,
    KernelBody,
    KernelProgram,
    OutputInfo,
    ProgramMetadata,
    ProgramRequest,
    Read,
    SelectPositive,
)

if TYPE_CHECKING:
    from kernel_runtime.handler import ExecutionHandler
    from kernel_runtime.tensor import Tensor

WHERE_METADATA = ProgramMetadata(
    name="Where",
    input_names=("C", "X", "Y"),
    input_access=(AccessMode.INDEXED, AccessMode.INDEXED, AccessMode.INDEXED),
)


def validate_inputs(inputs: list[Tensor]) -> None:
    if not inputs or len(inputs) != 3:
        raise ValidationError(f"Where requires 3 inputs, got {len(inputs) if inputs else 0}")


def create_where_program(condition_dims: tuple[int, ...], dtype: str) -> KernelProgram:
    return KernelProgram(
        metadata=WHERE_METADATA,
        output=OutputInfo(tuple(condition_dims), dtype),
        body=KernelBody((), SelectPositive(Read("C"), Read("X"), Read("Y"))),
    )


def where(handler: ExecutionHandler, inputs: list[Tensor]) -> list[Tensor]:
    validate_inputs(inputs)
    condition, x, y = inputs
    output = handler.run(
        ProgramRequest(
            metadata=WHERE_METADATA,
            cache_hint=make_cache_key(output_dims=condition.dims, dtype=x.dtype),
            get=lambda: create_where_program(condition.dims, x.dtype),
        ),
        [handler.cast(condition, "bool"), x, y],
    )
    return [output]
