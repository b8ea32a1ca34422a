"""ArgMax, degenerate form.

Only a fully scalar request is implemented: when the requested output shape
(second input) is empty the single input element is passed through as a
rank-0 tensor. No index search is performed on this path. Any non-empty
requested shape raises UnsupportedFeatureError; a per-axis reduction would
plug in at create_argmax_program.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from kernel_compiler.cache_key import make_cache_key
from kernel_compiler.errors import UnsupportedFeatureError, ValidationError
from kernel_compiler.program import (
    AccessMode,
    KernelBody,
    KernelProgram,
    OutputInfo,
    ProgramMetadata,
    ProgramRequest,
    Read,
)
from kernel_compiler.shape_util import size

if TYPE_CHECKING:
    from kernel_runtime.handler import ExecutionHandler
    from kernel_runtime.tensor import Tensor

ARGMAX_METADATA = ProgramMetadata(
    name="ArgMax",
    input_names=("input",),
    input_access=(AccessMode.INDEXED,),
)


def validate_inputs(inputs: list[Tensor]) -> None:
    if not inputs or len(inputs) != 2:
        raise ValidationError(f"ArgMax requires 2 inputs, got {len(inputs) if inputs else 0}")


def create_argmax_program(dtype: str) -> KernelProgram:
    return KernelProgram(
        metadata=ARGMAX_METADATA,
        output=OutputInfo((), dtype),
        body=KernelBody((), Read("input")),
    )


def argmax(handler: ExecutionHandler, inputs: list[Tensor]) -> list[Tensor]:
    validate_inputs(inputs)
    data = inputs[0]
    requested = tuple(inputs[1].integer_data)
    if requested:
        raise UnsupportedFeatureError(
            f"ArgMax reduction to shape {list(requested)} is not implemented",
            feature="argmax_axis",
            context={"requested_shape": list(requested)},
        )
    if size(data.dims) != 1:
        raise ValidationError(
            "ArgMax scalar path needs a single-element input",
            context={"dims": list(data.dims)},
        )
    output = handler.run(
        ProgramRequest(
            metadata=ARGMAX_METADATA,
            cache_hint=make_cache_key(dtype=data.dtype),
            get=lambda: create_argmax_program(data.dtype),
        ),
        [data],
    )
    return [output]
