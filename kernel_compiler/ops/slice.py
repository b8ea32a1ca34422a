"""Slice: multi-axis slicing with static or runtime-supplied ends.

Two entry points:
    slice      opset-1 form; starts/ends/axes are node attributes.
    slice_v10  opset-10 form; starts/ends/axes/steps are input tensors.
                 starts, axes and steps must be initializers. ends may be a
                 runtime tensor, in which case its live values are read on
                 every call and folded into the cache key.

Only steps of 1 or -1 are supported. A step of -1 switches the op to reverse
mode: the (start, end) pair is walked downward from its upper bound.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from kernel_compiler.cache_key import AttributeWithCacheKey, CacheKey, make_cache_key
from kernel_compiler.dtypes import INDEX_TYPES, NUMBER_TYPES
from kernel_compiler.errors import UnsupportedFeatureError, ValidationError
from kernel_compiler.program import (
    AccessMode,
    KernelBody,
    KernelProgram,
    OffsetIndex,
    OutputInfo,
    ProgramMetadata,
    ProgramRequest,
    Read,
    ReverseIndex,
)
from kernel_compiler.shape_util import normalize_axes

if TYPE_CHECKING:
    from kernel_runtime.handler import ExecutionHandler
    from kernel_runtime.tensor import Tensor

SLICE_METADATA = ProgramMetadata(
    name="Slice",
    input_names=("A",),
    input_access=(AccessMode.INDEXED,),
)


@dataclass(frozen=True)
class SliceAttributes(AttributeWithCacheKey):
    starts: tuple[int, ...]
    ends: tuple[int, ...] | None  # None: ends come from a runtime tensor
    axes: tuple[int, ...] = ()
    reverse: bool = False


@dataclass(frozen=True)
class _ResolvedSlice:
    axes: tuple[int, ...]
    starts: tuple[int, ...]
    ends: tuple[int, ...]


def parse_slice_attributes(attrs: dict) -> SliceAttributes:
    """Build SliceAttributes from opset-1 node attributes."""
    if "starts" not in attrs or "ends" not in attrs:
        raise ValidationError("Slice requires 'starts' and 'ends' attributes", context={"attrs": sorted(attrs)})
    return SliceAttributes(
        starts=tuple(int(s) for s in attrs["starts"]),
        ends=tuple(int(e) for e in attrs["ends"]),
        axes=tuple(int(a) for a in attrs.get("axes", [])),
        reverse=False,
    )


def _normalize_start(start: int, size: int, reverse: bool) -> int:
    if reverse:
        if start < 0:
            start += size
        return min(max(0, start), size - 1)
    if start > size - 1:
        return size
    return max(start + size if start < 0 else start, 0)


def _normalize_end(end: int, size: int, reverse: bool) -> int:
    if reverse:
        # -1 lets a reversed walk include index 0
        return min(max(-1, end), size - 1)
    if end > size - 1:
        return size
    return max(end + size if end < 0 else end, 0)


def resolve_slice(
    input_dims: tuple[int, ...], starts, ends, axes, reverse: bool
) -> _ResolvedSlice:
    """Normalize axes, starts and ends against input_dims."""
    rank = len(input_dims)
    if not axes:
        axes = tuple(range(len(starts)))
    if len(starts) != len(axes) or len(ends) != len(axes):
        raise ValidationError(
            "Slice starts, ends and axes must have the same length",
            context={"starts": list(starts), "ends": list(ends), "axes": list(axes)},
        )
    normalized_axes = normalize_axes(axes, rank)
    if len(set(normalized_axes)) != len(normalized_axes):
        raise ValidationError(f"Slice axes contain duplicates: {list(axes)}")

    sizes = [input_dims[a] for a in normalized_axes]
    return _ResolvedSlice(
        axes=normalized_axes,
        starts=tuple(_normalize_start(int(s), n, reverse) for s, n in zip(starts, sizes)),
        ends=tuple(_normalize_end(int(e), n, reverse) for e, n in zip(ends, sizes)),
    )


def create_slice_program(
    input_dims: tuple[int, ...], dtype: str, starts, ends, axes, reverse: bool = False
) -> KernelProgram:
    resolved = resolve_slice(input_dims, starts, ends, axes, reverse)
    output_dims = list(input_dims)
    statements = []
    for axis, start, end in zip(resolved.axes, resolved.starts, resolved.ends):
        if input_dims[axis] == 0:
            output_dims[axis] = 0
            continue
        if reverse:
            upper, length = (start, start - end) if start > end else (end, end - start + 1)
            output_dims[axis] = length
            statements.append(ReverseIndex(axis, upper + 1))
        else:
            output_dims[axis] = max(end - start, 0)
            if start > 0:
                statements.append(OffsetIndex(axis, start))
    return KernelProgram(
        metadata=SLICE_METADATA,
        output=OutputInfo(tuple(output_dims), dtype),
        body=KernelBody(tuple(statements), Read("A")),
    )


def slice_cache_key(input: Tensor, attributes: SliceAttributes, ends: tuple[int, ...]) -> CacheKey:
    fields = dict(attributes.cache_key.fields)
    fields.update(
        input_dims=input.dims,
        dtype=input.dtype,
        ends=ends,
        dynamic_ends=attributes.ends is None,
    )
    return make_cache_key(**fields)


def _run_slice(handler: ExecutionHandler, input: Tensor, attributes: SliceAttributes, ends) -> Tensor:
    ends = tuple(int(e) for e in ends)
    return handler.run(
        ProgramRequest(
            metadata=SLICE_METADATA,
            cache_hint=slice_cache_key(input, attributes, ends),
            get=lambda: create_slice_program(
                input.dims, input.dtype, attributes.starts, ends, attributes.axes, attributes.reverse
            ),
        ),
        [input],
    )


def validate_inputs(inputs: list[Tensor]) -> None:
    if not inputs or len(inputs) != 1:
        raise ValidationError(f"Slice requires 1 input, got {len(inputs) if inputs else 0}")
    if inputs[0].dtype not in NUMBER_TYPES:
        raise ValidationError(f"Invalid input type for Slice: {inputs[0].dtype}")


def slice(handler: ExecutionHandler, inputs: list[Tensor], attributes: SliceAttributes) -> list[Tensor]:
    validate_inputs(inputs)
    if attributes.ends is None:
        raise ValidationError("Slice (opset 1) requires static ends")
    return [_run_slice(handler, inputs[0], attributes, attributes.ends)]


def validate_inputs_v10(inputs: list[Tensor]) -> None:
    if not inputs or len(inputs) < 3 or len(inputs) > 5:
        raise ValidationError(f"Slice requires 3 to 5 inputs, got {len(inputs) if inputs else 0}")
    for position, name in enumerate(("starts", "ends", "axes", "steps"), start=1):
        if position >= len(inputs):
            break
        t = inputs[position]
        if t.dtype not in INDEX_TYPES or len(t.dims) != 1:
            raise ValidationError(
                f"Slice '{name}' must be a 1-D int32/int64 tensor",
                context={"dtype": t.dtype, "dims": list(t.dims)},
            )


def generate_slice_attributes(handler: ExecutionHandler, inputs: list[Tensor]) -> SliceAttributes:
    """Read opset-10 slice inputs into attributes; ends stay None when dynamic."""
    static_inputs = [inputs[1]] + inputs[3:5]
    if not all(handler.is_initializer(t) for t in static_inputs):
        raise ValidationError("dynamic slice attributes (besides ends) are not allowed")
    dynamic_ends = not handler.is_initializer(inputs[2])

    steps = tuple(inputs[4].integer_data) if len(inputs) >= 5 else ()
    if any(s not in (1, -1) for s in steps):
        raise UnsupportedFeatureError(
            f"Slice steps other than 1 and -1 are not supported, found {list(steps)}",
            feature="slice_step",
        )
    if len(set(steps)) > 1:
        raise ValidationError(f"Slice steps mix directions: {list(steps)}")
    if steps and len(steps) != len(inputs[1].integer_data):
        raise ValidationError("Slice steps and starts must have the same length")

    return SliceAttributes(
        starts=tuple(inputs[1].integer_data),
        ends=None if dynamic_ends else tuple(inputs[2].integer_data),
        axes=tuple(inputs[3].integer_data) if len(inputs) >= 4 else (),
        reverse=bool(steps) and steps[0] == -1,
    )


def slice_v10(handler: ExecutionHandler, inputs: list[Tensor]) -> list[Tensor]:
    validate_inputs_v10(inputs)
    attributes = generate_slice_attributes(handler, inputs)
    # Dynamic ends are re-read from the live tensor on every call
    ends = attributes.ends if attributes.ends is not None else tuple(inputs[2].integer_data)
    return [_run_slice(handler, inputs[0], attributes, ends)]
