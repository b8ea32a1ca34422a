"""Kernel program data model.

A KernelProgram describes one per-output-element kernel: which inputs it
reads, the output it produces, and a body made of index statements followed by
a single result expression. Programs are plain data; the codegen targets turn
them into CUDA C / Metal source and the reference backend interprets them
directly.

Body semantics, for one output coordinate vector `idx`:
    1. statements run in order and rewrite entries of `idx`
    2. the result expression reads inputs at `idx` (trailing-axis aligned,
       missing leading coordinates read as 0) and yields the output scalar
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from kernel_compiler.cache_key import CacheKey
from kernel_compiler.dtypes import check_dtype
from kernel_compiler.errors import ValidationError
from kernel_compiler.shape_util import check_dims


class AccessMode(Enum):
    """How a kernel reads an input buffer."""

    INDEXED = "indexed"  # direct lookup at the transformed output index


# ── index statements ──


@dataclass(frozen=True)
class SetIndex:
    """idx[axis] = value (broadcast read)."""

    axis: int
    value: int = 0


@dataclass(frozen=True)
class OffsetIndex:
    """idx[axis] += offset."""

    axis: int
    offset: int


@dataclass(frozen=True)
class ReverseIndex:
    """idx[axis] = extent - idx[axis] - 1."""

    axis: int
    extent: int


IndexStatement = SetIndex | OffsetIndex | ReverseIndex


# ── result expressions ──


@dataclass(frozen=True)
class Read:
    """Read the named input at the current index."""

    input_name: str


@dataclass(frozen=True)
class SelectPositive:
    """condition > 0 ? if_true : if_false."""

    condition: Read
    if_true: Read
    if_false: Read


Expression = Read | SelectPositive


def expression_reads(expr: Expression) -> list[str]:
    """Input names read by an expression, in evaluation order."""
    if isinstance(expr, Read):
        return [expr.input_name]
    return [expr.condition.input_name, expr.if_true.input_name, expr.if_false.input_name]


@dataclass(frozen=True)
class KernelBody:
    statements: tuple[IndexStatement, ...]
    result: Expression


@dataclass(frozen=True)
class OutputInfo:
    dims: tuple[int, ...]
    dtype: str


@dataclass(frozen=True)
class ProgramMetadata:
    """Operator identity plus its input roles; shared by every program of one op."""

    name: str
    input_names: tuple[str, ...]
    input_access: tuple[AccessMode, ...]

    def __post_init__(self):
        if len(self.input_names) != len(self.input_access):
            raise ValidationError(
                f"{self.name}: {len(self.input_names)} input names but {len(self.input_access)} access modes"
            )


@dataclass(frozen=True)
class KernelProgram:
    """A complete kernel description produced by an operator generator."""

    metadata: ProgramMetadata
    output: OutputInfo
    body: KernelBody

    def __post_init__(self):
        object.__setattr__(self, "output", OutputInfo(check_dims(self.output.dims), check_dtype(self.output.dtype)))
        rank = len(self.output.dims)
        for stmt in self.body.statements:
            if not 0 <= stmt.axis < rank:
                raise ValidationError(
                    f"{self.name}: statement {stmt} addresses axis outside output rank {rank}"
                )
        for name in expression_reads(self.body.result):
            if name not in self.metadata.input_names:
                raise ValidationError(
                    f"{self.name}: body reads undeclared input '{name}'",
                    context={"declared": list(self.metadata.input_names)},
                )

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def input_names(self) -> tuple[str, ...]:
        return self.metadata.input_names


@dataclass(frozen=True)
class ProgramRequest:
    """What an operator hands to the execution handler.

    `get` builds the KernelProgram and is only invoked on a cache miss, so
    shape inference is not repeated for every run of a cached kernel.
    """

    metadata: ProgramMetadata
    cache_hint: CacheKey
    get: Callable[[], KernelProgram] = field(compare=False)
