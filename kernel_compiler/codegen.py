"""Kernel source generation for KernelPrograms.

Each CodegenTarget renders a KernelProgram into source for one GPU language.
The generated kernel runs one thread per output element:

    1. decompose the flat thread id into output coordinates (output dims are
       baked into the source; they are part of the cache key)
    2. apply the index statements
    3. compute each input's flat offset from strides passed at dispatch time
    4. evaluate the result expression and store one element

Input strides are passed as fixed-size arrays of TargetConfig.max_ndim
entries plus an ndim scalar, so one compiled kernel serves every input layout
with the declared dtypes.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass

from kernel_compiler.dtypes import CUDA_TYPE_MAP, METAL_TYPE_MAP
from kernel_compiler.errors import KernelCompilationError
from kernel_compiler.program import (
    KernelProgram,
    OffsetIndex,
    Read,
    ReverseIndex,
    SelectPositive,
    SetIndex,
)
from kernel_compiler.target_config import CUDA_GPU, METAL_GPU, TargetConfig


@dataclass(frozen=True)
class KernelSource:
    """Generated source ready for the device compiler."""

    kernel_name: str
    source_code: str
    input_dtypes: tuple[str, ...]
    output_dtype: str


def kernel_symbol(program: KernelProgram, input_dtypes: tuple[str, ...]) -> str:
    """Unique function name: op name + digest of everything that shapes the source."""
    fingerprint = repr((program.name, program.output, program.body, input_dtypes))
    digest = hashlib.md5(fingerprint.encode()).hexdigest()[:12]
    return f"{program.name.lower()}_{digest}"


def _statement_line(stmt) -> str:
    if isinstance(stmt, SetIndex):
        return f"idx[{stmt.axis}] = {stmt.value};"
    if isinstance(stmt, OffsetIndex):
        return f"idx[{stmt.axis}] += {stmt.offset};"
    if isinstance(stmt, ReverseIndex):
        return f"idx[{stmt.axis}] = {stmt.extent} - idx[{stmt.axis}] - 1;"
    raise KernelCompilationError(f"Unknown index statement: {stmt!r}")


class CodegenTarget(ABC):
    """Abstract interface for backend-specific kernel emission."""

    def __init__(self, config: TargetConfig):
        self._config = config

    @property
    def config(self) -> TargetConfig:
        return self._config

    @abstractmethod
    def type_name(self, dtype: str) -> str:
        """C type spelling of an element type in this language."""

    @abstractmethod
    def _prologue(self) -> list[str]:
        ...

    @abstractmethod
    def _signature(self, kernel_name: str, input_types: list[str], output_type: str) -> list[str]:
        ...

    @abstractmethod
    def _thread_id(self) -> str:
        ...

    @abstractmethod
    def _epilogue(self) -> list[str]:
        ...

    @property
    def index_type(self) -> str:
        return "long long"

    def render(self, program: KernelProgram, input_dtypes: tuple[str, ...]) -> KernelSource:
        """Render a KernelProgram for inputs of the given dtypes."""
        input_dtypes = tuple(input_dtypes)
        if len(input_dtypes) != len(program.input_names):
            raise KernelCompilationError(
                f"{program.name}: {len(input_dtypes)} input dtypes for {len(program.input_names)} inputs"
            )
        rank = len(program.output.dims)
        max_ndim = self._config.max_ndim
        if rank > max_ndim:
            raise KernelCompilationError(f"{program.name}: output rank {rank} exceeds max_ndim {max_ndim}")

        input_types = [self.type_name(dt) for dt in input_dtypes]
        output_type = self.type_name(program.output.dtype)
        kernel_name = kernel_symbol(program, input_dtypes)
        itype = self.index_type

        lines = self._prologue()
        lines += self._signature(kernel_name, input_types, output_type)
        lines.append(f"    {itype} tid = {self._thread_id()};")
        lines.append("    if (tid >= N) return;")

        # Output coordinates, innermost axis first
        lines.append(f"    {itype} idx[{max(rank, 1)}];")
        if rank == 0:
            lines.append("    idx[0] = 0;")
        else:
            lines.append(f"    {itype} rem = tid;")
            for axis in range(rank - 1, -1, -1):
                extent = program.output.dims[axis]
                lines.append(f"    idx[{axis}] = rem % {extent}; rem /= {extent};")

        for stmt in program.body.statements:
            lines.append(f"    {_statement_line(stmt)}")

        # Flat offset for each input read by the body
        operand = {}
        for slot, name in enumerate(program.input_names):
            lines.append(f"    {itype} off{slot} = 0;")
            lines.append(f"    for (int d = 0; d < in{slot}_ndim; d++) {{")
            lines.append(f"        int a = d + {rank} - in{slot}_ndim;")
            lines.append(f"        off{slot} += (a >= 0 ? idx[a] : 0) * in{slot}_strides[d];")
            lines.append("    }")
            operand[name] = f"in{slot}[off{slot}]"

        result = program.body.result
        if isinstance(result, Read):
            expr = operand[result.input_name]
        elif isinstance(result, SelectPositive):
            cond = operand[result.condition.input_name]
            # both branches cast to the output type; X and Y may differ in dtype
            expr = (
                f"((float)({cond}) > 0.0f) ? "
                f"({output_type})({operand[result.if_true.input_name]}) : "
                f"({output_type})({operand[result.if_false.input_name]})"
            )
        else:
            raise KernelCompilationError(f"Unknown result expression: {result!r}")
        lines.append(f"    out0[tid] = {expr};")
        lines += self._epilogue()

        return KernelSource(
            kernel_name=kernel_name,
            source_code="\n".join(lines),
            input_dtypes=input_dtypes,
            output_dtype=program.output.dtype,
        )


class CUDACodegenTarget(CodegenTarget):
    """CUDA C for NVRTC (compiled through cupy.RawKernel)."""

    def __init__(self, config: TargetConfig = CUDA_GPU):
        super().__init__(config)

    def type_name(self, dtype: str) -> str:
        try:
            return CUDA_TYPE_MAP[dtype]
        except KeyError:
            raise KernelCompilationError(f"CUDA target has no type for '{dtype}'") from None

    def _prologue(self) -> list[str]:
        return ["#include <cuda_fp16.h>", "#include <cuda_bf16.h>", 'extern "C" {']

    def _signature(self, kernel_name, input_types, output_type):
        params = []
        for slot, ctype in enumerate(input_types):
            params.append(f"const {ctype}* in{slot}")
            params.append(f"const long long* in{slot}_strides")
            params.append(f"int in{slot}_ndim")
        params.append(f"{output_type}* out0")
        params.append("long long N")
        return [f"__global__ void {kernel_name}({', '.join(params)}) {{"]

    def _thread_id(self) -> str:
        return "(long long)blockIdx.x * blockDim.x + threadIdx.x"

    def _epilogue(self) -> list[str]:
        return ["}", "}"]


class MetalCodegenTarget(CodegenTarget):
    """Metal Shading Language; buffers bound in declaration order."""

    def __init__(self, config: TargetConfig = METAL_GPU):
        super().__init__(config)

    @property
    def index_type(self) -> str:
        return "long"

    def type_name(self, dtype: str) -> str:
        try:
            return METAL_TYPE_MAP[dtype]
        except KeyError:
            raise KernelCompilationError(f"Metal target has no type for '{dtype}'") from None

    def _prologue(self) -> list[str]:
        return ["#include <metal_stdlib>", "using namespace metal;"]

    def _signature(self, kernel_name, input_types, output_type):
        params = []
        slot_index = 0
        for slot, ctype in enumerate(input_types):
            params.append(f"device const {ctype}* in{slot} [[buffer({slot_index})]]")
            params.append(f"constant long* in{slot}_strides [[buffer({slot_index + 1})]]")
            params.append(f"constant int& in{slot}_ndim [[buffer({slot_index + 2})]]")
            slot_index += 3
        params.append(f"device {output_type}* out0 [[buffer({slot_index})]]")
        params.append(f"constant long& N [[buffer({slot_index + 1})]]")
        params.append("uint gid [[thread_position_in_grid]]")
        return [f"kernel void {kernel_name}({', '.join(params)}) {{"]

    def _thread_id(self) -> str:
        return "(long)gid"

    def _epilogue(self) -> list[str]:
        return ["}"]


CUDA_TARGET = CUDACodegenTarget()
METAL_TARGET = MetalCodegenTarget()
