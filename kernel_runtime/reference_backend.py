"""Reference backend: interprets KernelPrograms with numpy.

Slow, simple and deterministic. The body is evaluated for all output
coordinates at once (np.indices), applying the same index statements and
reads that the generated GPU kernels perform. It exists to verify generated
programs and to run the test-suite on machines without a GPU.
"""

from __future__ import annotations

import numpy as np

from kernel_compiler.dtypes import check_dtype, dtype_name, to_numpy_dtype
from kernel_compiler.errors import KernelCompilationError, KernelExecutionError
from kernel_compiler.program import (
    KernelProgram,
    OffsetIndex,
    Read,
    ReverseIndex,
    SelectPositive,
    SetIndex,
)
from kernel_compiler.target_config import REFERENCE, TargetConfig
from kernel_runtime.backend import Backend, CompiledKernel, DeviceBuffer


class HostBuffer(DeviceBuffer):
    """Host memory buffer backed by a contiguous numpy array."""

    def __init__(self, data: np.ndarray):
        self._data = np.ascontiguousarray(data)

    @property
    def shape(self) -> tuple[int, ...]:
        return tuple(self._data.shape)

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    @property
    def native_handle(self) -> np.ndarray:
        return self._data

    def to_numpy(self) -> np.ndarray:
        return self._data.copy()


class ReferenceKernel(CompiledKernel):
    """A validated program; evaluation happens in ReferenceBackend.execute."""


def _read(arr: np.ndarray, idx: list[np.ndarray], out_dims: tuple[int, ...], name: str) -> np.ndarray:
    """Gather arr at idx, aligning input axes to the trailing output axes."""
    rank = len(out_dims)
    coords = []
    for d in range(arr.ndim):
        a = d + rank - arr.ndim
        c = idx[a] if a >= 0 else np.zeros(out_dims, dtype=np.int64)
        if c.size and (c.min() < 0 or c.max() >= arr.shape[d]):
            raise KernelExecutionError(
                f"Read of input '{name}' out of bounds on axis {d}",
                context={"input_shape": list(arr.shape), "range": (int(c.min()), int(c.max()))},
            )
        coords.append(c)
    if not coords:
        return np.broadcast_to(arr, out_dims)
    return arr[tuple(coords)]


def evaluate_program(program: KernelProgram, inputs: list[np.ndarray]) -> np.ndarray:
    """Evaluate program over its whole output; inputs follow program.input_names."""
    out_dims = program.output.dims
    idx = [axis_idx.astype(np.int64) for axis_idx in np.indices(out_dims, dtype=np.int64)]

    for stmt in program.body.statements:
        if isinstance(stmt, SetIndex):
            idx[stmt.axis] = np.full(out_dims, stmt.value, dtype=np.int64)
        elif isinstance(stmt, OffsetIndex):
            idx[stmt.axis] = idx[stmt.axis] + stmt.offset
        elif isinstance(stmt, ReverseIndex):
            idx[stmt.axis] = stmt.extent - idx[stmt.axis] - 1
        else:
            raise KernelExecutionError(f"Unknown index statement: {stmt!r}")

    arrays = dict(zip(program.input_names, inputs))
    result = program.body.result
    if isinstance(result, Read):
        values = _read(arrays[result.input_name], idx, out_dims, result.input_name)
    elif isinstance(result, SelectPositive):
        cond = _read(arrays[result.condition.input_name], idx, out_dims, result.condition.input_name)
        x = _read(arrays[result.if_true.input_name], idx, out_dims, result.if_true.input_name)
        y = _read(arrays[result.if_false.input_name], idx, out_dims, result.if_false.input_name)
        out_dtype = to_numpy_dtype(program.output.dtype)
        values = np.where(cond > 0, x.astype(out_dtype), y.astype(out_dtype))
    else:
        raise KernelExecutionError(f"Unknown result expression: {result!r}")
    return np.asarray(values).astype(to_numpy_dtype(program.output.dtype), copy=False).reshape(out_dims)


class ReferenceBackend(Backend):
    """Backend that runs kernel programs on the host with numpy."""

    def __init__(self, config: TargetConfig | None = None):
        self._config = config or REFERENCE

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> TargetConfig:
        return self._config

    def allocate_buffer(self, data: np.ndarray) -> HostBuffer:
        return HostBuffer(np.array(data, copy=True))

    def allocate_empty(self, shape, dtype=np.dtype(np.float32)) -> HostBuffer:
        return HostBuffer(np.zeros(tuple(shape), dtype=dtype))

    def compile(self, program: KernelProgram, input_dtypes: tuple[str, ...]) -> ReferenceKernel:
        if len(input_dtypes) != len(program.input_names):
            raise KernelCompilationError(
                f"{program.name}: {len(input_dtypes)} input dtypes for {len(program.input_names)} inputs"
            )
        if len(program.output.dims) > self._config.max_ndim:
            raise KernelCompilationError(
                f"{program.name}: output rank {len(program.output.dims)} exceeds max_ndim {self._config.max_ndim}"
            )
        for dt in input_dtypes:
            check_dtype(dt)
        return ReferenceKernel(program, input_dtypes)

    def execute(self, kernel: CompiledKernel, inputs: list[DeviceBuffer], output: DeviceBuffer) -> HostBuffer:
        bound = tuple(dtype_name(buf.dtype) for buf in inputs)
        if bound != kernel.input_dtypes:
            raise KernelExecutionError(
                f"{kernel.name}: kernel compiled for {list(kernel.input_dtypes)}, bound {list(bound)}"
            )
        arrays = [buf.native_handle for buf in inputs]
        values = evaluate_program(kernel.program, arrays)
        out = output.native_handle
        if tuple(out.shape) != tuple(values.shape):
            raise KernelExecutionError(
                f"{kernel.name}: output buffer shape {list(out.shape)} does not match {list(values.shape)}"
            )
        out[...] = values
        return output

    def cast(self, buffer: DeviceBuffer, dtype: np.dtype) -> HostBuffer:
        return HostBuffer(buffer.native_handle.astype(dtype))

    def synchronize(self):
        pass  # host execution is synchronous
