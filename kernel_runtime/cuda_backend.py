"""CUDA backend: CuPy buffers + NVRTC-compiled kernels.

Kernel sources come from CUDACodegenTarget. A module-level cache maps the
source hash to the compiled cupy.RawKernel so that handlers on the same
process never re-run NVRTC for identical source.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any

import numpy as np

from kernel_compiler.codegen import CUDACodegenTarget, KernelSource
from kernel_compiler.dtypes import dtype_name
from kernel_compiler.errors import KernelCompilationError, KernelExecutionError
from kernel_compiler.program import KernelProgram
from kernel_compiler.shape_util import compute_strides
from kernel_compiler.target_config import CUDA_GPU, TargetConfig
from kernel_runtime.backend import Backend, CompiledKernel, DeviceBuffer

try:
    import cupy as cp

    HAS_CUPY = True
except ImportError:
    cp = None
    HAS_CUPY = False

logger = logging.getLogger(__name__)

# source_hash:kernel_name → RawKernel, shared by every CUDABackend in the process
_KERNEL_CACHE: dict[str, "cp.RawKernel"] = {}


def _get_or_compile_kernel(source_code: str, kernel_name: str) -> "cp.RawKernel":
    """Get a compiled kernel from cache or compile via NVRTC."""
    key = hashlib.md5(source_code.encode()).hexdigest() + ":" + kernel_name
    cached = _KERNEL_CACHE.get(key)
    if cached is not None:
        return cached
    kernel = cp.RawKernel(source_code, kernel_name)
    try:
        # RawKernel compiles lazily; force NVRTC now so errors surface here
        kernel.compile()
    except cp.cuda.compiler.CompileException as e:
        raise KernelCompilationError(f"NVRTC compilation of {kernel_name} failed: {e}") from e
    _KERNEL_CACHE[key] = kernel
    return kernel


class CUDABuffer(DeviceBuffer):
    """CUDA GPU buffer backed by cupy.ndarray."""

    def __init__(self, data: cp.ndarray):
        self._data = data

    @property
    def shape(self) -> tuple[int, ...]:
        return tuple(self._data.shape)

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    @property
    def native_handle(self) -> Any:
        """Return the underlying cupy.ndarray."""
        return self._data

    def to_numpy(self) -> np.ndarray:
        return cp.asnumpy(self._data)

    @classmethod
    def from_numpy(cls, data: np.ndarray) -> CUDABuffer:
        """Upload numpy array to CUDA GPU."""
        return cls(cp.asarray(np.ascontiguousarray(data)))

    @classmethod
    def empty(cls, shape: tuple[int, ...], dtype: np.dtype) -> CUDABuffer:
        return cls(cp.empty(shape, dtype=dtype))


class CUDAKernel(CompiledKernel):
    def __init__(self, program: KernelProgram, source: KernelSource, raw_kernel):
        super().__init__(program, source.input_dtypes)
        self.source = source
        self.raw_kernel = raw_kernel


class CUDABackend(Backend):
    """CUDA GPU execution backend using CuPy."""

    def __init__(self, device_id: int = 0, config: TargetConfig | None = None):
        if not HAS_CUPY:
            raise RuntimeError("CuPy is not installed. Install with: pip install .[cuda]")
        self._config = config or CUDA_GPU
        self._device_id = device_id
        self._cp_device = cp.cuda.Device(device_id)
        self._codegen = CUDACodegenTarget(self._config)
        # ndim-padded int64 stride arrays, keyed by shape
        self._stride_arrays: dict[tuple[int, ...], cp.ndarray] = {}

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def device(self) -> Any:
        """Return CuPy device object."""
        return self._cp_device

    def allocate_buffer(self, data: np.ndarray) -> CUDABuffer:
        with self._cp_device:
            return CUDABuffer.from_numpy(data)

    def allocate_empty(self, shape, dtype=np.dtype(np.float32)) -> CUDABuffer:
        with self._cp_device:
            return CUDABuffer.empty(tuple(shape), dtype)

    def compile(self, program: KernelProgram, input_dtypes: tuple[str, ...]) -> CUDAKernel:
        source = self._codegen.render(program, tuple(input_dtypes))
        with self._cp_device:
            raw = _get_or_compile_kernel(source.source_code, source.kernel_name)
        logger.debug("NVRTC kernel ready: %s", source.kernel_name)
        return CUDAKernel(program, source, raw)

    def _strides_array(self, shape: tuple[int, ...]) -> cp.ndarray:
        cached = self._stride_arrays.get(shape)
        if cached is not None:
            return cached
        max_ndim = self._config.max_ndim
        if len(shape) > max_ndim:
            raise KernelExecutionError(f"Input rank {len(shape)} exceeds max_ndim {max_ndim}")
        padded = list(compute_strides(shape)) + [0] * (max_ndim - len(shape))
        arr = cp.asarray(padded, dtype=cp.int64)
        self._stride_arrays[shape] = arr
        return arr

    def execute(self, kernel: CompiledKernel, inputs: list[DeviceBuffer], output: DeviceBuffer) -> CUDABuffer:
        bound = tuple(dtype_name(buf.dtype) for buf in inputs)
        if bound != kernel.input_dtypes:
            raise KernelExecutionError(
                f"{kernel.name}: kernel compiled for {list(kernel.input_dtypes)}, bound {list(bound)}"
            )
        total = int(np.prod(output.shape, dtype=np.int64))
        if total == 0:
            return output

        args: list = []
        for buf in inputs:
            data = buf.native_handle
            if not data.flags.c_contiguous:
                data = cp.ascontiguousarray(data)
            args += [data, self._strides_array(tuple(data.shape)), np.int32(data.ndim)]
        args += [output.native_handle, np.int64(total)]

        block = self._config.block_size
        grid = (total + block - 1) // block
        with self._cp_device:
            try:
                kernel.raw_kernel((grid,), (block,), tuple(args))
            except cp.cuda.driver.CUDADriverError as e:
                raise KernelExecutionError(f"{kernel.name} launch failed: {e}") from e
        return output

    def cast(self, buffer: DeviceBuffer, dtype: np.dtype) -> CUDABuffer:
        with self._cp_device:
            return CUDABuffer(buffer.native_handle.astype(dtype))

    def synchronize(self):
        """Synchronize CUDA device."""
        self._cp_device.synchronize()
