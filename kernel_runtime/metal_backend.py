"""Metal GPU backend: MSL kernels compiled at runtime via pyobjc.

Buffers use shared storage so the host can upload inputs and read outputs
without blit passes. Compiled libraries and pipelines are cached on the
Device by source text.
"""

from __future__ import annotations

import logging
import struct

import ml_dtypes  # noqa: F401  registers bfloat16 with numpy
import numpy as np
import Metal  # pyobjc-framework-Metal

from kernel_compiler.codegen import KernelSource, MetalCodegenTarget
from kernel_compiler.dtypes import dtype_name
from kernel_compiler.errors import KernelCompilationError, KernelExecutionError
from kernel_compiler.program import KernelProgram
from kernel_compiler.shape_util import compute_strides
from kernel_compiler.target_config import METAL_GPU, TargetConfig
from kernel_runtime.backend import Backend, CompiledKernel, DeviceBuffer

logger = logging.getLogger(__name__)

_STORAGE_MODE_SHARED = 0  # MTLResourceStorageModeShared


class Device:
    """Wraps Metal device, command queue, and shader library compilation."""

    def __init__(self):
        self._device = Metal.MTLCreateSystemDefaultDevice()
        if self._device is None:
            raise RuntimeError("No Metal device found")
        self._command_queue = self._device.newCommandQueue()
        self._pipeline_cache: dict[tuple[str, str], object] = {}

    @property
    def name(self) -> str:
        return self._device.name()

    @property
    def mtl_device(self):
        return self._device

    def get_pipeline(self, source: str, function_name: str):
        """Compile MSL source (cached) and return the compute pipeline for function_name."""
        cache_key = (source, function_name)
        if cache_key in self._pipeline_cache:
            return self._pipeline_cache[cache_key]

        library, error = self._device.newLibraryWithSource_options_error_(source, None, None)
        if library is None:
            raise KernelCompilationError(f"Metal compilation of {function_name} failed: {error}")
        function = library.newFunctionWithName_(function_name)
        if function is None:
            raise KernelCompilationError(f"Function '{function_name}' not found in compiled library")
        pipeline, error = self._device.newComputePipelineStateWithFunction_error_(function, None)
        if pipeline is None:
            raise KernelCompilationError(f"Pipeline creation for {function_name} failed: {error}")

        self._pipeline_cache[cache_key] = pipeline
        return pipeline

    def new_buffer(self, raw: bytes):
        # Metal cannot allocate 0-byte buffers; use 1-byte placeholder
        data = raw if raw else b"\x00"
        buf = self._device.newBufferWithBytes_length_options_(data, len(data), _STORAGE_MODE_SHARED)
        if buf is None:
            raise RuntimeError(f"Failed to allocate Metal buffer ({len(data)} bytes)")
        return buf

    def new_command_buffer(self):
        return self._command_queue.commandBuffer()


class MetalBuffer(DeviceBuffer):
    """Shared-storage MTLBuffer holding a contiguous array of one dtype."""

    def __init__(self, mtl_buffer, shape: tuple[int, ...], dtype: np.dtype):
        self._buffer = mtl_buffer
        self._shape = tuple(shape)
        self._dtype = np.dtype(dtype)

    @property
    def shape(self) -> tuple[int, ...]:
        return self._shape

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def native_handle(self):
        return self._buffer

    @staticmethod
    def from_numpy(data: np.ndarray, device: Device) -> MetalBuffer:
        contiguous = np.ascontiguousarray(data)
        return MetalBuffer(device.new_buffer(contiguous.tobytes()), contiguous.shape, contiguous.dtype)

    @staticmethod
    def empty(shape: tuple[int, ...], dtype: np.dtype, device: Device) -> MetalBuffer:
        nbytes = int(np.prod(shape, dtype=np.int64)) * np.dtype(dtype).itemsize
        return MetalBuffer(device.new_buffer(b"\x00" * nbytes), shape, dtype)

    def to_numpy(self) -> np.ndarray:
        nbytes = self.size_bytes
        if nbytes == 0:
            return np.zeros(self._shape, dtype=self._dtype)
        mv = self._buffer.contents().as_buffer(nbytes)
        return np.frombuffer(mv, dtype=self._dtype).copy().reshape(self._shape)


class MetalKernel(CompiledKernel):
    def __init__(self, program: KernelProgram, source: KernelSource, pipeline):
        super().__init__(program, source.input_dtypes)
        self.source = source
        self.pipeline = pipeline


class MetalBackend(Backend):
    """Backend implementation using Apple Metal GPU."""

    def __init__(self, config: TargetConfig | None = None):
        self._config = config or METAL_GPU
        self._device = Device()
        self._codegen = MetalCodegenTarget(self._config)

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def device(self) -> Device:
        return self._device

    def allocate_buffer(self, data: np.ndarray) -> MetalBuffer:
        return MetalBuffer.from_numpy(data, self._device)

    def allocate_empty(self, shape, dtype=np.dtype(np.float32)) -> MetalBuffer:
        return MetalBuffer.empty(tuple(shape), dtype, self._device)

    def compile(self, program: KernelProgram, input_dtypes: tuple[str, ...]) -> MetalKernel:
        source = self._codegen.render(program, tuple(input_dtypes))
        pipeline = self._device.get_pipeline(source.source_code, source.kernel_name)
        logger.debug("Metal pipeline ready: %s", source.kernel_name)
        return MetalKernel(program, source, pipeline)

    def _params(self, shape: tuple[int, ...]):
        max_ndim = self._config.max_ndim
        if len(shape) > max_ndim:
            raise KernelExecutionError(f"Input rank {len(shape)} exceeds max_ndim {max_ndim}")
        strides = list(compute_strides(shape)) + [0] * (max_ndim - len(shape))
        return (
            self._device.new_buffer(struct.pack(f"{max_ndim}q", *strides)),
            self._device.new_buffer(struct.pack("i", len(shape))),
        )

    def execute(self, kernel: CompiledKernel, inputs: list[DeviceBuffer], output: DeviceBuffer) -> MetalBuffer:
        bound = tuple(dtype_name(buf.dtype) for buf in inputs)
        if bound != kernel.input_dtypes:
            raise KernelExecutionError(
                f"{kernel.name}: kernel compiled for {list(kernel.input_dtypes)}, bound {list(bound)}"
            )
        total = int(np.prod(output.shape, dtype=np.int64))
        if total == 0:
            return output

        buffers = []
        for buf in inputs:
            strides_buf, ndim_buf = self._params(buf.shape)
            buffers += [buf.native_handle, strides_buf, ndim_buf]
        buffers += [output.native_handle, self._device.new_buffer(struct.pack("q", total))]

        pipeline = kernel.pipeline
        cmd_buf = self._device.new_command_buffer()
        encoder = cmd_buf.computeCommandEncoder()
        encoder.setComputePipelineState_(pipeline)
        for idx, mtl in enumerate(buffers):
            encoder.setBuffer_offset_atIndex_(mtl, 0, idx)
        tpg = min(self._config.block_size, pipeline.maxTotalThreadsPerThreadgroup())
        groups = (total + tpg - 1) // tpg
        encoder.dispatchThreadgroups_threadsPerThreadgroup_((groups, 1, 1), (tpg, 1, 1))
        encoder.endEncoding()
        cmd_buf.commit()
        cmd_buf.waitUntilCompleted()
        if cmd_buf.error() is not None:
            raise KernelExecutionError(f"{kernel.name} dispatch failed: {cmd_buf.error()}")
        return output

    def cast(self, buffer: DeviceBuffer, dtype: np.dtype) -> MetalBuffer:
        return MetalBuffer.from_numpy(buffer.to_numpy().astype(dtype), self._device)

    def synchronize(self):
        pass  # command buffers are synchronous via waitUntilCompleted
