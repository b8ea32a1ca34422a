"""Execution handler: kernel cache + dispatch for single-operator runs.

run() looks a request up by (operator name, cache hint, bound input dtypes).
On a miss it builds the KernelProgram through the request's factory and
compiles it with the backend; on a hit the factory is never called and only
the cached output shape/type is reused. Either way a fresh output buffer is
allocated and the kernel is dispatched against the bound inputs.

The cache is insert-only and owned by one handler (one device context).
A single lock guards lookup and insert, so a handler may be shared between
threads, but compiled kernels are never shared across handlers.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

import numpy as np

from kernel_compiler.cache_key import CacheKey
from kernel_compiler.dtypes import to_numpy_dtype
from kernel_compiler.errors import ValidationError
from kernel_compiler.program import ProgramRequest
from kernel_runtime.backend import Backend, CompiledKernel
from kernel_runtime.tensor import Tensor

logger = logging.getLogger(__name__)

KernelCacheKey = tuple[str, CacheKey, tuple[str, ...]]


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0


class ExecutionHandler:
    """Compiles, caches and runs kernel programs on one backend."""

    def __init__(self, backend: Backend):
        self._backend = backend
        self._kernel_cache: dict[KernelCacheKey, CompiledKernel] = {}
        self._lock = threading.Lock()
        self._stats = CacheStats()
        self._initializers: set[int] = set()

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def cache_size(self) -> int:
        return len(self._kernel_cache)

    @property
    def cache_stats(self) -> CacheStats:
        return CacheStats(self._stats.hits, self._stats.misses)

    # ── tensors ──

    def tensor(self, data, dtype: str | None = None, initializer: bool = False) -> Tensor:
        """Upload host data as a Tensor; initializer marks it as a model constant."""
        t = Tensor.from_numpy(data, self._backend, dtype=dtype)
        if initializer:
            self.register_initializer(t)
        return t

    def register_initializer(self, tensor: Tensor) -> None:
        self._initializers.add(tensor.data_id)

    def is_initializer(self, tensor: Tensor) -> bool:
        return tensor.data_id in self._initializers

    def cast(self, tensor: Tensor, dtype: str) -> Tensor:
        """View tensor as dtype (the where condition is bound as bool)."""
        if tensor.dtype == dtype:
            return tensor
        buffer = self._backend.cast(tensor.buffer, to_numpy_dtype(dtype))
        return Tensor(tensor.dims, dtype, buffer)

    # ── kernels ──

    def _get_kernel(self, request: ProgramRequest, input_dtypes: tuple[str, ...]) -> CompiledKernel:
        key = (request.metadata.name, request.cache_hint, input_dtypes)
        with self._lock:
            kernel = self._kernel_cache.get(key)
            if kernel is not None:
                self._stats.hits += 1
                logger.debug("kernel cache hit: %s [%s]", request.metadata.name, request.cache_hint)
                return kernel

            self._stats.misses += 1
            program = request.get()
            if program.metadata != request.metadata:
                raise ValidationError(
                    f"Program factory for {request.metadata.name} returned a program for {program.name}"
                )
            # Compilation errors propagate and leave the cache untouched
            kernel = self._backend.compile(program, input_dtypes)
            self._kernel_cache[key] = kernel
            logger.info(
                "compiled %s kernel on %s: output %s %s",
                program.name, self._backend.name, list(program.output.dims), program.output.dtype,
            )
            return kernel

    def run(self, request: ProgramRequest, inputs: list[Tensor]) -> Tensor:
        """Compile (or reuse) the kernel for request and run it on inputs."""
        expected = len(request.metadata.input_names)
        if len(inputs) != expected:
            raise ValidationError(
                f"{request.metadata.name} binds {expected} inputs, got {len(inputs)}",
                context={"input_names": list(request.metadata.input_names)},
            )
        input_dtypes = tuple(t.dtype for t in inputs)
        kernel = self._get_kernel(request, input_dtypes)

        output = self._backend.allocate_empty(kernel.output_dims, np.dtype(to_numpy_dtype(kernel.output_dtype)))
        result = self._backend.execute(kernel, [t.buffer for t in inputs], output)
        return Tensor(kernel.output_dims, kernel.output_dtype, result)
