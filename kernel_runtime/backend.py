"""Abstract device interfaces for the kernel runtime.

The execution handler talks to the device only through these ABCs:
allocate, compile, execute and cast. Backends differ in what a buffer and a
compiled kernel actually are (cupy.ndarray + RawKernel, MTLBuffer + pipeline,
or numpy array + reference interpreter).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import numpy as np

from kernel_compiler.program import KernelProgram


class DeviceBuffer(ABC):
    """Abstract GPU buffer with numpy interop."""

    @property
    @abstractmethod
    def shape(self) -> tuple[int, ...]:
        ...

    @property
    @abstractmethod
    def dtype(self) -> np.dtype:
        ...

    @property
    def size(self) -> int:
        """Element capacity of the allocation."""
        return int(np.prod(self.shape, dtype=np.int64))

    @property
    def size_bytes(self) -> int:
        return self.size * self.dtype.itemsize

    @property
    @abstractmethod
    def native_handle(self) -> Any:
        """Backend-native buffer object (e.g. cupy.ndarray, MTLBuffer)."""
        ...

    @abstractmethod
    def to_numpy(self) -> np.ndarray:
        ...


class CompiledKernel(ABC):
    """An executable kernel for one KernelProgram and one set of input dtypes."""

    def __init__(self, program: KernelProgram, input_dtypes: tuple[str, ...]):
        self._program = program
        self._input_dtypes = tuple(input_dtypes)

    @property
    def program(self) -> KernelProgram:
        return self._program

    @property
    def name(self) -> str:
        return self._program.name

    @property
    def input_dtypes(self) -> tuple[str, ...]:
        return self._input_dtypes

    @property
    def output_dims(self) -> tuple[int, ...]:
        return self._program.output.dims

    @property
    def output_dtype(self) -> str:
        return self._program.output.dtype


class Backend(ABC):
    """Abstract kernel execution backend."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def allocate_buffer(self, data: np.ndarray) -> DeviceBuffer:
        ...

    @abstractmethod
    def allocate_empty(self, shape: tuple[int, ...], dtype: np.dtype) -> DeviceBuffer:
        ...

    @abstractmethod
    def compile(self, program: KernelProgram, input_dtypes: tuple[str, ...]) -> CompiledKernel:
        """Compile a program for inputs of the given dtypes.

        Raises KernelCompilationError if the device rejects the program.
        """
        ...

    @abstractmethod
    def execute(self, kernel: CompiledKernel, inputs: list[DeviceBuffer], output: DeviceBuffer) -> DeviceBuffer:
        """Run the kernel over every element of output and return it."""
        ...

    @abstractmethod
    def cast(self, buffer: DeviceBuffer, dtype: np.dtype) -> DeviceBuffer:
        """Return a buffer holding the same elements converted to dtype."""
        ...

    @abstractmethod
    def synchronize(self):
        ...
