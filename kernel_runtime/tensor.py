"""Tensor: immutable-shape handle to device-resident data."""

from __future__ import annotations

import itertools

import numpy as np

from kernel_compiler.dtypes import INTEGER_TYPES, check_dtype, dtype_name, to_numpy_dtype
from kernel_compiler.errors import ValidationError
from kernel_compiler.shape_util import check_dims, size
from kernel_runtime.backend import DeviceBuffer

_data_ids = itertools.count(1)


class Tensor:
    """An N-d array on a device.

    dims and dtype are fixed at construction. Shape changes always produce a
    new Tensor; the buffer is never resized in place. Integer tensors used as
    shapes or slice bounds expose a cached host copy through integer_data.
    """

    __slots__ = ("_dims", "_dtype", "_buffer", "_data_id", "_integer_data")

    def __init__(self, dims, dtype: str, buffer: DeviceBuffer, data_id: int | None = None):
        dims = check_dims(dims)
        check_dtype(dtype)
        if size(dims) != buffer.size:
            raise ValidationError(
                "Tensor dims do not match buffer capacity",
                context={"dims": list(dims), "buffer_elements": buffer.size},
            )
        self._dims = dims
        self._dtype = dtype
        self._buffer = buffer
        self._data_id = data_id if data_id is not None else next(_data_ids)
        self._integer_data: tuple[int, ...] | None = None

    @classmethod
    def from_numpy(cls, data, backend, dtype: str | None = None) -> Tensor:
        """Upload a host array through backend and wrap it."""
        array = np.asarray(data)
        if dtype is not None:
            array = array.astype(to_numpy_dtype(dtype))
        name = dtype_name(array.dtype)
        return cls(array.shape, name, backend.allocate_buffer(array))

    @property
    def dims(self) -> tuple[int, ...]:
        return self._dims

    @property
    def rank(self) -> int:
        return len(self._dims)

    @property
    def size(self) -> int:
        return size(self._dims)

    @property
    def dtype(self) -> str:
        return self._dtype

    @property
    def buffer(self) -> DeviceBuffer:
        return self._buffer

    @property
    def data_id(self) -> int:
        return self._data_id

    @property
    def integer_data(self) -> tuple[int, ...]:
        """Flattened values of an integer tensor, read back to the host once."""
        if self._dtype not in INTEGER_TYPES:
            raise ValidationError(f"integer_data requested on a {self._dtype} tensor")
        if self._integer_data is None:
            self._integer_data = tuple(int(v) for v in self.to_numpy().ravel())
        return self._integer_data

    def to_numpy(self) -> np.ndarray:
        return np.asarray(self._buffer.to_numpy()).reshape(self._dims)

    def __repr__(self) -> str:
        return f"Tensor(dims={list(self._dims)}, dtype={self._dtype}, data_id={self._data_id})"
