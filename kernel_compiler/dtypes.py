"""Element types supported by the kernel compiler.

Dtypes travel through the compiler as plain strings (e.g. "float16", "int32");
this module is the single source of truth for which names are valid and how
they map to numpy and to the C-like kernel languages.
"""

from __future__ import annotations

import ml_dtypes  # noqa: F401  registers bfloat16 with numpy
import numpy as np

from kernel_compiler.errors import ValidationError

DTYPE_MAP: dict[str, type] = {
    "bool": np.bool_,
    "int8": np.int8,
    "int16": np.int16,
    "int32": np.int32,
    "int64": np.int64,
    "uint8": np.uint8,
    "uint16": np.uint16,
    "uint32": np.uint32,
    "uint64": np.uint64,
    "float16": np.float16,
    "bfloat16": ml_dtypes.bfloat16,
    "float32": np.float32,
    "float64": np.float64,
}

INTEGER_TYPES = frozenset({
    "int8", "int16", "int32", "int64",
    "uint8", "uint16", "uint32", "uint64",
})

FLOAT_TYPES = frozenset({"float16", "bfloat16", "float32", "float64"})

# Types accepted by numeric ops (everything except bool)
NUMBER_TYPES = INTEGER_TYPES | FLOAT_TYPES

# Slice bound/axis/step tensors
INDEX_TYPES = frozenset({"int32", "int64"})

CUDA_TYPE_MAP = {
    "bool": "bool",
    "int8": "signed char",
    "int16": "short",
    "int32": "int",
    "int64": "long long",
    "uint8": "unsigned char",
    "uint16": "unsigned short",
    "uint32": "unsigned int",
    "uint64": "unsigned long long",
    "float16": "__half",
    "bfloat16": "__nv_bfloat16",
    "float32": "float",
    "float64": "double",
}

# Metal has no 64-bit float
METAL_TYPE_MAP = {
    "bool": "bool",
    "int8": "char",
    "int16": "short",
    "int32": "int",
    "int64": "long",
    "uint8": "uchar",
    "uint16": "ushort",
    "uint32": "uint",
    "uint64": "ulong",
    "float16": "half",
    "bfloat16": "bfloat",
    "float32": "float",
}


def check_dtype(dtype: str) -> str:
    if dtype not in DTYPE_MAP:
        raise ValidationError(f"Unsupported element type '{dtype}'", context={"supported": sorted(DTYPE_MAP)})
    return dtype


def to_numpy_dtype(dtype: str) -> np.dtype:
    return np.dtype(DTYPE_MAP[check_dtype(dtype)])


def dtype_name(dtype) -> str:
    """Map a numpy dtype (or anything np.dtype accepts) back to its name."""
    np_dtype = np.dtype(dtype)
    if np_dtype == np.dtype(ml_dtypes.bfloat16):
        return "bfloat16"
    name = np_dtype.name
    if name not in DTYPE_MAP:
        raise ValidationError(f"Unsupported numpy dtype '{name}'")
    return name
