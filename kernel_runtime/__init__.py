import os

from kernel_runtime.backend import Backend, CompiledKernel, DeviceBuffer
from kernel_runtime.handler import CacheStats, ExecutionHandler
from kernel_runtime.reference_backend import HostBuffer, ReferenceBackend
from kernel_runtime.tensor import Tensor

__all__ = [
    "Backend",
    "CacheStats",
    "CompiledKernel",
    "DeviceBuffer",
    "ExecutionHandler",
    "HostBuffer",
    "ReferenceBackend",
    "Tensor",
    "create_backend",
]

try:
    from kernel_runtime.cuda_backend import HAS_CUPY, CUDABackend, CUDABuffer

    __all__ += ["CUDABackend", "CUDABuffer"]
except ImportError:
    HAS_CUPY = False

try:
    from kernel_runtime.metal_backend import MetalBackend, MetalBuffer

    HAS_METAL = True
    __all__ += ["MetalBackend", "MetalBuffer"]
except ImportError:
    HAS_METAL = False

BACKEND_ENV_VAR = "KERNEL_RUNTIME_BACKEND"


def create_backend(name: str | None = None) -> Backend:
    """Create a backend by name ("reference", "cuda", "metal").

    Falls back to $KERNEL_RUNTIME_BACKEND, then "reference".
    """
    name = (name or os.environ.get(BACKEND_ENV_VAR) or "reference").lower()
    if name == "reference":
        return ReferenceBackend()
    if name == "cuda":
        if not HAS_CUPY:
            raise RuntimeError("CUDA backend requested but CuPy is not installed")
        return CUDABackend()
    if name == "metal":
        if not HAS_METAL:
            raise RuntimeError("Metal backend requested but pyobjc-framework-Metal is not installed")
        return MetalBackend()
    raise ValueError(f"Unknown backend '{name}'. Choose from: reference, cuda, metal")
