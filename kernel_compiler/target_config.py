"""Hardware target configuration for kernel backends."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TargetConfig:
    """Hardware-specific constants for a target backend."""
    name: str = "reference"
    block_size: int = 256  # threads per block / threadgroup for 1D dispatch
    # Generated kernels receive input strides in fixed-size arrays, so every
    # input and output has at most this many dims.
    max_ndim: int = 6


REFERENCE = TargetConfig()
CUDA_GPU = TargetConfig(name="cuda")
METAL_GPU = TargetConfig(name="metal_gpu")
