"""Kernel compiler: operator semantics -> per-element kernel programs.

Entry points take an execution handler (kernel_runtime.ExecutionHandler) and
input tensors; everything else in this package is pure and device-free.
"""

from kernel_compiler.cache_key import CacheKey as CacheKey
from kernel_compiler.cache_key import make_cache_key as make_cache_key
from kernel_compiler.codegen import CUDA_TARGET as CUDA_TARGET
from kernel_compiler.codegen import METAL_TARGET as METAL_TARGET
from kernel_compiler.codegen import KernelSource as KernelSource
from kernel_compiler.errors import KernelCompilationError as KernelCompilationError
from kernel_compiler.errors import KernelError as KernelError
from kernel_compiler.errors import KernelExecutionError as KernelExecutionError
from kernel_compiler.errors import UnsupportedFeatureError as UnsupportedFeatureError
from kernel_compiler.errors import ValidationError as ValidationError
from kernel_compiler.operators import Operator as Operator
from kernel_compiler.operators import get_supported_ops as get_supported_ops
from kernel_compiler.operators import is_op_supported as is_op_supported
from kernel_compiler.program import KernelProgram as KernelProgram
from kernel_compiler.program import ProgramMetadata as ProgramMetadata
from kernel_compiler.program import ProgramRequest as ProgramRequest
from kernel_compiler.target_config import TargetConfig as TargetConfig
