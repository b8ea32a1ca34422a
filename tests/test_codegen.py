"""Tests for CUDA / Metal kernel source generation (no device needed)."""

import pytest

from kernel_compiler.codegen import CUDA_TARGET, METAL_TARGET, kernel_symbol
from kernel_compiler.errors import KernelCompilationError
from kernel_compiler.ops.argmax import create_argmax_program
from kernel_compiler.ops.expand import create_expand_program
from kernel_compiler.ops.slice import create_slice_program
from kernel_compiler.ops.where import create_where_program
from kernel_compiler.target_config import TargetConfig


class TestKernelSymbol:
    def test_prefix_is_op_name(self):
        program = create_expand_program((1, 3), (2, 3), "float32")
        assert kernel_symbol(program, ("float32",)).startswith("expand_")

    def test_distinct_programs_distinct_symbols(self):
        a = create_expand_program((1, 3), (2, 3), "float32")
        b = create_expand_program((1, 3), (4, 3), "float32")
        assert kernel_symbol(a, ("float32",)) != kernel_symbol(b, ("float32",))

    def test_input_dtypes_change_symbol(self):
        program = create_where_program((4,), "float32")
        a = kernel_symbol(program, ("bool", "float32", "float32"))
        b = kernel_symbol(program, ("bool", "float32", "float16"))
        assert a != b

    def test_stable(self):
        a = create_slice_program((10,), "float32", (2,), (5,), (0,))
        b = create_slice_program((10,), "float32", (2,), (5,), (0,))
        assert kernel_symbol(a, ("float32",)) == kernel_symbol(b, ("float32",))


class TestCUDASource:
    def test_expand_source(self):
        program = create_expand_program((1, 3), (2, 3), "float16")
        src = CUDA_TARGET.render(program, ("float16",))
        code = src.source_code
        assert 'extern "C"' in code
        assert f"__global__ void {src.kernel_name}(" in code
        assert "const __half* in0" in code
        assert "const long long* in0_strides" in code
        assert "__half* out0" in code
        assert "idx[0] = 0;" in code
        assert "idx[1] = rem % 3;" in code
        assert src.input_dtypes == ("float16",)
        assert src.output_dtype == "float16"

    def test_slice_statements(self):
        program = create_slice_program((10,), "float32", (2,), (6,), (0,))
        code = CUDA_TARGET.render(program, ("float32",)).source_code
        assert "idx[0] += 2;" in code

        program = create_slice_program((5,), "float32", (0,), (5,), (0,), reverse=True)
        code = CUDA_TARGET.render(program, ("float32",)).source_code
        assert "idx[0] = 5 - idx[0] - 1;" in code

    def test_where_select(self):
        program = create_where_program((4,), "float32")
        code = CUDA_TARGET.render(program, ("bool", "float32", "float32")).source_code
        assert "const bool* in0" in code
        assert "((float)(in0[off0]) > 0.0f) ? (float)(in1[off1]) : (float)(in2[off2])" in code

    def test_scalar_output(self):
        program = create_argmax_program("int64")
        code = CUDA_TARGET.render(program, ("int64",)).source_code
        assert "idx[0] = 0;" in code
        assert "long long* out0" in code

    def test_dtype_count_mismatch(self):
        program = create_where_program((4,), "float32")
        with pytest.raises(KernelCompilationError, match="2 input dtypes for 3 inputs"):
            CUDA_TARGET.render(program, ("bool", "float32"))

    def test_rank_over_limit(self):
        program = create_expand_program((1,), (1,) * 7, "float32")
        with pytest.raises(KernelCompilationError, match="exceeds max_ndim"):
            CUDA_TARGET.render(program, ("float32",))

    def test_custom_max_ndim(self):
        from kernel_compiler.codegen import CUDACodegenTarget

        target = CUDACodegenTarget(TargetConfig(name="cuda", max_ndim=2))
        program = create_expand_program((1,), (2, 2, 2), "float32")
        with pytest.raises(KernelCompilationError):
            target.render(program, ("float32",))


class TestMetalSource:
    def test_buffer_binding_order(self):
        program = create_where_program((4,), "float16")
        code = METAL_TARGET.render(program, ("bool", "float16", "float16")).source_code
        assert "#include <metal_stdlib>" in code
        assert "device const bool* in0 [[buffer(0)]]" in code
        assert "constant long* in0_strides [[buffer(1)]]" in code
        assert "constant int& in0_ndim [[buffer(2)]]" in code
        assert "device const half* in1 [[buffer(3)]]" in code
        assert "device half* out0 [[buffer(9)]]" in code
        assert "constant long& N [[buffer(10)]]" in code
        assert "uint gid [[thread_position_in_grid]]" in code

    def test_index_type(self):
        program = create_expand_program((3,), (2, 3), "float32")
        code = METAL_TARGET.render(program, ("float32",)).source_code
        assert "long tid = (long)gid;" in code
        assert "long long" not in code

    def test_float64_unsupported(self):
        program = create_expand_program((3,), (3,), "float64")
        with pytest.raises(KernelCompilationError, match="Metal target has no type for 'float64'"):
            METAL_TARGET.render(program, ("float64",))
