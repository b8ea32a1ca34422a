"""Tests for the numpy reference backend and program interpreter."""

import numpy as np
import numpy.testing as npt
import pytest

from kernel_compiler.errors import KernelCompilationError, KernelExecutionError, ValidationError
from kernel_compiler.ops.expand import create_expand_program
from kernel_compiler.ops.slice import create_slice_program
from kernel_compiler.program import (
    AccessMode,
    KernelBody,
    KernelProgram,
    OffsetIndex,
    OutputInfo,
    ProgramMetadata,
    Read,
)
from kernel_compiler.target_config import TargetConfig
from kernel_runtime import ReferenceBackend
from kernel_runtime.reference_backend import evaluate_program

ONE_INPUT = ProgramMetadata("Probe", ("A",), (AccessMode.INDEXED,))


class TestEvaluateProgram:
    def test_trailing_axis_alignment(self):
        program = KernelProgram(ONE_INPUT, OutputInfo((2, 3), "float32"), KernelBody((), Read("A")))
        out = evaluate_program(program, [np.array([1, 2, 3], dtype=np.float32)])
        npt.assert_array_equal(out, [[1, 2, 3], [1, 2, 3]])

    def test_out_of_bounds_read(self):
        program = KernelProgram(
            ONE_INPUT, OutputInfo((3,), "float32"), KernelBody((OffsetIndex(0, 2),), Read("A"))
        )
        with pytest.raises(KernelExecutionError, match="out of bounds"):
            evaluate_program(program, [np.zeros(3, dtype=np.float32)])

    def test_output_dtype_conversion(self):
        program = KernelProgram(ONE_INPUT, OutputInfo((2,), "float16"), KernelBody((), Read("A")))
        out = evaluate_program(program, [np.array([1, 2], dtype=np.int32)])
        assert out.dtype == np.float16

    def test_empty_output(self):
        program = create_slice_program((4,), "float32", (3,), (1,), (0,))
        out = evaluate_program(program, [np.zeros(4, dtype=np.float32)])
        assert out.shape == (0,)


class TestProgramValidation:
    def test_statement_axis_outside_rank(self):
        with pytest.raises(ValidationError, match="outside output rank"):
            KernelProgram(ONE_INPUT, OutputInfo((3,), "float32"), KernelBody((OffsetIndex(1, 1),), Read("A")))

    def test_undeclared_input(self):
        with pytest.raises(ValidationError, match="undeclared input 'B'"):
            KernelProgram(ONE_INPUT, OutputInfo((3,), "float32"), KernelBody((), Read("B")))

    def test_metadata_lengths(self):
        with pytest.raises(ValidationError):
            ProgramMetadata("Bad", ("A", "B"), (AccessMode.INDEXED,))


class TestReferenceBackend:
    def test_name(self, backend):
        assert backend.name == "reference"

    def test_allocate_copies(self, backend):
        data = np.ones(3, dtype=np.float32)
        buf = backend.allocate_buffer(data)
        data[0] = 5
        npt.assert_array_equal(buf.to_numpy(), [1, 1, 1])
        assert buf.size_bytes == 12

    def test_compile_and_execute(self, backend):
        program = create_expand_program((3,), (2, 3), "int32")
        kernel = backend.compile(program, ("int32",))
        assert kernel.output_dims == (2, 3)
        out = backend.allocate_empty((2, 3), np.dtype(np.int32))
        result = backend.execute(kernel, [backend.allocate_buffer(np.array([4, 5, 6], dtype=np.int32))], out)
        npt.assert_array_equal(result.to_numpy(), [[4, 5, 6], [4, 5, 6]])

    def test_compile_rank_limit(self):
        backend = ReferenceBackend(TargetConfig(max_ndim=2))
        with pytest.raises(KernelCompilationError, match="exceeds max_ndim"):
            backend.compile(create_expand_program((1,), (1, 1, 1), "float32"), ("float32",))

    def test_compile_dtype_count(self, backend):
        with pytest.raises(KernelCompilationError):
            backend.compile(create_expand_program((1,), (2,), "float32"), ())

    def test_execute_dtype_mismatch(self, backend):
        kernel = backend.compile(create_expand_program((1,), (2,), "float32"), ("float32",))
        out = backend.allocate_empty((2,), np.dtype(np.float32))
        with pytest.raises(KernelExecutionError, match="compiled for"):
            backend.execute(kernel, [backend.allocate_buffer(np.zeros(1, dtype=np.float16))], out)

    def test_execute_output_shape_mismatch(self, backend):
        kernel = backend.compile(create_expand_program((1,), (2,), "float32"), ("float32",))
        out = backend.allocate_empty((3,), np.dtype(np.float32))
        with pytest.raises(KernelExecutionError, match="does not match"):
            backend.execute(kernel, [backend.allocate_buffer(np.zeros(1, dtype=np.float32))], out)

    def test_cast(self, backend):
        buf = backend.cast(backend.allocate_buffer(np.array([0, 3], dtype=np.int64)), np.dtype(np.bool_))
        npt.assert_array_equal(buf.to_numpy(), [False, True])
