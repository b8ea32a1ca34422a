"""Tests for the operator table and dispatch through Operator members."""

import numpy as np
import numpy.testing as npt
import pytest

from kernel_compiler import get_supported_ops, is_op_supported
from kernel_compiler.errors import UnsupportedFeatureError, ValidationError
from kernel_compiler.operators import Operator
from kernel_compiler.ops.slice import SliceAttributes
from tests.helpers import int_tensor


class TestOpSupport:
    def test_supported_ops(self):
        assert get_supported_ops() == frozenset({"Expand", "Slice", "Where", "ArgMax"})

    def test_get_supported_ops_returns_frozenset(self):
        assert isinstance(get_supported_ops(), frozenset)

    def test_known_unsupported_ops(self):
        assert not is_op_supported("Gather")
        assert not is_op_supported("Concat")
        assert not is_op_supported("expand")

    def test_callback_interface_accepts_attrs(self):
        assert is_op_supported("Slice", {"starts": [0], "ends": [1]})
        assert not is_op_supported("Tile", {})


class TestFromOpType:
    @pytest.mark.parametrize(
        "op_type, opset, expected",
        [
            ("Expand", 13, Operator.EXPAND),
            ("Where", 9, Operator.WHERE),
            ("ArgMax", 11, Operator.ARGMAX),
            ("Slice", 1, Operator.SLICE),
            ("Slice", 9, Operator.SLICE),
            ("Slice", 10, Operator.SLICE_V10),
            ("Slice", 13, Operator.SLICE_V10),
        ],
    )
    def test_resolution(self, op_type, opset, expected):
        assert Operator.from_op_type(op_type, opset) is expected

    def test_default_opset_picks_newest(self):
        assert Operator.from_op_type("Slice") is Operator.SLICE_V10

    def test_unknown_op(self):
        with pytest.raises(UnsupportedFeatureError) as exc_info:
            Operator.from_op_type("Gather")
        assert exc_info.value.feature == "operator"

    def test_op_before_introduction(self):
        with pytest.raises(UnsupportedFeatureError):
            Operator.from_op_type("Where", opset=8)

    def test_op_type_property(self):
        assert Operator.SLICE_V10.op_type == "Slice"


class TestRun:
    def test_expand(self, handler):
        x = handler.tensor(np.array([1.0, 2.0], dtype=np.float32))
        (out,) = Operator.EXPAND.run(handler, [x, int_tensor(handler, [3, 2])])
        npt.assert_array_equal(out.to_numpy(), [[1, 2]] * 3)

    def test_slice_with_dict_attributes(self, handler):
        x = handler.tensor(np.arange(6, dtype=np.float32).reshape(2, 3))
        (out,) = Operator.SLICE.run(handler, [x], {"starts": [1], "ends": [3], "axes": [1]})
        npt.assert_array_equal(out.to_numpy(), [[1, 2], [4, 5]])

    def test_slice_with_attribute_object(self, handler):
        x = handler.tensor(np.arange(4, dtype=np.int32))
        attrs = SliceAttributes(starts=(1,), ends=(3,))
        (out,) = Operator.SLICE.run(handler, [x], attrs)
        npt.assert_array_equal(out.to_numpy(), [1, 2])

    def test_slice_requires_attributes(self, handler):
        x = handler.tensor(np.arange(4, dtype=np.int32))
        with pytest.raises(ValidationError, match="requires node attributes"):
            Operator.SLICE.run(handler, [x])

    def test_slice_v10(self, handler):
        x = handler.tensor(np.arange(5, dtype=np.float32))
        (out,) = Operator.SLICE_V10.run(
            handler, [x, int_tensor(handler, [1]), int_tensor(handler, [4])]
        )
        npt.assert_array_equal(out.to_numpy(), [1, 2, 3])

    def test_where(self, handler):
        c = handler.tensor(np.array([0, 1], dtype=np.int32))
        x = handler.tensor(np.array([5, 6], dtype=np.int32))
        y = handler.tensor(np.array([7, 8], dtype=np.int32))
        (out,) = Operator.WHERE.run(handler, [c, x, y])
        npt.assert_array_equal(out.to_numpy(), [7, 6])

    def test_argmax(self, handler):
        x = handler.tensor(np.array([3.0], dtype=np.float32))
        (out,) = Operator.ARGMAX.run(handler, [x, int_tensor(handler, [])])
        assert out.dims == ()
