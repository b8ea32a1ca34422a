"""The closed set of operators this compiler can run.

Each Operator member carries its ONNX op type, the first opset it applies to
and its entry point. The graph layer resolves a node to a member once, at
load time, with Operator.from_op_type(); from then on dispatch is a plain
attribute lookup rather than a string registry search.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

from kernel_compiler.errors import UnsupportedFeatureError, ValidationError
from kernel_compiler.ops import argmax, expand, parse_slice_attributes, slice, slice_v10, where
from kernel_compiler.ops.slice import SliceAttributes

if TYPE_CHECKING:
    from kernel_runtime.handler import ExecutionHandler
    from kernel_runtime.tensor import Tensor


@dataclass(frozen=True)
class OperatorDef:
    op_type: str
    since_opset: int
    entry: Callable
    takes_attributes: bool = False


class Operator(Enum):
    EXPAND = OperatorDef("Expand", 8, expand)
    SLICE = OperatorDef("Slice", 1, slice, takes_attributes=True)
    SLICE_V10 = OperatorDef("Slice", 10, slice_v10)
    WHERE = OperatorDef("Where", 9, where)
    ARGMAX = OperatorDef("ArgMax", 1, argmax)

    @property
    def op_type(self) -> str:
        return self.value.op_type

    @classmethod
    def from_op_type(cls, op_type: str, opset: int = 13) -> Operator:
        """Pick the newest member for op_type that applies at this opset."""
        candidates = [
            op for op in cls if op.value.op_type == op_type and op.value.since_opset <= opset
        ]
        if not candidates:
            raise UnsupportedFeatureError(
                f"Operator {op_type} (opset {opset}) is not supported",
                feature="operator",
                context={"supported": sorted(get_supported_ops())},
            )
        return max(candidates, key=lambda op: op.value.since_opset)

    def run(
        self,
        handler: ExecutionHandler,
        inputs: list[Tensor],
        attributes: SliceAttributes | dict | None = None,
    ) -> list[Tensor]:
        if not self.value.takes_attributes:
            return self.value.entry(handler, inputs)
        if attributes is None:
            raise ValidationError(f"{self.op_type} requires node attributes")
        if isinstance(attributes, dict):
            attributes = parse_slice_attributes(attributes)
        return self.value.entry(handler, inputs, attributes)


def is_op_supported(op_type: str, _attrs: dict | None = None) -> bool:
    return op_type in get_supported_ops()


def get_supported_ops() -> frozenset[str]:
    return frozenset(op.value.op_type for op in Operator)
