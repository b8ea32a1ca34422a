"""Operator kernel generators and their entry points."""

from kernel_compiler.ops.argmax import argmax as argmax
from kernel_compiler.ops.expand import expand as expand
from kernel_compiler.ops.slice import SliceAttributes as SliceAttributes
from kernel_compiler.ops.slice import parse_slice_attributes as parse_slice_attributes
from kernel_compiler.ops.slice import slice as slice
from kernel_compiler.ops.slice import slice_v10 as slice_v10
from kernel_compiler.ops.where import where as where
