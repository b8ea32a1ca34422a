"""Shared helpers for kernel compiler/runtime tests."""

import numpy as np

from kernel_compiler.program import ProgramRequest


def int_tensor(handler, values, initializer=True, dtype="int32"):
    """1-D integer tensor (shape/starts/ends/axes/steps operand)."""
    return handler.tensor(np.asarray(values, dtype=np.int64).reshape(-1), dtype=dtype, initializer=initializer)


class CountingFactory:
    """Wraps a program factory and counts how often the handler calls it."""

    def __init__(self, build):
        self._build = build
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self._build()


def counting_request(metadata, cache_hint, build):
    factory = CountingFactory(build)
    return ProgramRequest(metadata=metadata, cache_hint=cache_hint, get=factory), factory
