"""Shared fixtures for kernel compiler/runtime tests."""

import pytest

from kernel_runtime import ExecutionHandler, ReferenceBackend


@pytest.fixture
def backend():
    """Fresh numpy reference backend."""
    return ReferenceBackend()


@pytest.fixture
def handler(backend):
    """Handler with an empty kernel cache."""
    return ExecutionHandler(backend)
