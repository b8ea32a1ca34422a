"""Error hierarchy for operator validation, kernel compilation and dispatch.

- ValidationError: malformed request (wrong arity, dtype, rank). A model or
  caller bug; retrying with the same inputs fails again.
- UnsupportedFeatureError: well-formed request outside the supported subset
  (non-unit slice steps, per-axis argmax). Callers may report it as
  "not implemented" rather than "malformed model".
- KernelCompilationError / KernelExecutionError: failures in the device layer.
  Fatal to the current run and never cached.
"""

from __future__ import annotations


class KernelError(Exception):
    """Base class for all errors raised by the compiler and runtime."""

    def __init__(self, message: str, context: dict | None = None):
        self.message = message
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class ValidationError(KernelError):
    """Invalid operator inputs or attributes."""


class UnsupportedFeatureError(KernelError):
    """Request is valid but outside what this implementation supports."""

    def __init__(self, message: str, feature: str, context: dict | None = None):
        self.feature = feature
        super().__init__(message, context)


class KernelCompilationError(KernelError):
    """Device compiler rejected a kernel program."""


class KernelExecutionError(KernelError):
    """Kernel dispatch failed on the device."""
