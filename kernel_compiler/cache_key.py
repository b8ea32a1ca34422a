"""Structured cache keys for compiled kernels.

A key is a sorted tuple of (field, value) pairs. Values are normalized to
hashable primitives (ints, strings, bools, nested tuples) so two keys compare
equal only when every field matches structurally; there is no string
formatting step that could make [1, 23] and [12, 3] collide.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any

import numpy as np


def _normalize(value: Any) -> Any:
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, np.ndarray):
        return tuple(_normalize(v) for v in value.tolist())
    if isinstance(value, (list, tuple)):
        return tuple(_normalize(v) for v in value)
    raise TypeError(f"Cannot use {type(value).__name__} in a kernel cache key")


@dataclass(frozen=True)
class CacheKey:
    """Hashable fingerprint of the shape/attribute state of one kernel."""

    fields: tuple[tuple[str, Any], ...]

    def get(self, name: str, default=None):
        for key, value in self.fields:
            if key == name:
                return value
        return default

    def __str__(self) -> str:
        return ";".join(f"{k}={v}" for k, v in self.fields)


def make_cache_key(**attrs) -> CacheKey:
    """Build a CacheKey from keyword fields; argument order is irrelevant."""
    return CacheKey(tuple(sorted((name, _normalize(value)) for name, value in attrs.items())))


class AttributeWithCacheKey:
    """Mixin for frozen attribute dataclasses: the key is derived from all fields."""

    @property
    def cache_key(self) -> CacheKey:
        return make_cache_key(**{f.name: getattr(self, f.name) for f in fields(self)})
