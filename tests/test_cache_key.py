"""Tests for structured kernel cache keys."""

import numpy as np
import pytest

from kernel_compiler.cache_key import CacheKey, make_cache_key
from kernel_compiler.ops.slice import SliceAttributes


class TestMakeCacheKey:
    def test_field_order_does_not_matter(self):
        a = make_cache_key(starts=[1, 2], axes=[0, 1])
        b = make_cache_key(axes=[0, 1], starts=[1, 2])
        assert a == b
        assert hash(a) == hash(b)

    def test_no_concatenation_collisions(self):
        """[1, 23] and [12, 3] print alike when joined; keys must still differ."""
        assert make_cache_key(dims=[1, 23]) != make_cache_key(dims=[12, 3])
        assert make_cache_key(a=[1], b=[23]) != make_cache_key(a=[12], b=[3])

    def test_lists_tuples_and_arrays_normalize_alike(self):
        a = make_cache_key(dims=[3, 4])
        b = make_cache_key(dims=(3, 4))
        c = make_cache_key(dims=np.array([3, 4], dtype=np.int64))
        assert a == b == c

    def test_numpy_scalars_become_ints(self):
        key = make_cache_key(axis=np.int32(2))
        assert key.get("axis") == 2
        assert type(key.get("axis")) is int

    def test_none_differs_from_empty(self):
        assert make_cache_key(ends=None) != make_cache_key(ends=())

    def test_rejects_unhashable_values(self):
        with pytest.raises(TypeError):
            make_cache_key(attrs={"a": 1})

    def test_get_default(self):
        key = make_cache_key(x=1)
        assert key.get("missing", 5) == 5

    def test_str_is_readable(self):
        assert str(make_cache_key(b=[1, 2], a=3)) == "a=3;b=(1, 2)"

    def test_is_cachekey(self):
        assert isinstance(make_cache_key(), CacheKey)
        assert make_cache_key().fields == ()


class TestAttributeWithCacheKey:
    def test_key_derived_from_all_fields(self):
        attrs = SliceAttributes(starts=(1,), ends=(5,), axes=(0,), reverse=False)
        key = attrs.cache_key
        assert key.get("starts") == (1,)
        assert key.get("ends") == (5,)
        assert key.get("axes") == (0,)
        assert key.get("reverse") is False

    def test_equal_attributes_equal_keys(self):
        a = SliceAttributes(starts=(1,), ends=(5,))
        b = SliceAttributes(starts=(1,), ends=(5,))
        assert a.cache_key == b.cache_key

    def test_dynamic_ends_differs_from_static(self):
        a = SliceAttributes(starts=(1,), ends=None)
        b = SliceAttributes(starts=(1,), ends=(5,))
        assert a.cache_key != b.cache_key
