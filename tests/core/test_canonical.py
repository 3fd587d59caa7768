# tests/core/test_canonical.py
"""Tests for canonical JSON serialization and seed derivation."""

import math

import pytest

from tessera.contracts.enums import ValueKind
from tessera.core.canonical import _normalize_value, canonical_json, derive_seed, stable_hash


class TestNormalizeValue:
    """Test _normalize_value handles Python primitives."""

    def test_primitives_pass_through(self) -> None:
        assert _normalize_value("hello") == "hello"
        assert _normalize_value(42) == 42
        assert _normalize_value(None) is None
        assert _normalize_value(True) is True

    def test_enum_becomes_value(self) -> None:
        assert _normalize_value(ValueKind.ROW_STREAM) == "row_stream"

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf])
    def test_non_finite_floats_rejected(self, value: float) -> None:
        with pytest.raises(ValueError, match="non-finite"):
            _normalize_value(value)


class TestCanonicalJson:
    def test_keys_are_sorted_without_whitespace(self) -> None:
        assert canonical_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'

    def test_tuples_serialize_as_lists(self) -> None:
        assert canonical_json({"k": (1, 2)}) == canonical_json({"k": [1, 2]})

    def test_nested_nan_rejected(self) -> None:
        with pytest.raises(ValueError):
            canonical_json({"metrics": [1.0, math.nan]})


class TestStableHash:
    def test_key_order_does_not_matter(self) -> None:
        assert stable_hash({"a": 1, "b": 2}) == stable_hash({"b": 2, "a": 1})

    def test_different_values_differ(self) -> None:
        assert stable_hash({"a": 1}) != stable_hash({"a": 2})

    def test_is_sha256_hex(self) -> None:
        digest = stable_hash([1, 2, 3])

        assert len(digest) == 64
        int(digest, 16)


class TestDeriveSeed:
    def test_deterministic(self) -> None:
        assert derive_seed(42, ("cv", "folds")) == derive_seed(42, ("cv", "folds"))

    def test_scope_changes_seed(self) -> None:
        assert derive_seed(42, ("cv", "folds")) != derive_seed(42, ("cv", "other"))

    def test_base_seed_changes_seed(self) -> None:
        assert derive_seed(1, ("cv",)) != derive_seed(2, ("cv",))

    def test_fits_in_64_bits(self) -> None:
        assert 0 <= derive_seed(7, ()) < 2**64
