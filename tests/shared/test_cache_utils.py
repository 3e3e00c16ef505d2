"""Tests for cache utility functions.

This module tests the query key normalization utilities used to build
cache keys from operation names and query inputs.

Test Coverage:
    - Parameter normalization (canonical_params)
    - Input fingerprints (fingerprint)
    - Cache key generation (generate_cache_key)
    - Parameter order independence
"""

from enum import Enum

import pytest

from civicsync.shared.cache_utils import canonical_params, fingerprint, generate_cache_key


class Color(str, Enum):
    RED = "RED"


class TestCanonicalParams:
    """Test parameter normalization function."""

    def test_empty_params(self) -> None:
        """Test with None and empty dict."""
        assert canonical_params(None) == {}
        assert canonical_params({}) == {}

    def test_remove_none_values(self) -> None:
        """Test removal of None values."""
        result = canonical_params({"status": "ACTIVE", "query": None, "limit": 20})
        assert result == {"limit": 20, "status": "ACTIVE"}

    def test_remove_empty_string_values(self) -> None:
        """Test removal of empty string values."""
        result = canonical_params({"query": "", "limit": 20})
        assert result == {"limit": 20}

    def test_keys_sorted(self) -> None:
        """Test that keys come out in sorted order."""
        result = canonical_params({"state": "IL", "city": "Springfield", "limit": 5})
        assert list(result) == ["city", "limit", "state"]

    def test_string_case_preserved(self) -> None:
        """Test that ids and search text keep their case."""
        result = canonical_params({"query": "Main Street", "id": "AbC"})
        assert result == {"id": "AbC", "query": "Main Street"}

    def test_enum_values_replaced(self) -> None:
        """Test that enum members become their values."""
        assert canonical_params({"color": Color.RED}) == {"color": "RED"}

    def test_nested_dicts_normalized(self) -> None:
        """Test recursive normalization of nested dicts and sequences."""
        result = canonical_params({"bounds": {"north": 1.0, "east": None}, "tags": ("a", "b")})
        assert result == {"bounds": {"north": 1.0}, "tags": ["a", "b"]}

    def test_falsy_non_empty_values_kept(self) -> None:
        """Test that zero and False survive normalization."""
        assert canonical_params({"offset": 0, "mine": False}) == {"mine": False, "offset": 0}


class TestFingerprint:
    """Test canonical JSON fingerprints."""

    def test_empty_fingerprint(self) -> None:
        assert fingerprint(None) == ""
        assert fingerprint({"query": None}) == ""

    def test_fingerprint_is_compact_sorted_json(self) -> None:
        assert fingerprint({"query": "park", "limit": 20}) == '{"limit":20,"query":"park"}'


class TestGenerateCacheKey:
    """Test cache key generation function."""

    def test_key_without_params(self) -> None:
        """Test cache key generation without parameters."""
        key, key_hash = generate_cache_key("campaigns.getMyCampaigns")
        assert key == "campaigns.getMyCampaigns"
        assert len(key_hash) == 64

    def test_key_with_params(self) -> None:
        key, _ = generate_cache_key("campaigns.search", {"query": "park", "limit": 20})
        assert key == 'campaigns.search:{"limit":20,"query":"park"}'

    def test_order_independence(self) -> None:
        """Test that parameter order does not affect the key."""
        key1, hash1 = generate_cache_key("campaigns.search", {"a": 1, "b": 2})
        key2, hash2 = generate_cache_key("campaigns.search", {"b": 2, "a": 1})
        assert key1 == key2
        assert hash1 == hash2

    def test_different_operations_differ(self) -> None:
        _, hash1 = generate_cache_key("campaigns.search", {"limit": 20})
        _, hash2 = generate_cache_key("campaigns.getMyCampaigns", {"limit": 20})
        assert hash1 != hash2

    @pytest.mark.parametrize("operation", ["", None])
    def test_empty_operation_rejected(self, operation: str) -> None:
        """Test that an empty operation name raises ValueError."""
        with pytest.raises(ValueError, match="operation cannot be empty"):
            generate_cache_key(operation)
