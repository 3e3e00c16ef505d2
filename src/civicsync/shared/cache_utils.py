"""Cache utility functions for query key normalization.

This module provides utilities for generating consistent cache keys from query
operation names and their input parameters. Identical queries produce identical
keys regardless of parameter order.

Key Features:
    - Parameter normalization (sorted, None/empty removal, nested dicts)
    - orjson canonical encoding for the input fingerprint
    - SHA-256 hash generation for compact key comparison

Example:
    >>> from civicsync.shared.cache_utils import generate_cache_key
    >>> key, digest = generate_cache_key("campaigns.search", {"query": "park", "limit": 20})
    >>> print(key)
    'campaigns.search:{"limit":20,"query":"park"}'
"""

from __future__ import annotations

import hashlib
from enum import Enum
from typing import Any

import orjson


def _normalize_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return canonical_params(value)
    if isinstance(value, (list, tuple)):
        return [_normalize_value(v) for v in value]
    return value


def canonical_params(params: dict[str, Any] | None) -> dict[str, Any]:
    """Normalize parameters for consistent cache key generation.

    Normalization rules:
        1. Remove None and empty string values
        2. Enum members are replaced by their values
        3. Nested dicts are normalized recursively, sequences become lists
        4. Keys are sorted (insertion order follows sorted keys)

    String values keep their case; campaign ids and search text are
    case sensitive.

    Args:
        params: Query input dictionary. Can be None.

    Returns:
        Normalized parameters dictionary. Returns empty dict if params is None.

    Example:
        >>> canonical_params({"status": "ACTIVE", "query": None, "limit": 20})
        {'limit': 20, 'status': 'ACTIVE'}
    """
    if not params:
        return {}

    filtered = {k: v for k, v in params.items() if v is not None and v != ""}
    return {k: _normalize_value(filtered[k]) for k in sorted(filtered)}


def fingerprint(params: dict[str, Any] | None) -> str:
    """Return the canonical JSON text of params (the input fingerprint)."""
    normalized = canonical_params(params)
    if not normalized:
        return ""
    return orjson.dumps(normalized, option=orjson.OPT_SORT_KEYS).decode("utf-8")


def generate_cache_key(
    operation: str,
    params: dict[str, Any] | None = None,
) -> tuple[str, str]:
    """Generate cache key and SHA-256 hash from a query operation and input.

    Cache key format:
        - With params: "{operation}:{canonical_json}"
        - Without params: "{operation}"

    Args:
        operation: RPC operation name. Must be non-empty.
            Examples: "campaigns.getById", "campaigns.search"
        params: Query input dictionary. Optional.

    Returns:
        Tuple of (cache_key, key_hash):
            - cache_key: Human-readable key with sorted parameters
            - key_hash: SHA-256 hash (64 hex characters)

    Raises:
        ValueError: If operation is empty or None

    Example:
        >>> key1, _ = generate_cache_key("campaigns.search", {"a": 1, "b": 2})
        >>> key2, _ = generate_cache_key("campaigns.search", {"b": 2, "a": 1})
        >>> key1 == key2
        True
    """
    if not operation:
        raise ValueError("operation cannot be empty or None")

    input_fingerprint = fingerprint(params)
    cache_key = f"{operation}:{input_fingerprint}" if input_fingerprint else operation
    key_hash = hashlib.sha256(cache_key.encode("utf-8")).hexdigest()

    return cache_key, key_hash
