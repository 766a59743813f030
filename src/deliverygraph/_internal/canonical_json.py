"""Centralized canonical JSON serialization.

This module provides a single function for byte-stable JSON serialization
used for resource fingerprints and cache payload comparison.
"""

import hashlib
import json
from typing import Any


def canonical_dumps(obj: Any) -> str:
    """
    Canonical JSON serialization for byte-stable output.

    Rules:
    - UTF-8 encoding
    - Sorted keys
    - Stable separators (",", ":")
    - Lists keep their order (field order is meaningful)

    Args:
        obj: Python object to serialize

    Returns:
        Canonical JSON string (UTF-8 encoded)
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False  # UTF-8 encoding
    )


def compute_fingerprint(obj: Any) -> str:
    """Compute SHA256 hash of a canonicalized JSON object.

    Returns:
        SHA256 hash as hex string (prefixed with "sha256:")
    """
    digest = hashlib.sha256(canonical_dumps(obj).encode('utf-8')).hexdigest()
    return f"sha256:{digest}"
