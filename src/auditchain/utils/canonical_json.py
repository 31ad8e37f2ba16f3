"""
Canonical JSON serialization for deterministic hashing.
Identical objects always produce identical bytes, on every platform.
"""

import json
from typing import Any

from ..config import JSON_SEPARATORS, JSON_SORT_KEYS, JSON_ENSURE_ASCII
from ..errors import ValidationError


def canonicalize(obj: Any) -> str:
    """
    Serialize an object to canonical JSON.
    
    Canonical properties:
    - Keys are sorted
    - No whitespace
    - Non-ASCII text kept as-is (encoded once, as UTF-8)
    - NaN and Infinity rejected
    
    Args:
        obj: Python object to serialize
        
    Returns:
        Canonical JSON string
        
    Raises:
        ValidationError: If object is not JSON-serializable
    """
    try:
        return json.dumps(
            obj,
            separators=JSON_SEPARATORS,
            sort_keys=JSON_SORT_KEYS,
            ensure_ascii=JSON_ENSURE_ASCII,
            allow_nan=False,
        )
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Object not JSON-serializable: {e}")


def canonicalize_bytes(obj: Any) -> bytes:
    """
    Serialize an object to canonical JSON bytes.
    
    Args:
        obj: Python object to serialize
        
    Returns:
        Canonical JSON as UTF-8 bytes
        
    Raises:
        ValidationError: If object is not serializable or holds text
            that cannot be encoded as UTF-8 (e.g. lone surrogates)
    """
    canonical_str = canonicalize(obj)
    try:
        return canonical_str.encode('utf-8')
    except UnicodeEncodeError as e:
        raise ValidationError(f"Value is not valid UTF-8 text: {e.reason}")

