"""
Hash chain algorithm.

entry_hash = SHA-256(canonical_bytes(entry without hashes) || prev_hash)
"""

from typing import Any, Dict, Union

from ..utils.canonical_json import canonicalize_bytes
from ..utils.hashing import chain_hashes
from .entry import AuditEntry


def canonical_bytes(payload: Union[AuditEntry, Dict[str, Any]]) -> bytes:
    """
    Canonical encoding of an entry payload.
    
    Args:
        payload: AuditEntry or a dict from create_entry_payload()
        
    Returns:
        Canonical JSON as UTF-8 bytes
        
    Raises:
        ValidationError: If a field holds text that is not valid UTF-8
    """
    if isinstance(payload, AuditEntry):
        payload = payload.payload()
    return canonicalize_bytes(payload)


def compute_entry_hash(
    payload: Union[AuditEntry, Dict[str, Any]],
    prev_hash: str,
) -> str:
    """
    Compute an entry's hash from its content and its predecessor's hash.
    
    Pure: the same payload and prev_hash always give the same digest.
    For an AuditEntry the stored entry_hash and prev_hash are ignored;
    only its content fields are read.
    
    Args:
        payload: AuditEntry or a dict from create_entry_payload()
        prev_hash: entry_hash of the preceding entry, or the genesis seed
        
    Returns:
        Hex-encoded SHA-256 digest
        
    Raises:
        ValidationError: If prev_hash is malformed or the payload
            cannot be encoded
    """
    return chain_hashes(canonical_bytes(payload), prev_hash)


def recompute(entry: AuditEntry) -> str:
    """Recompute an entry's hash from its own stored fields."""
    return compute_entry_hash(entry, entry.prev_hash)
