"""
Cryptographic hashing utilities.
All hashing is deterministic and uses SHA-256.
"""

import hashlib
import re

from ..config import HASH_ALGORITHM, HASH_HEX_LENGTH
from ..errors import ValidationError

_HEX_DIGEST = re.compile(r"[0-9a-f]{%d}" % HASH_HEX_LENGTH)


def hash_bytes(data: bytes) -> str:
    """
    Hash bytes using SHA-256.
    
    Args:
        data: Raw bytes to hash
        
    Returns:
        Hex-encoded hash string (64 characters)
    """
    if not isinstance(data, bytes):
        raise TypeError(f"Expected bytes, got {type(data)}")
    
    hasher = hashlib.new(HASH_ALGORITHM)
    hasher.update(data)
    return hasher.hexdigest()


def is_hex_digest(value: object) -> bool:
    """Return True if value is a lower-case hex SHA-256 digest."""
    return isinstance(value, str) and _HEX_DIGEST.fullmatch(value) is not None


def chain_hashes(current_data: bytes, previous_hash: str) -> str:
    """
    Create a chained hash of the current data followed by the previous hash.
    
    The previous hash is fixed-width hex, so appending it after the data
    cannot collide with a different (data, previous_hash) split.
    
    Args:
        current_data: Current entry's canonical bytes
        previous_hash: Previous entry's hash (hex string)
        
    Returns:
        Hex-encoded hash of (current_data || previous_hash)
        
    Raises:
        ValidationError: If previous_hash is not a hex digest
    """
    if not isinstance(current_data, bytes):
        raise TypeError(f"Expected bytes for current_data, got {type(current_data)}")
    
    if not is_hex_digest(previous_hash):
        raise ValidationError(f"Invalid previous_hash: {previous_hash!r}")
    
    return hash_bytes(current_data + previous_hash.encode('ascii'))
