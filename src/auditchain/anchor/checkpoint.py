"""
Signed checkpoints of the chain tail.

A hash chain alone cannot reveal a truncated tail or a chain rewritten
from scratch; both still replay cleanly. A checkpoint signed with a key
the file's editor does not hold pins (sequence, entry_hash) so either
edit is caught later.
"""

from dataclasses import dataclass
from typing import Any, Dict

from cryptography.exceptions import InvalidSignature

from ..audit.store import AuditStore
from ..errors import (
    CorruptionError,
    KeypairError,
    NotFoundError,
    SignatureError,
    ValidationError,
)
from ..invariants import validate_hash_format
from ..utils.canonical_json import canonicalize_bytes
from ..utils.hashing import hash_bytes
from ..utils.time import now
from .keypair import SigningKeypair, load_public_key


@dataclass(frozen=True)
class Checkpoint:
    """
    Represents a signed statement of a chain tail.
    """
    sequence: int
    entry_hash: str
    genesis_hash: str
    issued_at: str
    key_id: str
    signature: bytes

    def get_payload(self) -> Dict[str, Any]:
        """
        Get the signed payload (everything except signature).
        
        Returns:
            Payload dictionary
        """
        return {
            'sequence': self.sequence,
            'entry_hash': self.entry_hash,
            'genesis_hash': self.genesis_hash,
            'issued_at': self.issued_at,
            'key_id': self.key_id,
        }

    def get_payload_bytes(self) -> bytes:
        return canonicalize_bytes(self.get_payload())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            **self.get_payload(),
            'signature': self.signature.hex(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Checkpoint':
        """
        Parse a checkpoint from a dictionary.
        
        Args:
            data: Dictionary produced by to_dict()
            
        Returns:
            Checkpoint object
            
        Raises:
            ValidationError: If a field is missing or malformed
        """
        required = ['sequence', 'entry_hash', 'genesis_hash', 'issued_at', 'key_id', 'signature']
        for field_name in required:
            if field_name not in data:
                raise ValidationError(f"Missing required field: {field_name}")
        
        try:
            signature = bytes.fromhex(data['signature'])
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid signature format: {e}")
        
        if isinstance(data['sequence'], bool) or not isinstance(data['sequence'], int):
            raise ValidationError("sequence must be an integer")
        
        for field_name in ('entry_hash', 'genesis_hash', 'key_id'):
            validate_hash_format(data[field_name], field_name)
        
        return cls(
            sequence=data['sequence'],
            entry_hash=data['entry_hash'],
            genesis_hash=data['genesis_hash'],
            issued_at=data['issued_at'],
            key_id=data['key_id'],
            signature=signature,
        )


def issue_checkpoint(store: AuditStore, keypair: SigningKeypair) -> Checkpoint:
    """
    Sign the current tail of a log.
    
    Args:
        store: Audit store to read the tail from
        keypair: Key to sign with
        
    Returns:
        Checkpoint of the tail
        
    Raises:
        ValidationError: If the log is empty
    """
    with store.db.read_transaction():
        tail = store.tail()
        genesis_hash = store.genesis_hash()
    
    if tail is None:
        raise ValidationError("Cannot checkpoint an empty audit log")
    
    payload = {
        'sequence': tail.sequence,
        'entry_hash': tail.entry_hash,
        'genesis_hash': genesis_hash,
        'issued_at': now(),
        'key_id': keypair.get_key_id(),
    }
    signature = keypair.sign(canonicalize_bytes(payload))
    
    return Checkpoint(signature=signature, **payload)


def verify_signature(checkpoint: Checkpoint, public_key_bytes: bytes) -> bool:
    """
    Verify a checkpoint's signature.
    
    Args:
        checkpoint: Checkpoint to verify
        public_key_bytes: Raw Ed25519 public key of the signer
        
    Returns:
        True if signature is valid
        
    Raises:
        SignatureError: If verification fails
    """
    try:
        public_key = load_public_key(public_key_bytes)
    except KeypairError as e:
        raise SignatureError(f"Unusable public key: {e}")
    
    if hash_bytes(public_key_bytes) != checkpoint.key_id:
        raise SignatureError("Checkpoint was signed by a different key")
    
    try:
        public_key.verify(checkpoint.signature, checkpoint.get_payload_bytes())
    except InvalidSignature:
        raise SignatureError("Invalid checkpoint signature")
    return True


def verify_checkpoint(
    store: AuditStore,
    checkpoint: Checkpoint,
    public_key_bytes: bytes,
) -> bool:
    """
    Check that a log still contains the entry a checkpoint vouches for.
    
    Checkpoints issued before a rotation must be checked against the
    archive that now holds their entry.
    
    Args:
        store: Audit store to check
        checkpoint: Previously issued checkpoint
        public_key_bytes: Raw Ed25519 public key of the signer
        
    Returns:
        True if the checkpointed entry is present and unchanged
        
    Raises:
        SignatureError: If the checkpoint itself is not authentic
        CorruptionError: If the log was truncated, rewritten or re-seeded
    """
    verify_signature(checkpoint, public_key_bytes)
    
    with store.db.read_transaction():
        if store.genesis_hash() != checkpoint.genesis_hash:
            raise CorruptionError(
                "Log genesis seed differs from the checkpoint's",
                sequence=0,
            )
        try:
            entry = store.get_entry(checkpoint.sequence)
        except NotFoundError:
            raise CorruptionError(
                f"Checkpointed entry {checkpoint.sequence} is missing (log truncated?)",
                sequence=checkpoint.sequence,
            )
    
    if entry.entry_hash != checkpoint.entry_hash:
        raise CorruptionError(
            f"Entry {checkpoint.sequence} differs from the checkpointed hash",
            sequence=checkpoint.sequence,
        )
    return True
