"""Signed checkpoints for auditchain."""

from .keypair import SigningKeypair, load_public_key
from .checkpoint import Checkpoint, issue_checkpoint, verify_checkpoint, verify_signature

__all__ = [
    'SigningKeypair',
    'load_public_key',
    'Checkpoint',
    'issue_checkpoint',
    'verify_checkpoint',
    'verify_signature',
]
