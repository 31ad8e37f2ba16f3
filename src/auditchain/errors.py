"""
Domain-specific exceptions for auditchain.
All exceptions are explicit and carry meaningful context.
"""

from typing import Optional


class AuditChainError(Exception):
    """Base exception for all auditchain errors."""
    pass


class StorageError(AuditChainError):
    """Raised when the storage medium cannot be read or written."""
    pass


class SchemaError(StorageError):
    """Raised when database schema operations fail."""
    pass


class LockError(AuditChainError):
    """Raised when the write lock is not obtained within the timeout."""
    pass


class CorruptionError(AuditChainError):
    """
    Raised when stored entries fail hash or chain checks while an
    operation depends on trusting them.
    """

    def __init__(self, message: str, sequence: Optional[int] = None):
        super().__init__(message)
        self.sequence = sequence


class ValidationError(AuditChainError):
    """Raised when caller-supplied fields are malformed."""
    pass


class NotFoundError(AuditChainError):
    """Raised when a sequence or range lies outside the log's bounds."""
    pass


class KeypairError(AuditChainError):
    """Raised when checkpoint keypair operations fail."""
    pass


class SignatureError(AuditChainError):
    """Raised when a checkpoint signature does not verify."""
    pass
