"""
auditchain - tamper-evident audit log for local tools

An append-only, hash-chained audit log in one SQLite file, shared by
CLI tools that run as separate processes.

Main exports:
- AuditLog: Main facade
- EntryDraft / AuditEntry: Entry model
- AuditFilter: Query criteria
- SigningKeypair: Ed25519 key for signed checkpoints
"""

from .auditlog import AuditLog
from .audit import (
    AuditEntry,
    AuditFilter,
    Category,
    EntryDraft,
    Outcome,
    SortOrder,
    TamperKind,
    VerificationReport,
)
from .anchor import Checkpoint, SigningKeypair
from .config import AuditConfig, GENESIS_HASH
from .errors import *

__version__ = "0.1.0"

__all__ = [
    'AuditLog',
    'AuditConfig',
    'AuditEntry',
    'AuditFilter',
    'Category',
    'Checkpoint',
    'EntryDraft',
    'GENESIS_HASH',
    'Outcome',
    'SigningKeypair',
    'SortOrder',
    'TamperKind',
    'VerificationReport',
    'AuditChainError',
    'StorageError',
    'SchemaError',
    'LockError',
    'CorruptionError',
    'ValidationError',
    'NotFoundError',
    'KeypairError',
    'SignatureError',
]
