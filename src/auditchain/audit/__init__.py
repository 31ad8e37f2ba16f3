"""Audit logging for auditchain."""

from .entry import AuditEntry, Category, EntryDraft, Outcome, create_entry_payload
from .hashchain import canonical_bytes, compute_entry_hash
from .store import AuditStore
from .query import AuditFilter, QueryEngine, QueryResult, SortOrder
from .integrity import IntegrityVerifier, TamperKind, VerificationReport, verify_entries
from .rotation import RotationResult, rotate_log, verify_continuity

__all__ = [
    'AuditEntry',
    'Category',
    'EntryDraft',
    'Outcome',
    'create_entry_payload',
    'canonical_bytes',
    'compute_entry_hash',
    'AuditStore',
    'AuditFilter',
    'QueryEngine',
    'QueryResult',
    'SortOrder',
    'IntegrityVerifier',
    'TamperKind',
    'VerificationReport',
    'verify_entries',
    'RotationResult',
    'rotate_log',
    'verify_continuity',
]
