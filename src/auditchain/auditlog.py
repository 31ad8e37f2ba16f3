"""
auditchain public API.

One AuditLog per process and log file. Any number of processes may open
the same file at once; appends serialize on the database write lock and
reads never wait for them.
"""

import os
import stat
from dataclasses import fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

import structlog

from .anchor import Checkpoint, SigningKeypair, issue_checkpoint, verify_checkpoint
from .audit import (
    AuditEntry,
    AuditFilter,
    AuditStore,
    Category,
    EntryDraft,
    IntegrityVerifier,
    Outcome,
    QueryEngine,
    QueryResult,
    RotationResult,
    VerificationReport,
    rotate_log,
)
from .config import AuditConfig
from .db.connection import DatabaseConnection
from .db.migrations import initialize_schema, verify_schema
from .errors import AuditChainError, StorageError, ValidationError

logger = structlog.get_logger(__name__)


class AuditLog:
    """
    Tamper-evident audit log shared by independent tool processes.

    This is the primary interface for:
    - Recording audited actions
    - Querying entries
    - Verifying the hash chain
    - Rotating and checkpointing the log
    """

    def __init__(self, db_path: str, config: Optional[AuditConfig] = None):
        """
        Open (and on first use, create) an audit log.

        Args:
            db_path: Path to the log file; its directory must already exist
            config: Runtime settings; defaults when None

        Raises:
            StorageError: If the directory is missing or the file is unusable
            SchemaError: If the file holds an unsupported schema
            CorruptionError: If config.verify_on_open is set and the chain
                is broken
        """
        self.config = config or AuditConfig()
        self.config.validate()

        self.db_path = Path(db_path)
        _check_directory(self.db_path.parent)

        self.db = DatabaseConnection(str(self.db_path), lock_timeout=self.config.lock_timeout)
        self.db.connect()

        try:
            initialize_schema(self.db)

            self.store = AuditStore(self.db, self.config)
            self.query_engine = QueryEngine(self.db)
            self.verifier = IntegrityVerifier(self.store)

            if self.config.verify_on_open:
                self.verifier.require_valid()
        except BaseException:
            self.db.close()
            raise

    def close(self):
        """Close database connection."""
        self.db.close()

    # ==================== Writing ====================

    def record(
        self,
        tool: str,
        category: Union[Category, str],
        outcome: Union[Outcome, str],
        summary: str,
        actor: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> AuditEntry:
        """
        Record one audited action.

        Args:
            tool: Identifier of the calling tool
            category: What kind of action this was
            outcome: How it ended
            summary: Human-readable description
            actor: Acting principal, if known
            metadata: Flat string-to-string details

        Returns:
            The persisted AuditEntry

        Raises:
            ValidationError: If a field is malformed
            LockError: If another process holds the log too long
            CorruptionError: If the log's tail has been tampered with
        """
        draft = EntryDraft(
            tool=tool,
            category=category,
            outcome=outcome,
            summary=summary,
            actor=actor,
            metadata=metadata or {},
        )
        return self.store.append(draft)

    def append(self, draft: EntryDraft) -> AuditEntry:
        """Append a prepared draft. See AuditStore.append."""
        return self.store.append(draft)

    # ==================== Reading ====================

    def get_entry(self, sequence: int) -> AuditEntry:
        """
        Get one entry by sequence.

        Raises:
            NotFoundError: If no entry has this sequence
        """
        return self.store.get_entry(sequence)

    def query(self, audit_filter: Optional[AuditFilter] = None, **criteria: Any) -> QueryResult:
        """
        Select entries.

        Keyword criteria are AuditFilter fields and override the same
        fields of audit_filter:

            log.query(category="credential", outcome="denied", limit=10)

        Args:
            audit_filter: Base filter; None matches every entry
            **criteria: AuditFilter fields

        Returns:
            Lazy QueryResult

        Raises:
            ValidationError: If a criterion is not an AuditFilter field or
                has an invalid value
        """
        if criteria:
            unknown = set(criteria) - {f.name for f in fields(AuditFilter)}
            if unknown:
                raise ValidationError(f"Unknown query criteria: {sorted(unknown)}")
            audit_filter = replace(audit_filter or AuditFilter(), **criteria)
        return self.query_engine.query(audit_filter)

    def count(self) -> int:
        return self.store.count()

    # ==================== Integrity ====================

    def verify(
        self,
        from_sequence: Optional[int] = None,
        to_sequence: Optional[int] = None,
    ) -> VerificationReport:
        """
        Verify the chain, or the range [from_sequence, to_sequence].

        Returns:
            VerificationReport; never raises for a broken chain
        """
        return self.verifier.verify(from_sequence, to_sequence)

    def summary(self) -> Dict[str, Any]:
        """
        Get audit log summary.

        Returns:
            Summary dictionary with statistics
        """
        return self.verifier.get_chain_summary()

    def rotate(self, archive_path: str) -> RotationResult:
        """
        Move every entry into an archive file and continue the chain here.

        Raises:
            StorageError: If archive_path exists
            CorruptionError: If the chain does not verify
            ValidationError: If the log is empty
        """
        return rotate_log(self.store, archive_path)

    def checkpoint(self, keypair: SigningKeypair) -> Checkpoint:
        """Sign the current tail. See issue_checkpoint."""
        return issue_checkpoint(self.store, keypair)

    def verify_checkpoint(self, checkpoint: Checkpoint, public_key_bytes: bytes) -> bool:
        """
        Check that the entry a checkpoint vouches for is still here.

        Raises:
            SignatureError: If the checkpoint is not authentic
            CorruptionError: If the log was truncated or rewritten
        """
        return verify_checkpoint(self.store, checkpoint, public_key_bytes)

    # ==================== Utilities ====================

    def health_check(self) -> Dict[str, Any]:
        """
        Perform log health check.

        Returns:
            Health status dictionary
        """
        try:
            schema_valid = verify_schema(self.db)
            audit_summary = self.summary()

            return {
                'status': 'healthy' if schema_valid and audit_summary['is_valid'] else 'unhealthy',
                'schema_valid': schema_valid,
                'audit_valid': audit_summary['is_valid'],
                'audit_entries': audit_summary['total_entries'],
                'first_bad_sequence': audit_summary['first_bad_sequence'],
                'generation': audit_summary['generation'],
            }
        except AuditChainError as e:
            return {
                'status': 'error',
                'error': str(e),
            }

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


def _check_directory(directory: Path):
    """
    Refuse a missing directory and warn about one others can read.

    Raises:
        StorageError: If the directory does not exist
    """
    if not directory.is_dir():
        raise StorageError(f"Audit directory does not exist: {directory}")

    if os.name != 'posix':
        return
    mode = stat.S_IMODE(directory.stat().st_mode)
    if mode & (stat.S_IRWXG | stat.S_IRWXO):
        logger.warning(
            "audit_log_permissions_loose",
            directory=str(directory),
            mode=oct(mode),
        )
