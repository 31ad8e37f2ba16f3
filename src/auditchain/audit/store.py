"""
Append-only audit store.
Entries are sequenced, timestamped and hash-chained under the database
write lock, so appends from independent processes never interleave.
"""

from typing import Iterator, Optional

import structlog

from ..config import AuditConfig, GENESIS_HASH, META_GENERATION, META_GENESIS_HASH
from ..db.connection import DatabaseConnection
from ..errors import CorruptionError, NotFoundError, ValidationError
from ..invariants import check_draft, validate_sequence
from ..utils.canonical_json import canonicalize
from ..utils.time import is_valid_timestamp, now
from .entry import AuditEntry, EntryDraft, create_entry_payload
from .hashchain import compute_entry_hash, recompute

logger = structlog.get_logger(__name__)

_SELECT_COLUMNS = """
    SELECT sequence, timestamp, tool, category, outcome, actor,
           summary, metadata, prev_hash, entry_hash
    FROM audit_entries
"""


class AuditStore:
    """
    Durable, ordered, append-only persistence for audit entries.
    """

    def __init__(self, db: DatabaseConnection, config: Optional[AuditConfig] = None):
        """
        Initialize audit store.

        Args:
            db: Database connection (schema already initialized)
            config: Runtime limits; defaults when None
        """
        self.db = db
        self.config = config or AuditConfig()

    # ==================== Chain bookkeeping ====================

    def get_meta(self, key: str, default: Optional[str] = None) -> Optional[str]:
        row = self.db.fetch_one("SELECT value FROM log_meta WHERE key = ?", (key,))
        return row['value'] if row else default

    def genesis_hash(self) -> str:
        """
        Get the prev_hash expected for sequence 0 of this file.

        Returns:
            GENESIS_HASH, or the final hash of the archive this log was
            rotated from
        """
        return self.get_meta(META_GENESIS_HASH, GENESIS_HASH)

    def generation(self) -> int:
        """Number of rotations this log file has been through."""
        return int(self.get_meta(META_GENERATION, "0"))

    def tail(self) -> Optional[AuditEntry]:
        """
        Get the most recently appended entry.

        Returns:
            Last AuditEntry or None if log is empty
        """
        row = self.db.fetch_one(
            _SELECT_COLUMNS + " ORDER BY sequence DESC LIMIT 1"
        )

        if not row:
            return None

        return AuditEntry.from_row(row)

    def count(self) -> int:
        """
        Count persisted entries.

        Returns:
            Number of entries
        """
        row = self.db.fetch_one("SELECT COUNT(*) AS count FROM audit_entries")
        return row['count'] if row else 0

    # ==================== Append ====================

    def append(self, draft: EntryDraft) -> AuditEntry:
        """
        Append an entry to the log.

        Holds the write lock only while reading the tail, hashing and
        writing. The commit is fsynced before the lock is released, so an
        acknowledged append survives a crash.

        Args:
            draft: Caller-supplied fields

        Returns:
            The completed, persisted AuditEntry

        Raises:
            ValidationError: If the draft is malformed
            LockError: If the write lock is not obtained within the timeout
            CorruptionError: If the current tail fails local verification
            StorageError: If the medium cannot be read or written
        """
        check_draft(draft, self.config)
        metadata_json = canonicalize(draft.metadata)

        with self.db.write_transaction():
            tail = self.tail()

            if tail is None:
                sequence = 0
                prev_hash = self.genesis_hash()
                timestamp = now()
            else:
                self._check_tail(tail)
                sequence = tail.sequence + 1
                prev_hash = tail.entry_hash
                timestamp = now(not_before=tail.timestamp)

            payload = create_entry_payload(
                sequence=sequence,
                timestamp=timestamp,
                tool=draft.tool,
                category=draft.category,
                outcome=draft.outcome,
                actor=draft.actor,
                summary=draft.summary,
                metadata=draft.metadata,
            )
            entry_hash = compute_entry_hash(payload, prev_hash)

            self.db.execute(
                """
                INSERT INTO audit_entries (
                    sequence, timestamp, tool, category, outcome, actor,
                    summary, metadata, prev_hash, entry_hash
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    sequence,
                    timestamp,
                    draft.tool,
                    draft.category.value,
                    draft.outcome.value,
                    draft.actor,
                    draft.summary,
                    metadata_json,
                    prev_hash,
                    entry_hash,
                )
            )

        logger.debug(
            "audit_entry_appended",
            sequence=sequence,
            tool=draft.tool,
            entry_hash=entry_hash[:16],
        )

        return AuditEntry(
            sequence=sequence,
            timestamp=timestamp,
            tool=draft.tool,
            category=draft.category,
            outcome=draft.outcome,
            actor=draft.actor,
            summary=draft.summary,
            metadata=dict(draft.metadata),
            prev_hash=prev_hash,
            entry_hash=entry_hash,
        )

    def _check_tail(self, tail: AuditEntry):
        """
        Refuse to extend a chain whose tail cannot be trusted.

        Checks the tail's own hash and its link to its predecessor. Its
        timestamp must also parse; the next timestamp is derived from it.
        The rest of the chain is the verifier's job.

        Raises:
            CorruptionError: If any check fails
        """
        expected_prev = self.hash_before(tail.sequence)
        if expected_prev is None:
            self._tail_corrupt(tail, "predecessor missing")

        if tail.prev_hash != expected_prev:
            self._tail_corrupt(tail, "prev_hash does not match predecessor")

        try:
            expected_hash = recompute(tail)
        except ValidationError as e:
            self._tail_corrupt(tail, f"cannot be re-encoded ({e})")

        if tail.entry_hash != expected_hash:
            self._tail_corrupt(tail, "entry_hash mismatch")

        if not is_valid_timestamp(tail.timestamp):
            self._tail_corrupt(tail, "timestamp is malformed")

    def _tail_corrupt(self, tail: AuditEntry, reason: str):
        logger.error(
            "audit_tail_corrupt",
            db_path=str(self.db.db_path),
            sequence=tail.sequence,
            reason=reason,
        )
        raise CorruptionError(
            f"Refusing to append: tail entry {tail.sequence} {reason}",
            sequence=tail.sequence,
        )

    # ==================== Reads ====================

    def get_entry(self, sequence: int) -> AuditEntry:
        """
        Retrieve one entry by sequence through the primary key index.

        Args:
            sequence: Entry sequence number

        Returns:
            AuditEntry

        Raises:
            NotFoundError: If no entry has this sequence
        """
        validate_sequence(sequence)
        row = self.db.fetch_one(
            _SELECT_COLUMNS + " WHERE sequence = ?",
            (sequence,)
        )

        if not row:
            raise NotFoundError(f"Audit entry {sequence} not found")

        return AuditEntry.from_row(row)

    def read_all(self) -> Iterator[AuditEntry]:
        """
        Stream every entry in ascending sequence order.

        Yields:
            AuditEntry objects
        """
        for row in self.db.iterate(_SELECT_COLUMNS + " ORDER BY sequence ASC"):
            yield AuditEntry.from_row(row)

    def read_range(
        self,
        from_sequence: int,
        to_sequence: Optional[int] = None,
    ) -> Iterator[AuditEntry]:
        """
        Stream entries with from_sequence <= sequence <= to_sequence.

        Bounds are checked eagerly, before the first entry is read.

        Args:
            from_sequence: First sequence (inclusive)
            to_sequence: Last sequence (inclusive); None means the tail

        Returns:
            Iterator of AuditEntry objects in ascending sequence order

        Raises:
            NotFoundError: If the log is empty or a bound lies outside it
        """
        from_sequence, to_sequence = self.resolve_range(from_sequence, to_sequence)
        return self._iter_range(from_sequence, to_sequence)

    def resolve_range(
        self,
        from_sequence: Optional[int],
        to_sequence: Optional[int],
    ) -> tuple[int, int]:
        """
        Check a sequence range against the log's current bounds.

        Args:
            from_sequence: First sequence; None means 0
            to_sequence: Last sequence; None means the tail

        Returns:
            Tuple of (from_sequence, to_sequence)

        Raises:
            NotFoundError: If the range falls outside [0, tail]
        """
        if from_sequence is None:
            from_sequence = 0
        validate_sequence(from_sequence, "from_sequence")
        if to_sequence is not None:
            validate_sequence(to_sequence, "to_sequence")

        row = self.db.fetch_one("SELECT MAX(sequence) AS last FROM audit_entries")
        last = row['last'] if row else None
        if last is None:
            raise NotFoundError("Audit log is empty")

        if to_sequence is None:
            to_sequence = last

        if from_sequence > to_sequence:
            raise NotFoundError(
                f"Empty range: from_sequence {from_sequence} > to_sequence {to_sequence}"
            )
        if to_sequence > last:
            raise NotFoundError(
                f"Sequence {to_sequence} is beyond the end of the log ({last})"
            )

        return from_sequence, to_sequence

    def _iter_range(self, from_sequence: int, to_sequence: int) -> Iterator[AuditEntry]:
        rows = self.db.iterate(
            _SELECT_COLUMNS + " WHERE sequence BETWEEN ? AND ? ORDER BY sequence ASC",
            (from_sequence, to_sequence)
        )
        for row in rows:
            yield AuditEntry.from_row(row)

    def hash_before(self, sequence: int) -> Optional[str]:
        """
        Get the hash that entry `sequence` must link to.

        Returns:
            The genesis seed for sequence 0, the stored entry_hash of
            sequence - 1 otherwise, or None if that entry is missing
        """
        validate_sequence(sequence)
        if sequence == 0:
            return self.genesis_hash()
        row = self.db.fetch_one(
            "SELECT entry_hash FROM audit_entries WHERE sequence = ?",
            (sequence - 1,)
        )
        return row['entry_hash'] if row else None

