"""
Audit log integrity verification.
Detects tampering via hash chain and sequence validation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, Optional

import structlog

from ..errors import CorruptionError, ValidationError
from .entry import AuditEntry
from .hashchain import recompute
from .store import AuditStore

logger = structlog.get_logger(__name__)


class TamperKind(str, Enum):
    HASH_MISMATCH = "hash_mismatch"
    CHAIN_LINK_MISMATCH = "chain_link_mismatch"
    SEQUENCE_GAP = "sequence_gap"
    DUPLICATE_SEQUENCE = "duplicate_sequence"


@dataclass(frozen=True)
class VerificationReport:
    """
    Outcome of replaying a chain.

    Attributes:
        valid: True if every checked entry is consistent
        first_bad_sequence: Earliest sequence where the chain diverges
        kind: What diverged there
        checked: Number of entries that passed before verification stopped
        last_sequence: Sequence of the last entry that passed
        last_hash: entry_hash of the last entry that passed
        detail: Human-readable explanation of the failure
    """
    valid: bool
    first_bad_sequence: Optional[int] = None
    kind: Optional[TamperKind] = None
    checked: int = 0
    last_sequence: Optional[int] = None
    last_hash: Optional[str] = None
    detail: Optional[str] = None

    @classmethod
    def ok(cls, checked: int, last_sequence: Optional[int], last_hash: Optional[str]):
        return cls(
            valid=True,
            checked=checked,
            last_sequence=last_sequence,
            last_hash=last_hash,
        )

    @classmethod
    def tampered(
        cls,
        sequence: int,
        kind: TamperKind,
        detail: str,
        checked: int,
        last_sequence: Optional[int],
        last_hash: Optional[str],
    ):
        return cls(
            valid=False,
            first_bad_sequence=sequence,
            kind=kind,
            checked=checked,
            last_sequence=last_sequence,
            last_hash=last_hash,
            detail=detail,
        )

    def __bool__(self) -> bool:
        return self.valid

    def to_dict(self) -> Dict[str, Any]:
        return {
            'valid': self.valid,
            'first_bad_sequence': self.first_bad_sequence,
            'kind': self.kind.value if self.kind else None,
            'checked': self.checked,
            'last_sequence': self.last_sequence,
            'last_hash': self.last_hash,
            'detail': self.detail,
        }


def verify_entries(
    entries: Iterable[AuditEntry],
    start_sequence: int,
    prev_hash: str,
) -> VerificationReport:
    """
    Replay a stream of entries and report the first inconsistency.

    Each entry is checked in this order: its sequence is the one expected
    next, its prev_hash links to the previous entry, and its entry_hash
    recomputes from its stored fields. Replay stops at the first failure;
    everything after it is untrustworthy anyway.

    A row renumbered past its neighbours reads as a deletion: the result
    is a SEQUENCE_GAP at its old number, not a HASH_MISMATCH. An edited
    prev_hash is a CHAIN_LINK_MISMATCH; any other edited field is a
    HASH_MISMATCH.

    Args:
        entries: Entries in ascending sequence order
        start_sequence: Sequence the first entry must carry
        prev_hash: Hash the first entry must link to

    Returns:
        VerificationReport
    """
    expected_sequence = start_sequence
    expected_prev = prev_hash
    checked = 0
    last_sequence: Optional[int] = None
    last_hash: Optional[str] = None

    def _fail(sequence: int, kind: TamperKind, detail: str) -> VerificationReport:
        logger.warning("audit_chain_violation", sequence=sequence, kind=kind.value)
        return VerificationReport.tampered(
            sequence, kind, detail, checked, last_sequence, last_hash
        )

    iterator: Iterator[AuditEntry] = iter(entries)
    try:
        while True:
            try:
                entry = next(iterator)
            except StopIteration:
                break
            except CorruptionError as e:
                # Row exists but cannot even be decoded
                bad = expected_sequence if e.sequence is None else e.sequence
                return _fail(bad, TamperKind.HASH_MISMATCH, str(e))

            if entry.sequence > expected_sequence:
                return _fail(
                    expected_sequence,
                    TamperKind.SEQUENCE_GAP,
                    f"Expected sequence {expected_sequence}, found {entry.sequence}",
                )
            if entry.sequence < expected_sequence:
                return _fail(
                    entry.sequence,
                    TamperKind.DUPLICATE_SEQUENCE,
                    f"Sequence {entry.sequence} appears again after {expected_sequence - 1}",
                )

            if entry.prev_hash != expected_prev:
                return _fail(
                    entry.sequence,
                    TamperKind.CHAIN_LINK_MISMATCH,
                    f"Entry {entry.sequence}: prev_hash mismatch. "
                    f"Expected {expected_prev}, got {entry.prev_hash}",
                )

            try:
                expected_hash = recompute(entry)
            except ValidationError as e:
                return _fail(entry.sequence, TamperKind.HASH_MISMATCH, str(e))

            if entry.entry_hash != expected_hash:
                return _fail(
                    entry.sequence,
                    TamperKind.HASH_MISMATCH,
                    f"Entry {entry.sequence}: entry_hash mismatch. "
                    f"Expected {expected_hash}, got {entry.entry_hash}",
                )

            checked += 1
            last_sequence = entry.sequence
            last_hash = entry.entry_hash
            expected_sequence += 1
            expected_prev = entry.entry_hash
    finally:
        # Release the database cursor behind a generator that stopped early
        close = getattr(iterator, 'close', None)
        if close is not None:
            close()

    return VerificationReport.ok(checked, last_sequence, last_hash)


class IntegrityVerifier:
    """
    Verifies audit log integrity. Only reads; never repairs.
    """

    def __init__(self, store: AuditStore):
        """
        Initialize integrity verifier.

        Args:
            store: AuditStore to read from
        """
        self.store = store

    def verify(
        self,
        from_sequence: Optional[int] = None,
        to_sequence: Optional[int] = None,
    ) -> VerificationReport:
        """
        Verify the whole chain, or the range [from_sequence, to_sequence].

        The whole replay reads one snapshot, so a concurrent append is
        either fully in it or not at all.

        Args:
            from_sequence: First sequence to check; None means 0
            to_sequence: Last sequence to check; None means the tail

        Returns:
            VerificationReport

        Raises:
            NotFoundError: If a range is given and the log is empty or a
                bound lies outside it
        """
        db = self.store.db
        with db.read_transaction():
            if from_sequence is None and to_sequence is None:
                return verify_entries(
                    self.store.read_all(),
                    start_sequence=0,
                    prev_hash=self.store.genesis_hash(),
                )

            start, end = self.store.resolve_range(from_sequence, to_sequence)
            prev_hash = self.store.hash_before(start)
            if prev_hash is None:
                # The entry this range must link to was deleted
                return VerificationReport.tampered(
                    start - 1,
                    TamperKind.SEQUENCE_GAP,
                    f"Entry {start - 1} preceding the range is missing",
                    checked=0,
                    last_sequence=None,
                    last_hash=None,
                )

            return verify_entries(
                self.store.read_range(start, end),
                start_sequence=start,
                prev_hash=prev_hash,
            )

    def require_valid(self) -> VerificationReport:
        """
        Verify the whole chain and raise if it is not intact.

        Returns:
            The (valid) VerificationReport

        Raises:
            CorruptionError: If tampering is detected
        """
        report = self.verify()
        if not report.valid:
            raise CorruptionError(
                f"Audit chain broken at sequence {report.first_bad_sequence} "
                f"({report.kind.value}): {report.detail}",
                sequence=report.first_bad_sequence,
            )
        return report

    def get_chain_summary(self) -> dict:
        """
        Get summary of audit chain status.

        Returns:
            Dictionary with chain statistics
        """
        db = self.store.db
        with db.read_transaction():
            total = self.store.count()
            tail = db.fetch_one(
                "SELECT sequence, entry_hash FROM audit_entries ORDER BY sequence DESC LIMIT 1"
            )
            report = self.verify()

            return {
                'total_entries': total,
                'is_valid': report.valid,
                'first_bad_sequence': report.first_bad_sequence,
                'tamper_kind': report.kind.value if report.kind else None,
                'last_sequence': tail['sequence'] if tail else None,
                'last_hash': tail['entry_hash'] if tail else self.store.genesis_hash(),
                'genesis_hash': self.store.genesis_hash(),
                'generation': self.store.generation(),
            }
