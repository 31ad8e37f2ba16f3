"""
Log rotation.

A rotated log keeps one unbroken chain across files: the archive holds
every entry so far, and the live log restarts at sequence 0 with the
archive's final entry_hash as its genesis seed.
"""

from dataclasses import dataclass
from pathlib import Path

import structlog

from ..config import META_GENERATION, META_GENESIS_HASH, META_ROTATED_FROM
from ..db.connection import DatabaseConnection
from ..db.migrations import initialize_schema
from ..errors import CorruptionError, StorageError, ValidationError
from .integrity import IntegrityVerifier
from .store import AuditStore

logger = structlog.get_logger(__name__)

_COLUMNS = (
    "sequence, timestamp, tool, category, outcome, actor, "
    "summary, metadata, prev_hash, entry_hash"
)


@dataclass(frozen=True)
class RotationResult:
    archive_path: str
    archived_entries: int
    final_hash: str
    generation: int


def rotate_log(store: AuditStore, archive_path: str) -> RotationResult:
    """
    Move every entry of the live log into a new archive file.

    Runs under the live log's write lock. The archive is written,
    committed and re-verified before the live entries are removed, and the
    removal and the re-seed commit together: a crash at any point leaves
    either the old live log intact or a consistent (archive, live) pair.

    Args:
        store: Live audit store
        archive_path: Path for the archive database; must not exist

    Returns:
        RotationResult

    Raises:
        StorageError: If the archive path exists or cannot be written
        CorruptionError: If the live chain does not verify
        ValidationError: If the live log is empty
        LockError: If the write lock is not obtained within the timeout
    """
    archive = Path(archive_path)
    if archive.exists():
        raise StorageError(f"Archive already exists: {archive}")

    live_db = store.db
    with live_db.write_transaction():
        report = IntegrityVerifier(store).verify()
        if not report.valid:
            raise CorruptionError(
                f"Refusing to rotate a broken chain: sequence "
                f"{report.first_bad_sequence} ({report.kind.value})",
                sequence=report.first_bad_sequence,
            )
        if report.checked == 0:
            raise ValidationError("Cannot rotate an empty audit log")

        generation = store.generation()
        _write_archive(store, archive, generation)

        final_hash = report.last_hash
        live_db.execute("DELETE FROM audit_entries")
        live_db.execute(
            "INSERT OR REPLACE INTO log_meta (key, value) VALUES (?, ?)",
            (META_GENESIS_HASH, final_hash)
        )
        live_db.execute(
            "INSERT OR REPLACE INTO log_meta (key, value) VALUES (?, ?)",
            (META_GENERATION, str(generation + 1))
        )
        live_db.execute(
            "INSERT OR REPLACE INTO log_meta (key, value) VALUES (?, ?)",
            (META_ROTATED_FROM, archive.name)
        )

    logger.info(
        "audit_log_rotated",
        db_path=str(live_db.db_path),
        archive_path=str(archive),
        archived_entries=report.checked,
        generation=generation + 1,
    )

    return RotationResult(
        archive_path=str(archive),
        archived_entries=report.checked,
        final_hash=final_hash,
        generation=generation + 1,
    )


def _write_archive(store: AuditStore, archive: Path, generation: int):
    """Copy rows byte-for-byte into a fresh archive and verify the copy."""
    archive_db = DatabaseConnection(str(archive), lock_timeout=store.db.lock_timeout)
    try:
        initialize_schema(archive_db, genesis_hash=store.genesis_hash())

        with archive_db.write_transaction():
            rotated_from = store.get_meta(META_ROTATED_FROM)
            archive_db.execute(
                "INSERT OR REPLACE INTO log_meta (key, value) VALUES (?, ?)",
                (META_GENERATION, str(generation))
            )
            if rotated_from is not None:
                archive_db.execute(
                    "INSERT OR REPLACE INTO log_meta (key, value) VALUES (?, ?)",
                    (META_ROTATED_FROM, rotated_from)
                )

            rows = store.db.iterate(
                f"SELECT {_COLUMNS} FROM audit_entries ORDER BY sequence ASC"
            )
            for row in rows:
                archive_db.execute(
                    f"INSERT INTO audit_entries ({_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    tuple(row)
                )

        archived = IntegrityVerifier(AuditStore(archive_db)).verify()
        if not archived.valid:
            raise StorageError(f"Archive {archive} failed verification after copy")

        # Fold the WAL into the main file so the archive is self-contained
        archive_db.execute("PRAGMA wal_checkpoint(TRUNCATE)").fetchone()
    finally:
        archive_db.close()


def verify_continuity(archive: AuditStore, live: AuditStore) -> bool:
    """
    Check that a live log continues the chain of an archive.

    Args:
        archive: Store opened on the archive file
        live: Store opened on the live log

    Returns:
        True if the archive verifies and its final hash seeds the live log
    """
    report = IntegrityVerifier(archive).verify()
    if not report.valid or report.last_hash is None:
        return False
    return live.genesis_hash() == report.last_hash
