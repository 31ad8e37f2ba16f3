"""
Database schema definitions for auditchain.
All schema changes must be versioned and migrated.
"""

from ..config import (
    DB_SCHEMA_VERSION,
    GENESIS_HASH,
    META_GENERATION,
    META_GENESIS_HASH,
)


# Schema version tracking
SCHEMA_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL,
    description TEXT NOT NULL
)
"""

# Per-file chain bookkeeping: genesis seed, rotation generation
LOG_META_TABLE = """
CREATE TABLE IF NOT EXISTS log_meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""

# One row per entry; sequence is assigned by the store, never by SQLite
AUDIT_ENTRIES_TABLE = """
CREATE TABLE IF NOT EXISTS audit_entries (
    sequence INTEGER PRIMARY KEY,
    timestamp TEXT NOT NULL,
    tool TEXT NOT NULL,
    category TEXT NOT NULL,
    outcome TEXT NOT NULL,
    actor TEXT,
    summary TEXT NOT NULL,
    metadata TEXT NOT NULL,
    prev_hash TEXT NOT NULL,
    entry_hash TEXT NOT NULL,
    CHECK(sequence >= 0),
    CHECK(length(prev_hash) = 64),
    CHECK(length(entry_hash) = 64)
)
"""

AUDIT_INDEX_TIMESTAMP = """
CREATE INDEX IF NOT EXISTS idx_audit_timestamp
ON audit_entries(timestamp)
"""

AUDIT_INDEX_TOOL = """
CREATE INDEX IF NOT EXISTS idx_audit_tool
ON audit_entries(tool, sequence)
"""

AUDIT_INDEX_CATEGORY = """
CREATE INDEX IF NOT EXISTS idx_audit_category
ON audit_entries(category, sequence)
"""

AUDIT_INDEX_OUTCOME = """
CREATE INDEX IF NOT EXISTS idx_audit_outcome
ON audit_entries(outcome, sequence)
"""

AUDIT_INDEX_ACTOR = """
CREATE INDEX IF NOT EXISTS idx_audit_actor
ON audit_entries(actor, sequence)
"""

REQUIRED_TABLES = ('schema_version', 'log_meta', 'audit_entries')


def get_schema_statements() -> list[str]:
    """
    Get all schema creation statements in order.
    
    Returns:
        List of SQL statements to create schema
    """
    return [
        SCHEMA_VERSION_TABLE,
        LOG_META_TABLE,
        AUDIT_ENTRIES_TABLE,
        AUDIT_INDEX_TIMESTAMP,
        AUDIT_INDEX_TOOL,
        AUDIT_INDEX_CATEGORY,
        AUDIT_INDEX_OUTCOME,
        AUDIT_INDEX_ACTOR,
    ]


def get_initial_version_insert() -> tuple[str, tuple]:
    """
    Get the initial schema version insert statement.
    
    Returns:
        Tuple of (SQL statement, parameters)
    """
    from ..utils.time import now
    
    sql = """
    INSERT INTO schema_version (version, applied_at, description)
    VALUES (?, ?, ?)
    """
    params = (DB_SCHEMA_VERSION, now(), "Initial schema")
    return sql, params


def get_initial_meta_inserts(genesis_hash: str = GENESIS_HASH) -> list[tuple[str, tuple]]:
    """
    Get the statements seeding log_meta for a fresh log file.
    
    Args:
        genesis_hash: prev_hash expected for sequence 0
        
    Returns:
        List of (SQL statement, parameters) tuples
    """
    sql = "INSERT OR IGNORE INTO log_meta (key, value) VALUES (?, ?)"
    return [
        (sql, (META_GENESIS_HASH, genesis_hash)),
        (sql, (META_GENERATION, "0")),
    ]
