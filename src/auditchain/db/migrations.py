"""
Database migration management for auditchain.
Ensures schema is correctly initialized and versioned.
"""

from typing import Optional

import structlog

from .connection import DatabaseConnection
from .schema import (
    DB_SCHEMA_VERSION,
    REQUIRED_TABLES,
    get_initial_meta_inserts,
    get_initial_version_insert,
    get_schema_statements,
)
from ..config import GENESIS_HASH
from ..errors import AuditChainError, LockError, SchemaError, StorageError

logger = structlog.get_logger(__name__)


def get_current_version(db: DatabaseConnection) -> Optional[int]:
    """
    Get current schema version from database.
    
    Args:
        db: Database connection
        
    Returns:
        Current version number or None if not initialized
    """
    row = db.fetch_one(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
    )
    if not row:
        return None
    
    row = db.fetch_one("SELECT MAX(version) AS version FROM schema_version")
    if row and row['version'] is not None:
        return row['version']
    return None


def _check_version(version: Optional[int]) -> bool:
    """Return True if the schema is current, False if it must be created."""
    if version is None:
        return False
    if version > DB_SCHEMA_VERSION:
        raise SchemaError(
            f"Database schema version {version} is newer than "
            f"expected version {DB_SCHEMA_VERSION}. Cannot downgrade."
        )
    if version < DB_SCHEMA_VERSION:
        raise SchemaError(
            f"Database schema version {version} is older than "
            f"expected version {DB_SCHEMA_VERSION}. Migration needed."
        )
    return True


def initialize_schema(db: DatabaseConnection, genesis_hash: str = GENESIS_HASH):
    """
    Initialize database schema.
    
    Safe to call from several processes at once: the version is re-read
    under the write lock, so only the first caller creates tables.
    
    Args:
        db: Database connection
        genesis_hash: Seed for sequence 0 of a fresh log
        
    Raises:
        SchemaError: If initialization fails or the version is unsupported
        LockError: If another process holds the write lock too long
    """
    if _check_version(get_current_version(db)):
        return
    
    try:
        with db.write_transaction():
            if _check_version(get_current_version(db)):
                return
            
            for statement in get_schema_statements():
                db.execute(statement)
            
            for sql, params in get_initial_meta_inserts(genesis_hash):
                db.execute(sql, params)
            
            sql, params = get_initial_version_insert()
            db.execute(sql, params)
    except (SchemaError, LockError):
        raise
    except StorageError as e:
        raise SchemaError(f"Failed to initialize schema: {e}")
    
    logger.info("audit_schema_initialized", db_path=str(db.db_path), version=DB_SCHEMA_VERSION)


def verify_schema(db: DatabaseConnection) -> bool:
    """
    Verify that schema is correct and complete.
    
    Args:
        db: Database connection
        
    Returns:
        True if schema is valid
    """
    try:
        version = get_current_version(db)
        if version != DB_SCHEMA_VERSION:
            return False
        
        for table_name in REQUIRED_TABLES:
            row = db.fetch_one(
                "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
                (table_name,)
            )
            if not row:
                return False
        
        return True
        
    except AuditChainError:
        return False
