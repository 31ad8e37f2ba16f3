"""
Configuration for auditchain.

Module-level names are immutable system constants. Anything a deployment
may tune lives on AuditConfig.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

# Cryptographic constants
HASH_ALGORITHM = "sha256"
HASH_HEX_LENGTH = 64
PUBLIC_KEY_LENGTH = 32

# Chain constants
# prev_hash of sequence 0 in a log that was never rotated.
GENESIS_HASH = "0" * HASH_HEX_LENGTH
ENCODING_VERSION = 1

# Database constants
DB_SCHEMA_VERSION = 1
META_GENESIS_HASH = "genesis_hash"
META_GENERATION = "generation"
META_ROTATED_FROM = "rotated_from"

# Canonical JSON settings
JSON_SEPARATORS = (',', ':')  # No whitespace
JSON_SORT_KEYS = True
JSON_ENSURE_ASCII = False

# Time constants
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# Entry field limits
TOOL_MAX_LENGTH = 64
ACTOR_MAX_LENGTH = 128
SUMMARY_MAX_LENGTH = 1024
METADATA_MAX_ENTRIES = 64
METADATA_KEY_MAX_LENGTH = 128
METADATA_VALUE_MAX_LENGTH = 4096

# Query constants
QUERY_FETCH_BATCH = 256

ENV_PREFIX = "AUDITCHAIN_"


@dataclass(frozen=True)
class AuditConfig:
    """
    Runtime settings for an audit log.

    Attributes:
        lock_timeout: Seconds append() waits for the write lock
        verify_on_open: Verify the whole chain when the log is opened
        max_summary_length: Upper bound for EntryDraft.summary
        max_metadata_entries: Upper bound for len(EntryDraft.metadata)
    """
    lock_timeout: float = 5.0
    verify_on_open: bool = False
    max_summary_length: int = SUMMARY_MAX_LENGTH
    max_metadata_entries: int = METADATA_MAX_ENTRIES

    def validate(self) -> None:
        if self.lock_timeout <= 0:
            raise ValueError("lock_timeout must be > 0")
        if self.max_summary_length <= 0:
            raise ValueError("max_summary_length must be > 0")
        if self.max_metadata_entries < 0:
            raise ValueError("max_metadata_entries must be >= 0")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> 'AuditConfig':
        """
        Build a config from AUDITCHAIN_* environment variables.

        Unset variables keep their defaults.

        Args:
            env: Mapping to read instead of os.environ

        Returns:
            Validated AuditConfig

        Raises:
            ValueError: If a variable cannot be parsed or is out of range
        """
        source = os.environ if env is None else env
        defaults = cls()

        def _get(name: str) -> Optional[str]:
            raw = source.get(ENV_PREFIX + name)
            if raw is None or not raw.strip():
                return None
            return raw.strip()

        lock_timeout = _get("LOCK_TIMEOUT")
        verify_on_open = _get("VERIFY_ON_OPEN")
        max_summary = _get("MAX_SUMMARY_LENGTH")
        max_metadata = _get("MAX_METADATA_ENTRIES")

        config = cls(
            lock_timeout=float(lock_timeout) if lock_timeout else defaults.lock_timeout,
            verify_on_open=(
                _parse_bool(verify_on_open) if verify_on_open else defaults.verify_on_open
            ),
            max_summary_length=int(max_summary) if max_summary else defaults.max_summary_length,
            max_metadata_entries=(
                int(max_metadata) if max_metadata else defaults.max_metadata_entries
            ),
        )
        config.validate()
        return config


def _parse_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean value: {raw!r}")
