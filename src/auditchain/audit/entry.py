"""
Audit entry structure.
Every entry is frozen once the store has sequenced and hashed it.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

from ..config import ENCODING_VERSION
from ..errors import CorruptionError, ValidationError


class Category(str, Enum):
    """High-level classification of an audited action."""
    AUTH = "auth"
    CONFIG = "config"
    NETWORK = "network"
    FILE_ACCESS = "file_access"
    CREDENTIAL = "credential"
    REVIEW = "review"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Union['Category', str]) -> 'Category':
        """
        Coerce a Category or its string value.

        Raises:
            ValidationError: If value names no category
        """
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Unknown category: {value!r}")


class Outcome(str, Enum):
    """Whether the audited action succeeded, failed, or was denied."""
    SUCCESS = "success"
    FAILURE = "failure"
    DENIED = "denied"

    @classmethod
    def parse(cls, value: Union['Outcome', str]) -> 'Outcome':
        """
        Coerce an Outcome or its string value.

        Raises:
            ValidationError: If value names no outcome
        """
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Unknown outcome: {value!r}")


@dataclass(frozen=True)
class EntryDraft:
    """
    The fields a calling tool supplies for a new entry.

    sequence, timestamp, prev_hash and entry_hash are assigned by the
    store during append and cannot be given here.
    """
    tool: str
    category: Category
    outcome: Outcome
    summary: str
    actor: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'category', Category.parse(self.category))
        object.__setattr__(self, 'outcome', Outcome.parse(self.outcome))
        if self.metadata is None:
            object.__setattr__(self, 'metadata', {})
        elif isinstance(self.metadata, dict):
            object.__setattr__(self, 'metadata', dict(self.metadata))
        else:
            raise ValidationError(
                f"metadata must be a dict of str to str, got {type(self.metadata).__name__}"
            )


@dataclass(frozen=True)
class AuditEntry:
    """
    Represents a single persisted audit log entry.
    """
    sequence: int
    timestamp: str
    tool: str
    category: Category
    outcome: Outcome
    actor: Optional[str]
    summary: str
    metadata: Dict[str, str]
    prev_hash: str
    entry_hash: str

    def payload(self) -> Dict[str, Any]:
        """Hash input for this entry (every field except the two hashes)."""
        return create_entry_payload(
            sequence=self.sequence,
            timestamp=self.timestamp,
            tool=self.tool,
            category=self.category,
            outcome=self.outcome,
            actor=self.actor,
            summary=self.summary,
            metadata=self.metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert audit entry to dictionary."""
        return {
            'sequence': self.sequence,
            'timestamp': self.timestamp,
            'tool': self.tool,
            'category': self.category.value,
            'outcome': self.outcome.value,
            'actor': self.actor,
            'summary': self.summary,
            'metadata': dict(self.metadata),
            'prev_hash': self.prev_hash,
            'entry_hash': self.entry_hash,
        }

    @classmethod
    def from_row(cls, row) -> 'AuditEntry':
        """
        Create audit entry from database row.

        Rows are read as stored, without validation: a row edited outside
        the store must still load so the verifier can report it.

        Raises:
            CorruptionError: If the metadata column is not a JSON object
        """
        try:
            metadata = json.loads(row['metadata']) if row['metadata'] else {}
        except ValueError:
            metadata = None
        if not isinstance(metadata, dict):
            raise CorruptionError(
                f"Entry {row['sequence']}: metadata is not a JSON object",
                sequence=row['sequence'],
            )

        return cls(
            sequence=row['sequence'],
            timestamp=row['timestamp'],
            tool=row['tool'],
            category=_lenient(Category, row['category']),
            outcome=_lenient(Outcome, row['outcome']),
            actor=row['actor'],
            summary=row['summary'],
            metadata=metadata,
            prev_hash=row['prev_hash'],
            entry_hash=row['entry_hash'],
        )


class _UnknownValue(str):
    """A stored enum value outside the closed set; hashes as the raw text."""

    @property
    def value(self) -> str:
        return str(self)


def _lenient(enum_cls, raw: str):
    try:
        return enum_cls(raw)
    except ValueError:
        return _UnknownValue(raw)


def create_entry_payload(
    sequence: int,
    timestamp: str,
    tool: str,
    category: Union[Category, str],
    outcome: Union[Outcome, str],
    actor: Optional[str],
    summary: str,
    metadata: Dict[str, str],
) -> Dict[str, Any]:
    """
    Create the field-tagged payload for an audit entry (before hashing).

    Every field is keyed by name and the whole object carries an encoding
    version, so the encoding never depends on field order. Optional fields
    are left out when absent; adding a new optional field later does not
    change the hash of entries that lack it.

    Args:
        sequence: Position in the log
        timestamp: Store-assigned UTC timestamp
        tool: Invoking tool
        category: Action category
        outcome: Action outcome
        actor: Acting principal, or None
        summary: Human-readable description
        metadata: Flat string-to-string context

    Returns:
        Payload dictionary
    """
    payload: Dict[str, Any] = {
        'v': ENCODING_VERSION,
        'sequence': sequence,
        'timestamp': timestamp,
        'tool': tool,
        'category': getattr(category, 'value', category),
        'outcome': getattr(outcome, 'value', outcome),
        'summary': summary,
        'metadata': dict(metadata),
    }
    if actor is not None:
        payload['actor'] = actor
    return payload
