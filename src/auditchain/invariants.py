"""
Validation of caller-supplied entry fields.
Every draft passes these checks before the store hashes or writes it.
"""

import re
from typing import Dict, Optional

from .config import (
    ACTOR_MAX_LENGTH,
    METADATA_KEY_MAX_LENGTH,
    METADATA_MAX_ENTRIES,
    METADATA_VALUE_MAX_LENGTH,
    SUMMARY_MAX_LENGTH,
    TOOL_MAX_LENGTH,
    AuditConfig,
)
from .errors import ValidationError
from .audit.entry import EntryDraft
from .utils.hashing import is_hex_digest

_TOOL_PATTERN = re.compile(r"[A-Za-z0-9._-]+")


def _check_utf8(value: str, label: str):
    try:
        value.encode('utf-8')
    except UnicodeEncodeError:
        raise ValidationError(f"{label} is not valid UTF-8 text")


def validate_tool(tool: str):
    """
    Validate the invoking tool's identifier.

    Args:
        tool: Short tool name, e.g. "git-review"

    Raises:
        ValidationError: If the identifier is empty, too long, or holds
            characters outside [A-Za-z0-9._-]
    """
    if not isinstance(tool, str) or not tool:
        raise ValidationError("tool must be a non-empty string")

    if len(tool) > TOOL_MAX_LENGTH:
        raise ValidationError(
            f"tool must be at most {TOOL_MAX_LENGTH} characters, got {len(tool)}"
        )

    if not _TOOL_PATTERN.fullmatch(tool):
        raise ValidationError(f"tool contains invalid characters: {tool!r}")


def validate_actor(actor: Optional[str]):
    """
    Validate the optional acting principal.

    Raises:
        ValidationError: If actor is present but empty, too long, or not text
    """
    if actor is None:
        return

    if not isinstance(actor, str) or not actor.strip():
        raise ValidationError("actor must be a non-empty string or None")

    if len(actor) > ACTOR_MAX_LENGTH:
        raise ValidationError(
            f"actor must be at most {ACTOR_MAX_LENGTH} characters, got {len(actor)}"
        )

    _check_utf8(actor, "actor")


def validate_summary(summary: str, max_length: int = SUMMARY_MAX_LENGTH):
    """
    Validate the human-readable summary.

    Args:
        summary: Free-text description
        max_length: Upper bound on characters

    Raises:
        ValidationError: If summary is blank, oversized, or not UTF-8 text
    """
    if not isinstance(summary, str) or not summary.strip():
        raise ValidationError("summary must be a non-empty string")

    if len(summary) > max_length:
        raise ValidationError(
            f"summary must be at most {max_length} characters, got {len(summary)}"
        )

    _check_utf8(summary, "summary")


def validate_metadata(
    metadata: Dict[str, str],
    max_entries: int = METADATA_MAX_ENTRIES,
):
    """
    Validate that metadata is a flat string-to-string mapping.

    Nested values are rejected outright; canonical encoding stays
    deterministic only for flat text.

    Args:
        metadata: Extra structured context
        max_entries: Upper bound on keys

    Raises:
        ValidationError: If any key or value is not acceptable text
    """
    if not isinstance(metadata, dict):
        raise ValidationError("metadata must be a dict of str to str")

    if len(metadata) > max_entries:
        raise ValidationError(
            f"metadata must have at most {max_entries} entries, got {len(metadata)}"
        )

    for key, value in metadata.items():
        if not isinstance(key, str) or not key:
            raise ValidationError(f"metadata key must be a non-empty string: {key!r}")
        if len(key) > METADATA_KEY_MAX_LENGTH:
            raise ValidationError(f"metadata key too long: {key[:32]!r}...")
        _check_utf8(key, "metadata key")

        if not isinstance(value, str):
            raise ValidationError(
                f"metadata value for {key!r} must be a string, got {type(value).__name__}"
            )
        if len(value) > METADATA_VALUE_MAX_LENGTH:
            raise ValidationError(f"metadata value for {key!r} too long")
        _check_utf8(value, f"metadata value for {key!r}")


def validate_hash_format(value: str, label: str = "hash"):
    """
    Validate a 64-character lower-case hex digest.

    Raises:
        ValidationError: If format is invalid
    """
    if not is_hex_digest(value):
        raise ValidationError(f"{label} must be 64 lower-case hex characters")


def validate_sequence(sequence: int, label: str = "sequence"):
    """
    Validate a sequence number.

    Raises:
        ValidationError: If sequence is not a non-negative int
    """
    if isinstance(sequence, bool) or not isinstance(sequence, int) or sequence < 0:
        raise ValidationError(f"{label} must be a non-negative integer, got {sequence!r}")


def check_draft(draft: EntryDraft, config: Optional[AuditConfig] = None):
    """
    Check every caller-supplied field of a draft.

    Args:
        draft: Entry draft from a calling tool
        config: Limits to apply (defaults when None)

    Raises:
        ValidationError: If any field is invalid
    """
    if not isinstance(draft, EntryDraft):
        raise ValidationError(f"Expected EntryDraft, got {type(draft).__name__}")

    config = config or AuditConfig()
    validate_tool(draft.tool)
    validate_actor(draft.actor)
    validate_summary(draft.summary, config.max_summary_length)
    validate_metadata(draft.metadata, config.max_metadata_entries)
