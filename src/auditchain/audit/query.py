"""
Filtered, ordered retrieval of audit entries.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

from ..db.connection import DatabaseConnection
from ..errors import ValidationError
from ..utils.time import to_timestamp
from .entry import AuditEntry, Category, Outcome

TimeBound = Union[datetime, str]


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class AuditFilter:
    """
    Filter criteria for querying audit entries.

    Every field is optional; None means "do not filter on this field".
    Constraints combine with AND.

    Attributes:
        category: Only entries of this category
        outcome: Only entries with this outcome
        tool: Only entries written by this tool
        actor: Only entries for this acting principal
        metadata: Only entries whose metadata holds every given key with
            the given value, e.g. a trace id shared across tools
        since: Only entries at or after this instant
        until: Only entries strictly before this instant
        text: Case-sensitive substring of the summary
        limit: Maximum number of entries returned
        offset: Number of matching entries skipped first
        order: Sequence order, ascending by default
    """
    category: Optional[Category] = None
    outcome: Optional[Outcome] = None
    tool: Optional[str] = None
    actor: Optional[str] = None
    metadata: Tuple[Tuple[str, str], ...] = ()
    since: Optional[TimeBound] = None
    until: Optional[TimeBound] = None
    text: Optional[str] = None
    limit: Optional[int] = None
    offset: int = 0
    order: SortOrder = SortOrder.ASC

    def __post_init__(self):
        if self.category is not None:
            object.__setattr__(self, 'category', Category.parse(self.category))
        if self.outcome is not None:
            object.__setattr__(self, 'outcome', Outcome.parse(self.outcome))
        try:
            object.__setattr__(self, 'order', SortOrder(self.order))
        except ValueError:
            raise ValidationError(f"Unknown sort order: {self.order!r}")

        if self.limit is not None and (not isinstance(self.limit, int) or self.limit < 0):
            raise ValidationError(f"limit must be a non-negative integer, got {self.limit!r}")
        if not isinstance(self.offset, int) or self.offset < 0:
            raise ValidationError(f"offset must be a non-negative integer, got {self.offset!r}")

        object.__setattr__(self, 'metadata', _metadata_pairs(self.metadata))

        for name in ('since', 'until'):
            value = getattr(self, name)
            if value is None:
                continue
            try:
                to_timestamp(value)
            except (TypeError, ValueError) as e:
                raise ValidationError(f"Invalid {name}: {e}")

    def with_category(self, category: Union[Category, str]) -> 'AuditFilter':
        return replace(self, category=category)

    def with_outcome(self, outcome: Union[Outcome, str]) -> 'AuditFilter':
        return replace(self, outcome=outcome)

    def with_tool(self, tool: str) -> 'AuditFilter':
        return replace(self, tool=tool)

    def with_actor(self, actor: str) -> 'AuditFilter':
        return replace(self, actor=actor)

    def with_metadata(self, key: str, value: str) -> 'AuditFilter':
        pairs = dict(self.metadata)
        pairs[key] = value
        return replace(self, metadata=pairs)

    def with_since(self, since: TimeBound) -> 'AuditFilter':
        return replace(self, since=since)

    def with_until(self, until: TimeBound) -> 'AuditFilter':
        return replace(self, until=until)

    def with_text(self, text: str) -> 'AuditFilter':
        return replace(self, text=text)

    def with_limit(self, limit: int) -> 'AuditFilter':
        return replace(self, limit=limit)

    def with_offset(self, offset: int) -> 'AuditFilter':
        return replace(self, offset=offset)

    def with_order(self, order: Union[SortOrder, str]) -> 'AuditFilter':
        return replace(self, order=order)

    def where_clause(self) -> tuple[str, tuple]:
        """
        Build the WHERE clause for this filter.

        Returns:
            Tuple of (clause text, possibly empty; parameters)
        """
        clauses: List[str] = []
        params: List[object] = []

        if self.category is not None:
            clauses.append("category = ?")
            params.append(self.category.value)
        if self.outcome is not None:
            clauses.append("outcome = ?")
            params.append(self.outcome.value)
        if self.tool is not None:
            clauses.append("tool = ?")
            params.append(self.tool)
        if self.actor is not None:
            clauses.append("actor = ?")
            params.append(self.actor)
        for key, value in self.metadata:
            # Keys compare literally, with no JSON path syntax
            clauses.append(
                "EXISTS (SELECT 1 FROM json_each(audit_entries.metadata) "
                "WHERE json_each.key = ? AND json_each.value = ?)"
            )
            params.extend((key, value))
        if self.since is not None:
            clauses.append("timestamp >= ?")
            params.append(to_timestamp(self.since))
        if self.until is not None:
            clauses.append("timestamp < ?")
            params.append(to_timestamp(self.until))
        if self.text is not None:
            # instr() matches literally; LIKE would treat % and _ as wildcards
            clauses.append("instr(summary, ?) > 0")
            params.append(self.text)

        if not clauses:
            return "", ()
        return "WHERE " + " AND ".join(clauses), tuple(params)


class QueryResult:
    """
    Lazy, restartable view of the entries matching a filter.

    Nothing is read until iteration starts. Every iteration re-runs the
    query and streams rows in batches, so iterating twice over an
    unchanged log yields the same entries in the same order.
    """

    def __init__(self, db: DatabaseConnection, audit_filter: AuditFilter):
        self.db = db
        self.filter = audit_filter

    def _select(self) -> tuple[str, tuple]:
        where, params = self.filter.where_clause()
        direction = "DESC" if self.filter.order == SortOrder.DESC else "ASC"
        # LIMIT -1 means unbounded in SQLite; OFFSET needs a LIMIT
        limit = -1 if self.filter.limit is None else self.filter.limit
        sql = f"""
            SELECT sequence, timestamp, tool, category, outcome, actor,
                   summary, metadata, prev_hash, entry_hash
            FROM audit_entries
            {where}
            ORDER BY sequence {direction}
            LIMIT ? OFFSET ?
        """
        return sql, params + (limit, self.filter.offset)

    def __iter__(self) -> Iterator[AuditEntry]:
        sql, params = self._select()
        for row in self.db.iterate(sql, params):
            yield AuditEntry.from_row(row)

    def all(self) -> List[AuditEntry]:
        """Materialize every matching entry."""
        return list(self)

    def first(self) -> Optional[AuditEntry]:
        for entry in self:
            return entry
        return None

    def count(self) -> int:
        """
        Count matching entries, ignoring limit and offset.

        Returns:
            Number of entries the filter matches
        """
        where, params = self.filter.where_clause()
        row = self.db.fetch_one(
            f"SELECT COUNT(*) AS count FROM audit_entries {where}",
            params
        )
        return row['count'] if row else 0


class QueryEngine:
    """
    Runs filters against an audit log. Read-only; never takes the write lock.
    """

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def query(self, audit_filter: Optional[AuditFilter] = None) -> QueryResult:
        """
        Select entries matching a filter.

        Args:
            audit_filter: Filter to apply; None matches every entry

        Returns:
            Lazy QueryResult
        """
        return QueryResult(self.db, audit_filter or AuditFilter())


def _metadata_pairs(
    metadata: Union[Mapping[str, str], Tuple[Tuple[str, str], ...], None],
) -> Tuple[Tuple[str, str], ...]:
    """Normalize metadata criteria to sorted (key, value) pairs."""
    if not metadata:
        return ()
    items = metadata.items() if isinstance(metadata, Mapping) else metadata
    pairs: Dict[str, str] = {}
    try:
        for key, value in items:
            if not isinstance(key, str) or not key or not isinstance(value, str):
                raise ValidationError(
                    f"metadata criteria must map non-empty strings to strings: {key!r}"
                )
            pairs[key] = value
    except (TypeError, ValueError):
        raise ValidationError("metadata criteria must be a mapping of str to str")
    return tuple(sorted(pairs.items()))
