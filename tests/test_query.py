"""
Tests for filtered queries.
"""

import os
import tempfile
from datetime import timezone

import pytest

from auditchain import AuditLog
from auditchain.audit import AuditFilter, Category, Outcome, SortOrder
from auditchain.errors import ValidationError
from auditchain.utils.time import parse_timestamp


def _populate(log):
    """Ten entries; the odd ones are credential entries."""
    entries = []
    for i in range(10):
        if i % 2:
            entries.append(log.record(
                "vault", Category.CREDENTIAL, Outcome.DENIED if i == 5 else Outcome.SUCCESS,
                f"vault unlock {i}", actor="alice",
            ))
        else:
            entries.append(log.record(
                "review", Category.REVIEW, Outcome.SUCCESS,
                f"posted comment {i}", actor="bob" if i else None,
            ))
    return entries


class TestFiltering:
    """Test each filter field."""
    
    def test_no_filter_returns_everything(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                entries = _populate(log)
                assert log.query().all() == entries
    
    def test_empty_log(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                result = log.query(category=Category.AUTH)
                assert result.all() == []
                assert result.first() is None
                assert result.count() == 0
    
    def test_category(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                _populate(log)
                sequences = [e.sequence for e in log.query(category="credential")]
                assert sequences == [1, 3, 5, 7, 9]
    
    def test_conjunction(self):
        """Test that constraints combine with AND."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                _populate(log)
                result = log.query(category=Category.CREDENTIAL, outcome=Outcome.DENIED)
                assert [e.sequence for e in result] == [5]
    
    def test_tool_and_actor(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                _populate(log)
                assert [e.sequence for e in log.query(tool="review", actor="bob")] == [2, 4, 6, 8]
                assert log.query(actor="carol").all() == []
    
    def test_text_is_literal_substring(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                _populate(log)
                log.record("toolA", Category.OTHER, Outcome.SUCCESS, "disk 100% full")
                
                assert [e.sequence for e in log.query(text="comment 4")] == [4]
                assert [e.sequence for e in log.query(text="100%")] == [10]
                # % and _ are not wildcards
                assert log.query(text="v_ult").all() == []
                # case-sensitive
                assert log.query(text="Vault").all() == []
    
    def test_time_range(self):
        """Test since is inclusive and until is exclusive."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                entries = _populate(log)
                result = log.query(since=entries[2].timestamp, until=entries[5].timestamp)
                assert [e.sequence for e in result] == [2, 3, 4]
    
    def test_time_range_accepts_datetimes(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                entries = _populate(log)
                aware = parse_timestamp(entries[7].timestamp)
                naive = aware.astimezone(timezone.utc).replace(tzinfo=None)
                
                assert [e.sequence for e in log.query(since=aware)] == [7, 8, 9]
                assert [e.sequence for e in log.query(since=naive)] == [7, 8, 9]
    
    def test_metadata_correlates_tools(self):
        """Test a shared trace id finds the matching entries of every tool."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                log.record("toolA", Category.AUTH, Outcome.SUCCESS, "login ok",
                           metadata={'trace_id': "t-1"})
                log.record("toolB", Category.NETWORK, Outcome.SUCCESS, "fetch",
                           metadata={'trace_id': "t-2"})
                log.record("toolB", Category.CREDENTIAL, Outcome.DENIED, "vault locked",
                           metadata={'trace_id': "t-1", 'vault': "main"})
                log.record("toolC", Category.OTHER, Outcome.SUCCESS, "no trace")
                
                result = log.query(metadata={'trace_id': "t-1"})
                assert [e.sequence for e in result] == [0, 2]
                assert result.count() == 2
                
                narrowed = AuditFilter().with_metadata("trace_id", "t-1").with_metadata("vault", "main")
                assert [e.sequence for e in log.query(narrowed)] == [2]
                assert log.query(metadata={'trace_id': "t-3"}).all() == []
    
    def test_metadata_key_taken_literally(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                log.record("toolA", Category.OTHER, Outcome.SUCCESS, "odd key",
                           metadata={'a.b"c': "1"})
                log.record("toolA", Category.OTHER, Outcome.SUCCESS, "nested look-alike",
                           metadata={'a': "1"})
                
                assert [e.sequence for e in log.query(metadata={'a.b"c': "1"})] == [0]
                assert [e.sequence for e in log.query(metadata={'a': "1"})] == [1]
    
    def test_unknown_criterion(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                with pytest.raises(ValidationError):
                    log.query(bogus=1)


class TestPagination:
    """Test ordering, limit and offset."""
    
    def test_limit_offset_within_filter(self):
        """Test limit=2, offset=2 over five matches returns the 3rd and 4th."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                entries = _populate(log)
                result = log.query(category=Category.CREDENTIAL, limit=2, offset=2)
                assert result.all() == [entries[5], entries[7]]
    
    def test_offset_without_limit(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                _populate(log)
                assert [e.sequence for e in log.query(offset=8)] == [8, 9]
    
    def test_descending(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                _populate(log)
                result = log.query(category="credential", order=SortOrder.DESC, limit=3)
                assert [e.sequence for e in result] == [9, 7, 5]
    
    def test_count_ignores_limit(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                _populate(log)
                result = log.query(category="credential", limit=1, offset=1)
                assert result.count() == 5
                assert len(result.all()) == 1
    
    def test_zero_limit(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                _populate(log)
                assert log.query(limit=0).all() == []


class TestQueryResult:
    """Test result semantics."""
    
    def test_idempotent(self):
        """Test the same filter twice over an unchanged log gives identical results."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                _populate(log)
                audit_filter = AuditFilter(category=Category.CREDENTIAL, limit=3)
                assert log.query(audit_filter).all() == log.query(audit_filter).all()
    
    def test_restartable(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                _populate(log)
                result = log.query(tool="review")
                assert list(result) == list(result)
    
    def test_lazy(self):
        """Test nothing is read until iteration, so later appends are seen."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                result = log.query(tool="late")
                log.record("late", Category.OTHER, Outcome.SUCCESS, "appended after query()")
                assert len(result.all()) == 1
    
    def test_no_duplicates(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                _populate(log)
                sequences = [e.sequence for e in log.query()]
                assert len(sequences) == len(set(sequences))
    
    def test_keyword_overrides_filter(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                _populate(log)
                base = AuditFilter(category=Category.CREDENTIAL)
                assert [e.sequence for e in log.query(base, category="review", limit=1)] == [0]


class TestAuditFilter:
    """Test filter construction."""
    
    def test_builders_return_new_filters(self):
        base = AuditFilter()
        narrowed = base.with_category("auth").with_limit(5).with_order("desc")
        
        assert base.category is None
        assert narrowed.category is Category.AUTH
        assert narrowed.limit == 5
        assert narrowed.order is SortOrder.DESC
    
    def test_where_clause_empty(self):
        assert AuditFilter().where_clause() == ("", ())
    
    def test_where_clause_parameters(self):
        clause, params = AuditFilter(tool="toolA", outcome="failure").where_clause()
        assert clause == "WHERE outcome = ? AND tool = ?"
        assert params == ("failure", "toolA")
    
    @pytest.mark.parametrize('kwargs', [
        {'limit': -1},
        {'offset': -1},
        {'category': "nope"},
        {'outcome': "nope"},
        {'order': "sideways"},
        {'since': "yesterday"},
        {'metadata': {'trace_id': 7}},
        {'metadata': {'': "x"}},
        {'metadata': ["trace_id"]},
    ])
    def test_invalid_filter(self, kwargs):
        with pytest.raises(ValidationError):
            AuditFilter(**kwargs)
