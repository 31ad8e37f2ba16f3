"""
Tests for the AuditLog facade.
"""

import os
import sqlite3
import tempfile

import pytest
from structlog.testing import capture_logs

from auditchain import AuditLog, AuditConfig, AuditFilter, Category, EntryDraft, Outcome
from auditchain.errors import StorageError


class TestEndToEnd:
    """Test the basic tool workflow."""
    
    def test_record_query_verify(self):
        """Test three tools' entries, a category query and full verification."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                log.record("toolA", Category.AUTH, Outcome.SUCCESS, "login ok")
                second = log.record("toolB", Category.CREDENTIAL, Outcome.FAILURE, "vault locked")
                log.record("toolA", Category.REVIEW, Outcome.SUCCESS, "posted comment")
                
                result = log.query(AuditFilter(category=Category.CREDENTIAL)).all()
                assert result == [second]
                assert result[0].tool == "toolB"
                assert result[0].summary == "vault locked"
                
                assert log.verify().valid
    
    def test_independent_openers_share_one_chain(self):
        """Test two tools opening the same file append to a single chain."""
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = os.path.join(tmpdir, "audit.db")
            with AuditLog(db_path) as tool_a, AuditLog(db_path) as tool_b:
                a1 = tool_a.record("toolA", "auth", "success", "login ok")
                b1 = tool_b.record("toolB", "network", "denied", "egress blocked")
                a2 = tool_a.record("toolA", "auth", "success", "logout")
                
                assert [a1.sequence, b1.sequence, a2.sequence] == [0, 1, 2]
                assert b1.prev_hash == a1.entry_hash
                assert a2.prev_hash == b1.entry_hash
                assert tool_b.verify().valid
    
    def test_append_draft(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                draft = EntryDraft(
                    tool="toolC",
                    category=Category.CONFIG,
                    outcome=Outcome.SUCCESS,
                    summary="timeout raised to 30s",
                    actor="ops",
                    metadata={'key': "timeout", 'old': "10", 'new': "30"},
                )
                entry = log.append(draft)
                
                assert entry.to_dict()['metadata'] == {'key': "timeout", 'old': "10", 'new': "30"}
                assert entry.actor == "ops"


class TestOpening:
    """Test opening a log file."""
    
    def test_missing_directory(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(StorageError):
                AuditLog(os.path.join(tmpdir, "nope", "audit.db"))
    
    def test_invalid_config(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(ValueError):
                AuditLog(os.path.join(tmpdir, "audit.db"), AuditConfig(lock_timeout=0))
    
    @pytest.mark.skipif(os.name != 'posix', reason="POSIX permissions")
    def test_loose_directory_warns(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            shared = os.path.join(tmpdir, "shared")
            os.mkdir(shared)
            os.chmod(shared, 0o755)
            
            with capture_logs() as logs:
                AuditLog(os.path.join(shared, "audit.db")).close()
            
            assert any(e['event'] == "audit_log_permissions_loose" for e in logs)
    
    @pytest.mark.skipif(os.name != 'posix', reason="POSIX permissions")
    def test_private_directory_silent(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            private = os.path.join(tmpdir, "private")
            os.mkdir(private)
            os.chmod(private, 0o700)
            
            with capture_logs() as logs:
                AuditLog(os.path.join(private, "audit.db")).close()
            
            assert not any(e['event'] == "audit_log_permissions_loose" for e in logs)


class TestHealthCheck:
    """Test health reporting."""
    
    def test_healthy(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with AuditLog(os.path.join(tmpdir, "audit.db")) as log:
                log.record("toolA", Category.AUTH, Outcome.SUCCESS, "login ok")
                health = log.health_check()
                
                assert health['status'] == "healthy"
                assert health['schema_valid'] is True
                assert health['audit_valid'] is True
                assert health['audit_entries'] == 1
    
    def test_unhealthy_after_tamper(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = os.path.join(tmpdir, "audit.db")
            with AuditLog(db_path) as log:
                log.record("toolA", Category.AUTH, Outcome.SUCCESS, "login ok")
                log.record("toolA", Category.AUTH, Outcome.SUCCESS, "logout")
                
                conn = sqlite3.connect(db_path)
                conn.execute("UPDATE audit_entries SET outcome = 'failure' WHERE sequence = 0")
                conn.commit()
                conn.close()
                
                health = log.health_check()
                assert health['status'] == "unhealthy"
                assert health['first_bad_sequence'] == 0
