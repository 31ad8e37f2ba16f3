"""
Tests for runtime configuration.
"""

import pytest

from auditchain.config import AuditConfig, METADATA_MAX_ENTRIES, SUMMARY_MAX_LENGTH


class TestAuditConfig:
    """Test AuditConfig defaults and validation."""
    
    def test_defaults(self):
        config = AuditConfig()
        assert config.lock_timeout == 5.0
        assert config.verify_on_open is False
        assert config.max_summary_length == SUMMARY_MAX_LENGTH
        assert config.max_metadata_entries == METADATA_MAX_ENTRIES
        config.validate()
    
    @pytest.mark.parametrize('kwargs', [
        {'lock_timeout': 0},
        {'lock_timeout': -1.0},
        {'max_summary_length': 0},
        {'max_metadata_entries': -1},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            AuditConfig(**kwargs).validate()


class TestFromEnv:
    """Test AUDITCHAIN_* environment variables."""
    
    def test_empty_env_gives_defaults(self):
        assert AuditConfig.from_env({}) == AuditConfig()
    
    def test_overrides(self):
        config = AuditConfig.from_env({
            'AUDITCHAIN_LOCK_TIMEOUT': "0.5",
            'AUDITCHAIN_VERIFY_ON_OPEN': "yes",
            'AUDITCHAIN_MAX_SUMMARY_LENGTH': "200",
            'AUDITCHAIN_MAX_METADATA_ENTRIES': "8",
        })
        assert config == AuditConfig(
            lock_timeout=0.5,
            verify_on_open=True,
            max_summary_length=200,
            max_metadata_entries=8,
        )
    
    def test_blank_values_ignored(self):
        assert AuditConfig.from_env({'AUDITCHAIN_LOCK_TIMEOUT': "  "}).lock_timeout == 5.0
    
    def test_unrelated_vars_ignored(self):
        assert AuditConfig.from_env({'LOCK_TIMEOUT': "1"}) == AuditConfig()
    
    @pytest.mark.parametrize('env', [
        {'AUDITCHAIN_LOCK_TIMEOUT': "soon"},
        {'AUDITCHAIN_LOCK_TIMEOUT': "0"},
        {'AUDITCHAIN_VERIFY_ON_OPEN': "maybe"},
        {'AUDITCHAIN_MAX_SUMMARY_LENGTH': "1.5"},
    ])
    def test_invalid_values(self, env):
        with pytest.raises(ValueError):
            AuditConfig.from_env(env)
    
    def test_reads_os_environ(self, monkeypatch):
        monkeypatch.setenv('AUDITCHAIN_VERIFY_ON_OPEN', "1")
        assert AuditConfig.from_env().verify_on_open is True
