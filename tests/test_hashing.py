"""
Tests for canonical encoding and the hash chain algorithm.
"""

import pytest

from auditchain.audit import AuditEntry, Category, Outcome, create_entry_payload
from auditchain.audit.hashchain import canonical_bytes, compute_entry_hash, recompute
from auditchain.config import ENCODING_VERSION, GENESIS_HASH
from auditchain.errors import ValidationError
from auditchain.utils.canonical_json import canonicalize, canonicalize_bytes
from auditchain.utils.hashing import chain_hashes, hash_bytes, is_hex_digest


def _payload(**overrides):
    fields = {
        'sequence': 0,
        'timestamp': "2024-01-01T00:00:00.000000Z",
        'tool': "toolA",
        'category': Category.AUTH,
        'outcome': Outcome.SUCCESS,
        'actor': None,
        'summary': "login ok",
        'metadata': {},
    }
    fields.update(overrides)
    return create_entry_payload(**fields)


class TestCanonicalJson:
    """Test canonical JSON serialization."""
    
    def test_key_order_irrelevant(self):
        """Test that dict insertion order does not change the encoding."""
        assert canonicalize({'b': "1", 'a': "2"}) == canonicalize({'a': "2", 'b': "1"})
    
    def test_no_whitespace(self):
        assert canonicalize({'a': [1, 2]}) == '{"a":[1,2]}'
    
    def test_non_ascii_kept(self):
        """Test that non-ASCII text is encoded once, as UTF-8."""
        assert canonicalize_bytes({'s': "café"}) == '{"s":"café"}'.encode('utf-8')
    
    def test_nan_rejected(self):
        with pytest.raises(ValidationError):
            canonicalize({'x': float('nan')})
    
    def test_lone_surrogate_rejected(self):
        with pytest.raises(ValidationError):
            canonicalize_bytes({'s': "\ud800"})


class TestPayload:
    """Test the field-tagged entry payload."""
    
    def test_version_tag_present(self):
        assert _payload()['v'] == ENCODING_VERSION
    
    def test_absent_actor_omitted(self):
        """Test that an absent optional field is left out entirely."""
        assert 'actor' not in _payload()
        assert _payload(actor="alice")['actor'] == "alice"
    
    def test_enums_encoded_as_values(self):
        payload = _payload(category=Category.CREDENTIAL, outcome=Outcome.DENIED)
        assert payload['category'] == "credential"
        assert payload['outcome'] == "denied"
    
    def test_enum_and_string_encode_identically(self):
        assert canonical_bytes(_payload(category=Category.AUTH)) == \
            canonical_bytes(_payload(category="auth"))


class TestHashChain:
    """Test entry hash computation."""
    
    def test_deterministic(self):
        """Test that the same input always hashes the same."""
        first = compute_entry_hash(_payload(), GENESIS_HASH)
        second = compute_entry_hash(_payload(), GENESIS_HASH)
        assert first == second
        assert is_hex_digest(first)
    
    def test_matches_definition(self):
        """Test entry_hash = SHA-256(canonical bytes || prev_hash)."""
        payload = _payload()
        expected = hash_bytes(canonical_bytes(payload) + GENESIS_HASH.encode('ascii'))
        assert compute_entry_hash(payload, GENESIS_HASH) == expected
    
    def test_prev_hash_changes_digest(self):
        other_prev = hash_bytes(b"other")
        assert compute_entry_hash(_payload(), GENESIS_HASH) != \
            compute_entry_hash(_payload(), other_prev)
    
    @pytest.mark.parametrize('field_name, value', [
        ('sequence', 1),
        ('timestamp', "2024-01-01T00:00:00.000001Z"),
        ('tool', "toolB"),
        ('category', Category.REVIEW),
        ('outcome', Outcome.FAILURE),
        ('actor', "alice"),
        ('summary', "login failed"),
        ('metadata', {'host': "a"}),
    ])
    def test_every_field_is_hashed(self, field_name, value):
        """Test that changing any single field changes the digest."""
        base = compute_entry_hash(_payload(), GENESIS_HASH)
        changed = compute_entry_hash(_payload(**{field_name: value}), GENESIS_HASH)
        assert base != changed
    
    @pytest.mark.parametrize('bad_prev', ["", "abc", "0" * 63, "G" * 64, "A" * 64, None])
    def test_malformed_prev_hash_rejected(self, bad_prev):
        with pytest.raises(ValidationError):
            compute_entry_hash(_payload(), bad_prev)
    
    def test_recompute_ignores_stored_hash(self):
        """Test that recomputation reads content fields only."""
        payload = _payload()
        entry_hash = compute_entry_hash(payload, GENESIS_HASH)
        entry = AuditEntry(
            sequence=0,
            timestamp=payload['timestamp'],
            tool="toolA",
            category=Category.AUTH,
            outcome=Outcome.SUCCESS,
            actor=None,
            summary="login ok",
            metadata={},
            prev_hash=GENESIS_HASH,
            entry_hash="f" * 64,
        )
        assert recompute(entry) == entry_hash
    
    def test_chain_hashes_rejects_text_data(self):
        with pytest.raises(TypeError):
            chain_hashes("not bytes", GENESIS_HASH)
    
    def test_genesis_constant(self):
        assert GENESIS_HASH == "0" * 64
        assert is_hex_digest(GENESIS_HASH)
