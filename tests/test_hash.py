"""
Tests for content fingerprinting
"""

import hashlib

import pytest

from consent_gate.crypto.hash import (
    canonical_json,
    fingerprint,
    hash_preview,
    is_fingerprint,
    secure_hash,
    token_preview,
)
from consent_gate.exceptions import HashError
from consent_gate.utils.validators import EmailAttachment


class TestCanonicalJson:
    """Test canonical serialization"""

    def test_keys_sorted_and_compact(self):
        payload = {"b": 1, "a": {"d": [3, 1], "c": "x"}}

        assert canonical_json(payload) == '{"a":{"c":"x","d":[3,1]},"b":1}'

    def test_unicode_kept_literal(self):
        assert canonical_json({"s": "café"}) == '{"s":"café"}'

    def test_integral_float_renders_as_int(self):
        assert canonical_json({"n": 1.0, "m": 2.5}) == '{"m":2.5,"n":1}'

    def test_nan_rejected(self):
        with pytest.raises(HashError):
            canonical_json({"n": float("nan")})

    def test_unserializable_rejected(self):
        with pytest.raises(HashError) as exc_info:
            canonical_json({"tags": {"a", "b"}})
        assert exc_info.value.error_code == "HASH_ERROR"


class TestFingerprint:
    """Test payload fingerprints"""

    def test_matches_sha256_of_canonical_text(self):
        expected = hashlib.sha256('{"a":1,"b":"x"}'.encode("utf-8")).hexdigest()

        assert fingerprint({"b": "x", "a": 1}) == expected

    def test_key_order_independent(self):
        first = {"to": "a@example.com", "meta": {"x": 1, "y": [1, 2]}, "body": "hi"}
        second = {"body": "hi", "meta": {"y": [1, 2], "x": 1}, "to": "a@example.com"}

        assert fingerprint(first) == fingerprint(second)

    def test_list_order_matters(self):
        assert fingerprint({"a": [1, 2]}) != fingerprint({"a": [2, 1]})

    def test_any_field_change_changes_digest(self):
        base = {"to": "a@example.com", "subject": "Hi", "body": "Hello"}

        assert fingerprint(base) != fingerprint({**base, "body": "Hello!"})

    def test_models_hash_like_their_dict(self):
        attachment = EmailAttachment(name="report.pdf", path="/docs/report.pdf")

        assert fingerprint(attachment) == fingerprint({"path": "/docs/report.pdf", "name": "report.pdf"})

    def test_output_format(self):
        digest = fingerprint({"a": 1})

        assert is_fingerprint(digest)
        assert len(digest) == 64
        assert digest == digest.lower()


class TestHashHelpers:
    """Test hashing helpers"""

    def test_is_fingerprint(self):
        assert is_fingerprint("a" * 64)
        assert not is_fingerprint("A" * 64)
        assert not is_fingerprint("a" * 63)
        assert not is_fingerprint(None)

    def test_secure_hash_algorithms(self):
        assert secure_hash(b"data") == hashlib.sha256(b"data").hexdigest()
        assert secure_hash(b"data", "sha512") == hashlib.sha512(b"data").hexdigest()

        with pytest.raises(HashError):
            secure_hash(b"data", "md5")

    def test_previews(self):
        assert hash_preview("0123456789abcdef" * 4) == "0123456789abcdef..."
        assert hash_preview(None) == "not_set"
        assert token_preview("gdpr_abc_123456") == "gdpr_abc..."
        assert token_preview("") == "missing"
