"""
Tests for consent record models and stores
"""

import pytest
from datetime import datetime, timedelta, UTC
from pydantic import ValidationError as PydanticValidationError

from consent_gate.consent.models import ConsentRecord, HashType
from consent_gate.consent.storage import (
    InMemoryConsentStore,
    SQLConsentStore,
    create_consent_store,
)
from consent_gate.config import GateConfig
from consent_gate.exceptions import SignedHashConflictError

NOW = datetime(2025, 1, 15, 12, 0, 0, tzinfo=UTC)
ORIGINAL = "a" * 64
SIGNED = "b" * 64


def make_record(token="gdpr_test_1", expires_at=None, created_at=None, **overrides):
    created_at = created_at or NOW - timedelta(hours=1)
    return ConsentRecord(
        token=token,
        original_hash=overrides.pop("original_hash", ORIGINAL),
        subject=overrides.pop("subject", "alice@example.com"),
        purpose=overrides.pop("purpose", "email_notification"),
        created_at=created_at,
        expires_at=expires_at or NOW + timedelta(hours=23),
        **overrides,
    )


class TestConsentRecord:
    """Test consent record model"""

    def test_matches_hash(self):
        record = make_record(signed_hash=SIGNED)

        assert record.matches_hash(ORIGINAL) == HashType.ORIGINAL
        assert record.matches_hash(SIGNED) == HashType.SIGNED
        assert record.matches_hash("c" * 64) is None

    def test_expiry_boundary(self):
        record = make_record(expires_at=NOW)

        assert record.is_expired(NOW)
        assert not record.is_expired(NOW - timedelta(milliseconds=1))

    def test_naive_timestamps_treated_as_utc(self):
        record = make_record(
            created_at=datetime(2025, 1, 15, 11, 0, 0),
            expires_at=datetime(2025, 1, 16, 11, 0, 0),
        )

        assert record.expires_at.tzinfo is not None
        assert record.expires_at == datetime(2025, 1, 16, 11, 0, 0, tzinfo=UTC)

    def test_expires_after_creation(self):
        with pytest.raises(PydanticValidationError):
            make_record(created_at=NOW, expires_at=NOW)

    def test_hashes_must_be_fingerprints(self):
        with pytest.raises(PydanticValidationError):
            make_record(original_hash="not-a-hash")

    def test_records_are_immutable(self):
        record = make_record()

        with pytest.raises(PydanticValidationError):
            record.signed_hash = SIGNED

    def test_with_signed_hash_returns_copy(self):
        record = make_record()
        updated = record.with_signed_hash(SIGNED)

        assert record.signed_hash is None
        assert updated.signed_hash == SIGNED
        assert updated.token == record.token

    def test_public_dict_omits_missing_signed_hash(self):
        assert "signed_hash" not in make_record().to_public_dict()
        assert make_record(signed_hash=SIGNED).to_public_dict()["signed_hash"] == SIGNED


class StoreContract:
    """Behaviour shared by every consent store"""

    store = None

    def test_save_and_get(self):
        record = make_record()
        self.store.save(record)

        loaded = self.store.get(record.token)
        assert loaded == record

    def test_get_missing(self):
        assert self.store.get("gdpr_missing") is None

    def test_update_signed_hash(self):
        self.store.save(make_record())

        assert self.store.update_signed_hash("gdpr_test_1", SIGNED)
        assert self.store.get("gdpr_test_1").signed_hash == SIGNED

    def test_update_signed_hash_same_value_is_idempotent(self):
        self.store.save(make_record())
        self.store.update_signed_hash("gdpr_test_1", SIGNED)

        assert self.store.update_signed_hash("gdpr_test_1", SIGNED)

    def test_update_signed_hash_conflict(self):
        self.store.save(make_record())
        self.store.update_signed_hash("gdpr_test_1", SIGNED)

        with pytest.raises(SignedHashConflictError):
            self.store.update_signed_hash("gdpr_test_1", "c" * 64)
        assert self.store.get("gdpr_test_1").signed_hash == SIGNED

    def test_update_signed_hash_missing_token(self):
        assert not self.store.update_signed_hash("gdpr_missing", SIGNED)

    def test_delete(self):
        self.store.save(make_record())

        assert self.store.delete("gdpr_test_1")
        assert not self.store.delete("gdpr_test_1")
        assert self.store.get("gdpr_test_1") is None

    def test_cleanup_removes_only_expired(self):
        self.store.save(make_record("gdpr_expired", expires_at=NOW - timedelta(minutes=1)))
        self.store.save(make_record("gdpr_boundary", expires_at=NOW))
        self.store.save(make_record("gdpr_active", expires_at=NOW + timedelta(hours=1)))

        assert self.store.cleanup(now=NOW) == 1
        assert self.store.get("gdpr_expired") is None
        assert self.store.get("gdpr_boundary") is not None
        assert self.store.get("gdpr_active") is not None

    def test_stats(self):
        self.store.save(make_record("gdpr_expired", expires_at=NOW - timedelta(minutes=1)))
        self.store.save(make_record("gdpr_active", expires_at=NOW + timedelta(hours=1)))

        stats = self.store.stats(now=NOW)
        assert stats.total == 2
        assert stats.active == 1
        assert stats.expired == 1


class TestInMemoryConsentStore(StoreContract):
    """Test the in-memory store"""

    def setup_method(self):
        self.store = InMemoryConsentStore()


class TestSQLConsentStore(StoreContract):
    """Test the SQL store against in-memory SQLite"""

    def setup_method(self):
        self.store = SQLConsentStore("sqlite:///:memory:")

    def test_timestamps_round_trip_as_utc(self):
        record = make_record()
        self.store.save(record)

        loaded = self.store.get(record.token)
        assert loaded.expires_at.tzinfo is not None
        assert loaded.expires_at == record.expires_at

    def test_save_overwrites_existing_token(self):
        self.store.save(make_record(subject="alice@example.com"))
        self.store.save(make_record(subject="bob@example.com"))

        assert self.store.get("gdpr_test_1").subject == "bob@example.com"
        assert self.store.stats(now=NOW).total == 1


class TestCreateConsentStore:
    """Test store selection from configuration"""

    def test_defaults_to_memory(self):
        assert isinstance(create_consent_store(GateConfig(database_url=None)), InMemoryConsentStore)

    def test_database_url_selects_sql(self):
        store = create_consent_store(GateConfig(database_url="sqlite:///:memory:"))

        assert isinstance(store, SQLConsentStore)
