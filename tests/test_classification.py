"""
Tests for classification control resolution
"""

import pytest

from consent_gate.exceptions import UnknownClassificationError
from consent_gate.policy.classification import (
    Classification,
    parse_classification,
    resolve_controls,
)


class TestResolveControls:
    """Test the classification to controls table"""

    def test_internal(self):
        controls = resolve_controls(Classification.INTERNAL)

        assert controls.access_restriction
        assert not controls.information_transfer
        assert not controls.electronic_messaging
        assert controls.audit_logging

    def test_confidential(self):
        controls = resolve_controls(Classification.CONFIDENTIAL)

        assert controls.information_transfer
        assert not controls.electronic_messaging

    def test_restricted(self):
        controls = resolve_controls("restricted")

        assert controls.access_restriction
        assert controls.information_transfer
        assert controls.electronic_messaging
        assert controls.audit_logging

    def test_every_level_requires_access_restriction_and_audit(self):
        for level in Classification:
            controls = resolve_controls(level)
            assert controls.access_restriction
            assert controls.audit_logging

    def test_serializes_with_camel_case_names(self):
        data = resolve_controls(Classification.RESTRICTED).model_dump(by_alias=True)

        assert data == {
            "accessRestriction": True,
            "informationTransfer": True,
            "electronicMessaging": True,
            "auditLogging": True,
        }


class TestParseClassification:
    """Test classification parsing"""

    def test_parses_values(self):
        assert parse_classification("internal") is Classification.INTERNAL
        assert parse_classification(Classification.CONFIDENTIAL) is Classification.CONFIDENTIAL

    def test_unknown_value_rejected(self):
        with pytest.raises(UnknownClassificationError) as exc_info:
            resolve_controls("secret")

        error = exc_info.value
        assert error.error_code == "UNKNOWN_CLASSIFICATION"
        assert "secret" in error.message

    def test_case_sensitive(self):
        with pytest.raises(UnknownClassificationError):
            parse_classification("RESTRICTED")
