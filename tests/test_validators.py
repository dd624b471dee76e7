"""
Tests for ingress validation
"""

import pytest

from consent_gate.config import GateConfig, MissingClassificationMode
from consent_gate.exceptions import ValidationError
from consent_gate.utils.validators import (
    EmailSchemaValidator,
    email_content,
    validate_consent_token,
    validate_email_address,
    validate_expiry_hours,
)


def make_payload(**overrides):
    payload = {
        "to": "alice@example.com",
        "subject": "Quarterly report",
        "body": "Please find the report attached.",
        "classification": "internal",
    }
    payload.update(overrides)
    return payload


class TestEmailSchemaValidator:
    """Test outbound email schema validation"""

    def setup_method(self):
        self.validator = EmailSchemaValidator(GateConfig())

    def test_valid_payload(self):
        result = self.validator.validate(make_payload())

        assert result.valid
        assert result.errors == []
        assert result.email.to == "alice@example.com"
        assert result.email.classification == "internal"
        assert not result.classification_defaulted

    def test_missing_required_fields(self):
        result = self.validator.validate({"to": "alice@example.com"})

        assert not result.valid
        assert any(error.startswith("subject") for error in result.errors)
        assert any(error.startswith("body") for error in result.errors)

    def test_invalid_recipient(self):
        result = self.validator.validate(make_payload(to="not-an-address"))

        assert not result.valid
        assert any("to" in error for error in result.errors)

    def test_non_object_payload(self):
        result = self.validator.validate(["to", "alice@example.com"])

        assert not result.valid
        assert result.errors == ["payload: must be an object"]

    def test_unknown_classification(self):
        result = self.validator.validate(make_payload(classification="secret"))

        assert not result.valid
        assert any("classification" in error for error in result.errors)

    def test_too_many_attachments(self):
        attachments = [{"name": f"f{i}.pdf", "path": f"/tmp/f{i}.pdf"} for i in range(11)]

        assert not self.validator.validate(make_payload(attachments=attachments)).valid

    def test_attachment_name_characters(self):
        attachments = [{"name": "bad|name.pdf", "path": "/tmp/bad.pdf"}]

        assert not self.validator.validate(make_payload(attachments=attachments)).valid

    def test_importance_closed_set(self):
        assert self.validator.validate(make_payload(importance="high")).valid
        assert not self.validator.validate(make_payload(importance="urgent")).valid

    def test_missing_classification_defaults_to_restricted(self):
        payload = make_payload()
        del payload["classification"]

        result = self.validator.validate(payload)

        assert result.valid
        assert result.email.classification == "restricted"
        assert result.classification_defaulted

    def test_missing_classification_rejected_when_configured(self):
        validator = EmailSchemaValidator(
            GateConfig(missing_classification_policy=MissingClassificationMode.REJECT)
        )
        payload = make_payload()
        del payload["classification"]

        result = validator.validate(payload)

        assert not result.valid
        assert any("classification" in error for error in result.errors)

    def test_classification_argument_wins(self):
        result = self.validator.validate(make_payload(classification="internal"), "confidential")

        assert result.email.classification == "confidential"

    def test_input_not_mutated(self):
        payload = make_payload()
        self.validator.validate(payload, "restricted")

        assert payload["classification"] == "internal"


class TestEmailContent:
    """Test the fingerprinted part of a payload"""

    def test_excludes_metadata_and_unset_fields(self):
        result = EmailSchemaValidator(GateConfig()).validate(
            make_payload(gdpr_token="gdpr_abc_123", sender=None)
        )

        assert result.email.content() == {
            "to": "alice@example.com",
            "subject": "Quarterly report",
            "body": "Please find the report attached.",
        }

    def test_sender_uses_wire_name(self):
        result = EmailSchemaValidator(GateConfig()).validate(make_payload(**{"from": "ops@example.com"}))

        assert result.email.content()["from"] == "ops@example.com"

    def test_raw_dict_matches_parsed_payload(self):
        payload = make_payload(
            attachments=[{"name": "report.pdf", "path": "/docs/report.pdf"}],
            gdpr_token="gdpr_abc_123",
        )
        parsed = EmailSchemaValidator(GateConfig()).validate(payload).email

        assert email_content(payload) == email_content(parsed)

    def test_raw_dict_projected_onto_schema(self):
        payload = make_payload(
            cc="bob@example.com",
            attachments=[{"name": "report.pdf", "path": "/docs/report.pdf", "size": 2048}],
        )
        parsed = EmailSchemaValidator(GateConfig()).validate(payload).email

        content = email_content(payload)

        assert content == parsed.content()
        assert "cc" not in content
        assert content["attachments"] == [{"name": "report.pdf", "path": "/docs/report.pdf"}]

    def test_invalid_raw_dict_raises(self):
        with pytest.raises(ValidationError) as exc_info:
            email_content(make_payload(to="nobody"))

        assert exc_info.value.details["field"] == "email_payload"
        assert exc_info.value.details["errors"]


class TestFieldValidators:
    """Test single-field validators"""

    def test_consent_token(self):
        assert validate_consent_token("  gdpr_abc_123  ") == "gdpr_abc_123"
        assert validate_consent_token(None, required=False) is None

        with pytest.raises(ValidationError):
            validate_consent_token(None)
        with pytest.raises(ValidationError):
            validate_consent_token("gdpr abc")
        with pytest.raises(ValidationError):
            validate_consent_token("g" * 101)
        with pytest.raises(ValidationError):
            validate_consent_token(42)

    def test_email_address(self):
        assert validate_email_address(" alice@example.com ") == "alice@example.com"

        with pytest.raises(ValidationError) as exc_info:
            validate_email_address("alice")
        assert exc_info.value.details["field"] == "recipient_email"

    def test_expiry_hours(self):
        assert validate_expiry_hours(1) == 1
        assert validate_expiry_hours(168) == 168
        assert validate_expiry_hours(24.0) == 24

        for bad in (0, 169, 1.5, "soon", True):
            with pytest.raises(ValidationError):
                validate_expiry_hours(bad)
